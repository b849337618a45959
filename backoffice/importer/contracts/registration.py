"""
Registration lookup tables.

Legacy field names, import column priorities, zone codes, pickup locations and
tour options are event-specific data. They are loaded once from YAML into an
immutable ``RegistrationTables`` and handed to every component that needs them.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

DEFAULT_TABLES_PATH = Path(__file__).resolve().parents[3] / "config" / "mappings" / "registration_tables_v1.yaml"

SUPPORTED_VERSIONS = frozenset({1})

REQUIRED_IMPORT_COLUMNS = ("uniqueId", "name", "email", "country", "shreni", "barcode", "departurePlace")


class TablesLoadError(RuntimeError):
    """Raised when the lookup tables cannot be loaded or validated."""


@dataclass(frozen=True)
class RegistrationTables:
    version: int
    event: str
    system_fields: frozenset[str]
    field_names: tuple[tuple[str, str], ...]
    phone_fields: tuple[str, ...]
    obsolete_fields: tuple[str, ...]
    import_columns: Mapping[str, tuple[str, ...]]
    index_email_fields: tuple[str, ...]
    index_identifier_fields: tuple[str, ...]
    zone_table: Mapping[str, str]
    zone_prefixes: tuple[str, ...]
    pickup_options: tuple[str, ...]
    pickup_fallback: str
    pickup_standalone_codes: frozenset[str]
    pickup_aliases: tuple[tuple[str, str], ...]
    tour_options: tuple[str, ...]
    tour_fallback: str
    tour_keywords: tuple[tuple[str, str], ...]
    checksum: str
    path: Path | None = None

    def import_columns_for(self, target: str) -> tuple[str, ...]:
        return self.import_columns.get(target, ())


def _compute_checksum(payload: Mapping[str, Any]) -> str:
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def _string_list(raw: Any, name: str) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, Sequence) or isinstance(raw, str):
        raise TablesLoadError(f"'{name}' must be a list, got {type(raw).__name__}")
    return tuple(str(item) for item in raw)


def _string_mapping(raw: Any, name: str) -> dict[str, str]:
    if not isinstance(raw, Mapping):
        raise TablesLoadError(f"'{name}' must be a mapping, got {type(raw).__name__}")
    return {str(key): str(value) for key, value in raw.items()}


def parse_registration_tables(raw: Mapping[str, Any], *, path: Path | None = None) -> RegistrationTables:
    """Validate an already-parsed tables payload."""

    if not isinstance(raw, Mapping):
        raise TablesLoadError("Tables payload must be a mapping.")
    try:
        version = int(raw["version"])
        zones = raw["zones"]
        pickup = raw["pickup_locations"]
        tour = raw["post_tour"]
        field_names_raw = raw["field_names"]
        import_columns_raw = raw["import_columns"]
    except KeyError as exc:
        raise TablesLoadError(f"Missing required tables attribute: {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise TablesLoadError(f"Invalid tables attribute: {exc}") from exc

    if version not in SUPPORTED_VERSIONS:
        raise TablesLoadError(f"Unsupported tables version {version}.")

    field_names = tuple(_string_mapping(field_names_raw, "field_names").items())

    import_columns: dict[str, tuple[str, ...]] = {}
    if not isinstance(import_columns_raw, Mapping):
        raise TablesLoadError("'import_columns' must be a mapping.")
    for target, columns in import_columns_raw.items():
        import_columns[str(target)] = _string_list(columns, f"import_columns.{target}")
    missing_columns = [target for target in REQUIRED_IMPORT_COLUMNS if not import_columns.get(target)]
    if missing_columns:
        raise TablesLoadError(f"import_columns missing entries for: {', '.join(missing_columns)}")

    zone_table = {key.strip().lower(): value for key, value in _string_mapping(zones.get("table"), "zones.table").items()}
    zone_prefixes = tuple(prefix.lower() for prefix in _string_list(zones.get("prefixes"), "zones.prefixes"))
    unknown_prefixes = [prefix for prefix in zone_prefixes if prefix not in zone_table]
    if unknown_prefixes:
        raise TablesLoadError(f"Zone prefixes without a table entry: {', '.join(unknown_prefixes)}")

    pickup_options = _string_list(pickup.get("options"), "pickup_locations.options")
    pickup_fallback = str(pickup.get("fallback", "Other"))
    aliases = _string_mapping(pickup.get("aliases"), "pickup_locations.aliases")
    stray_labels = sorted({label for label in aliases.values() if label not in pickup_options})
    if stray_labels:
        raise TablesLoadError(f"Pickup aliases point at unknown labels: {', '.join(stray_labels)}")
    # Longest alias first so the most specific phrase wins; sort is stable for ties.
    pickup_aliases = tuple(
        sorted(((alias.lower(), label) for alias, label in aliases.items()), key=lambda item: len(item[0]), reverse=True)
    )

    tour_options = _string_list(tour.get("options"), "post_tour.options")
    tour_fallback = str(tour.get("fallback", "None"))
    tour_keywords: list[tuple[str, str]] = []
    for entry in tour.get("keywords") or ():
        if not isinstance(entry, Sequence) or isinstance(entry, str) or len(entry) != 2:
            raise TablesLoadError(f"post_tour keyword entries must be [keyword, option] pairs, got {entry!r}")
        keyword, option = str(entry[0]).lower(), str(entry[1])
        if option not in tour_options:
            raise TablesLoadError(f"post_tour keyword '{keyword}' maps to unknown option '{option}'")
        tour_keywords.append((keyword, option))

    return RegistrationTables(
        version=version,
        event=str(raw.get("event", "")),
        system_fields=frozenset(_string_list(raw.get("system_fields"), "system_fields")),
        field_names=field_names,
        phone_fields=_string_list(raw.get("phone_fields"), "phone_fields"),
        obsolete_fields=_string_list(raw.get("obsolete_fields"), "obsolete_fields"),
        import_columns=import_columns,
        index_email_fields=_string_list(raw.get("index_email_fields"), "index_email_fields"),
        index_identifier_fields=_string_list(raw.get("index_identifier_fields"), "index_identifier_fields"),
        zone_table=zone_table,
        zone_prefixes=zone_prefixes,
        pickup_options=pickup_options,
        pickup_fallback=pickup_fallback,
        pickup_standalone_codes=frozenset(
            code.lower() for code in _string_list(pickup.get("standalone_codes"), "standalone_codes")
        ),
        pickup_aliases=pickup_aliases,
        tour_options=tour_options,
        tour_fallback=tour_fallback,
        tour_keywords=tuple(tour_keywords),
        checksum=_compute_checksum(raw),
        path=path,
    )


def load_registration_tables(path: str | Path | None = None) -> RegistrationTables:
    """
    Load and validate the lookup tables YAML.
    """

    path = Path(path) if path else DEFAULT_TABLES_PATH
    if not path.exists():
        raise TablesLoadError(f"Tables file not found at {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise TablesLoadError(f"Failed to parse tables YAML at {path}: {exc}") from exc

    return parse_registration_tables(raw, path=path)
