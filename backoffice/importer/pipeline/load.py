"""
Spreadsheet import into the registrations collection.

Each row becomes one full-replace write keyed by the participant identifier.
The raw columns are kept verbatim next to a handful of derived canonical
fields so later canonicalization passes can still see the legacy names.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from backoffice.importer.contracts import RegistrationTables
from backoffice.importer.metrics import record_import_rows
from backoffice.store import SERVER_TIMESTAMP

from .driver import BatchMutationDriver
from .email_index import EmailIndexSummary, merge_email_index, normalize_email, rebuild_email_index
from .fields import is_empty_value

logger = logging.getLogger(__name__)


class MissingIdentifierError(ValueError):
    """Raised when a row carries none of the identifier columns."""


@dataclass
class ImportSummary:
    rows_read: int = 0
    imported: int = 0
    missing_identifier: int = 0
    failed: int = 0
    dry_run: bool = False
    failures: list[tuple[int, str]] = field(default_factory=list)
    index_merge: EmailIndexSummary | None = None
    index_rebuild: EmailIndexSummary | None = None

    @property
    def errors(self) -> int:
        return self.missing_identifier + self.failed

    def as_dict(self) -> dict[str, object]:
        return {
            "rows_read": self.rows_read,
            "imported": self.imported,
            "missing_identifier": self.missing_identifier,
            "failed": self.failed,
            "dry_run": self.dry_run,
            "index_merge": self.index_merge.as_dict() if self.index_merge else None,
            "index_rebuild": self.index_rebuild.as_dict() if self.index_rebuild else None,
        }


def resolve_column(row: Mapping[str, Any], columns: Sequence[str]) -> Any:
    """Return the first non-empty value among ``columns``."""
    for column in columns:
        value = row.get(column)
        if is_empty_value(value):
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def normalize_identifier(unique_id: str) -> str:
    return unique_id.lower().replace("/", "").replace("-", "")


def build_registration_document(
    row: Mapping[str, Any],
    tables: RegistrationTables,
) -> tuple[str, dict[str, Any]]:
    """
    Derive the document id and body for one spreadsheet row.

    Raw columns are copied verbatim, then the derived canonical fields are
    laid over them so a blank raw column never masks a resolved value.
    """
    raw_id = resolve_column(row, tables.import_columns_for("uniqueId"))
    if raw_id is None:
        raise MissingIdentifierError("Row has no participant identifier")
    unique_id = str(raw_id).strip()

    def _derived(target: str, default: Any = "") -> Any:
        value = resolve_column(row, tables.import_columns_for(target))
        return default if value is None else value

    country = _derived("country")
    shreni = _derived("shreni")
    barcode = _derived("barcode", default=unique_id)

    document: dict[str, Any] = dict(row)
    document.update(
        {
            "uniqueId": unique_id,
            "normalizedId": normalize_identifier(unique_id),
            "name": _derived("name"),
            "email": _derived("email"),
            "country": country,
            "Country": country,
            "shreni": shreni,
            "Shreni": shreni,
            "barcode": barcode,
            "Barcode": barcode,
            "departurePlace": _derived("departurePlace"),
        }
    )
    document["importedAt"] = SERVER_TIMESTAMP
    return unique_id, document


def import_registrations(
    driver: BatchMutationDriver,
    rows: Iterable[Mapping[str, Any]],
    tables: RegistrationTables,
    *,
    registrations_collection: str,
    index_collection: str,
) -> ImportSummary:
    """
    Write every row, merge the collected emails into the index, then rebuild
    the index from the full collection.
    """
    store = driver.store
    summary = ImportSummary(dry_run=driver.dry_run)
    email_map: dict[str, set[str]] = {}

    for row_number, row in enumerate(rows, start=2):
        summary.rows_read += 1
        try:
            unique_id, document = build_registration_document(row, tables)
        except MissingIdentifierError:
            summary.missing_identifier += 1
            logger.warning("Skipping spreadsheet row %s: missing participant identifier", row_number)
            continue

        try:
            if not driver.dry_run:
                store.set(registrations_collection, unique_id, document)
        except Exception as exc:
            summary.failed += 1
            summary.failures.append((row_number, str(exc)))
            logger.error("Failed to import row %s (%s): %s", row_number, unique_id, exc, extra={"doc_id": unique_id})
            continue

        summary.imported += 1
        email = normalize_email(document.get("email"))
        if email:
            email_map.setdefault(email, set()).add(unique_id)

    record_import_rows("imported", summary.imported)
    record_import_rows("failed", summary.errors)
    logger.info(
        "Imported %s of %s rows (%s missing identifier, %s failed)",
        summary.imported,
        summary.rows_read,
        summary.missing_identifier,
        summary.failed,
    )

    summary.index_merge = merge_email_index(driver, email_map, collection=index_collection)
    summary.index_rebuild = rebuild_email_index(
        driver,
        tables,
        registrations_collection=registrations_collection,
        index_collection=index_collection,
    )
    return summary
