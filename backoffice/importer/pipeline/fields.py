"""
Field-name canonicalization.

Historical spreadsheet exports stored the same logical value under
display-style column names ("Full Name") and, later, under canonical keys
("name"). Canonicalization copies non-empty legacy values forward into empty
canonical slots and removes the legacy keys the store can still address.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from backoffice.importer.contracts import RegistrationTables
from backoffice.store import DELETE_FIELD, SERVER_TIMESTAMP, is_valid_field_name

logger = logging.getLogger(__name__)

UPDATED_AT_FIELD = "updatedAt"

# Parentheses are addressable but the cleanup pass treats them as legacy noise.
CLEANUP_EXTRA_CHARACTERS = frozenset("()")


def is_empty_value(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def _stage(patch: dict[str, Any], field_name: str, value: Any, *, doc_id: str | None) -> None:
    if not is_valid_field_name(field_name):
        logger.warning(
            "Dropping write to invalid field name %r",
            field_name,
            extra={"doc_id": doc_id, "field_name": field_name},
        )
        return
    patch[field_name] = value


def canonicalize_fields(
    data: Mapping[str, Any],
    tables: RegistrationTables,
    *,
    doc_id: str | None = None,
    timestamp_field: str = UPDATED_AT_FIELD,
) -> dict[str, Any]:
    """
    Build the canonicalization patch for one document.

    Every decision reads the original ``data`` snapshot, never the patch being
    built. The returned patch always carries ``timestamp_field``; callers decide
    whether the rest of it is empty.
    """

    canonical_targets = {canonical for _, canonical in tables.field_names}
    patch: dict[str, Any] = {}

    for legacy, canonical in tables.field_names:
        if legacy not in data:
            continue

        value = data[legacy]
        if legacy != canonical and not is_empty_value(value) and is_empty_value(data.get(canonical)):
            _stage(patch, canonical, value, doc_id=doc_id)

        removable = (
            legacy != canonical
            and legacy not in tables.system_fields
            and legacy not in canonical_targets
            and is_valid_field_name(legacy)
        )
        if removable:
            patch[legacy] = DELETE_FIELD
        elif legacy != canonical and not is_valid_field_name(legacy):
            logger.debug("Legacy field %r cannot be addressed; leaving it in place", legacy, extra={"doc_id": doc_id})

    _stage(patch, timestamp_field, SERVER_TIMESTAMP, doc_id=doc_id)

    # A patch must never carry an unaddressable name.
    invalid = [name for name in patch if not is_valid_field_name(name)]
    for name in invalid:
        logger.warning("Removing invalid field %r from patch", name, extra={"doc_id": doc_id})
        del patch[name]
    return patch


def is_cleanup_field_name(name: str) -> bool:
    return is_valid_field_name(name) and not any(char in CLEANUP_EXTRA_CHARACTERS for char in name)


def strip_invalid_fields(
    data: Mapping[str, Any],
    tables: RegistrationTables,
) -> tuple[dict[str, Any], tuple[str, ...]]:
    """
    Split a document into the fields worth keeping and the names to drop.

    System fields are always kept. The caller rewrites the document with the
    kept fields when anything was dropped.
    """

    kept: dict[str, Any] = {}
    dropped: list[str] = []
    for name, value in data.items():
        if name in tables.system_fields or is_cleanup_field_name(name):
            kept[name] = value
        else:
            dropped.append(name)
    return kept, tuple(dropped)


def obsolete_fields_patch(data: Mapping[str, Any], tables: RegistrationTables) -> dict[str, Any]:
    return {
        name: DELETE_FIELD
        for name in tables.obsolete_fields
        if name in data and is_valid_field_name(name) and name not in tables.system_fields
    }
