"""
Normalization and cleanup passes over the registrations collection.

Each pass is a pure ``*_change`` function (document in, ``DocumentChange`` or
``None`` out) plus a thin runner that hands it to the batch mutation driver.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from backoffice.errors import MissingPreconditionError
from backoffice.importer.contracts import RegistrationTables
from backoffice.importer.metrics import record_date_failure, record_pass_outcome
from backoffice.store import SERVER_TIMESTAMP, DocumentSnapshot, is_valid_field_name

from .dates import normalize_date
from .driver import BatchMutationDriver, DocumentChange, MutationSummary
from .fields import (
    canonicalize_fields,
    is_empty_value,
    obsolete_fields_patch,
    strip_invalid_fields,
)
from .values import (
    is_negative_phone,
    normalize_pickup_location,
    normalize_post_tour as normalize_post_tour_value,
    normalize_zone,
)

logger = logging.getLogger(__name__)

NORMALIZED_AT_FIELD = "normalizedAt"

ZONE_SOURCES = ("zone", "Zone", "Zone/Shreni")
DATE_SOURCES = (
    ("arrivalDate", ("Date of Arrival",)),
    ("departureDate", ("Date of Departure Train/Flight",)),
)
PICKUP_SOURCES = ("arrivalPlace", "Place of Arrival", "pickupLocation")
POST_TOUR_SOURCES = ("postShibirTour", "Post Shibir Tour", "Please select a post shibir tour option")

STATUS_REJECTED = "Rejected"
STATUS_CANCELLED = "Cancelled"
STATUS_APPROVED = "Approved"


def first_present(data: Mapping[str, Any], keys: Iterable[str]) -> Any:
    """Return the first non-empty value among ``keys`` (``None`` when all are empty)."""
    for key in keys:
        value = data.get(key)
        if not is_empty_value(value):
            return value
    return None


def registration_identifier(document: DocumentSnapshot) -> str:
    value = document.get("uniqueId")
    return str(value) if not is_empty_value(value) else document.id


def _mirror_into(patch: dict[str, Any], data: Mapping[str, Any], keys: Iterable[str], value: Any) -> None:
    for key in keys:
        if not is_empty_value(data.get(key)) and is_valid_field_name(key):
            patch[key] = value


# -- field names -----------------------------------------------------------------------


def field_names_change(document: DocumentSnapshot, tables: RegistrationTables) -> DocumentChange:
    return DocumentChange(fields=canonicalize_fields(document.data, tables, doc_id=document.id))


def cleanup_change(document: DocumentSnapshot, tables: RegistrationTables) -> DocumentChange | None:
    kept, dropped = strip_invalid_fields(document.data, tables)
    if not dropped:
        return None
    logger.info("Dropping %s invalid field(s) from %s: %s", len(dropped), document.id, ", ".join(dropped))
    return DocumentChange(fields=kept, replace=True, field_count=len(dropped))


def obsolete_fields_change(document: DocumentSnapshot, tables: RegistrationTables) -> DocumentChange | None:
    patch = obsolete_fields_patch(document.data, tables)
    return DocumentChange(fields=patch) if patch else None


def normalize_field_names(driver: BatchMutationDriver, tables: RegistrationTables, *, collection: str) -> MutationSummary:
    return driver.run(collection, lambda doc: field_names_change(doc, tables), pass_name="normalize")


def cleanup_invalid_fields(driver: BatchMutationDriver, tables: RegistrationTables, *, collection: str) -> MutationSummary:
    return driver.run(collection, lambda doc: cleanup_change(doc, tables), pass_name="cleanup")


def remove_obsolete_fields(driver: BatchMutationDriver, tables: RegistrationTables, *, collection: str) -> MutationSummary:
    return driver.run(collection, lambda doc: obsolete_fields_change(doc, tables), pass_name="remove-fields")


# -- value normalizers -------------------------------------------------------------------


def zone_change(document: DocumentSnapshot, tables: RegistrationTables) -> DocumentChange | None:
    data = document.data
    current = first_present(data, ZONE_SOURCES)
    if current is None:
        return None
    normalized = normalize_zone(current, tables)
    if not normalized or normalized == current:
        return None
    patch: dict[str, Any] = {"zone": normalized, NORMALIZED_AT_FIELD: SERVER_TIMESTAMP}
    _mirror_into(patch, data, ("Zone",), normalized)
    return DocumentChange(fields=patch)


@dataclass(frozen=True)
class DateFailure:
    registration_id: str
    arrival: Any
    departure: Any


def date_change(document: DocumentSnapshot) -> tuple[DocumentChange | None, DateFailure | None]:
    """Return the date patch (if any) and a follow-up record when a value could not be parsed."""
    data = document.data
    patch: dict[str, Any] = {}
    failed_values: dict[str, Any] = {}

    for canonical, legacy_keys in DATE_SOURCES:
        current = first_present(data, (canonical, *legacy_keys))
        if current is None:
            continue
        result = normalize_date(current)
        if not result.success:
            failed_values[canonical] = current
            record_date_failure(canonical)
            logger.warning(
                "Could not normalize %s %r for %s",
                canonical,
                current,
                registration_identifier(document),
                extra={"doc_id": document.id},
            )
            continue
        if result.normalized and result.normalized != current:
            patch[canonical] = result.normalized
            _mirror_into(patch, data, legacy_keys, result.normalized)

    failure = None
    if failed_values:
        failure = DateFailure(
            registration_id=registration_identifier(document),
            arrival=first_present(data, ("arrivalDate", "Date of Arrival")),
            departure=first_present(data, ("departureDate", "Date of Departure Train/Flight")),
        )
    if not patch:
        return None, failure
    patch[NORMALIZED_AT_FIELD] = SERVER_TIMESTAMP
    return DocumentChange(fields=patch), failure


def pickup_location_change(document: DocumentSnapshot, tables: RegistrationTables) -> DocumentChange | None:
    data = document.data
    current = first_present(data, PICKUP_SOURCES)
    if current is None:
        return None
    normalized = normalize_pickup_location(current, tables)
    if not normalized or normalized == current:
        return None
    patch: dict[str, Any] = {"normalizedPickupLocation": normalized, NORMALIZED_AT_FIELD: SERVER_TIMESTAMP}
    _mirror_into(patch, data, PICKUP_SOURCES, normalized)
    return DocumentChange(fields=patch)


def post_tour_change(document: DocumentSnapshot, tables: RegistrationTables) -> DocumentChange | None:
    data = document.data
    current = first_present(data, POST_TOUR_SOURCES)
    if current is None:
        return None
    normalized = normalize_post_tour_value(current, tables)
    if normalized == current:
        return None
    patch: dict[str, Any] = {"postShibirTour": normalized, NORMALIZED_AT_FIELD: SERVER_TIMESTAMP}
    _mirror_into(patch, data, POST_TOUR_SOURCES[1:], normalized)
    return DocumentChange(fields=patch)


def normalize_zones(driver: BatchMutationDriver, tables: RegistrationTables, *, collection: str) -> MutationSummary:
    return driver.run(collection, lambda doc: zone_change(doc, tables), pass_name="normalize-zones")


@dataclass
class DateNormalizationReport:
    summary: MutationSummary
    failures: list[DateFailure] = field(default_factory=list)


def normalize_dates(driver: BatchMutationDriver, *, collection: str) -> DateNormalizationReport:
    failures: list[DateFailure] = []
    lock = threading.Lock()

    def _compute(document: DocumentSnapshot) -> DocumentChange | None:
        change, failure = date_change(document)
        if failure is not None:
            with lock:
                failures.append(failure)
        return change

    summary = driver.run(collection, _compute, pass_name="normalize-dates")
    failures.sort(key=lambda item: item.registration_id)
    if failures:
        logger.warning("%s registration(s) have dates that need manual follow-up", len(failures))
    return DateNormalizationReport(summary=summary, failures=failures)


def normalize_pickup_locations(
    driver: BatchMutationDriver, tables: RegistrationTables, *, collection: str
) -> MutationSummary:
    return driver.run(
        collection, lambda doc: pickup_location_change(doc, tables), pass_name="normalize-pickup-locations"
    )


def normalize_post_tour(driver: BatchMutationDriver, tables: RegistrationTables, *, collection: str) -> MutationSummary:
    return driver.run(collection, lambda doc: post_tour_change(doc, tables), pass_name="normalize-post-tour")


# -- reports ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NegativePhone:
    doc_id: str
    name: str
    field: str
    value: Any
    email: str


def find_negative_phones(
    documents: Sequence[DocumentSnapshot], tables: RegistrationTables
) -> tuple[list[NegativePhone], dict[str, int]]:
    """Return every negative phone value and a per-field count."""
    findings: list[NegativePhone] = []
    for document in documents:
        data = document.data
        for field_name in tables.phone_fields:
            value = data.get(field_name)
            if is_negative_phone(value):
                findings.append(
                    NegativePhone(
                        doc_id=document.id,
                        name=str(first_present(data, ("name", "Full Name")) or ""),
                        field=field_name,
                        value=value,
                        email=str(first_present(data, ("email", "Email address")) or ""),
                    )
                )
    by_field = Counter(finding.field for finding in findings)
    return findings, dict(sorted(by_field.items()))


# -- targeted status updates -----------------------------------------------------------


@dataclass
class StatusUpdateSummary:
    status: str
    requested: int = 0
    updated: int = 0
    not_found: int = 0
    failed: int = 0
    dry_run: bool = False
    missing_ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "requested": self.requested,
            "updated": self.updated,
            "not_found": self.not_found,
            "failed": self.failed,
            "dry_run": self.dry_run,
        }


def _unique_ids(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for raw in ids:
        value = str(raw).strip()
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


def update_status(
    driver: BatchMutationDriver,
    ids: Iterable[str],
    status: str,
    *,
    collection: str,
) -> StatusUpdateSummary:
    """Set ``status`` on each listed registration; unknown identifiers are counted, not fatal."""
    targets = _unique_ids(ids)
    if not targets:
        raise MissingPreconditionError(f"No registration identifiers given for status {status}")
    summary = StatusUpdateSummary(status=status, requested=len(targets), dry_run=driver.dry_run)
    store = driver.store

    def _apply(doc_id: str) -> bool:
        if store.get(collection, doc_id) is None:
            return False
        if not driver.dry_run:
            store.update(collection, doc_id, {"status": status, "updatedAt": SERVER_TIMESTAMP})
        return True

    for result in driver.run_in_groups(targets, _apply):
        if result.error is not None:
            summary.failed += 1
            logger.error("Status update to %s failed for %s: %s", status, result.item, result.error)
        elif result.value:
            summary.updated += 1
        else:
            summary.not_found += 1
            summary.missing_ids.append(result.item)
            logger.warning("Registration %s not found for status %s", result.item, status)

    pass_name = f"status-{status.lower()}"
    record_pass_outcome(pass_name, "updated", summary.updated)
    record_pass_outcome(pass_name, "not_found", summary.not_found)
    record_pass_outcome(pass_name, "failed", summary.failed)
    return summary
