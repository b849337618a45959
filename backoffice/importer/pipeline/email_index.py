"""
Email index maintenance.

``emailToUids/{email}`` maps a normalized email to the registration identifiers
that use it. The importer merges into it incrementally; the rebuild pass
recomputes every entry from the live registrations and replaces it. The
associated-registrations sync projects the index onto user profiles.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from backoffice.importer.contracts import RegistrationTables
from backoffice.importer.metrics import record_pass_outcome
from backoffice.store import SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore

from .driver import BatchMutationDriver
from .fields import is_empty_value

logger = logging.getLogger(__name__)


def normalize_email(value: Any) -> str:
    if is_empty_value(value):
        return ""
    return str(value).strip().lower()


def extract_email(data: Mapping[str, Any], tables: RegistrationTables) -> str:
    for key in tables.index_email_fields:
        email = normalize_email(data.get(key))
        if email:
            return email
    return ""


def extract_identifier(document: DocumentSnapshot, tables: RegistrationTables) -> str:
    for key in tables.index_identifier_fields:
        value = document.get(key)
        if not is_empty_value(value) and str(value).strip():
            return str(value).strip()
    return document.id


def build_email_map(documents: Iterable[DocumentSnapshot], tables: RegistrationTables) -> dict[str, set[str]]:
    email_map: dict[str, set[str]] = {}
    for document in documents:
        email = extract_email(document.data, tables)
        if not email:
            continue
        email_map.setdefault(email, set()).add(extract_identifier(document, tables))
    return email_map


def index_entry(email: str, uids: Iterable[str]) -> dict[str, Any]:
    ordered = sorted(set(uids))
    return {"email": email, "uids": ordered, "count": len(ordered), "updatedAt": SERVER_TIMESTAMP}


@dataclass
class EmailIndexSummary:
    emails: int = 0
    written: int = 0
    failed: int = 0
    pruned: int = 0
    registrations_scanned: int = 0
    dry_run: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "emails": self.emails,
            "written": self.written,
            "failed": self.failed,
            "pruned": self.pruned,
            "registrations_scanned": self.registrations_scanned,
            "dry_run": self.dry_run,
        }


def merge_email_index(
    driver: BatchMutationDriver,
    email_map: Mapping[str, Iterable[str]],
    *,
    collection: str,
) -> EmailIndexSummary:
    """Union ``email_map`` into the persisted index (existing uids are kept)."""
    store = driver.store
    summary = EmailIndexSummary(emails=len(email_map), dry_run=driver.dry_run)

    def _merge(email: str) -> None:
        uids = set(email_map[email])
        existing = store.get(collection, email)
        if existing is not None:
            uids.update(str(uid) for uid in existing.get("uids") or ())
        if not driver.dry_run:
            store.set(collection, email, index_entry(email, uids))

    for result in driver.run_in_groups(sorted(email_map), _merge):
        if result.error is not None:
            summary.failed += 1
            logger.error("Failed to merge email index entry %s: %s", result.item, result.error)
        else:
            summary.written += 1
    record_pass_outcome("email-index-merge", "updated", summary.written)
    record_pass_outcome("email-index-merge", "failed", summary.failed)
    return summary


def rebuild_email_index(
    driver: BatchMutationDriver,
    tables: RegistrationTables,
    *,
    registrations_collection: str,
    index_collection: str,
    prune: bool = False,
) -> EmailIndexSummary:
    """
    Recompute every index entry from the current registrations and replace it.

    With ``prune`` the entries whose email no longer appears on any
    registration are deleted as well.
    """
    store = driver.store
    documents = driver.fetch_all(registrations_collection)
    email_map = build_email_map(documents, tables)
    summary = EmailIndexSummary(
        emails=len(email_map), registrations_scanned=len(documents), dry_run=driver.dry_run
    )

    def _replace(email: str) -> None:
        if not driver.dry_run:
            store.set(index_collection, email, index_entry(email, email_map[email]))

    for result in driver.run_in_groups(sorted(email_map), _replace):
        if result.error is not None:
            summary.failed += 1
            logger.error("Failed to rebuild email index entry %s: %s", result.item, result.error)
        else:
            summary.written += 1

    if prune:
        stale = [entry.id for entry in driver.fetch_all(index_collection) if entry.id not in email_map]

        def _delete(email: str) -> None:
            if not driver.dry_run:
                store.delete(index_collection, email)

        for result in driver.run_in_groups(stale, _delete):
            if result.error is not None:
                summary.failed += 1
                logger.error("Failed to prune email index entry %s: %s", result.item, result.error)
            else:
                summary.pruned += 1

    record_pass_outcome("email-index-rebuild", "updated", summary.written)
    record_pass_outcome("email-index-rebuild", "failed", summary.failed)
    logger.info(
        "Email index rebuilt: %s emails from %s registrations (%s failed, %s pruned)",
        summary.emails,
        summary.registrations_scanned,
        summary.failed,
        summary.pruned,
    )
    return summary


# -- associated registrations ----------------------------------------------------------


@dataclass
class AssociationSummary:
    index_entries: int = 0
    entries_without_users: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    dry_run: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "index_entries": self.index_entries,
            "entries_without_users": self.entries_without_users,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "dry_run": self.dry_run,
        }


class _UserEmailLookup:
    """Users by stored email, falling back to a one-time scan keyed by normalized email."""

    def __init__(self, driver: BatchMutationDriver, collection: str) -> None:
        self._driver = driver
        self._collection = collection
        self._by_normalized: dict[str, list[DocumentSnapshot]] | None = None
        self._lock = threading.Lock()

    def _scan(self) -> dict[str, list[DocumentSnapshot]]:
        with self._lock:
            if self._by_normalized is None:
                index: dict[str, list[DocumentSnapshot]] = {}
                for user in self._driver.fetch_all(self._collection):
                    email = normalize_email(user.get("email"))
                    if email:
                        index.setdefault(email, []).append(user)
                self._by_normalized = index
            return self._by_normalized

    def find(self, email: str) -> list[DocumentSnapshot]:
        users = self._driver.store.where(self._collection, "email", email)
        if users:
            return users
        return list(self._scan().get(email, ()))


def registration_summary(
    store: DocumentStore,
    uid: str,
    email: str,
    *,
    collection: str,
) -> dict[str, str]:
    """Summary of one linked registration; missing or unreadable ones degrade to a stub."""
    try:
        registration = store.get(collection, uid)
    except Exception as exc:
        logger.warning("Could not read registration %s: %s", uid, exc)
        registration = None
    if registration is None:
        return {"uniqueId": uid, "name": "", "email": email}

    data = registration.data
    unique_id = data.get("uniqueId")
    name = data.get("name") or data.get("Full Name") or ""
    reg_email = data.get("email") or data.get("Email address") or email
    return {
        "uniqueId": str(unique_id) if not is_empty_value(unique_id) else uid,
        "name": str(name),
        "email": str(reg_email),
    }


def _dedupe_by_unique_id(summaries: Sequence[dict[str, str]]) -> list[dict[str, str]]:
    seen: set[str] = set()
    unique: list[dict[str, str]] = []
    for summary in summaries:
        unique_id = summary.get("uniqueId")
        if not unique_id or unique_id in seen:
            continue
        seen.add(unique_id)
        unique.append(summary)
    return unique


def _stored_unique_ids(user: DocumentSnapshot) -> set[str]:
    current = user.get("associatedRegistrations") or []
    return {
        str(entry.get("uniqueId"))
        for entry in current
        if isinstance(entry, Mapping) and not is_empty_value(entry.get("uniqueId"))
    }


def sync_associated_registrations(
    driver: BatchMutationDriver,
    *,
    index_collection: str,
    users_collection: str,
    registrations_collection: str,
) -> AssociationSummary:
    """
    Overwrite each matching user's ``associatedRegistrations`` from the email index.

    A user is only written when its set of linked identifiers actually changed.
    """
    store = driver.store
    entries = [entry for entry in driver.fetch_all(index_collection) if entry.get("uids")]
    summary = AssociationSummary(index_entries=len(entries), dry_run=driver.dry_run)
    users = _UserEmailLookup(driver, users_collection)
    counts_lock = threading.Lock()

    def _sync(entry: DocumentSnapshot) -> None:
        email = normalize_email(entry.id)
        matches = users.find(email)
        if not matches:
            with counts_lock:
                summary.entries_without_users += 1
            return

        registrations = _dedupe_by_unique_id(
            [
                registration_summary(store, str(uid), email, collection=registrations_collection)
                for uid in entry.get("uids") or ()
            ]
        )
        new_ids = {registration["uniqueId"] for registration in registrations}

        for user in matches:
            try:
                if _stored_unique_ids(user) == new_ids:
                    with counts_lock:
                        summary.skipped += 1
                    continue
                if not driver.dry_run:
                    store.update(
                        users_collection,
                        user.id,
                        {"associatedRegistrations": registrations, "emailProcessedAt": SERVER_TIMESTAMP},
                    )
                with counts_lock:
                    summary.updated += 1
            except Exception as exc:
                logger.error("Failed to update user %s (%s): %s", user.id, email, exc)
                with counts_lock:
                    summary.failed += 1

    for result in driver.run_in_groups(entries, _sync):
        if result.error is not None:
            summary.failed += 1
            logger.error("Failed to process email %s: %s", result.item.id, result.error)

    record_pass_outcome("sync-associated-registrations", "updated", summary.updated)
    record_pass_outcome("sync-associated-registrations", "skipped", summary.skipped)
    record_pass_outcome("sync-associated-registrations", "failed", summary.failed)
    logger.info(
        "Associated registrations synced: %s updated, %s skipped, %s failed",
        summary.updated,
        summary.skipped,
        summary.failed,
    )
    return summary
