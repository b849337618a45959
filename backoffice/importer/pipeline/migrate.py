"""
Cross-collection migration.

A selected document is copied (with provenance fields) to the destination
collection and deleted from the source in the same write batch, so a flushed
batch never leaves a document in both places or in neither.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from backoffice.importer.metrics import record_migration_commit, record_pass_outcome
from backoffice.store import SERVER_TIMESTAMP, DocumentSnapshot

from .driver import BatchMutationDriver

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_SIZE = 500
NON_PARTICIPANT_ROLES = frozenset({"volunteer", "admin"})
CANCELLED_STATUSES = frozenset({"Cancelled", "Rejected"})


@dataclass(frozen=True)
class MigrationPlan:
    name: str
    source: str
    destination: str
    predicate: Callable[[Mapping[str, Any]], bool]
    provenance: Callable[[DocumentSnapshot], dict[str, Any]]


@dataclass
class MigrationSummary:
    name: str
    checked: int = 0
    migrated: int = 0
    kept: int = 0
    failed: int = 0
    commits: int = 0
    dry_run: bool = False

    def as_dict(self) -> dict[str, object]:
        return {
            "migration": self.name,
            "checked": self.checked,
            "migrated": self.migrated,
            "kept": self.kept,
            "failed": self.failed,
            "commits": self.commits,
            "dry_run": self.dry_run,
        }


def is_non_shibirarthi(data: Mapping[str, Any]) -> bool:
    shreni = str(data.get("shreni") or data.get("Shreni") or "").strip().lower()
    role = str(data.get("role") or "").strip().lower()
    return shreni == "volunteer" or role in NON_PARTICIPANT_ROLES


def is_cancelled(data: Mapping[str, Any]) -> bool:
    return data.get("status") in CANCELLED_STATUSES


def non_shibirarthi_plan(*, source: str, destination: str) -> MigrationPlan:
    def _provenance(document: DocumentSnapshot) -> dict[str, Any]:
        return {"migratedAt": SERVER_TIMESTAMP, "originalCollection": source}

    return MigrationPlan(
        name="migrate-non-shibirarthi",
        source=source,
        destination=destination,
        predicate=is_non_shibirarthi,
        provenance=_provenance,
    )


def cancelled_plan(*, source: str, destination: str) -> MigrationPlan:
    def _provenance(document: DocumentSnapshot) -> dict[str, Any]:
        return {
            "migratedAt": SERVER_TIMESTAMP,
            "originalCollection": source,
            "originalStatus": document.get("status"),
        }

    return MigrationPlan(
        name="migrate-cancelled",
        source=source,
        destination=destination,
        predicate=is_cancelled,
        provenance=_provenance,
    )


def migrate(
    driver: BatchMutationDriver,
    plan: MigrationPlan,
    *,
    flush_size: int = DEFAULT_FLUSH_SIZE,
) -> MigrationSummary:
    """
    Move every document of ``plan.source`` matching ``plan.predicate``.

    A failed commit counts all of its documents as failed; they stay in the
    source collection and the run continues with a fresh batch.
    """
    store = driver.store
    summary = MigrationSummary(name=plan.name, dry_run=driver.dry_run)
    batch = store.batch()
    pending: list[str] = []

    def _flush() -> None:
        nonlocal batch
        if not pending:
            return
        try:
            batch.commit()
        except Exception as exc:
            summary.failed += len(pending)
            record_migration_commit(plan.destination, "failure")
            logger.error(
                "%s: commit of %s document(s) failed: %s",
                plan.name,
                len(pending),
                exc,
                extra={"doc_ids": list(pending)},
            )
        else:
            summary.migrated += len(pending)
            summary.commits += 1
            record_migration_commit(plan.destination, "success")
            logger.info("%s: committed %s document(s)", plan.name, len(pending))
        pending.clear()
        batch = store.batch()

    for document in driver.fetch_all(plan.source):
        summary.checked += 1
        if not plan.predicate(document.data):
            summary.kept += 1
            continue
        try:
            payload = {**document.data, **plan.provenance(document)}
        except Exception as exc:
            summary.failed += 1
            logger.error("%s: could not prepare %s: %s", plan.name, document.id, exc, extra={"doc_id": document.id})
            continue

        if driver.dry_run:
            summary.migrated += 1
            continue

        batch.set(plan.destination, document.id, payload)
        batch.delete(plan.source, document.id)
        pending.append(document.id)
        if len(pending) >= flush_size:
            _flush()

    _flush()

    record_pass_outcome(plan.name, "updated", summary.migrated)
    record_pass_outcome(plan.name, "skipped", summary.kept)
    record_pass_outcome(plan.name, "failed", summary.failed)
    logger.info(
        "%s complete: %s checked, %s migrated, %s kept, %s failed",
        plan.name,
        summary.checked,
        summary.migrated,
        summary.kept,
        summary.failed,
    )
    return summary
