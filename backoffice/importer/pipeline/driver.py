"""
Batch mutation driver.

Every bulk pass shares one contract: exhaustively paginate a collection,
compute a per-document change, and apply changes in bounded groups with a pause
between groups so the store's write quota is respected. A failure on one
document is logged and counted; it never aborts the group or the run.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence, TypeVar

from backoffice.importer.metrics import record_pass_outcome
from backoffice.store import DocumentSnapshot, DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_GROUP_SIZE = 10
DEFAULT_DELAY_SECONDS = 0.5
DEFAULT_PAGE_SIZE = 3000
MARKER_FIELDS = frozenset({"updatedAt", "normalizedAt"})

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class DocumentChange:
    """
    A pending write for one document.

    ``fields`` is a field-level patch unless ``replace`` is set, in which case
    it is the complete new document body.
    """

    fields: Mapping[str, Any]
    replace: bool = False
    field_count: int | None = None

    def changed_field_count(self, marker_fields: Iterable[str] = MARKER_FIELDS) -> int:
        if self.field_count is not None:
            return self.field_count
        markers = set(marker_fields)
        return sum(1 for name in self.fields if name not in markers)

    def is_effective(self, marker_fields: Iterable[str] = MARKER_FIELDS) -> bool:
        if self.replace:
            return True
        markers = set(marker_fields)
        return any(name not in markers for name in self.fields)


@dataclass
class MutationSummary:
    pass_name: str
    documents_seen: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    fields_changed: int = 0
    dry_run: bool = False
    failures: list[tuple[str, str]] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "pass": self.pass_name,
            "documents_seen": self.documents_seen,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "fields_changed": self.fields_changed,
            "dry_run": self.dry_run,
        }


@dataclass(frozen=True)
class GroupResult:
    item: Any
    value: Any = None
    error: BaseException | None = None


class BatchMutationDriver:
    def __init__(
        self,
        store: DocumentStore,
        *,
        group_size: int = DEFAULT_GROUP_SIZE,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        page_size: int = DEFAULT_PAGE_SIZE,
        dry_run: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        marker_fields: Iterable[str] = MARKER_FIELDS,
    ) -> None:
        if group_size < 1:
            raise ValueError("group_size must be at least 1")
        self.store = store
        self.group_size = group_size
        self.delay_seconds = max(delay_seconds, 0.0)
        self.page_size = page_size
        self.dry_run = dry_run
        self._sleep = sleep
        self.marker_fields = frozenset(marker_fields)

    @classmethod
    def from_settings(cls, store: DocumentStore, settings: Mapping[str, Any], **overrides: Any) -> "BatchMutationDriver":
        options = {
            "group_size": int(settings.get("BATCH_GROUP_SIZE", DEFAULT_GROUP_SIZE)),
            "delay_seconds": int(settings.get("BATCH_DELAY_MS", DEFAULT_DELAY_SECONDS * 1000)) / 1000.0,
            "page_size": int(settings.get("SCAN_PAGE_SIZE", DEFAULT_PAGE_SIZE)),
            "dry_run": bool(settings.get("DRY_RUN", False)),
        }
        options.update(overrides)
        return cls(store, **options)

    # -- pagination ------------------------------------------------------------------
    def fetch_all(self, collection: str) -> list[DocumentSnapshot]:
        documents = self.store.fetch_all(collection, page_size=self.page_size)
        logger.info("Fetched %s documents from %s", len(documents), collection)
        return documents

    # -- paced fan-out ---------------------------------------------------------------
    def run_in_groups(self, items: Sequence[T], worker: Callable[[T], R]) -> list[GroupResult]:
        """
        Run ``worker`` over ``items`` in concurrent groups, waiting for each group
        to finish and pausing before the next. Errors are captured per item.
        """
        results: list[GroupResult] = []
        if not items:
            return results

        def _call(item: T) -> GroupResult:
            try:
                return GroupResult(item=item, value=worker(item))
            except Exception as exc:
                return GroupResult(item=item, error=exc)

        with ThreadPoolExecutor(max_workers=self.group_size) as executor:
            for start in range(0, len(items), self.group_size):
                group = items[start : start + self.group_size]
                results.extend(executor.map(_call, group))
                if start + self.group_size < len(items) and self.delay_seconds:
                    self._sleep(self.delay_seconds)
        return results

    # -- mutation passes -------------------------------------------------------------
    def _write(self, document: DocumentSnapshot, change: DocumentChange) -> None:
        if change.replace:
            self.store.set(document.collection, document.id, change.fields)
        else:
            self.store.update(document.collection, document.id, change.fields)

    def apply(
        self,
        documents: Sequence[DocumentSnapshot],
        compute: Callable[[DocumentSnapshot], DocumentChange | None],
        *,
        pass_name: str,
    ) -> MutationSummary:
        summary = MutationSummary(pass_name=pass_name, documents_seen=len(documents), dry_run=self.dry_run)

        def _process(document: DocumentSnapshot) -> int | None:
            change = compute(document)
            if change is None or not change.is_effective(self.marker_fields):
                return None
            if not self.dry_run:
                self._write(document, change)
            return change.changed_field_count(self.marker_fields)

        for result in self.run_in_groups(documents, _process):
            if result.error is not None:
                summary.failed += 1
                summary.failures.append((result.item.id, str(result.error)))
                logger.error(
                    "%s failed for %s: %s",
                    pass_name,
                    result.item.id,
                    result.error,
                    extra={"pass_name": pass_name, "doc_id": result.item.id},
                )
            elif result.value is None:
                summary.skipped += 1
            else:
                summary.updated += 1
                summary.fields_changed += result.value

        record_pass_outcome(pass_name, "updated", summary.updated)
        record_pass_outcome(pass_name, "skipped", summary.skipped)
        record_pass_outcome(pass_name, "failed", summary.failed)
        logger.info(
            "%s complete: %s updated, %s skipped, %s failed (dry_run=%s)",
            pass_name,
            summary.updated,
            summary.skipped,
            summary.failed,
            self.dry_run,
        )
        return summary

    def run(
        self,
        collection: str,
        compute: Callable[[DocumentSnapshot], DocumentChange | None],
        *,
        pass_name: str,
    ) -> MutationSummary:
        return self.apply(self.fetch_all(collection), compute, pass_name=pass_name)
