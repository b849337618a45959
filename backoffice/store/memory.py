"""In-process document store used by tests and offline dry runs."""

from __future__ import annotations

import copy
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from backoffice.errors import DocumentNotFoundError, InvalidFieldNameError

from .base import DELETE_FIELD, SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, WriteBatch, is_valid_field_name


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStore(DocumentStore):
    """
    Dictionary-backed store with the same write semantics as the production store.

    ``set`` accepts any key (map keys are opaque to a full write) while
    ``update`` rejects field names that cannot be addressed. Sentinels are
    resolved at write time.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._clock = clock

    # -- helpers -----------------------------------------------------------------
    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _snapshot(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> DocumentSnapshot:
        return DocumentSnapshot(collection=collection, id=doc_id, data=copy.deepcopy(dict(data)))

    def _resolve(self, value: Any) -> Any:
        if value is SERVER_TIMESTAMP:
            return self._clock()
        return copy.deepcopy(value)

    def _materialize(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {key: self._resolve(value) for key, value in data.items() if value is not DELETE_FIELD}

    def _check_patch(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> None:
        if doc_id not in self._collection(collection):
            raise DocumentNotFoundError(collection, doc_id)
        for key in patch:
            if not is_valid_field_name(key):
                raise InvalidFieldNameError(key)

    def _apply_patch(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> None:
        document = self._collection(collection)[doc_id]
        for key, value in patch.items():
            if value is DELETE_FIELD:
                document.pop(key, None)
            else:
                document[key] = self._resolve(value)

    def _apply_set(self, collection: str, doc_id: str, data: Mapping[str, Any], merge: bool) -> None:
        documents = self._collection(collection)
        if merge and doc_id in documents:
            for key, value in data.items():
                if value is DELETE_FIELD:
                    documents[doc_id].pop(key, None)
                else:
                    documents[doc_id][key] = self._resolve(value)
        else:
            documents[doc_id] = self._materialize(data)

    # -- DocumentStore -------------------------------------------------------------
    def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        with self._lock:
            data = self._collection(collection).get(doc_id)
            if data is None:
                return None
            return self._snapshot(collection, doc_id, data)

    def where(self, collection: str, field_name: str, value: Any) -> list[DocumentSnapshot]:
        with self._lock:
            return [
                self._snapshot(collection, doc_id, data)
                for doc_id, data in sorted(self._collection(collection).items())
                if field_name in data and data[field_name] == value
            ]

    def page(
        self,
        collection: str,
        *,
        limit: int,
        start_after: DocumentSnapshot | None = None,
    ) -> list[DocumentSnapshot]:
        with self._lock:
            ids = sorted(self._collection(collection))
            if start_after is not None:
                ids = [doc_id for doc_id in ids if doc_id > start_after.id]
            return [
                self._snapshot(collection, doc_id, self._collection(collection)[doc_id]) for doc_id in ids[:limit]
            ]

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        with self._lock:
            self._apply_set(collection, doc_id, data, merge)

    def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> None:
        with self._lock:
            self._check_patch(collection, doc_id, patch)
            self._apply_patch(collection, doc_id, patch)

    def delete(self, collection: str, doc_id: str) -> None:
        with self._lock:
            self._collection(collection).pop(doc_id, None)

    def batch(self) -> "InMemoryWriteBatch":
        return InMemoryWriteBatch(self)

    # -- test conveniences ---------------------------------------------------------
    def seed(self, collection: str, documents: Mapping[str, Mapping[str, Any]]) -> None:
        """Insert raw documents without sentinel resolution checks."""
        with self._lock:
            for doc_id, data in documents.items():
                self._collection(collection)[doc_id] = copy.deepcopy(dict(data))

    def document(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            data = self._collection(collection).get(doc_id)
            return copy.deepcopy(data) if data is not None else None

    def ids(self, collection: str) -> list[str]:
        with self._lock:
            return sorted(self._collection(collection))


class InMemoryWriteBatch(WriteBatch):
    """All-or-nothing batch: every queued update is validated before anything is applied."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store
        self._operations: list[tuple[str, str, str, Mapping[str, Any] | None]] = []
        self.committed = False

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        self._operations.append(("set", collection, doc_id, dict(data)))

    def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> None:
        self._operations.append(("update", collection, doc_id, dict(patch)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._operations.append(("delete", collection, doc_id, None))

    def __len__(self) -> int:
        return len(self._operations)

    def commit(self) -> None:
        store = self._store
        with store._lock:
            staged = copy.deepcopy(store._collections)
            try:
                for kind, collection, doc_id, payload in self._operations:
                    if kind == "set":
                        store._apply_set(collection, doc_id, payload or {}, merge=False)
                    elif kind == "update":
                        store._check_patch(collection, doc_id, payload or {})
                        store._apply_patch(collection, doc_id, payload or {})
                    else:
                        store._collection(collection).pop(doc_id, None)
            except Exception:
                store._collections = staged
                raise
        self.committed = True
