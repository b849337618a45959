"""
Document-store seam.

Pipeline code talks to a ``DocumentStore`` and never to a vendor client. A
document is an ordered mapping of string keys to plain values; two sentinels
express "remove this key" and "stamp with the server clock", which the store
distinguishes from absent or literal values.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping

INVALID_FIELD_CHARACTERS = frozenset("*~/[]")


class _Sentinel:
    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return self.name

    def __reduce__(self):
        return self.name


DELETE_FIELD = _Sentinel("DELETE_FIELD")
SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")


def is_valid_field_name(name: object) -> bool:
    """Return True when ``name`` can be addressed by a field-level update."""
    if not isinstance(name, str) or not name.strip():
        return False
    return not any(char in INVALID_FIELD_CHARACTERS for char in name)


@dataclass(frozen=True)
class DocumentSnapshot:
    """Point-in-time copy of one document."""

    collection: str
    id: str
    data: Mapping[str, Any]
    raw: Any = field(default=None, compare=False, repr=False)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)


class WriteBatch(ABC):
    """Queued writes applied together by ``commit``."""

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...


class DocumentStore(ABC):
    """Operations the back-office needs from a schema-less document database."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        """Return the document or ``None`` when it does not exist."""

    @abstractmethod
    def where(self, collection: str, field_name: str, value: Any) -> list[DocumentSnapshot]:
        """Return documents whose ``field_name`` equals ``value``."""

    @abstractmethod
    def page(
        self,
        collection: str,
        *,
        limit: int,
        start_after: DocumentSnapshot | None = None,
    ) -> list[DocumentSnapshot]:
        """Return up to ``limit`` documents ordered by id, continuing after ``start_after``."""

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        """Create or fully replace a document (or merge top-level keys when ``merge``)."""

    @abstractmethod
    def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> None:
        """Apply a field-level patch to an existing document."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    def batch(self) -> WriteBatch:
        ...

    def iter_pages(self, collection: str, *, page_size: int) -> Iterator[list[DocumentSnapshot]]:
        """
        Yield successive pages until the store returns an empty one.
        """
        cursor: DocumentSnapshot | None = None
        while True:
            page = self.page(collection, limit=page_size, start_after=cursor)
            if not page:
                return
            yield page
            cursor = page[-1]

    def fetch_all(self, collection: str, *, page_size: int = 3000) -> list[DocumentSnapshot]:
        """Exhaustively paginate ``collection`` into memory."""
        documents: list[DocumentSnapshot] = []
        for page in self.iter_pages(collection, page_size=page_size):
            documents.extend(page)
        return documents
