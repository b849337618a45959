"""Document-store abstraction and implementations."""

from .base import (
    DELETE_FIELD,
    INVALID_FIELD_CHARACTERS,
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    DocumentStore,
    WriteBatch,
    is_valid_field_name,
)
from .memory import InMemoryStore

__all__ = [
    "DELETE_FIELD",
    "INVALID_FIELD_CHARACTERS",
    "SERVER_TIMESTAMP",
    "DocumentSnapshot",
    "DocumentStore",
    "InMemoryStore",
    "WriteBatch",
    "is_valid_field_name",
]
