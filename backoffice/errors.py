"""Exception hierarchy shared by the store, pipeline and CLI."""

from __future__ import annotations


class BackofficeError(Exception):
    """Base exception for back-office failures."""


class MissingPreconditionError(BackofficeError):
    """
    Raised when a run cannot start: missing credentials, spreadsheet, tables or inputs.

    These indicate misconfiguration rather than bad data and abort the whole run.
    """


class InvalidFieldNameError(BackofficeError, ValueError):
    """Raised when a write addresses a field name the store cannot address."""

    def __init__(self, field_name: str) -> None:
        super().__init__(f"Invalid field name for update: {field_name!r}")
        self.field_name = field_name


class DocumentNotFoundError(BackofficeError, LookupError):
    """Raised when an update targets a document that does not exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document {collection}/{doc_id} does not exist")
        self.collection = collection
        self.doc_id = doc_id
