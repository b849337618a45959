"""Importer adapters for registration spreadsheets."""

from __future__ import annotations

from .spreadsheet import (
    RegistrationSpreadsheet,
    SpreadsheetError,
    SpreadsheetNotFoundError,
    SpreadsheetStatistics,
    UnsupportedSpreadsheetError,
    read_registration_rows,
)

__all__ = [
    "RegistrationSpreadsheet",
    "SpreadsheetError",
    "SpreadsheetNotFoundError",
    "SpreadsheetStatistics",
    "UnsupportedSpreadsheetError",
    "read_registration_rows",
]
