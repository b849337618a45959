"""Spreadsheet adapter for registration exports.

Reads the first worksheet of an ``.xlsx`` workbook (or a ``.csv`` export of it),
turning the header row into field names and every non-blank row into a
column-name -> value mapping. Empty cells are omitted so a missing value is
never confused with an explicit empty string.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Iterator, Sequence

from openpyxl import load_workbook

WORKBOOK_SUFFIXES = frozenset({".xlsx", ".xlsm"})
CSV_SUFFIXES = frozenset({".csv"})


class SpreadsheetError(Exception):
    """Base exception for spreadsheet adapter failures."""


class SpreadsheetNotFoundError(SpreadsheetError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Spreadsheet not found at {path}")
        self.path = path


class UnsupportedSpreadsheetError(SpreadsheetError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Unsupported spreadsheet type '{path.suffix}' for {path}. Use .xlsx or .csv.")
        self.path = path


@dataclass
class SpreadsheetStatistics:
    """Accumulated statistics from spreadsheet parsing."""

    rows_processed: int = 0
    rows_skipped_blank: int = 0
    headers: tuple[str, ...] = field(default_factory=tuple)


def _header_name(cell: Any) -> str | None:
    if cell is None:
        return None
    name = str(cell).lstrip("\ufeff")
    return name if name.strip() else None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _cell_value(value: Any) -> Any:
    # Firestore stores datetimes but not bare times or dates.
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.isoformat()
    return value


def _row_mapping(headers: Sequence[str | None], values: Sequence[Any]) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for header, value in zip(headers, values):
        if header is None or value is None or value == "":
            continue
        row[header] = _cell_value(value)
    return row


class RegistrationSpreadsheet:
    """Row reader over a registration export."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.statistics = SpreadsheetStatistics()
        if not self.path.is_file():
            raise SpreadsheetNotFoundError(self.path)
        suffix = self.path.suffix.lower()
        if suffix not in WORKBOOK_SUFFIXES and suffix not in CSV_SUFFIXES:
            raise UnsupportedSpreadsheetError(self.path)

    def _iter_raw(self) -> Iterator[tuple[Sequence[str | None], Sequence[Any]]]:
        if self.path.suffix.lower() in CSV_SUFFIXES:
            with self.path.open("r", encoding="utf-8-sig", newline="") as handle:
                reader = csv.reader(handle)
                header_row = next(reader, None)
                if header_row is None:
                    return
                headers = [_header_name(cell) for cell in header_row]
                self.statistics.headers = tuple(name for name in headers if name)
                for values in reader:
                    yield headers, values
            return

        workbook = load_workbook(self.path, read_only=True, data_only=True)
        try:
            sheet = workbook.worksheets[0]
            rows = sheet.iter_rows(values_only=True)
            header_row = next(rows, None)
            if header_row is None:
                return
            headers = [_header_name(cell) for cell in header_row]
            self.statistics.headers = tuple(name for name in headers if name)
            for values in rows:
                yield headers, values
        finally:
            workbook.close()

    def iter_rows(self) -> Iterator[dict[str, Any]]:
        for headers, values in self._iter_raw():
            if all(_is_blank(value) for value in values):
                self.statistics.rows_skipped_blank += 1
                continue
            row = _row_mapping(headers, values)
            if not row:
                self.statistics.rows_skipped_blank += 1
                continue
            self.statistics.rows_processed += 1
            yield row


def read_registration_rows(path: str | Path) -> list[dict[str, Any]]:
    return list(RegistrationSpreadsheet(path).iter_rows())
