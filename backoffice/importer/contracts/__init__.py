"""Lookup-table contracts shared by the importer and the normalization passes."""

from __future__ import annotations

from .registration import (
    DEFAULT_TABLES_PATH,
    RegistrationTables,
    TablesLoadError,
    load_registration_tables,
    parse_registration_tables,
)

__all__ = [
    "DEFAULT_TABLES_PATH",
    "RegistrationTables",
    "TablesLoadError",
    "load_registration_tables",
    "parse_registration_tables",
]
