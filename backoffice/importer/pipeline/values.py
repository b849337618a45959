"""Zone, pickup-location, post-tour and phone-sign normalizers."""

from __future__ import annotations

import math
import re
from functools import lru_cache
from typing import Any

from backoffice.importer.contracts import RegistrationTables

_NUMERIC_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


def _clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_zone(value: Any, tables: RegistrationTables) -> str:
    """
    Map a region name or abbreviation to its two-letter zone code.

    Unrecognized zones are preserved uppercased rather than rejected.
    """
    text = _clean_text(value)
    if not text:
        return ""
    lowered = text.lower()
    if lowered in tables.zone_table:
        return tables.zone_table[lowered]
    for prefix in tables.zone_prefixes:
        if lowered.startswith(prefix):
            return tables.zone_table[prefix]
    return text.upper()


@lru_cache(maxsize=512)
def _alias_pattern(alias: str) -> re.Pattern[str]:
    return re.compile(r"(^|\s|\()" + re.escape(alias) + r"(\s|\)|$)", re.IGNORECASE)


def normalize_pickup_location(value: Any, tables: RegistrationTables) -> str:
    """
    Canonicalize a free-text arrival point.

    Aliases must appear as a whole phrase (bounded by the string edges,
    whitespace or parentheses) and are tried longest first.
    """
    text = _clean_text(value)
    if not text:
        return ""
    lowered = text.lower()

    for option in tables.pickup_options:
        if lowered == option.lower():
            return option

    if lowered in tables.pickup_standalone_codes:
        return tables.pickup_fallback

    for alias, label in tables.pickup_aliases:
        if lowered == alias or _alias_pattern(alias).search(lowered):
            return label
    return tables.pickup_fallback


def normalize_post_tour(value: Any, tables: RegistrationTables) -> str:
    text = _clean_text(value)
    if not text:
        return tables.tour_fallback
    lowered = text.lower()
    for keyword, option in tables.tour_keywords:
        if keyword in lowered:
            return option
    if text in tables.tour_options:
        return text
    return tables.tour_fallback


def is_negative_phone(value: Any) -> bool:
    """True when ``value`` coerces to a real number strictly below zero."""
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not _NUMERIC_RE.match(text):
            return False
        number = float(text)
    return not math.isnan(number) and number < 0
