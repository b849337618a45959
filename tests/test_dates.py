from datetime import date, datetime

import pytest

from backoffice.importer.pipeline.dates import (
    DateNormalization,
    format_date,
    from_spreadsheet_serial,
    normalize_date,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("14-DEC-2025", "14-DEC-2025"),
        ("14-dec-2025", "14-DEC-2025"),
        ("2025-12-14", "14-DEC-2025"),
        ("2025-1-5", "05-JAN-2025"),
        ("14/12/2025", "14-DEC-2025"),
        ("12/14/2025", "14-DEC-2025"),
        ("05/05/2025", "05-MAY-2025"),
        ("December 14, 2025", "14-DEC-2025"),
        ("14 Dec 2025", "14-DEC-2025"),
        ("14.12.2025", "14-DEC-2025"),
        ("46005", "14-DEC-2025"),
        (46005, "14-DEC-2025"),
        (46005.75, "14-DEC-2025"),
    ],
)
def test_normalize_date_accepts_known_formats(raw, expected):
    result = normalize_date(raw)

    assert result == DateNormalization(success=True, normalized=expected)


def test_native_date_cells_are_formatted_directly():
    assert normalize_date(datetime(2025, 12, 14, 9, 30)).normalized == "14-DEC-2025"
    assert normalize_date(date(2026, 1, 2)).normalized == "02-JAN-2026"


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_empty_values_succeed_with_empty_string(raw):
    assert normalize_date(raw) == DateNormalization(success=True, normalized="")


def test_ambiguous_slash_date_fails():
    result = normalize_date("05/06/2025")

    assert not result.success
    assert result.normalized == "05/06/2025"


@pytest.mark.parametrize(
    "raw",
    ["13/14/2025", "2025-02-30", "not a date", "0", "1/1/1850", "-5", "-12", "10:30", "5 pm", "December"],
)
def test_unparseable_or_out_of_range_dates_fail(raw):
    result = normalize_date(raw)

    assert result.success is False
    assert result.normalized == raw


def test_spreadsheet_serial_counts_from_1899_12_30():
    assert from_spreadsheet_serial(1) == date(1899, 12, 31)
    assert from_spreadsheet_serial(45658) == date(2025, 1, 1)


def test_format_date_pads_day():
    assert format_date(date(2025, 3, 7)) == "07-MAR-2025"


def test_bare_negative_number_is_not_a_date():
    assert normalize_date(-5) == DateNormalization(success=False, normalized="-5")
