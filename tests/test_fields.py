from dataclasses import replace

from backoffice.importer.pipeline.fields import (
    canonicalize_fields,
    is_cleanup_field_name,
    is_empty_value,
    obsolete_fields_patch,
    strip_invalid_fields,
)
from backoffice.store import DELETE_FIELD, SERVER_TIMESTAMP


def test_legacy_value_moves_to_empty_canonical_field(tables):
    patch = canonicalize_fields({"Full Name": "Asha Rao"}, tables)

    assert patch["name"] == "Asha Rao"
    assert patch["Full Name"] is DELETE_FIELD
    assert patch["updatedAt"] is SERVER_TIMESTAMP


def test_existing_canonical_value_is_not_overwritten(tables):
    patch = canonicalize_fields({"Full Name": "Old Name", "name": "Current Name"}, tables)

    assert "name" not in patch
    assert patch["Full Name"] is DELETE_FIELD


def test_empty_legacy_value_is_still_removed(tables):
    patch = canonicalize_fields({"Gender": "", "gender": "F"}, tables)

    assert "gender" not in patch
    assert patch["Gender"] is DELETE_FIELD


def test_already_canonical_document_yields_timestamp_only(tables):
    patch = canonicalize_fields({"name": "Asha", "email": "asha@example.org", "zone": "AS"}, tables)

    assert patch == {"updatedAt": SERVER_TIMESTAMP}


def test_unaddressable_legacy_name_is_copied_but_not_deleted(tables):
    data = {"Date of Arrival": "14-DEC-2025", "Zone/Shreni": "Europe"}

    patch = canonicalize_fields(data, tables)

    assert patch["arrivalDate"] == "14-DEC-2025"
    assert patch["zone"] == "Europe"
    assert "Zone/Shreni" not in patch
    assert patch["Date of Arrival"] is DELETE_FIELD


def test_canonical_targets_are_never_deleted(tables):
    chained = replace(tables, field_names=(("email", "emailAddress"), ("Email address", "email")))

    patch = canonicalize_fields({"email": "a@example.org", "Email address": "b@example.org"}, chained)

    assert patch["emailAddress"] == "a@example.org"
    assert "email" not in patch
    assert patch["Email address"] is DELETE_FIELD


def test_system_field_targets_are_filled_but_not_replaced(tables):
    filled = canonicalize_fields({"Timestamp": "2025-01-01"}, tables)
    kept = canonicalize_fields({"Timestamp": "2025-01-01", "createdAt": "earlier"}, tables)

    assert filled["createdAt"] == "2025-01-01"
    assert "createdAt" not in kept


def test_patch_never_contains_invalid_names(tables):
    data = {"Place of Departure Train/Flight": "Delhi", "Date of Departure Train/Flight": "01/01/2026"}

    patch = canonicalize_fields(data, tables)

    assert all("/" not in name for name in patch)
    assert patch["departurePlace"] == "Delhi"


def test_is_empty_value_treats_only_none_and_empty_string_as_empty():
    assert is_empty_value(None)
    assert is_empty_value("")
    assert not is_empty_value(0)
    assert not is_empty_value(False)
    assert not is_empty_value(" ")


def test_cleanup_field_names_reject_parentheses_and_separators():
    assert is_cleanup_field_name("arrivalDate")
    assert not is_cleanup_field_name("Airport (HYD)")
    assert not is_cleanup_field_name("Date of Departure Train/Flight")
    assert not is_cleanup_field_name("")


def test_strip_invalid_fields_keeps_system_fields(tables):
    data = {"uniqueId": "ARKK1187", "name": "Asha", "Notes (internal)": "x", "a/b": 1}

    kept, dropped = strip_invalid_fields(data, tables)

    assert kept == {"uniqueId": "ARKK1187", "name": "Asha"}
    assert dropped == ("Notes (internal)", "a/b")


def test_obsolete_fields_patch_only_names_present_fields(tables):
    patch = obsolete_fields_patch({"Shreni for Sorting": "A", "name": "Asha"}, tables)

    assert patch == {"Shreni for Sorting": DELETE_FIELD}
    assert obsolete_fields_patch({"name": "Asha"}, tables) == {}
