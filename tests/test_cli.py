import json
from unittest.mock import MagicMock, patch

import pytest

from backoffice.importer.cli import backoffice_cli

QUIET = ["--log-level", "ERROR"]


@pytest.fixture
def invoke(cli_runner, cli_context, monkeypatch):
    monkeypatch.delenv("COMMAND", raising=False)

    def _invoke(*args):
        return cli_runner.invoke(backoffice_cli, [*QUIET, *args], obj=cli_context)

    return _invoke


def _write_csv(tmp_path):
    csv_file = tmp_path / "registrations.csv"
    csv_file.write_text(
        "Praveshika ID,Full Name,Email address,Zone/Shreni\n"
        "ARKK1187,Asha Rao,asha@example.org,ARKK1187\n"
        "EUFR1187,Asha Rao,ASHA@example.org,Europe\n"
        ",Nobody,nobody@example.org,\n",
        encoding="utf-8",
    )
    return csv_file


def test_no_command_prints_usage_and_fails(invoke):
    result = invoke()

    assert result.exit_code == 1
    assert "Usage" in result.output
    assert "normalize-all" in result.output


def test_command_environment_variable_selects_command(cli_runner, cli_context, memory_store, monkeypatch):
    memory_store.seed("registrations", {"R1": {"uniqueId": "R1", "name": "A", "email": "a@example.org"}})
    monkeypatch.setenv("COMMAND", "find-duplicates")

    result = cli_runner.invoke(backoffice_cli, QUIET, obj=cli_context)

    assert result.exit_code == 0, result.output
    assert "Duplicates by name-email: 0 cluster(s)" in result.output


def test_unknown_command_environment_variable_is_a_usage_error(cli_runner, cli_context, monkeypatch):
    monkeypatch.setenv("COMMAND", "explode")

    result = cli_runner.invoke(backoffice_cli, QUIET, obj=cli_context)

    assert result.exit_code == 2


def test_unknown_command_fails(invoke):
    assert invoke("explode").exit_code == 2


def test_import_from_csv(invoke, memory_store, tmp_path):
    result = invoke("import", "--file", str(_write_csv(tmp_path)))

    assert result.exit_code == 0, result.output
    assert "Import of" in result.output
    assert memory_store.ids("registrations") == ["ARKK1187", "EUFR1187"]
    assert memory_store.document("emailToUids", "asha@example.org")["uids"] == ["ARKK1187", "EUFR1187"]


def test_import_summary_json(invoke, tmp_path):
    result = invoke("import", "--file", str(_write_csv(tmp_path)), "--summary-json")

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["imported"] == 2
    assert payload["missing_identifier"] == 1
    assert payload["index_rebuild"]["emails"] == 1


def test_import_with_missing_spreadsheet_fails(invoke, tmp_path):
    result = invoke("import", "--file", str(tmp_path / "missing.xlsx"))

    assert result.exit_code == 1
    assert "Spreadsheet not found" in result.output


def test_global_dry_run_writes_nothing(invoke, memory_store):
    memory_store.seed("registrations", {"R1": {"zone": "Southeast Asia"}})

    result = invoke("--dry-run", "normalize-zones")

    assert result.exit_code == 0, result.output
    assert "dry_run" in result.output
    assert memory_store.document("registrations", "R1") == {"zone": "Southeast Asia"}


def test_normalize_all_runs_every_value_pass(invoke, memory_store):
    memory_store.seed(
        "registrations",
        {
            "R1": {
                "uniqueId": "R1",
                "zone": "Southeast Asia",
                "arrivalDate": "2025-12-14",
                "arrivalPlace": "Secunderabad Station (SC)",
                "postShibirTour": "srisailam trip",
            }
        },
    )

    result = invoke("normalize-all")

    assert result.exit_code == 0, result.output
    document = memory_store.document("registrations", "R1")
    assert document["zone"] == "AS"
    assert document["arrivalDate"] == "14-DEC-2025"
    assert document["normalizedPickupLocation"] == "Secunderabad Railway Station"
    assert document["postShibirTour"] == "Srisailam"
    for pass_name in ("normalize-zones", "normalize-dates", "normalize-pickup-locations", "normalize-post-tour"):
        assert f"Pass {pass_name} finished." in result.output


def test_normalize_dates_lists_manual_follow_ups(invoke, memory_store):
    memory_store.seed("registrations", {"R1": {"uniqueId": "R1", "arrivalDate": "05/06/2025"}})

    result = invoke("normalize-dates")

    assert result.exit_code == 0, result.output
    assert "Dates needing manual follow-up (1)" in result.output
    assert "R1" in result.output


def test_normalize_and_cleanup_commands(invoke, memory_store):
    memory_store.seed("registrations", {"R1": {"uniqueId": "R1", "Full Name": "Asha", "Airport (HYD)": "x"}})

    assert invoke("normalize").exit_code == 0
    assert invoke("cleanup").exit_code == 0

    document = memory_store.document("registrations", "R1")
    assert document["name"] == "Asha"
    assert "Full Name" not in document
    assert "Airport (HYD)" not in document


def test_remove_fields_command(invoke, memory_store):
    memory_store.seed("registrations", {"R1": {"Shreni for Sorting": "1", "name": "A"}})

    result = invoke("remove-fields")

    assert result.exit_code == 0, result.output
    assert memory_store.document("registrations", "R1") == {"name": "A"}


def test_status_commands_accept_arguments_and_ids_file(invoke, memory_store, tmp_path):
    memory_store.seed("registrations", {"R1": {"status": "Approved"}, "R2": {"status": "Approved"}})
    ids_file = tmp_path / "ids.txt"
    ids_file.write_text("# rejected after review\nR2\n\nMISSING  # typo in sheet\n", encoding="utf-8")

    result = invoke("reject-status", "R1", "--ids-file", str(ids_file))

    assert result.exit_code == 0, result.output
    assert memory_store.document("registrations", "R1")["status"] == "Rejected"
    assert memory_store.document("registrations", "R2")["status"] == "Rejected"
    assert "not found: MISSING" in result.output


@pytest.mark.parametrize("command, status", [("cancel-status", "Cancelled"), ("approve-status", "Approved")])
def test_other_status_commands(invoke, memory_store, command, status):
    memory_store.seed("registrations", {"R1": {"status": "Pending"}})

    assert invoke(command, "R1").exit_code == 0
    assert memory_store.document("registrations", "R1")["status"] == status


def test_status_command_without_ids_fails(invoke):
    result = invoke("cancel-status")

    assert result.exit_code == 1
    assert "No registration identifiers" in result.output


def test_find_duplicates_summary_json(invoke, memory_store):
    memory_store.seed(
        "registrations",
        {
            "ARKK1187": {"uniqueId": "ARKK1187", "name": "Asha", "email": "a@example.org"},
            "EUFR1187": {"uniqueId": "EUFR1187", "name": "asha", "email": "A@example.org"},
        },
    )

    result = invoke("find-duplicates", "--summary-json")

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["name-email"][0]["key"] == "asha|||a@example.org"
    assert payload["last4"][0]["key"] == "1187"


def test_single_strategy_duplicate_reports(invoke, memory_store):
    memory_store.seed(
        "registrations",
        {"ARKK1187": {"uniqueId": "ARKK1187"}, "EUFR1187": {"uniqueId": "EUFR1187"}},
    )

    last4 = invoke("find-duplicates-last4")
    name_email = invoke("find-duplicates-name-email")

    assert "Duplicates by last4: 1 cluster(s)" in last4.output
    assert "ARKK1187" in last4.output
    assert "Duplicates by name-email: 0 cluster(s)" in name_email.output
    assert "last4" not in name_email.output


def test_find_negative_phones_summary_json(invoke, memory_store):
    memory_store.seed("registrations", {"R1": {"name": "Asha", "email": "a@example.org", "phone": -1}})

    result = invoke("find-negative-phones", "--summary-json")

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["total"] == 1
    assert payload["by_field"] == {"phone": 1}
    assert payload["findings"][0]["docId"] == "R1"


def test_migrate_commands(invoke, memory_store):
    memory_store.seed(
        "registrations",
        {"R1": {"shreni": "Volunteer"}, "R2": {"status": "Cancelled"}, "R3": {"status": "Approved"}},
    )

    assert invoke("migrate-non-shibirarthi").exit_code == 0
    assert invoke("migrate-cancelled").exit_code == 0

    assert memory_store.ids("nonShibirarthiUsers") == ["R1"]
    assert memory_store.ids("cancelledRegistrations") == ["R2"]
    assert memory_store.ids("registrations") == ["R3"]


def test_sync_commands(invoke, memory_store):
    memory_store.seed("registrations", {"R1": {"uniqueId": "R1", "email": "pat@example.org"}})
    memory_store.seed("emailToUids", {"stale@example.org": {"uids": ["R0"]}})
    memory_store.seed("users", {"u1": {"email": "pat@example.org"}})

    assert invoke("sync-email-index", "--prune").exit_code == 0
    assert memory_store.ids("emailToUids") == ["pat@example.org"]

    result = invoke("sync-associated-registrations")
    assert result.exit_code == 0, result.output
    assert memory_store.document("users", "u1")["associatedRegistrations"][0]["uniqueId"] == "R1"


def test_set_superadmin(invoke, memory_store, identity):
    identity.find_by_email.return_value = MagicMock(uid="u1")
    memory_store.seed("users", {"u1": {"email": "admin@example.org"}})

    result = invoke("set-superadmin", "admin@example.org")

    assert result.exit_code == 0, result.output
    user = memory_store.document("users", "u1")
    assert user["role"] == "superadmin"
    assert user["email"] == "admin@example.org"
    assert "roleUpdatedAt" in user
    identity.find_by_email.assert_called_once_with("admin@example.org")


def test_set_superadmin_unknown_email_fails(invoke, identity):
    identity.find_by_email.return_value = None

    result = invoke("set-superadmin", "ghost@example.org")

    assert result.exit_code == 1
    assert "No account found" in result.output


def test_unexpected_errors_exit_non_zero(invoke):
    with patch("backoffice.importer.cli.find_all_duplicates", side_effect=RuntimeError("boom")):
        result = invoke("find-duplicates")

    assert result.exit_code == 1
    assert "Unexpected error: boom" in result.output
