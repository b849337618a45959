"""
Maintenance CLI for the registrations store.

One entry point, one command per run. Every command dispatches to the shared
pipeline components; nothing here re-implements a pass.
"""

from __future__ import annotations

import functools
import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional

import click
from dotenv import load_dotenv
from flask import Config as SettingsMapping

from backoffice.errors import BackofficeError, MissingPreconditionError
from backoffice.importer.adapters import SpreadsheetError, read_registration_rows
from backoffice.importer.contracts import RegistrationTables, TablesLoadError, load_registration_tables
from backoffice.importer.pipeline import (
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_REJECTED,
    BatchMutationDriver,
    DateNormalizationReport,
    DuplicateCluster,
    MutationSummary,
    cancelled_plan,
    cleanup_invalid_fields,
    find_all_duplicates,
    find_duplicates_by_last4,
    find_duplicates_by_name_email,
    find_negative_phones,
    import_registrations,
    migrate,
    non_shibirarthi_plan,
    normalize_dates,
    normalize_field_names,
    normalize_pickup_locations,
    normalize_post_tour,
    normalize_zones,
    rebuild_email_index,
    remove_obsolete_fields,
    sync_associated_registrations,
    update_status,
)
from backoffice.store import SERVER_TIMESTAMP, DocumentStore
from backoffice.utils.logging_config import configure_cli_logging
from config import get_config_class
from config.validation import resolve_service_account_path, validate_cli_environment

logger = logging.getLogger(__name__)


def load_settings(flask_env: Optional[str] = None) -> SettingsMapping:
    settings = SettingsMapping(os.getcwd())
    settings.from_object(get_config_class(flask_env))
    return settings


class CliContext:
    """
    Lazily-built collaborators shared by every command.

    Tests hand in a ready store, tables and identity provider; a real run
    builds them from the environment on first use.
    """

    def __init__(
        self,
        settings: Optional[Mapping[str, Any]] = None,
        *,
        store: Optional[DocumentStore] = None,
        tables: Optional[RegistrationTables] = None,
        identity=None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.settings = settings if settings is not None else load_settings()
        self.dry_run = bool(self.settings.get("DRY_RUN", False))
        self.tables_path: Optional[str] = None
        self._store = store
        self._tables = tables
        self._identity = identity
        self._sleep = sleep
        self._driver: Optional[BatchMutationDriver] = None
        self._firebase_app = None

    def _initialize_firebase(self):
        if self._firebase_app is None:
            from backoffice.store.firestore import initialize_firebase

            is_valid, errors = validate_cli_environment(self.settings)
            if not is_valid:
                raise MissingPreconditionError("; ".join(errors))
            self._firebase_app = initialize_firebase(key_path=resolve_service_account_path(self.settings))
        return self._firebase_app

    @property
    def store(self) -> DocumentStore:
        if self._store is None:
            from backoffice.store.firestore import FirestoreStore

            self._store = FirestoreStore.from_app(self._initialize_firebase())
        return self._store

    @property
    def identity(self):
        if self._identity is None:
            from backoffice.services.identity import IdentityProvider

            self._identity = IdentityProvider(self._initialize_firebase())
        return self._identity

    @property
    def tables(self) -> RegistrationTables:
        if self._tables is None:
            self._tables = load_registration_tables(self.tables_path or self.settings.get("BACKOFFICE_TABLES_PATH"))
            logger.debug("Loaded lookup tables %s (checksum %s)", self._tables.path, self._tables.checksum)
        return self._tables

    @property
    def driver(self) -> BatchMutationDriver:
        if self._driver is None:
            overrides: dict[str, Any] = {"dry_run": self.dry_run}
            if self._sleep is not None:
                overrides["sleep"] = self._sleep
            self._driver = BatchMutationDriver.from_settings(self.store, self.settings, **overrides)
        return self._driver

    def collection(self, key: str) -> str:
        return str(self.settings.get(key))


def _guarded(func):
    """Log failures and turn them into a non-zero exit."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except click.ClickException:
            raise
        except (BackofficeError, SpreadsheetError, TablesLoadError) as exc:
            logger.error("%s", exc)
            raise click.ClickException(str(exc)) from exc
        except Exception as exc:
            logger.exception("Command failed")
            raise click.ClickException(f"Unexpected error: {exc}") from exc

    return wrapper


def _format_summary(title: str, payload: Mapping[str, object]) -> str:
    width = max((len(key) for key in payload), default=0)
    lines = [title]
    for key, value in payload.items():
        lines.append(f"  {key.ljust(width)} : {value}")
    return "\n".join(lines)


def _echo_mutation(summary: MutationSummary) -> None:
    click.echo(_format_summary(f"Pass {summary.pass_name} finished.", summary.as_dict()))


def _format_clusters(title: str, clusters: Iterable[DuplicateCluster]) -> str:
    clusters = list(clusters)
    lines = [f"{title}: {len(clusters)} cluster(s)"]
    for cluster in clusters:
        lines.append(f"  [{cluster.key}] {cluster.size} registrations")
        for member in cluster.members:
            lines.append(f"    - {member.unique_id} | {member.name} | {member.email}")
    return "\n".join(lines)


def _read_ids(ids: Iterable[str], ids_file: Optional[Path]) -> list[str]:
    collected = [value for value in ids if value.strip()]
    if ids_file is not None:
        for line in ids_file.read_text(encoding="utf-8").splitlines():
            value = line.split("#", 1)[0].strip()
            if value:
                collected.append(value)
    return collected


@click.group(name="backoffice", invoke_without_command=True)
@click.option("--dry-run", is_flag=True, help="Compute and tally changes without writing them.")
@click.option(
    "--log-level",
    default=lambda: os.environ.get("LOG_LEVEL", "INFO"),
    show_default="INFO",
    help="Logging level for this run.",
)
@click.option(
    "--tables",
    "tables_path",
    type=click.Path(dir_okay=False),
    help="Lookup tables YAML (defaults to BACKOFFICE_TABLES_PATH).",
)
@click.pass_context
def backoffice_cli(ctx, dry_run: bool, log_level: str, tables_path: Optional[str]):
    """Registration back-office maintenance commands."""
    configure_cli_logging(log_level, os.environ.get("LOG_FORMAT", "text"))
    if ctx.obj is None:
        ctx.obj = CliContext()
    if dry_run:
        ctx.obj.dry_run = True
    if tables_path:
        ctx.obj.tables_path = tables_path

    if ctx.invoked_subcommand is not None:
        return

    command_name = os.environ.get("COMMAND", "").strip()
    if not command_name:
        click.echo(ctx.get_help())
        ctx.exit(1)
    command = backoffice_cli.get_command(ctx, command_name)
    if command is None:
        ctx.fail(f"Unknown command '{command_name}' in COMMAND.")
    ctx.invoke(command)


# -- import --------------------------------------------------------------------------------


@backoffice_cli.command("import")
@click.option(
    "--file",
    "file_path",
    type=click.Path(path_type=Path, dir_okay=False),
    help="Spreadsheet to import (defaults to EXCEL_FILE_PATH).",
)
@click.option("--summary-json", is_flag=True, help="Emit a machine-readable summary payload.")
@click.pass_obj
@_guarded
def import_command(obj: CliContext, file_path: Optional[Path] = None, summary_json: bool = False):
    """Import the registration spreadsheet and rebuild the email index."""
    path = file_path or Path(str(obj.settings.get("EXCEL_FILE_PATH") or ""))
    if not path.is_file():
        raise MissingPreconditionError(f"Spreadsheet not found at {path}. Set EXCEL_FILE_PATH or pass --file.")

    rows = read_registration_rows(path)
    logger.info("Read %s rows from %s", len(rows), path)
    summary = import_registrations(
        obj.driver,
        rows,
        obj.tables,
        registrations_collection=obj.collection("REGISTRATIONS_COLLECTION"),
        index_collection=obj.collection("EMAIL_INDEX_COLLECTION"),
    )
    if summary_json:
        click.echo(json.dumps(summary.as_dict(), indent=2, sort_keys=True))
        return
    payload = summary.as_dict()
    payload["index_merge"] = summary.index_merge.written if summary.index_merge else 0
    payload["index_rebuild"] = summary.index_rebuild.written if summary.index_rebuild else 0
    click.echo(_format_summary(f"Import of {path} finished.", payload))


# -- field-level passes --------------------------------------------------------------------


@backoffice_cli.command("normalize")
@click.pass_obj
@_guarded
def normalize_command(obj: CliContext):
    """Move legacy field names onto their canonical names."""
    _echo_mutation(normalize_field_names(obj.driver, obj.tables, collection=obj.collection("REGISTRATIONS_COLLECTION")))


@backoffice_cli.command("cleanup")
@click.pass_obj
@_guarded
def cleanup_command(obj: CliContext):
    """Rewrite registrations without invalid or parenthesised field names."""
    _echo_mutation(cleanup_invalid_fields(obj.driver, obj.tables, collection=obj.collection("REGISTRATIONS_COLLECTION")))


@backoffice_cli.command("remove-fields")
@click.pass_obj
@_guarded
def remove_fields_command(obj: CliContext):
    """Delete the configured obsolete fields."""
    _echo_mutation(remove_obsolete_fields(obj.driver, obj.tables, collection=obj.collection("REGISTRATIONS_COLLECTION")))


# -- value normalizers ---------------------------------------------------------------------


def _run_zones(obj: CliContext) -> None:
    _echo_mutation(normalize_zones(obj.driver, obj.tables, collection=obj.collection("REGISTRATIONS_COLLECTION")))


def _run_dates(obj: CliContext) -> DateNormalizationReport:
    report = normalize_dates(obj.driver, collection=obj.collection("REGISTRATIONS_COLLECTION"))
    _echo_mutation(report.summary)
    if report.failures:
        click.echo(f"Dates needing manual follow-up ({len(report.failures)}):")
        for failure in report.failures:
            click.echo(f"  - {failure.registration_id}: arrival={failure.arrival!r} departure={failure.departure!r}")
    return report


def _run_pickup(obj: CliContext) -> None:
    _echo_mutation(
        normalize_pickup_locations(obj.driver, obj.tables, collection=obj.collection("REGISTRATIONS_COLLECTION"))
    )


def _run_post_tour(obj: CliContext) -> None:
    _echo_mutation(normalize_post_tour(obj.driver, obj.tables, collection=obj.collection("REGISTRATIONS_COLLECTION")))


@backoffice_cli.command("normalize-zones")
@click.pass_obj
@_guarded
def normalize_zones_command(obj: CliContext):
    """Map zone values onto zone codes."""
    _run_zones(obj)


@backoffice_cli.command("normalize-dates")
@click.pass_obj
@_guarded
def normalize_dates_command(obj: CliContext):
    """Rewrite arrival and departure dates as DD-MON-YYYY."""
    _run_dates(obj)


@backoffice_cli.command("normalize-pickup-locations")
@click.pass_obj
@_guarded
def normalize_pickup_locations_command(obj: CliContext):
    """Map arrival places onto the canonical pickup locations."""
    _run_pickup(obj)


@backoffice_cli.command("normalize-post-tour")
@click.pass_obj
@_guarded
def normalize_post_tour_command(obj: CliContext):
    """Map post-event tour answers onto the canonical tour options."""
    _run_post_tour(obj)


@backoffice_cli.command("normalize-all")
@click.pass_obj
@_guarded
def normalize_all_command(obj: CliContext):
    """Run the zone, date, pickup-location and post-tour passes in sequence."""
    _run_zones(obj)
    _run_dates(obj)
    _run_pickup(obj)
    _run_post_tour(obj)


# -- reports -------------------------------------------------------------------------------


@backoffice_cli.command("find-negative-phones")
@click.option("--summary-json", is_flag=True, help="Emit a machine-readable payload instead of the table.")
@click.pass_obj
@_guarded
def find_negative_phones_command(obj: CliContext, summary_json: bool = False):
    """List phone fields holding negative numbers."""
    documents = obj.driver.fetch_all(obj.collection("REGISTRATIONS_COLLECTION"))
    findings, by_field = find_negative_phones(documents, obj.tables)
    if summary_json:
        payload = {
            "total": len(findings),
            "by_field": by_field,
            "findings": [
                {
                    "docId": finding.doc_id,
                    "name": finding.name,
                    "field": finding.field,
                    "value": finding.value,
                    "email": finding.email,
                }
                for finding in findings
            ],
        }
        click.echo(json.dumps(payload, indent=2, sort_keys=True, default=str))
        return

    click.echo(f"Found {len(findings)} negative phone value(s) in {len(documents)} registrations.")
    for finding in findings:
        click.echo(f"  - {finding.doc_id} | {finding.name} | {finding.field}={finding.value} | {finding.email}")
    for field_name, count in by_field.items():
        click.echo(f"  {field_name}: {count}")


def _duplicate_report(obj: CliContext, finder, summary_json: bool) -> None:
    documents = obj.driver.fetch_all(obj.collection("REGISTRATIONS_COLLECTION"))
    results = finder(documents)
    if summary_json:
        click.echo(
            json.dumps(
                {kind: [cluster.as_dict() for cluster in clusters] for kind, clusters in results.items()},
                indent=2,
                sort_keys=True,
            )
        )
        return
    for kind, clusters in results.items():
        click.echo(_format_clusters(f"Duplicates by {kind}", clusters))


@backoffice_cli.command("find-duplicates")
@click.option("--summary-json", is_flag=True, help="Emit a machine-readable payload instead of the table.")
@click.pass_obj
@_guarded
def find_duplicates_command(obj: CliContext, summary_json: bool = False):
    """Report duplicate clusters by name+email and by identifier suffix."""
    _duplicate_report(obj, find_all_duplicates, summary_json)


@backoffice_cli.command("find-duplicates-name-email")
@click.option("--summary-json", is_flag=True, help="Emit a machine-readable payload instead of the table.")
@click.pass_obj
@_guarded
def find_duplicates_name_email_command(obj: CliContext, summary_json: bool = False):
    """Report registrations sharing a normalized name and email."""
    _duplicate_report(obj, lambda docs: {"name-email": find_duplicates_by_name_email(docs)}, summary_json)


@backoffice_cli.command("find-duplicates-last4")
@click.option("--summary-json", is_flag=True, help="Emit a machine-readable payload instead of the table.")
@click.pass_obj
@_guarded
def find_duplicates_last4_command(obj: CliContext, summary_json: bool = False):
    """Report registrations whose identifiers end in the same four digits."""
    _duplicate_report(obj, lambda docs: {"last4": find_duplicates_by_last4(docs)}, summary_json)


# -- status updates ------------------------------------------------------------------------


def _status_command(name: str, status: str, help_text: str) -> None:
    @backoffice_cli.command(name, help=help_text)
    @click.argument("ids", nargs=-1)
    @click.option(
        "--ids-file",
        type=click.Path(path_type=Path, exists=True, dir_okay=False),
        help="File with one registration identifier per line ('#' starts a comment).",
    )
    @click.pass_obj
    @_guarded
    def _command(obj: CliContext, ids: tuple[str, ...] = (), ids_file: Optional[Path] = None):
        summary = update_status(
            obj.driver,
            _read_ids(ids, ids_file),
            status,
            collection=obj.collection("REGISTRATIONS_COLLECTION"),
        )
        click.echo(_format_summary(f"Status update to {status} finished.", summary.as_dict()))
        for missing in summary.missing_ids:
            click.echo(f"  not found: {missing}")


_status_command("reject-status", STATUS_REJECTED, "Set status Rejected on the listed registrations.")
_status_command("cancel-status", STATUS_CANCELLED, "Set status Cancelled on the listed registrations.")
_status_command("approve-status", STATUS_APPROVED, "Set status Approved on the listed registrations.")


# -- migrations ----------------------------------------------------------------------------


@backoffice_cli.command("migrate-non-shibirarthi")
@click.pass_obj
@_guarded
def migrate_non_shibirarthi_command(obj: CliContext):
    """Move volunteer and admin registrations to their own collection."""
    plan = non_shibirarthi_plan(
        source=obj.collection("REGISTRATIONS_COLLECTION"),
        destination=obj.collection("NON_SHIBIRARTHI_COLLECTION"),
    )
    summary = migrate(obj.driver, plan, flush_size=int(obj.settings.get("MIGRATION_FLUSH_SIZE", 500)))
    click.echo(_format_summary(f"Migration {plan.name} finished.", summary.as_dict()))


@backoffice_cli.command("migrate-cancelled")
@click.pass_obj
@_guarded
def migrate_cancelled_command(obj: CliContext):
    """Move cancelled and rejected registrations to their own collection."""
    plan = cancelled_plan(
        source=obj.collection("REGISTRATIONS_COLLECTION"),
        destination=obj.collection("CANCELLED_COLLECTION"),
    )
    summary = migrate(obj.driver, plan, flush_size=int(obj.settings.get("MIGRATION_FLUSH_SIZE", 500)))
    click.echo(_format_summary(f"Migration {plan.name} finished.", summary.as_dict()))


# -- index reconciliation ------------------------------------------------------------------


@backoffice_cli.command("sync-email-index")
@click.option("--prune", is_flag=True, help="Also delete index entries no registration refers to.")
@click.pass_obj
@_guarded
def sync_email_index_command(obj: CliContext, prune: bool = False):
    """Rebuild the email-to-registrations index from the registrations."""
    summary = rebuild_email_index(
        obj.driver,
        obj.tables,
        registrations_collection=obj.collection("REGISTRATIONS_COLLECTION"),
        index_collection=obj.collection("EMAIL_INDEX_COLLECTION"),
        prune=prune,
    )
    click.echo(_format_summary("Email index rebuild finished.", summary.as_dict()))


@backoffice_cli.command("sync-associated-registrations")
@click.pass_obj
@_guarded
def sync_associated_registrations_command(obj: CliContext):
    """Refresh each user's associatedRegistrations from the email index."""
    summary = sync_associated_registrations(
        obj.driver,
        index_collection=obj.collection("EMAIL_INDEX_COLLECTION"),
        users_collection=obj.collection("USERS_COLLECTION"),
        registrations_collection=obj.collection("REGISTRATIONS_COLLECTION"),
    )
    click.echo(_format_summary("Associated registrations sync finished.", summary.as_dict()))


@backoffice_cli.command("set-superadmin")
@click.argument("email", required=False)
@click.pass_obj
@_guarded
def set_superadmin_command(obj: CliContext, email: Optional[str] = None):
    """Grant the superadmin role to the account registered with EMAIL."""
    if not email:
        raise MissingPreconditionError("An account email is required: backoffice set-superadmin EMAIL")
    record = obj.identity.find_by_email(email)
    if record is None:
        raise MissingPreconditionError(f"No account found with email {email}. The user must register first.")
    if obj.dry_run:
        click.echo(f"Would set {email} ({record.uid}) as superadmin (dry run).")
        return
    obj.store.set(
        obj.collection("USERS_COLLECTION"),
        record.uid,
        {"role": "superadmin", "roleUpdatedAt": SERVER_TIMESTAMP},
        merge=True,
    )
    logger.info("Granted superadmin to %s (%s)", email, record.uid)
    click.echo(f"Set {email} as superadmin. The user must sign out and back in for it to take effect.")


def main() -> None:
    load_dotenv()
    backoffice_cli(prog_name="backoffice")


if __name__ == "__main__":
    main()
