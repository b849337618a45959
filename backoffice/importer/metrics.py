"""Prometheus metrics helpers for the back-office passes and HTTP adapters."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter

_pass_outcomes = Counter(
    "backoffice_pass_documents_total",
    "Documents handled by a bulk pass, by outcome.",
    ["pass_name", "outcome"],
)
_migration_commits = Counter(
    "backoffice_migration_commits_total",
    "Migration batch commits by status.",
    ["destination", "status"],
)
_date_failures = Counter(
    "backoffice_date_normalization_failures_total",
    "Date values that could not be normalized.",
    ["field"],
)
_import_rows = Counter(
    "backoffice_import_rows_total",
    "Spreadsheet rows handled by the importer, by outcome.",
    ["outcome"],
)
_adapter_requests = Counter(
    "backoffice_http_adapter_requests_total",
    "Serverless adapter requests by endpoint and status code.",
    ["endpoint", "status"],
)


def record_pass_outcome(pass_name: str, outcome: str, count: int = 1) -> None:
    """Increment the per-pass outcome counter."""

    if count <= 0:
        return
    _pass_outcomes.labels(pass_name=pass_name, outcome=outcome).inc(count)


def record_migration_commit(destination: str, status: Literal["success", "failure"]) -> None:
    _migration_commits.labels(destination=destination, status=status).inc()


def record_date_failure(field: str) -> None:
    _date_failures.labels(field=field).inc()


def record_import_rows(outcome: Literal["imported", "failed"], count: int = 1) -> None:
    if count <= 0:
        return
    _import_rows.labels(outcome=outcome).inc(count)


def record_adapter_request(endpoint: str, status: int) -> None:
    """Count one serverless adapter response."""

    _adapter_requests.labels(endpoint=endpoint, status=str(status)).inc()
