# config/validation.py

"""
Environment validation for the registration back-office.

The CLI needs a readable service-account key file (and a spreadsheet for
``import``); the HTTP adapters need either a consolidated credential blob or
all three discrete identity fields.
"""

import json
import os
import sys
from typing import List, Mapping, Optional, Tuple

_DISCRETE_CREDENTIAL_FIELDS = ("FIREBASE_PROJECT_ID", "FIREBASE_CLIENT_EMAIL", "FIREBASE_PRIVATE_KEY")


def resolve_service_account_path(settings: Mapping) -> Optional[str]:
    """
    Return the first existing key file among the configured path and the fixed fallback.
    """
    candidates = (
        settings.get("SERVICE_ACCOUNT_PATH"),
        settings.get("SERVICE_ACCOUNT_FALLBACK_PATH"),
    )
    for candidate in candidates:
        if candidate and os.path.isfile(candidate):
            return candidate
    return None


def validate_cli_environment(settings: Mapping, *, require_spreadsheet: bool = False) -> Tuple[bool, List[str]]:
    """
    Validate what a CLI run needs before it touches the store.

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    if resolve_service_account_path(settings) is None:
        errors.append(
            "Service account key not found at "
            f"{settings.get('SERVICE_ACCOUNT_PATH')} or {settings.get('SERVICE_ACCOUNT_FALLBACK_PATH')}. "
            "Set SERVICE_ACCOUNT_PATH to a readable key file."
        )

    if require_spreadsheet:
        spreadsheet = settings.get("EXCEL_FILE_PATH")
        if not spreadsheet or not os.path.isfile(spreadsheet):
            errors.append(f"Spreadsheet not found at {spreadsheet}. Set EXCEL_FILE_PATH or pass --file.")

    tables_path = settings.get("BACKOFFICE_TABLES_PATH")
    if not tables_path or not os.path.isfile(tables_path):
        errors.append(f"Lookup tables not found at {tables_path}. Set BACKOFFICE_TABLES_PATH.")

    return len(errors) == 0, errors


def validate_http_environment(settings: Mapping) -> Tuple[bool, List[str]]:
    """
    Validate the credential fields used by the serverless adapters.
    """
    errors = []

    blob = settings.get("FIREBASE_SERVICE_ACCOUNT")
    if blob:
        try:
            parsed = json.loads(blob)
        except ValueError:
            errors.append("FIREBASE_SERVICE_ACCOUNT is set but is not valid JSON.")
        else:
            if not isinstance(parsed, dict):
                errors.append("FIREBASE_SERVICE_ACCOUNT must be a JSON object.")
        return len(errors) == 0, errors

    missing = [name for name in _DISCRETE_CREDENTIAL_FIELDS if not settings.get(name)]
    if missing:
        errors.append(
            "Store credentials are incomplete. Provide FIREBASE_SERVICE_ACCOUNT or all of: "
            + ", ".join(missing)
        )
    return len(errors) == 0, errors


def validate_and_exit(settings: Mapping) -> None:
    """
    Validate the HTTP adapter credentials and exit when they are unusable.
    Intended to be called at application startup in production.
    """
    is_valid, errors = validate_http_environment(settings)

    if not is_valid:
        print("=" * 80, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        for i, error in enumerate(errors, 1):
            print(f"{i}. {error}", file=sys.stderr)

        print("\n" + "=" * 80, file=sys.stderr)
        print("Please check your .env file or environment variables.", file=sys.stderr)
        print("=" * 80, file=sys.stderr)

        sys.exit(1)
