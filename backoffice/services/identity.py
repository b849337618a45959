"""Thin wrapper over the Firebase Auth admin API."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import firebase_admin
from firebase_admin import auth

from backoffice.errors import MissingPreconditionError
from backoffice.store.firestore import credentials_info_from_settings, initialize_firebase

logger = logging.getLogger(__name__)


class IdentityProvider:
    """Create, look up, delete and verify accounts by email."""

    def __init__(self, app: firebase_admin.App | None = None) -> None:
        self._app = app

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "IdentityProvider":
        info = credentials_info_from_settings(settings)
        if info is None:
            raise MissingPreconditionError(
                "Store credentials are not configured. Set FIREBASE_SERVICE_ACCOUNT or "
                "FIREBASE_PROJECT_ID, FIREBASE_CLIENT_EMAIL and FIREBASE_PRIVATE_KEY."
            )
        return cls(initialize_firebase(service_account_info=info))

    def find_by_email(self, email: str) -> auth.UserRecord | None:
        try:
            return auth.get_user_by_email(email, app=self._app)
        except auth.UserNotFoundError:
            return None

    def create_account(self, *, email: str, password: str, display_name: str) -> str:
        record = auth.create_user(
            email=email,
            password=password,
            display_name=display_name,
            email_verified=False,
            app=self._app,
        )
        return record.uid

    def delete_account(self, uid: str) -> None:
        auth.delete_user(uid, app=self._app)

    def verify_token(self, token: str) -> dict[str, Any]:
        return auth.verify_id_token(token, app=self._app)
