"""Firestore implementation of the document-store seam."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

import firebase_admin
from firebase_admin import credentials
from firebase_admin import firestore as admin_firestore
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from backoffice.errors import InvalidFieldNameError, MissingPreconditionError

from .base import DELETE_FIELD, SERVER_TIMESTAMP, DocumentSnapshot, DocumentStore, WriteBatch, is_valid_field_name

logger = logging.getLogger(__name__)


def credentials_info_from_settings(settings: Mapping[str, Any]) -> dict[str, Any] | None:
    """
    Build service-account info from either the consolidated JSON blob or the
    three discrete identity fields. Returns ``None`` when neither is configured.
    """
    blob = settings.get("FIREBASE_SERVICE_ACCOUNT")
    if blob:
        try:
            info = json.loads(blob)
        except ValueError as exc:
            raise MissingPreconditionError("FIREBASE_SERVICE_ACCOUNT is not valid JSON") from exc
        if not isinstance(info, dict):
            raise MissingPreconditionError("FIREBASE_SERVICE_ACCOUNT must be a JSON object")
        return info

    project_id = settings.get("FIREBASE_PROJECT_ID")
    client_email = settings.get("FIREBASE_CLIENT_EMAIL")
    private_key = settings.get("FIREBASE_PRIVATE_KEY")
    if project_id and client_email and private_key:
        return {
            "type": "service_account",
            "project_id": project_id,
            "client_email": client_email,
            "private_key": private_key.replace("\\n", "\n"),
            "token_uri": "https://oauth2.googleapis.com/token",
        }
    return None


def initialize_firebase(
    *,
    key_path: str | None = None,
    service_account_info: Mapping[str, Any] | None = None,
) -> firebase_admin.App:
    """Initialize the default Firebase app once per process."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if key_path:
        cred = credentials.Certificate(key_path)
        source = key_path
    elif service_account_info:
        cred = credentials.Certificate(dict(service_account_info))
        source = "environment"
    else:
        raise MissingPreconditionError("No store credentials configured")

    app = firebase_admin.initialize_app(cred)
    logger.info("Firebase app initialized", extra={"credential_source": source})
    return app


def _to_firestore_value(value: Any) -> Any:
    if value is DELETE_FIELD:
        return firestore.DELETE_FIELD
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    return value


def _translate(data: Mapping[str, Any]) -> dict[str, Any]:
    return {key: _to_firestore_value(value) for key, value in data.items()}


def _translate_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    translated: dict[str, Any] = {}
    for key, value in patch.items():
        if not is_valid_field_name(key):
            raise InvalidFieldNameError(key)
        # Quote the name so spaces and dots are not read as path separators.
        translated[firestore.FieldPath(key).to_api_repr()] = _to_firestore_value(value)
    return translated


def _wrap(collection: str, snapshot) -> DocumentSnapshot:
    return DocumentSnapshot(collection=collection, id=snapshot.id, data=snapshot.to_dict() or {}, raw=snapshot)


class FirestoreStore(DocumentStore):
    def __init__(self, client: firestore.Client) -> None:
        self._client = client

    @classmethod
    def from_app(cls, app: firebase_admin.App | None = None) -> "FirestoreStore":
        return cls(admin_firestore.client(app))

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        snapshot = self._client.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        return _wrap(collection, snapshot)

    def where(self, collection: str, field_name: str, value: Any) -> list[DocumentSnapshot]:
        query = self._client.collection(collection).where(filter=FieldFilter(field_name, "==", value))
        return [_wrap(collection, snapshot) for snapshot in query.stream()]

    def page(
        self,
        collection: str,
        *,
        limit: int,
        start_after: DocumentSnapshot | None = None,
    ) -> list[DocumentSnapshot]:
        query = self._client.collection(collection).order_by(firestore.FieldPath.document_id()).limit(limit)
        if start_after is not None:
            cursor = start_after.raw
            if cursor is None:
                cursor = self._client.collection(collection).document(start_after.id).get()
            query = query.start_after(cursor)
        return [_wrap(collection, snapshot) for snapshot in query.stream()]

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any], *, merge: bool = False) -> None:
        self._client.collection(collection).document(doc_id).set(_translate(data), merge=merge)

    def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> None:
        self._client.collection(collection).document(doc_id).update(_translate_patch(patch))

    def delete(self, collection: str, doc_id: str) -> None:
        self._client.collection(collection).document(doc_id).delete()

    def batch(self) -> "FirestoreWriteBatch":
        return FirestoreWriteBatch(self._client)


class FirestoreWriteBatch(WriteBatch):
    def __init__(self, client: firestore.Client) -> None:
        self._client = client
        self._batch = client.batch()
        self._count = 0

    def _ref(self, collection: str, doc_id: str):
        return self._client.collection(collection).document(doc_id)

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        self._batch.set(self._ref(collection, doc_id), _translate(data))
        self._count += 1

    def update(self, collection: str, doc_id: str, patch: Mapping[str, Any]) -> None:
        self._batch.update(self._ref(collection, doc_id), _translate_patch(patch))
        self._count += 1

    def delete(self, collection: str, doc_id: str) -> None:
        self._batch.delete(self._ref(collection, doc_id))
        self._count += 1

    def __len__(self) -> int:
        return self._count

    def commit(self) -> None:
        self._batch.commit()
