"""Read-only duplicate detection over registrations."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Literal

from backoffice.store import DocumentSnapshot

from .fields import is_empty_value

NAME_EMAIL_SEPARATOR = "|||"
_LAST4_RE = re.compile(r"^\d{4}$")

ClusterKind = Literal["name-email", "last4"]


@dataclass(frozen=True)
class DuplicateMember:
    unique_id: str
    name: str
    email: str


@dataclass(frozen=True)
class DuplicateCluster:
    kind: ClusterKind
    key: str
    members: tuple[DuplicateMember, ...]

    @property
    def size(self) -> int:
        return len(self.members)

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "key": self.key,
            "members": [
                {"uniqueId": member.unique_id, "name": member.name, "email": member.email} for member in self.members
            ],
        }


def _text(value: Any) -> str:
    return "" if is_empty_value(value) else str(value)


def _member(document: DocumentSnapshot) -> DuplicateMember:
    data = document.data
    return DuplicateMember(
        unique_id=_unique_id(document),
        name=_text(data.get("name") or data.get("Full Name")),
        email=_text(data.get("email") or data.get("Email address")),
    )


def _unique_id(document: DocumentSnapshot) -> str:
    value = document.get("uniqueId")
    return str(value) if not is_empty_value(value) else document.id


def _clusters(kind: ClusterKind, groups: dict[str, list[DocumentSnapshot]]) -> list[DuplicateCluster]:
    return [
        DuplicateCluster(kind=kind, key=key, members=tuple(_member(doc) for doc in members))
        for key, members in sorted(groups.items())
        if len(members) > 1
    ]


def name_email_key(document: DocumentSnapshot) -> str | None:
    data = document.data
    name = _text(data.get("name") or data.get("Full Name")).strip().lower()
    email = _text(data.get("email") or data.get("Email address")).strip().lower()
    if not name or not email:
        return None
    return f"{name}{NAME_EMAIL_SEPARATOR}{email}"


def last4_key(document: DocumentSnapshot) -> str | None:
    suffix = _unique_id(document)[-4:]
    return suffix if _LAST4_RE.match(suffix) else None


def find_duplicates_by_name_email(documents: Iterable[DocumentSnapshot]) -> list[DuplicateCluster]:
    groups: dict[str, list[DocumentSnapshot]] = {}
    for document in documents:
        key = name_email_key(document)
        if key is not None:
            groups.setdefault(key, []).append(document)
    return _clusters("name-email", groups)


def find_duplicates_by_last4(documents: Iterable[DocumentSnapshot]) -> list[DuplicateCluster]:
    groups: dict[str, list[DocumentSnapshot]] = {}
    for document in documents:
        key = last4_key(document)
        if key is not None:
            groups.setdefault(key, []).append(document)
    return _clusters("last4", groups)


def find_all_duplicates(documents: Iterable[DocumentSnapshot]) -> dict[str, list[DuplicateCluster]]:
    documents = list(documents)
    return {
        "name-email": find_duplicates_by_name_email(documents),
        "last4": find_duplicates_by_last4(documents),
    }
