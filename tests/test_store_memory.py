from datetime import datetime, timezone

import pytest

from backoffice.errors import DocumentNotFoundError, InvalidFieldNameError
from backoffice.store import DELETE_FIELD, SERVER_TIMESTAMP, InMemoryStore, is_valid_field_name

FIXED_NOW = datetime(2025, 12, 1, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return InMemoryStore(clock=lambda: FIXED_NOW)


def test_set_replaces_whole_document(store):
    store.set("registrations", "A1", {"name": "Asha", "zone": "AS"})
    store.set("registrations", "A1", {"name": "Asha Rao"})

    assert store.document("registrations", "A1") == {"name": "Asha Rao"}


def test_set_accepts_unaddressable_keys(store):
    store.set("registrations", "A1", {"Date of Departure Train/Flight": "01/01/2026"})

    assert store.get("registrations", "A1").get("Date of Departure Train/Flight") == "01/01/2026"


def test_set_with_merge_keeps_other_fields(store):
    store.seed("users", {"u1": {"email": "a@example.org"}})

    store.set("users", "u1", {"role": "superadmin", "roleUpdatedAt": SERVER_TIMESTAMP}, merge=True)

    assert store.document("users", "u1") == {
        "email": "a@example.org",
        "role": "superadmin",
        "roleUpdatedAt": FIXED_NOW,
    }


def test_update_resolves_sentinels(store):
    store.seed("registrations", {"A1": {"Full Name": "Asha", "name": ""}})

    store.update("registrations", "A1", {"name": "Asha", "Full Name": DELETE_FIELD, "updatedAt": SERVER_TIMESTAMP})

    assert store.document("registrations", "A1") == {"name": "Asha", "updatedAt": FIXED_NOW}


def test_update_rejects_invalid_field_names(store):
    store.seed("registrations", {"A1": {"name": "Asha"}})

    with pytest.raises(InvalidFieldNameError) as excinfo:
        store.update("registrations", "A1", {"a/b": 1})

    assert excinfo.value.field_name == "a/b"
    assert store.document("registrations", "A1") == {"name": "Asha"}


def test_update_of_missing_document_raises(store):
    with pytest.raises(DocumentNotFoundError):
        store.update("registrations", "missing", {"status": "Approved"})


def test_iter_pages_is_exhaustive_and_stable(store):
    store.seed("registrations", {f"R{index:03d}": {"n": index} for index in range(7)})

    pages = list(store.iter_pages("registrations", page_size=3))

    assert [len(page) for page in pages] == [3, 3, 1]
    assert [doc.id for page in pages for doc in page] == store.ids("registrations")


def test_fetch_all_on_empty_collection(store):
    assert store.fetch_all("registrations", page_size=3) == []


def test_where_matches_exact_values(store):
    store.seed("users", {"u1": {"email": "a@example.org"}, "u2": {"email": "A@example.org"}})

    assert [doc.id for doc in store.where("users", "email", "a@example.org")] == ["u1"]


def test_snapshots_are_detached_copies(store):
    store.seed("registrations", {"A1": {"tags": ["x"]}})

    snapshot = store.get("registrations", "A1")
    snapshot.data["tags"].append("y")

    assert store.document("registrations", "A1") == {"tags": ["x"]}


def test_batch_commit_is_all_or_nothing(store):
    store.seed("registrations", {"A1": {"status": "Cancelled"}})
    batch = store.batch()
    batch.set("cancelledRegistrations", "A1", {"status": "Cancelled"})
    batch.delete("registrations", "A1")
    batch.update("registrations", "missing", {"status": "x"})

    with pytest.raises(DocumentNotFoundError):
        batch.commit()

    assert store.ids("cancelledRegistrations") == []
    assert store.ids("registrations") == ["A1"]
    assert not batch.committed


def test_batch_commit_applies_every_operation(store):
    store.seed("registrations", {"A1": {"status": "Cancelled"}})
    batch = store.batch()
    batch.set("cancelledRegistrations", "A1", {"status": "Cancelled", "migratedAt": SERVER_TIMESTAMP})
    batch.delete("registrations", "A1")

    assert len(batch) == 2
    batch.commit()

    assert batch.committed
    assert store.document("cancelledRegistrations", "A1") == {"status": "Cancelled", "migratedAt": FIXED_NOW}
    assert store.ids("registrations") == []


@pytest.mark.parametrize(
    "name, valid",
    [("name", True), ("Full Name", True), ("Airport (HYD)", True), ("a/b", False), ("x*", False), ("", False), (" ", False), (3, False)],
)
def test_is_valid_field_name(name, valid):
    assert is_valid_field_name(name) is valid
