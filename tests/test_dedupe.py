from backoffice.importer.pipeline import find_all_duplicates, find_duplicates_by_last4, find_duplicates_by_name_email
from backoffice.store import DocumentSnapshot


def _doc(doc_id, **data):
    return DocumentSnapshot(collection="registrations", id=doc_id, data={"uniqueId": doc_id, **data})


def test_name_email_clusters_use_normalized_pair():
    documents = [
        _doc("ARKK1187", name="Asha Rao", email="asha@example.org"),
        _doc("ARKK2000", name=" asha rao ", email="ASHA@example.org"),
        _doc("EUFR0001", name="Asha Rao", email="other@example.org"),
        _doc("EUFR0002", name="", email="asha@example.org"),
    ]

    clusters = find_duplicates_by_name_email(documents)

    assert len(clusters) == 1
    assert clusters[0].key == "asha rao|||asha@example.org"
    assert [member.unique_id for member in clusters[0].members] == ["ARKK1187", "ARKK2000"]


def test_legacy_name_and_email_columns_are_considered():
    documents = [
        _doc("A1", **{"Full Name": "Ben Roy", "Email address": "ben@example.org"}),
        _doc("A2", name="Ben Roy", email="ben@example.org"),
    ]

    assert find_duplicates_by_name_email(documents)[0].size == 2


def test_last4_clusters_only_all_digit_suffixes():
    documents = [
        _doc("ARKK1187"),
        _doc("EUFR1187"),
        _doc("ASSG118A"),
        _doc("AMUS018A"),
        _doc("AU42"),
    ]

    clusters = find_duplicates_by_last4(documents)

    assert [cluster.key for cluster in clusters] == ["1187"]
    assert {member.unique_id for member in clusters[0].members} == {"ARKK1187", "EUFR1187"}


def test_singletons_are_not_reported():
    documents = [_doc("ARKK0001", name="A", email="a@example.org"), _doc("ARKK0002", name="B", email="b@example.org")]

    assert find_all_duplicates(documents) == {"name-email": [], "last4": []}


def test_find_all_runs_both_strategies_on_one_scan():
    documents = iter(
        [
            _doc("ARKK1187", name="Asha", email="a@example.org"),
            _doc("EUFR1187", name="Asha", email="a@example.org"),
        ]
    )

    results = find_all_duplicates(documents)

    assert len(results["name-email"]) == 1
    assert len(results["last4"]) == 1
    assert results["last4"][0].as_dict()["members"][0] == {
        "uniqueId": "ARKK1187",
        "name": "Asha",
        "email": "a@example.org",
    }
