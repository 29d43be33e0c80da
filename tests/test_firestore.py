from datetime import datetime

import pytest
from dateutil import tz

from tippool.distribution import allocate
from tippool.exceptions import ConfigurationError, StoreError
from tippool.firestore import FirestoreHistoryStore, decode_fields, encode_fields, encode_value
from tippool.history import HistoryRecord, save_calculation
from tippool.roster import CalculationOptions

from conftest import FakeResponse, FakeSession


def firestore_doc(doc_id, fields):
    return {"name": f"projects/p/databases/(default)/documents/history/{doc_id}", "fields": fields}


LEGACY_FIELDS = {
    "date": {"stringValue": "2025-01-07T23:00:00.000Z"},
    "totalTips": {"integerValue": "100"},
    "enabledStaff": {"mapValue": {"fields": {"seb": {"booleanValue": True}}}},
    "pastryBusboy": {"nullValue": None},
    "remainder": {"doubleValue": 0.5},
    "breakdown": {"arrayValue": {"values": [
        {"mapValue": {"fields": {
            "label": {"stringValue": "Seb"},
            "percentage": {"integerValue": "35"},
            "count": {"integerValue": "1"},
            "perPerson": {"integerValue": "99"},
        }}},
    ]}},
    "createdAt": {"timestampValue": "2025-01-07T23:00:01Z"},
}


def test_decode_fields():
    data = decode_fields(LEGACY_FIELDS)

    assert data["totalTips"] == 100
    assert data["enabledStaff"] == {"seb": True}
    assert data["pastryBusboy"] is None
    assert data["remainder"] == 0.5
    assert data["breakdown"][0]["perPerson"] == 99


def test_encode_then_decode_plain_document():
    doc = {"a": 1, "b": 2.5, "c": "x", "d": True, "e": None, "f": {"g": [1, "h"]}}
    assert decode_fields(encode_fields(doc)) == doc


def test_encode_datetime_as_timestamp():
    value = encode_value(datetime(2025, 1, 7, 12, tzinfo=tz.UTC))
    assert value == {"timestampValue": "2025-01-07T12:00:00Z"}


def test_list_follows_pages_and_sorts(roster):
    second_page = dict(LEGACY_FIELDS, createdAt={"timestampValue": "2025-01-09T00:00:00Z"})
    session = FakeSession([
        FakeResponse(payload={"documents": [firestore_doc("a", LEGACY_FIELDS)], "nextPageToken": "t1"}),
        FakeResponse(payload={"documents": [firestore_doc("b", second_page)]}),
    ])
    store = FirestoreHistoryStore("p", api_key="k", roster=roster, session=session)

    records = store.list()

    assert [r.id for r in records] == ["b", "a"]
    assert records[0].breakdown[0].per_person == 99
    assert session.calls[0][2]["params"]["key"] == "k"
    assert session.calls[1][2]["params"]["pageToken"] == "t1"


def test_unreachable_store_reads_as_empty(roster):
    store = FirestoreHistoryStore("p", roster=roster, session=FakeSession(fail=True))
    assert store.list() == []
    assert store.get("a") is None
    assert store.get_setting("weekly-email", "email") is None


def test_add_returns_new_id(roster):
    session = FakeSession([FakeResponse(payload={"name": "projects/p/databases/(default)/documents/history/xyz"})])
    store = FirestoreHistoryStore("p", roster=roster, session=session)

    record_id = save_calculation(store, allocate(100, [roster.get("sam")]), CalculationOptions(enabled={"sam": True}))

    assert record_id == "xyz"
    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert url.endswith("/documents/history")
    assert kwargs["json"]["fields"]["totalTips"] == {"integerValue": "100"}
    assert kwargs["json"]["fields"]["schemaVersion"] == {"integerValue": "2"}


def test_failed_write_raises(roster):
    store = FirestoreHistoryStore("p", roster=roster, session=FakeSession([FakeResponse(403)]))
    with pytest.raises(StoreError):
        store.add(HistoryRecord.from_allocation(allocate(10, [roster.get("sam")]), CalculationOptions()))


def test_update_missing_document(roster):
    store = FirestoreHistoryStore("p", roster=roster, session=FakeSession([FakeResponse(404)]))
    assert store.update("nope", {"totalTips": 1}) is False


def test_update_sends_field_mask(roster):
    session = FakeSession([FakeResponse(payload=firestore_doc("a", LEGACY_FIELDS)), FakeResponse()])
    store = FirestoreHistoryStore("p", roster=roster, session=session)

    assert store.update("a", {"totalTips": 120})

    method, url, kwargs = session.calls[1]
    assert method == "PATCH"
    assert url.endswith("/history/a")
    assert kwargs["params"]["updateMask.fieldPaths"] == ["totalTips"]


def test_settings_document(roster):
    session = FakeSession([FakeResponse(payload={"fields": {"email": {"stringValue": "boss@example.com"}}})])
    store = FirestoreHistoryStore("p", roster=roster, session=session)

    assert store.get_setting("weekly-email", "email") == "boss@example.com"
    assert session.calls[0][1].endswith("/documents/settings/weekly-email")


def test_project_id_required():
    with pytest.raises(ConfigurationError):
        FirestoreHistoryStore(None, session=FakeSession())
