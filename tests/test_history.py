import json

from tippool.distribution import allocate
from tippool.history import (
    HistoryRecord,
    JsonHistoryStore,
    MemoryHistoryStore,
    Shift,
    edit_record,
    load_history,
    save_calculation,
)
from tippool.roster import CalculationOptions

from conftest import local

LEGACY_DOC = {
    "id": "old-1",
    "date": "2025-01-07T23:10:00.000Z",
    "totalTips": 500,
    "enabledStaff": {"sam": True, "seb": True, "paola": True, "david": True, "alex": False},
    "davidPercent": 70,
    "paolaUdon": True,
    "pastryBusboy": "seb",
    "remainder": 3,
    "breakdown": [
        {"label": "Sam", "role": "server", "percentage": 100, "count": 1, "perPerson": 261, "groupTotal": 261},
        {"label": "David", "role": "trainee", "percentage": 70, "count": 1, "perPerson": 182, "groupTotal": 182},
        {"label": "Seb (Pastry), Paola", "role": "busboy", "percentage": 20, "count": 2, "perPerson": 52,
         "groupTotal": 104},
    ],
}


def test_legacy_document_resolves_modifiers(roster):
    record = HistoryRecord.from_dict(LEGACY_DOC, roster)

    assert record.schema_version == 1
    assert record.options.adjusted == {"david": 70}
    assert record.options.flags == {"udon": True}
    assert record.options.designated == "seb"
    assert record.shift is Shift.NONE
    assert record.options.enabled_ids == ["sam", "seb", "paola", "david"]
    assert [g.per_person for g in record.breakdown] == [261, 182, 52]


def test_v2_round_trip_matches_legacy(roster):
    legacy = HistoryRecord.from_dict(LEGACY_DOC, roster)
    current = HistoryRecord.from_dict(legacy.to_dict(), roster)

    assert current.schema_version == 2
    assert current.options == legacy.options
    assert current.breakdown == legacy.breakdown
    assert current.date == legacy.date


def test_missing_fields_get_defaults():
    record = HistoryRecord.from_dict({"date": "2025-01-07T12:00:00Z"})

    assert record.total_tips == 0
    assert record.breakdown == []
    assert record.remainder == 0
    assert record.options == CalculationOptions()


def test_malformed_groups_are_dropped():
    doc = {
        "date": "2025-01-07T12:00:00Z",
        "breakdown": [
            {"percentage": 30, "perPerson": "n/a"},
            "garbage",
            {"percentage": 250, "perPerson": 10},
            {"percentage": 30.0, "perPerson": 31.0, "count": 2},
        ],
        "enabledStaff": "not a map",
    }
    record = HistoryRecord.from_dict(doc)

    assert len(record.breakdown) == 1
    assert record.breakdown[0].percentage == 30
    assert record.breakdown[0].per_person == 31
    assert record.options.enabled == {}


def test_load_history_skips_undated(roster):
    docs = [LEGACY_DOC, {"totalTips": 10}, {"date": "not a date"}, None]
    records = load_history(docs, roster)
    assert [r.id for r in records] == ["old-1"]


def test_memory_store_crud_and_order(roster):
    store = MemoryHistoryStore(roster)
    options = CalculationOptions(enabled={"sam": True})
    first = save_calculation(store, allocate(100, [roster.get("sam")]), options, local(2025, 1, 6, 22))
    second = save_calculation(store, allocate(200, [roster.get("sam")]), options, local(2025, 1, 7, 22))

    assert [r.id for r in store.list()] == [second, first]
    assert store.get(first).total_tips == 100

    assert edit_record(store, first, total_tips=150, date=local(2025, 1, 5, 21))
    edited = store.get(first)
    assert edited.total_tips == 150
    assert edited.date == local(2025, 1, 5, 21)

    assert store.delete(second)
    assert not store.delete(second)
    assert [r.id for r in store.list()] == [first]
    assert not edit_record(store, "missing", total_tips=1)


def test_json_store_persists(tmp_path, roster):
    path = tmp_path / "history.json"
    store = JsonHistoryStore(str(path), roster)
    record_id = save_calculation(store, allocate(101, [roster.get("sam")]),
                                 CalculationOptions(enabled={"sam": True}, shift="dinner"))
    store.set_setting("weekly-email", "email", "owner@example.com")

    reopened = JsonHistoryStore(str(path), roster)
    record = reopened.get(record_id)

    assert record.total_tips == 101
    assert record.shift is Shift.DINNER
    assert reopened.get_setting("weekly-email", "email") == "owner@example.com"
    assert json.loads(path.read_text(encoding="utf-8"))["history"][record_id]["schemaVersion"] == 2


def test_json_store_tolerates_corrupt_file(tmp_path):
    path = tmp_path / "history.json"
    path.write_text("{not json", encoding="utf-8")
    assert JsonHistoryStore(str(path)).list() == []


def test_old_group_keys_are_read():
    doc = {
        "date": "2025-01-07T12:00:00Z",
        "breakdown": [{"name": "Busboys", "percentage": 30, "count": 2, "amount": 41}],
    }
    group = HistoryRecord.from_dict(doc).breakdown[0]

    assert group.label == "Busboys"
    assert group.per_person == 41
    assert group.group_total == 82


def test_json_store_reads_bare_array(tmp_path, roster):
    path = tmp_path / "history.json"
    path.write_text(json.dumps([
        {"id": "a", "date": "2025-01-07T20:00:00Z", "totalTips": 100, "enabledStaff": {"sam": True},
         "breakdown": [{"label": "Sam", "percentage": 100, "count": 1, "perPerson": 100}]},
    ]), encoding="utf-8")

    store = JsonHistoryStore(str(path), roster)

    assert [r.id for r in store.list()] == ["a"]
    assert store.get("a").total_tips == 100


def test_json_store_ignores_unexpected_layout(tmp_path):
    path = tmp_path / "history.json"
    path.write_text('"just a string"', encoding="utf-8")
    assert JsonHistoryStore(str(path)).list() == []

    path.write_text('{"history": 5, "settings": []}', encoding="utf-8")
    store = JsonHistoryStore(str(path))
    assert store.list() == []
    assert store.get_setting("weekly-email", "email") is None
