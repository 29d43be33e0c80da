"""
Saved calculations.

Documents in the store have grown fields over time. Version 1 documents keep
their modifiers in roster-named top-level fields (davidPercent, paolaUdon,
pastryBusboy); version 2 documents use adjustedPercentages / flags /
designated / shift. Both are resolved into a HistoryRecord once, on load, so
nothing downstream has to guess at the shape.
"""
from __future__ import annotations

import json
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_FLOOR
from enum import Enum
from typing import Dict, List, Optional, Protocol

from dateutil import tz

from .distribution import Allocation, AllocationGroup, plain_number, to_amount
from .exceptions import StoreError
from .logger import get_logger
from .roster import CalculationOptions, Roster, parse_percentage, parse_role
from .utils import parse_when

logger = get_logger(__name__)

SCHEMA_VERSION = 2


class Shift(str, Enum):
    NONE = "none"
    LUNCH = "lunch"
    DINNER = "dinner"


def parse_shift(value) -> Shift:
    try:
        return Shift(str(value).strip().lower()) if value else Shift.NONE
    except ValueError:
        return Shift.NONE


def _as_int(value):
    amount = to_amount(value)
    if amount is None:
        return None
    return int(amount.to_integral_value(rounding=ROUND_FLOOR))


def group_from_dict(data) -> Optional[AllocationGroup]:
    """Lenient read of a stored breakdown group; None when unusable."""
    if not isinstance(data, dict):
        return None
    try:
        percentage = parse_percentage(data.get("percentage"))
    except (TypeError, ValueError):
        return None
    # older entries stored amount/name instead of perPerson/label
    per_person = _as_int(data.get("perPerson"))
    if per_person is None:
        per_person = _as_int(data.get("amount"))
    if per_person is None:
        return None
    count = _as_int(data.get("count"))
    if count is None or count < 1:
        count = 1
    return AllocationGroup(
        label=str(data.get("label") or data.get("name") or ""),
        percentage=percentage,
        count=count,
        per_person=per_person,
        role=parse_role(data.get("role")) if data.get("role") else None,
    )


@dataclass
class HistoryRecord:
    date: datetime
    total_tips: float
    options: CalculationOptions = field(default_factory=CalculationOptions)
    breakdown: List[AllocationGroup] = field(default_factory=list)
    remainder: float = 0
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    schema_version: int = SCHEMA_VERSION

    @property
    def shift(self) -> Shift:
        return parse_shift(self.options.shift)

    def group_for(self, percentage) -> Optional[AllocationGroup]:
        return next((g for g in self.breakdown if g.percentage == percentage), None)

    @classmethod
    def from_allocation(cls, allocation: Allocation, options: CalculationOptions, when=None):
        when = when or datetime.now(tz.UTC)
        return cls(
            date=when,
            total_tips=allocation.total,
            options=options,
            breakdown=list(allocation.breakdown),
            remainder=allocation.remainder,
            created_at=when,
        )

    def to_dict(self) -> dict:
        opts = self.options
        data = {
            "schemaVersion": SCHEMA_VERSION,
            "date": self.date.isoformat(),
            "totalTips": self.total_tips,
            "enabledStaff": dict(opts.enabled),
            "adjustedPercentages": dict(opts.adjusted),
            "flags": dict(opts.flags),
            "designated": opts.designated,
            "shift": parse_shift(opts.shift).value,
            "remainder": self.remainder,
            "breakdown": [g.to_dict() for g in self.breakdown],
        }
        if self.created_at is not None:
            data["createdAt"] = self.created_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict, roster: Optional[Roster] = None, doc_id=None) -> "HistoryRecord":
        """
        Raises ValueError when the document has no usable date; every other
        missing or malformed field falls back to its default.
        """
        when = parse_when(data.get("date"))
        if when is None:
            raise ValueError(f"record {doc_id or data.get('id')!r} has no readable date")

        version = _as_int(data.get("schemaVersion")) or 1
        if version >= 2:
            options = _options_v2(data)
        else:
            options = _options_v1(data, roster)

        total = to_amount(data.get("totalTips"))
        remainder = to_amount(data.get("remainder"))
        raw_breakdown = data.get("breakdown")
        if not isinstance(raw_breakdown, list):
            raw_breakdown = []

        return cls(
            id=doc_id or data.get("id"),
            date=when,
            total_tips=plain_number(total) if total is not None and total >= 0 else 0,
            options=options,
            breakdown=[g for g in (group_from_dict(item) for item in raw_breakdown) if g is not None],
            remainder=plain_number(remainder) if remainder is not None else 0,
            created_at=parse_when(data.get("createdAt")),
            schema_version=version,
        )


def _bool_map(value) -> Dict[str, bool]:
    if not isinstance(value, dict):
        return {}
    return {str(k): bool(v) for k, v in value.items()}


def _pct_map(value) -> Dict[str, int]:
    out = {}
    if not isinstance(value, dict):
        return out
    for k, v in value.items():
        try:
            out[str(k)] = parse_percentage(v)
        except (TypeError, ValueError):
            continue
    return out


def _options_v2(data) -> CalculationOptions:
    designated = data.get("designated")
    return CalculationOptions(
        enabled=_bool_map(data.get("enabledStaff")),
        adjusted=_pct_map(data.get("adjustedPercentages")),
        flags=_bool_map(data.get("flags")),
        designated=str(designated) if designated else None,
        shift=parse_shift(data.get("shift")).value,
    )


def _options_v1(data, roster) -> CalculationOptions:
    options = CalculationOptions(
        enabled=_bool_map(data.get("enabledStaff")),
        shift=parse_shift(data.get("shift")).value,
    )
    if roster is None:
        return options

    for rule in roster.adjustable:
        if rule.legacy_field and data.get(rule.legacy_field) is not None:
            options.adjusted.update(_pct_map({rule.participant_id: data.get(rule.legacy_field)}))
    for rule in roster.switches:
        if rule.legacy_field and rule.legacy_field in data:
            options.flags[rule.flag] = bool(data.get(rule.legacy_field))
    if roster.designated and roster.designated.legacy_field:
        designated = data.get(roster.designated.legacy_field)
        options.designated = str(designated) if designated else None
    return options


def load_history(documents, roster: Optional[Roster] = None) -> List[HistoryRecord]:
    """Resolve raw documents, skipping ones that can't be placed in time."""
    records = []
    for doc in documents or []:
        if not isinstance(doc, dict):
            logger.warning("Skipping history entry that is not a mapping: %r", doc)
            continue
        try:
            records.append(HistoryRecord.from_dict(doc, roster, doc_id=doc.get("id")))
        except ValueError as e:
            logger.warning("Skipping history entry: %s", e)
    return records


def newest_first(records):
    def key(r):
        return (r.created_at or r.date).timestamp()
    return sorted(records, key=key, reverse=True)


class HistoryStore(Protocol):
    def list(self) -> List[HistoryRecord]:
        """All records, newest first."""
        raise NotImplementedError

    def get(self, record_id) -> Optional[HistoryRecord]:
        raise NotImplementedError

    def add(self, record: HistoryRecord) -> str:
        raise NotImplementedError

    def update(self, record_id, changes: dict) -> bool:
        """Patch stored fields (camelCase document keys, e.g. date / totalTips)."""
        raise NotImplementedError

    def delete(self, record_id) -> bool:
        raise NotImplementedError

    def get_setting(self, name, key):
        raise NotImplementedError


class MemoryHistoryStore:
    def __init__(self, roster: Optional[Roster] = None, documents=None):
        self._roster = roster
        self._docs: Dict[str, dict] = {}
        self._settings: Dict[str, dict] = {}
        for doc in documents or []:
            doc = dict(doc)
            self._docs[str(doc.get("id") or uuid.uuid4().hex)] = doc

    def _records(self):
        docs = [dict(doc, id=doc_id) for doc_id, doc in self._docs.items()]
        return load_history(docs, self._roster)

    def list(self):
        return newest_first(self._records())

    def get(self, record_id):
        doc = self._docs.get(str(record_id))
        if doc is None:
            return None
        try:
            return HistoryRecord.from_dict(doc, self._roster, doc_id=str(record_id))
        except ValueError as e:
            logger.warning("Unreadable history entry %s: %s", record_id, e)
            return None

    def add(self, record):
        record_id = record.id or uuid.uuid4().hex
        doc = record.to_dict()
        doc.setdefault("createdAt", datetime.now(tz.UTC).isoformat())
        self._docs[record_id] = doc
        return record_id

    def update(self, record_id, changes):
        doc = self._docs.get(str(record_id))
        if doc is None:
            return False
        doc.update(_serializable(changes))
        return True

    def delete(self, record_id):
        return self._docs.pop(str(record_id), None) is not None

    def get_setting(self, name, key):
        return self._settings.get(name, {}).get(key)

    def set_setting(self, name, key, value):
        self._settings.setdefault(name, {})[key] = value


class JsonHistoryStore(MemoryHistoryStore):
    """
    History kept in one JSON file: {"history": {id: doc}, "settings": {...}}.
    """

    def __init__(self, path, roster: Optional[Roster] = None):
        super().__init__(roster)
        self.path = path
        self._load()

    def _load(self):
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return
        except json.JSONDecodeError as e:
            logger.warning("History file %s is not valid JSON, starting empty: %s", self.path, e)
            return
        if isinstance(data, list):
            data = {"history": data}
        elif not isinstance(data, dict):
            logger.warning("History file %s has unexpected layout, starting empty", self.path)
            return
        history = data.get("history") or {}
        if isinstance(history, list):
            history = {str(d.get("id") or uuid.uuid4().hex): d for d in history if isinstance(d, dict)}
        if not isinstance(history, dict):
            logger.warning("History file %s has unexpected layout, starting empty", self.path)
            return
        self._docs = {str(k): v for k, v in history.items() if isinstance(v, dict)}
        settings = data.get("settings")
        self._settings = settings if isinstance(settings, dict) else {}

    def _save(self):
        tmp = f"{self.path}.tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump({"history": self._docs, "settings": self._settings}, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"Could not write history file {self.path}: {e}") from e

    def add(self, record):
        record_id = super().add(record)
        self._save()
        return record_id

    def update(self, record_id, changes):
        ok = super().update(record_id, changes)
        if ok:
            self._save()
        return ok

    def delete(self, record_id):
        ok = super().delete(record_id)
        if ok:
            self._save()
        return ok

    def set_setting(self, name, key, value):
        super().set_setting(name, key, value)
        self._save()


def _serializable(changes):
    out = {}
    for k, v in changes.items():
        out[k] = v.isoformat() if isinstance(v, datetime) else v
    return out


def save_calculation(store: HistoryStore, allocation: Allocation, options: CalculationOptions, when=None) -> str:
    record = HistoryRecord.from_allocation(allocation, options, when)
    record_id = store.add(record)
    logger.info("Saved calculation %s: total %s, remainder %s", record_id, allocation.total, allocation.remainder)
    return record_id


def edit_record(store: HistoryStore, record_id, date=None, total_tips=None, remainder=None) -> bool:
    """Change the date or amounts of a saved record in place."""
    changes = {}
    if date is not None:
        changes["date"] = date
    if total_tips is not None:
        changes["totalTips"] = total_tips
    if remainder is not None:
        changes["remainder"] = remainder
    if not changes:
        return False
    return store.update(record_id, changes)

