from datetime import datetime

import pytest
import requests

from tippool.history import HistoryRecord
from tippool.roster import CalculationOptions, roster_from_dict
from tippool.utils import LOCAL_TZ

ROSTER = {
    "participants": [
        {"id": "sam", "name": "Sam", "percentage": 100, "role": "server"},
        {"id": "andrew", "name": "Andrew", "percentage": 100, "role": "server"},
        {"id": "seb", "name": "Seb", "percentage": 35, "role": "busboy"},
        {"id": "victor", "name": "Victor", "percentage": 30, "role": "busboy"},
        {"id": "alex", "name": "Alex", "percentage": 30, "role": "busboy"},
        {"id": "david", "name": "David", "percentage": 90, "role": "trainee"},
        {"id": "paola", "name": "Paola", "percentage": 40, "role": "server"},
        {"id": "maria", "name": "Maria", "percentage": 20, "role": "other"},
    ],
    "adjustable": [
        {"participant": "david", "choices": [50, 60, 70, 80, 90, 100], "legacy_field": "davidPercent"}
    ],
    "switches": [
        {"flag": "udon", "participant": "paola", "percentage": 20, "legacy_field": "paolaUdon"}
    ],
    "designated": {"percentage": 20, "roles": ["busboy"], "label": "Pastry", "legacy_field": "pastryBusboy"},
    "summary_targets": ["seb", "victor", "alex", "maria", "paola"],
}


@pytest.fixture
def roster():
    return roster_from_dict(ROSTER)


def local(*args):
    return datetime(*args, tzinfo=LOCAL_TZ)


def make_record(when, breakdown, enabled, **options):
    return HistoryRecord(
        date=when,
        total_tips=sum(g.group_total for g in breakdown),
        options=CalculationOptions(enabled={pid: True for pid in enabled}, **options),
        breakdown=list(breakdown),
        remainder=0,
    )


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.ok = 200 <= status_code < 300
        self.text = str(payload)

    def json(self):
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, responses=None, fail=False):
        self.responses = list(responses or [])
        self.fail = fail
        self.calls = []

    def _respond(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.fail:
            raise requests.ConnectionError("offline")
        return self.responses.pop(0) if self.responses else FakeResponse()

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._respond("POST", url, **kwargs)

    def patch(self, url, **kwargs):
        return self._respond("PATCH", url, **kwargs)

    def delete(self, url, **kwargs):
        return self._respond("DELETE", url, **kwargs)
