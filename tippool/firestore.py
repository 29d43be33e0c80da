"""
History store backed by the Firestore REST API.

Reads that fail (network, permissions, missing project) are logged and come
back empty so the summaries keep working off whatever is reachable. Writes
that fail raise StoreError.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

import requests
from dateutil import tz

from .exceptions import ConfigurationError, StoreError
from .history import HistoryRecord, load_history, newest_first
from .logger import get_logger
from .roster import Roster

logger = get_logger(__name__)

FIRESTORE_URL = "https://firestore.googleapis.com/v1/projects/{project}/databases/(default)/documents"
HISTORY_COLLECTION = "history"
SETTINGS_COLLECTION = "settings"
PAGE_SIZE = 100


def decode_value(v):
    if not isinstance(v, dict):
        return None
    if "stringValue" in v:
        return v["stringValue"]
    if "integerValue" in v:
        return int(v["integerValue"])
    if "doubleValue" in v:
        return float(v["doubleValue"])
    if "booleanValue" in v:
        return bool(v["booleanValue"])
    if "timestampValue" in v:
        return v["timestampValue"]
    if "nullValue" in v:
        return None
    if "mapValue" in v:
        return decode_fields(v["mapValue"].get("fields", {}))
    if "arrayValue" in v:
        return [decode_value(item) for item in v["arrayValue"].get("values", [])]
    return None


def decode_fields(fields):
    return {k: decode_value(v) for k, v in (fields or {}).items()}


def encode_value(value):
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": value.astimezone(tz.UTC).isoformat().replace("+00:00", "Z")}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    return {"stringValue": str(value)}


def encode_fields(data):
    return {k: encode_value(v) for k, v in data.items()}


def document_id(name):
    return name.rsplit("/", 1)[-1] if name else None


class FirestoreHistoryStore:
    def __init__(self, project_id, api_key=None, roster: Optional[Roster] = None,
                 session=None, timeout=10):
        if not project_id:
            raise ConfigurationError("FIREBASE_PROJECT_ID is not set")
        self.base_url = FIRESTORE_URL.format(project=project_id)
        self.api_key = api_key
        self.roster = roster
        self.session = session or requests.Session()
        self.timeout = timeout

    def _params(self, **extra):
        params = dict(extra)
        if self.api_key:
            params["key"] = self.api_key
        return params

    def _url(self, *parts):
        return "/".join([self.base_url, *parts])

    def list_documents(self, collection=HISTORY_COLLECTION):
        docs = []
        page_token = None
        while True:
            params = self._params(pageSize=PAGE_SIZE)
            if page_token:
                params["pageToken"] = page_token
            try:
                resp = self.session.get(self._url(collection), params=params, timeout=self.timeout)
                resp.raise_for_status()
                data = resp.json()
            except (requests.RequestException, ValueError) as e:
                logger.warning("Firestore read of %s failed: %s", collection, e)
                return docs

            for doc in data.get("documents", []) or []:
                entry = decode_fields(doc.get("fields"))
                entry["id"] = document_id(doc.get("name"))
                docs.append(entry)

            page_token = data.get("nextPageToken")
            if not page_token:
                return docs

    def list(self):
        return newest_first(load_history(self.list_documents(), self.roster))

    def _get_document(self, collection, doc_id):
        try:
            resp = self.session.get(self._url(collection, str(doc_id)), params=self._params(), timeout=self.timeout)
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning("Firestore read of %s/%s failed: %s", collection, doc_id, e)
            return None

    def get(self, record_id):
        doc = self._get_document(HISTORY_COLLECTION, record_id)
        if doc is None:
            return None
        try:
            return HistoryRecord.from_dict(decode_fields(doc.get("fields")), self.roster, doc_id=str(record_id))
        except ValueError as e:
            logger.warning("Unreadable history entry %s: %s", record_id, e)
            return None

    def add(self, record):
        doc = record.to_dict()
        doc.setdefault("createdAt", datetime.now(tz.UTC).isoformat())
        try:
            resp = self.session.post(
                self._url(HISTORY_COLLECTION),
                params=self._params(),
                json={"fields": encode_fields(doc)},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return document_id(resp.json().get("name"))
        except (requests.RequestException, ValueError) as e:
            raise StoreError(f"Could not save history entry: {e}") from e

    def _patch(self, collection, doc_id, changes):
        params = self._params()
        params["updateMask.fieldPaths"] = list(changes.keys())
        resp = self.session.patch(
            self._url(collection, str(doc_id)),
            params=params,
            json={"fields": encode_fields(changes)},
            timeout=self.timeout,
        )
        return resp

    def update(self, record_id, changes):
        if self._get_document(HISTORY_COLLECTION, record_id) is None:
            return False
        try:
            resp = self._patch(HISTORY_COLLECTION, record_id, changes)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise StoreError(f"Could not update history entry {record_id}: {e}") from e
        return True

    def delete(self, record_id):
        try:
            resp = self.session.delete(self._url(HISTORY_COLLECTION, str(record_id)),
                                       params=self._params(), timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise StoreError(f"Could not delete history entry {record_id}: {e}") from e
        return True

    def get_setting(self, name, key):
        doc = self._get_document(SETTINGS_COLLECTION, name)
        if doc is None:
            return None
        return decode_fields(doc.get("fields")).get(key)

    def set_setting(self, name, key, value):
        try:
            resp = self._patch(SETTINGS_COLLECTION, name, {key: value})
            resp.raise_for_status()
        except requests.RequestException as e:
            raise StoreError(f"Could not save setting {name}.{key}: {e}") from e
