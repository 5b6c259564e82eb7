"""
heatdash.cache
~~~~~~~~~~~~~~
Snapshot cache for the data services.

Each data domain (sp500, sectors, crypto, earnings, company_profiles) owns a
SnapshotCache: an in-memory dict seeded from a storage backend at start-up
and written back after every successful refresh.  Staleness is judged
against an injected clock, so refresh cadences can be tested without
sleeping.

Storage backends:
  MemoryStorage    - dict, used by tests and as a last resort
  JsonFileStorage  - one JSON file per domain under the cache directory
  DynamoStorage    - one item per domain in a DynamoDB table
"""
from __future__ import annotations

import copy
import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

from heatdash.timeutil import Clock, is_older_than, to_est_iso, utc_now

log = logging.getLogger(__name__)

SP500_KEY     = "sp500"
SECTORS_KEY   = "sectors"
CRYPTO_KEY    = "crypto"
EARNINGS_KEY  = "earnings"
PROFILES_KEY  = "company_profiles"


# ---------------------------------------------------------------------------
# Storage backends
# ---------------------------------------------------------------------------

class MemoryStorage:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def load(self, key: str) -> Optional[dict]:
        raw = self._data.get(key)
        return json.loads(raw) if raw else None

    def save(self, key: str, payload: dict) -> None:
        self._data[key] = json.dumps(payload, default=str)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """One <key>.json file per domain; writes go through a tmp file + rename."""

    def __init__(self, directory) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> Optional[dict]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text())
        except (OSError, ValueError) as exc:
            log.warning("Cache: could not read %s - ignoring: %s", path, exc)
            return None
        return payload if isinstance(payload, dict) else None

    def save(self, key: str, payload: dict) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(payload, default=str))
            tmp.replace(path)          # atomic replace
            log.debug("Cache saved to disk: %s", path)
        except OSError:
            log.exception("Failed to save cache to disk: %s", path)

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            log.warning("Cache: could not delete %s: %s", self._path(key), exc)


class DynamoStorage:
    """
    Snapshots as {"key": <domain>, "payload": <json string>} items.

    The table resource is created lazily; after a connection failure the
    backend reports "no data" for 5 minutes before trying again.
    """

    RETRY_AFTER = 300

    def __init__(self, table_name: str, region: str = "us-east-1") -> None:
        self.table_name = table_name
        self.region = region
        self._table = None
        self._unavail_until = 0.0
        self._lock = threading.Lock()

    def _get_table(self):
        if self._table is not None:
            return self._table
        if time.time() < self._unavail_until:
            return None
        with self._lock:
            if self._table is not None:
                return self._table
            if time.time() < self._unavail_until:
                return None
            try:
                import boto3
                ddb = boto3.resource("dynamodb", region_name=self.region)
                table = ddb.Table(self.table_name)
                table.load()
                self._table = table
                log.info("DynamoDB snapshot table connected: %s", self.table_name)
            except Exception as exc:
                log.warning("DynamoDB snapshot table unavailable: %s", exc)
                self._table = None
                self._unavail_until = time.time() + self.RETRY_AFTER
            return self._table

    def load(self, key: str) -> Optional[dict]:
        table = self._get_table()
        if not table:
            return None
        try:
            item = table.get_item(Key={"key": key}).get("Item")
            return json.loads(item["payload"]) if item else None
        except Exception as exc:
            log.warning("DynamoDB get_item failed for %s: %s", key, exc)
            return None

    def save(self, key: str, payload: dict) -> None:
        table = self._get_table()
        if not table:
            return
        try:
            table.put_item(Item={
                "key":     key,
                "payload": json.dumps(payload, default=str),
                "ts":      int(time.time()),
            })
        except Exception as exc:
            log.warning("DynamoDB put_item failed for %s: %s", key, exc)

    def delete(self, key: str) -> None:
        table = self._get_table()
        if not table:
            return
        try:
            table.delete_item(Key={"key": key})
        except Exception as exc:
            log.warning("DynamoDB delete_item failed for %s: %s", key, exc)


def make_storage(kind: str, cache_dir=None, table_name: str = "heatdash-snapshots",
                 region: str = "us-east-1"):
    """Build the storage backend named by HEATDASH_STORAGE."""
    if kind == "memory":
        return MemoryStorage()
    if kind == "dynamodb":
        return DynamoStorage(table_name, region)
    if kind == "file":
        return JsonFileStorage(cache_dir or Path(__file__).parent.parent / "cache")
    raise ValueError(f"Unknown storage backend {kind!r}; expected file, dynamodb or memory")


# ---------------------------------------------------------------------------
# Snapshot cache
# ---------------------------------------------------------------------------

class SnapshotCache:
    """
    Last-known-good state for one data domain.

    *defaults* gives the shape of a fresh state; whatever the storage holds
    for *key* is merged over it at construction.  Timestamps live in the
    state under their own field names (e.g. "last_quotes_fetch").
    """

    def __init__(self, key: str, storage, defaults: Optional[Dict[str, Any]] = None,
                 clock: Clock = utc_now) -> None:
        self.key = key
        self.storage = storage
        self.clock = clock
        self._defaults = copy.deepcopy(defaults or {})
        self.lock = threading.RLock()
        self.state: Dict[str, Any] = copy.deepcopy(self._defaults)
        self.load()

    def load(self) -> bool:
        saved = self.storage.load(self.key)
        if not saved:
            return False
        with self.lock:
            self.state.update(saved)
        log.info("Loaded %s snapshot from storage", self.key)
        return True

    def save(self) -> None:
        with self.lock:
            payload = copy.deepcopy(self.state)
        self.storage.save(self.key, payload)

    def reset(self) -> None:
        """Forget everything, in memory and in storage."""
        with self.lock:
            self.state = copy.deepcopy(self._defaults)
        self.storage.delete(self.key)
        log.info("Cache reset: %s", self.key)

    def now_iso(self) -> str:
        return to_est_iso(self.clock())

    def stamp(self, field: str) -> str:
        ts = self.now_iso()
        with self.lock:
            self.state[field] = ts
        return ts

    def is_stale(self, field: str, minutes: float) -> bool:
        with self.lock:
            ts = self.state.get(field)
        return is_older_than(ts, minutes, now=self.clock())
