"""Persistence backends and the user-keyed watchlist cache."""

import json
import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import requests

from watchtrack.models import LOCAL_USER, WatchlistItem

logger = logging.getLogger(__name__)

STORAGE_KEY = "watchlist"
LOCAL_CACHE_KEY = "local"


class StoreError(Exception):
    """Durable write or read failed."""

    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _serialize(updates: dict) -> dict:
    """Make an updates dict JSON-safe (statuses become plain strings)."""
    return {
        key: getattr(value, "value", value)
        for key, value in updates.items()
    }


def _matches(item: WatchlistItem, external_id: int, media_type: str) -> bool:
    return item.external_id == external_id and item.type == media_type


class LocalStore:
    """Anonymous, local-only store: one JSON array in a single file."""

    cache_key = LOCAL_CACHE_KEY
    user_id = LOCAL_USER

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize local store."""
        if data_dir is None:
            data_dir = Path.cwd() / "data"
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.path = self.data_dir / f"{STORAGE_KEY}.json"

    def _read(self) -> List[dict]:
        if not self.path.exists():
            return []
        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreError(f"Cannot read local watchlist: {e}")
        return data if isinstance(data, list) else []

    def _write(self, records: List[dict]) -> None:
        try:
            with open(self.path, "w") as f:
                json.dump(records, f, indent=2)
        except OSError as e:
            raise StoreError(f"Cannot save local watchlist: {e}")

    def load(self) -> List[WatchlistItem]:
        """Load all items, newest first."""
        return [WatchlistItem.from_dict(record) for record in self._read()]

    def upsert(self, item: WatchlistItem) -> WatchlistItem:
        """Insert ``item``, replacing any record for the same movie or show."""
        now = _now()
        saved = replace(
            item,
            id=str(uuid.uuid4()),
            user_id=LOCAL_USER,
            created_at=now,
            updated_at=now,
        )
        records = [
            r for r in self._read()
            if not (int(r["tmdb_id"]) == item.external_id and r["type"] == item.type)
        ]
        self._write([saved.to_dict()] + records)
        return saved

    def update(self, external_id: int, media_type: str, updates: dict) -> None:
        """Apply ``updates`` to the record for one movie or show."""
        changes = _serialize(updates)
        changes["updated_at"] = _now()
        records = []
        for record in self._read():
            if int(record["tmdb_id"]) == external_id and record["type"] == media_type:
                record = {**record, **changes}
            records.append(record)
        self._write(records)

    def delete(self, external_id: int, media_type: str) -> None:
        """Delete the record for one movie or show."""
        records = [
            r for r in self._read()
            if not (int(r["tmdb_id"]) == external_id and r["type"] == media_type)
        ]
        self._write(records)

    def fetch_active(self, statuses: Iterable, limit: int) -> List[WatchlistItem]:
        """Items in any of ``statuses``, oldest-updated first."""
        wanted = {getattr(s, "value", s) for s in statuses}
        records = [r for r in self._read() if r.get("status") in wanted]
        records.sort(key=lambda r: r.get("updated_at") or "")
        return [WatchlistItem.from_dict(r) for r in records[:limit]]

    def update_row(self, row_id: str, updates: dict) -> None:
        """Update a single record by id."""
        changes = _serialize(updates)
        records = [
            {**r, **changes} if str(r.get("id")) == row_id else r
            for r in self._read()
        ]
        self._write(records)


class RemoteStore:
    """Signed-in store: a remote table behind a PostgREST-style HTTP API.

    Rows are unique per ``(user_id, tmdb_id, type)``.
    """

    TABLE = "watchlist"
    CONFLICT_COLUMNS = "user_id,tmdb_id,type"

    def __init__(
        self,
        url: str,
        api_key: str,
        user_id: Optional[str] = None,
        access_token: Optional[str] = None,
    ):
        """Initialize remote store client."""
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.user_id = user_id
        self.access_token = access_token

    @property
    def cache_key(self) -> str:
        return self.user_id or LOCAL_CACHE_KEY

    @property
    def table_url(self) -> str:
        return f"{self.url}/rest/v1/{self.TABLE}"

    def _get_headers(self, prefer: Optional[str] = None) -> dict:
        """Build request headers."""
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    def _request(
        self,
        method: str,
        params: dict,
        payload=None,
        prefer: Optional[str] = None,
    ) -> requests.Response:
        try:
            response = requests.request(
                method,
                self.table_url,
                params=params,
                json=payload,
                headers=self._get_headers(prefer),
                timeout=30,
            )
        except requests.RequestException as e:
            raise StoreError(f"Cannot connect to remote store: {e}")

        if response.status_code not in (200, 201, 204):
            try:
                message = response.json().get("message", "")
            except ValueError:
                message = ""
            raise StoreError(f"Remote store error: {response.status_code} {message}".strip())

        return response

    def _require_user(self) -> str:
        if not self.user_id:
            raise StoreError("Remote store requires a signed-in user")
        return self.user_id

    def _item_filter(self, external_id: int, media_type: str) -> dict:
        return {
            "user_id": f"eq.{self._require_user()}",
            "tmdb_id": f"eq.{external_id}",
            "type": f"eq.{media_type}",
        }

    def load(self) -> List[WatchlistItem]:
        """Load the signed-in user's items, newest first."""
        response = self._request(
            "GET",
            {
                "select": "*",
                "user_id": f"eq.{self._require_user()}",
                "order": "created_at.desc",
            },
        )
        return [WatchlistItem.from_dict(row) for row in response.json()]

    def upsert(self, item: WatchlistItem) -> WatchlistItem:
        """Insert ``item`` (or replace the existing row) and return the stored row."""
        row = item.to_dict()
        for server_field in ("id", "created_at", "updated_at"):
            row.pop(server_field, None)
        row["user_id"] = self._require_user()

        response = self._request(
            "POST",
            {"on_conflict": self.CONFLICT_COLUMNS},
            payload=row,
            prefer="resolution=merge-duplicates,return=representation",
        )
        rows = response.json()
        if not rows:
            raise StoreError("Remote store returned no row for insert")
        return WatchlistItem.from_dict(rows[0])

    def update(self, external_id: int, media_type: str, updates: dict) -> None:
        self._request("PATCH", self._item_filter(external_id, media_type), payload=_serialize(updates))

    def delete(self, external_id: int, media_type: str) -> None:
        self._request("DELETE", self._item_filter(external_id, media_type))

    def fetch_active(self, statuses: Iterable, limit: int) -> List[WatchlistItem]:
        """Rows in any of ``statuses`` across all users, oldest-updated first."""
        values = ",".join(getattr(s, "value", s) for s in statuses)
        response = self._request(
            "GET",
            {
                "select": "*",
                "status": f"in.({values})",
                "order": "updated_at.asc",
                "limit": str(limit),
            },
        )
        return [WatchlistItem.from_dict(row) for row in response.json()]

    def update_row(self, row_id: str, updates: dict) -> None:
        """Update a single row by primary key."""
        self._request("PATCH", {"id": f"eq.{row_id}"}, payload=_serialize(updates))


def select_backend(config, data_dir: Optional[Path] = None):
    """Remote store when signed in, local store otherwise."""
    if config.signed_in:
        return RemoteStore(
            url=config.remote_url,
            api_key=config.remote_api_key,
            user_id=config.remote_user_id,
            access_token=config.remote_access_token,
        )
    return LocalStore(data_dir=data_dir or config.data_dir)


class WatchlistStore:
    """Cache of tracked items keyed by user, read through to a backend.

    The cache is populated on first read and dropped whenever the host window
    regains focus so out-of-band changes are picked up.
    """

    def __init__(self, backend):
        self.backend = backend
        self._cache: Dict[str, List[WatchlistItem]] = {}
        self._lock = threading.RLock()

    @property
    def cache_key(self) -> str:
        return self.backend.cache_key

    @property
    def user_id(self) -> Optional[str]:
        return self.backend.user_id

    def get(self) -> List[WatchlistItem]:
        """Ordered items for the current user, loading on first access."""
        with self._lock:
            if self.cache_key not in self._cache:
                self._cache[self.cache_key] = self.backend.load()
            return list(self._cache[self.cache_key])

    def find(self, external_id: int, media_type: str) -> Optional[WatchlistItem]:
        for item in self.get():
            if _matches(item, external_id, media_type):
                return item
        return None

    def upsert(self, item: WatchlistItem) -> WatchlistItem:
        """Durably store ``item`` and reflect it in the cache."""
        saved = self.backend.upsert(item)
        self.update_cache(
            lambda items: [saved] + [i for i in items if i.key != saved.key]
        )
        return saved

    def update(self, external_id: int, media_type: str, updates: dict) -> None:
        """Durably apply ``updates`` to one item and reflect them in the cache."""
        self.backend.update(external_id, media_type, updates)
        self.update_cache(
            lambda items: [
                replace(i, **updates) if _matches(i, external_id, media_type) else i
                for i in items
            ]
        )

    def remove(self, external_id: int, media_type: str) -> None:
        """Durably delete one item and drop it from the cache."""
        self.backend.delete(external_id, media_type)
        self.update_cache(
            lambda items: [i for i in items if not _matches(i, external_id, media_type)]
        )

    def update_cache(
        self, change: Callable[[List[WatchlistItem]], List[WatchlistItem]]
    ) -> List[WatchlistItem]:
        """Atomically replace the cached list with ``change(current)``."""
        with self._lock:
            current = self.get()
            updated = list(change(current))
            self._cache[self.cache_key] = updated
            return list(updated)

    def invalidate(self) -> None:
        """Forget the cached list; the next read goes to the backend."""
        with self._lock:
            self._cache.pop(self.cache_key, None)

    def on_focus(self) -> None:
        """Hook for long-lived hosts when their window regains focus.

        The CLI builds a fresh store for every command, so its cache never
        outlives one invocation and it has no need to call this.
        """
        logger.debug("Window focus regained, invalidating %s", self.cache_key)
        self.invalidate()
