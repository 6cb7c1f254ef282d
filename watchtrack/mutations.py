"""Optimistic, revertible mutations of the watchlist.

Every state change follows the same protocol: snapshot the cached list, apply
the change to the cache immediately, perform the durable write, and put the
snapshot back if that write fails. Mutations of the same item are serialized
by a per-item lock, and each one reads the item inside its lock so it always
builds on the previous mutation's result.
"""

import logging
import threading
import time
import uuid
from dataclasses import replace
from datetime import date
from typing import Dict, List, Optional

from watchtrack import dates
from watchtrack.classify import determine_show_status
from watchtrack.enrich import get_enriched_metadata
from watchtrack.models import (
    LOCAL_USER,
    MEDIA_TYPES,
    MovieStatus,
    WatchlistItem,
    default_status,
    dropped_status,
    status_belongs_to,
)
from watchtrack.pruner import prune_metadata
from watchtrack.storage import WatchlistStore
from watchtrack.tmdb_client import TMDBClient
from watchtrack.tvmaze_client import TVMazeClient

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp-"


class ItemNotFoundError(Exception):
    """No tracked item for the given movie or show."""

    pass


def _check_type(media_type: str) -> None:
    if media_type not in MEDIA_TYPES:
        raise ValueError(f"Invalid media type: {media_type}")


class MutationEngine:
    """Applies user actions to the watchlist cache and its durable store."""

    def __init__(
        self,
        store: WatchlistStore,
        metadata_client: TMDBClient,
        region: str,
        tvmaze: Optional[TVMazeClient] = None,
        today: Optional[date] = None,
    ):
        self.store = store
        self.metadata_client = metadata_client
        self.region = region
        self.tvmaze = tvmaze
        self.today = today
        self._locks: Dict[tuple, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _today(self) -> date:
        return self.today or dates.today()

    def _lock(self, external_id: int, media_type: str) -> threading.RLock:
        key = (self.store.cache_key, external_id, media_type)
        with self._locks_guard:
            return self._locks.setdefault(key, threading.RLock())

    def _forget_lock(self, external_id: int, media_type: str) -> None:
        with self._locks_guard:
            self._locks.pop((self.store.cache_key, external_id, media_type), None)

    def _require(self, external_id: int, media_type: str) -> WatchlistItem:
        item = self.store.find(external_id, media_type)
        if item is None:
            raise ItemNotFoundError(f"{media_type} {external_id} is not in the watchlist")
        return item

    def _revert(self, external_id: int, media_type: str, snapshot: List[WatchlistItem]) -> None:
        """Restore this item's snapshot entry, leaving other items as they are now."""

        def restore(items):
            restored = [i for i in items if i.key != (external_id, media_type)]
            for index, item in enumerate(snapshot):
                if item.key == (external_id, media_type):
                    restored.insert(min(index, len(restored)), item)
            return restored

        self.store.update_cache(restore)

    def _mutate_item(self, external_id: int, media_type: str, **updates) -> WatchlistItem:
        """Optimistically apply ``updates`` to one item, then persist them."""
        with self._lock(external_id, media_type):
            self._require(external_id, media_type)
            snapshot = self.store.get()
            self.store.update_cache(
                lambda items: [
                    replace(i, **updates) if i.key == (external_id, media_type) else i
                    for i in items
                ]
            )

            try:
                self.store.update(external_id, media_type, updates)
            except Exception:
                logger.warning(
                    "Updating %s %s failed, reverting cached change",
                    media_type,
                    external_id,
                )
                self._revert(external_id, media_type, snapshot)
                raise

            return self._require(external_id, media_type)

    def _recalculate_show_status(
        self,
        external_id: int,
        last_watched_season: int,
        metadata: Optional[dict],
        progress: int = 0,
    ) -> WatchlistItem:
        status = determine_show_status(
            metadata, last_watched_season, progress, today=self._today()
        )
        return self._mutate_item(external_id, "show", status=status)

    def _update_metadata_fields(self, external_id: int, media_type: str, **fields) -> WatchlistItem:
        with self._lock(external_id, media_type):
            item = self._require(external_id, media_type)
            metadata = prune_metadata({**item.metadata, **fields}, self.region)
            return self._mutate_item(external_id, media_type, metadata=metadata)

    # --- Add / remove ---

    def add(self, media: dict, media_type: str) -> WatchlistItem:
        """Track a movie or show, replacing any existing entry for it.

        Args:
            media: Catalog summary with at least ``id``; ``title``/``name``,
                ``poster_path`` and ``vote_average`` are copied for display.
            media_type: "movie" or "show"

        Returns:
            The stored item, carrying the id assigned by the durable store.
        """
        _check_type(media_type)
        external_id = int(media["id"])

        with self._lock(external_id, media_type):
            snapshot = self.store.get()
            placeholder = WatchlistItem(
                id=f"{TEMP_ID_PREFIX}{uuid.uuid4()}",
                external_id=external_id,
                type=media_type,
                title=media.get("title") or media.get("name") or "Unknown",
                status=default_status(media_type),
                poster_path=media.get("poster_path"),
                vote_average=media.get("vote_average"),
                user_id=self.store.user_id or LOCAL_USER,
            )
            self.store.update_cache(
                lambda items: [placeholder] + [i for i in items if i.key != placeholder.key]
            )

            try:
                enrichment = get_enriched_metadata(
                    self.metadata_client,
                    external_id,
                    media_type,
                    self.region,
                    existing_metadata=media,
                    tvmaze=self.tvmaze,
                    today=self._today(),
                )
                details = enrichment.metadata
                # Bare ids (e.g. from the CLI) take display fields from the catalog
                item = replace(
                    placeholder,
                    title=media.get("title") or media.get("name")
                    or details.get("title") or details.get("name") or placeholder.title,
                    poster_path=placeholder.poster_path or details.get("poster_path"),
                    vote_average=(
                        placeholder.vote_average if placeholder.vote_average is not None
                        else details.get("vote_average")
                    ),
                    status=enrichment.status,
                    metadata=prune_metadata(details, self.region),
                )
                saved = self.store.upsert(item)
            except Exception:
                logger.warning("Adding %s %s failed, reverting cached change", media_type, external_id)
                self._revert(external_id, media_type, snapshot)
                raise

            return saved

    def remove(self, external_id: int, media_type: str) -> None:
        """Stop tracking a movie or show."""
        _check_type(media_type)
        with self._lock(external_id, media_type):
            snapshot = self.store.get()
            self.store.update_cache(
                lambda items: [i for i in items if i.key != (external_id, media_type)]
            )
            try:
                self.store.remove(external_id, media_type)
            except Exception:
                logger.warning("Removing %s %s failed, reverting cached change", media_type, external_id)
                self._revert(external_id, media_type, snapshot)
                raise

        self._forget_lock(external_id, media_type)

    # --- Status and metadata ---

    def update_status(self, external_id: int, media_type: str, status) -> WatchlistItem:
        """Set an explicit status; it must belong to the item's type."""
        _check_type(media_type)
        if not status_belongs_to(media_type, status):
            raise ValueError(f"Status {status!r} is not valid for a {media_type}")
        return self._mutate_item(external_id, media_type, status=status)

    def update_metadata(self, external_id: int, media_type: str, metadata: dict) -> WatchlistItem:
        """Replace the stored metadata with a pruned copy of ``metadata``."""
        _check_type(media_type)
        return self._mutate_item(
            external_id, media_type, metadata=prune_metadata(metadata, self.region)
        )

    def mark_watched(self, external_id: int, media_type: str) -> WatchlistItem:
        """Movies become watched; shows jump to the latest released season."""
        _check_type(media_type)
        if media_type == "movie":
            return self._mutate_item(external_id, "movie", status=MovieStatus.WATCHED)

        with self._lock(external_id, "show"):
            item = self._require(external_id, "show")
            seasons = item.metadata.get("seasons")
            if seasons is None:
                # A failed lookup propagates before anything is written
                details = self.metadata_client.get_details(external_id, "show", self.region)
                seasons = details.get("seasons") or []

            released = [
                s for s in seasons
                if (s.get("season_number") or 0) > 0
                and dates.is_released(s.get("air_date"), self._today())
            ]
            last_season = released[-1]["season_number"] if released else 0

            metadata = prune_metadata({**item.metadata, "seasons": seasons}, self.region)
            self._mutate_item(
                external_id,
                "show",
                last_watched_season=last_season,
                progress=0,
                metadata=metadata,
            )
            return self._recalculate_show_status(external_id, last_season, metadata)

    def mark_unwatched(self, external_id: int, media_type: str) -> WatchlistItem:
        """Movies become unwatched; shows reset to not started."""
        _check_type(media_type)
        if media_type == "movie":
            return self._mutate_item(external_id, "movie", status=MovieStatus.UNWATCHED)

        with self._lock(external_id, "show"):
            item = self._require(external_id, "show")
            self._mutate_item(external_id, "show", last_watched_season=0, progress=0)
            return self._recalculate_show_status(external_id, 0, item.metadata)

    def mark_season_watched(self, external_id: int, season_number: int) -> WatchlistItem:
        """Record every season up to ``season_number`` as watched."""
        if season_number < 0:
            raise ValueError(f"Invalid season number: {season_number}")
        with self._lock(external_id, "show"):
            item = self._require(external_id, "show")
            self._mutate_item(
                external_id, "show", last_watched_season=season_number, progress=0
            )
            return self._recalculate_show_status(external_id, season_number, item.metadata)

    def mark_season_unwatched(self, external_id: int, season_number: int) -> WatchlistItem:
        """Roll progress back to just before ``season_number``."""
        if season_number < 0:
            raise ValueError(f"Invalid season number: {season_number}")
        last_season = max(0, season_number - 1)
        with self._lock(external_id, "show"):
            item = self._require(external_id, "show")
            self._mutate_item(external_id, "show", last_watched_season=last_season)
            return self._recalculate_show_status(external_id, last_season, item.metadata)

    def update_progress(self, external_id: int, media_type: str, progress: int) -> Optional[WatchlistItem]:
        """Record episodes watched in the current season.

        Reaching the season's episode count completes the season. Movies have
        no episode progress and are left untouched.
        """
        _check_type(media_type)
        if media_type == "movie":
            return None

        with self._lock(external_id, "show"):
            item = self._require(external_id, "show")
            current_season = item.last_watched_season + 1
            season = next(
                (s for s in item.metadata.get("seasons") or [] if s.get("season_number") == current_season),
                None,
            )
            episode_count = (season or {}).get("episode_count")
            if episode_count and progress >= episode_count:
                self._mutate_item(
                    external_id, "show", last_watched_season=current_season, progress=0
                )
                return self._recalculate_show_status(external_id, current_season, item.metadata)

            progress = max(0, progress)
            self._mutate_item(external_id, "show", progress=progress)
            return self._recalculate_show_status(
                external_id, item.last_watched_season, item.metadata, progress
            )

    # --- Library placement ---

    def move_to_library(self, external_id: int, media_type: str) -> WatchlistItem:
        _check_type(media_type)
        with self._lock(external_id, media_type):
            item = self._require(external_id, media_type)
            metadata = prune_metadata({**item.metadata, "moved_to_library": True}, self.region)
            return self._mutate_item(
                external_id,
                media_type,
                status=default_status(media_type),
                metadata=metadata,
            )

    def drop(self, external_id: int, media_type: str) -> WatchlistItem:
        _check_type(media_type)
        return self._mutate_item(external_id, media_type, status=dropped_status(media_type))

    def restore(self, external_id: int, media_type: str) -> WatchlistItem:
        """Bring a dropped item back; shows re-derive status from progress."""
        _check_type(media_type)
        if media_type == "movie":
            return self._mutate_item(external_id, "movie", status=MovieStatus.UNWATCHED)

        with self._lock(external_id, "show"):
            item = self._require(external_id, "show")
            return self._recalculate_show_status(
                external_id, item.last_watched_season, item.metadata, item.progress
            )

    def dismiss_from_upcoming(self, external_id: int, media_type: str) -> WatchlistItem:
        _check_type(media_type)
        return self._update_metadata_fields(external_id, media_type, dismissed_from_upcoming=True)

    def restore_to_upcoming(self, external_id: int, media_type: str) -> WatchlistItem:
        _check_type(media_type)
        return self._update_metadata_fields(external_id, media_type, dismissed_from_upcoming=False)

    def set_manual_date(
        self,
        external_id: int,
        media_type: str,
        release_date: str,
        ott_name: Optional[str] = None,
    ) -> WatchlistItem:
        """Pin a digital release date the catalog doesn't know about yet."""
        _check_type(media_type)
        if dates.parse_date_local(release_date) is None:
            raise ValueError(f"Invalid date: {release_date!r}")
        return self._update_metadata_fields(
            external_id,
            media_type,
            digital_release_date=release_date,
            manual_ott_name=ott_name,
            manual_date_override=True,
        )

    def clear_manual_date(self, external_id: int, media_type: str) -> WatchlistItem:
        _check_type(media_type)
        return self._update_metadata_fields(
            external_id,
            media_type,
            digital_release_date=None,
            manual_ott_name=None,
            manual_date_override=False,
        )

    # --- Refresh ---

    def refresh(
        self,
        external_id: int,
        media_type: str,
        override_metadata: Optional[dict] = None,
    ) -> Optional[WatchlistItem]:
        """Re-fetch metadata for one item and reclassify it.

        Returns None if the item isn't tracked.
        """
        _check_type(media_type)
        with self._lock(external_id, media_type):
            item = self.store.find(external_id, media_type)
            if item is None:
                return None

            enrichment = get_enriched_metadata(
                self.metadata_client,
                external_id,
                media_type,
                self.region,
                existing_metadata=override_metadata or item.metadata,
                current_status=item.status,
                last_watched_season=item.last_watched_season,
                progress=item.progress,
                tvmaze=self.tvmaze,
                today=self._today(),
            )
            metadata = dict(enrichment.metadata)
            metadata["last_updated_at"] = int(time.time() * 1000)

            updates = {"metadata": prune_metadata(metadata, self.region)}
            if enrichment.status != item.status:
                updates["status"] = enrichment.status
            return self._mutate_item(external_id, media_type, **updates)
