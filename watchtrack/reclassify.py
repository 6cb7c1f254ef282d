"""Scheduled reclassification of still-active watchlist items."""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional

from watchtrack.enrich import get_enriched_metadata
from watchtrack.models import ACTIVE_STATUSES, WatchlistItem
from watchtrack.pruner import prune_metadata
from watchtrack.tmdb_client import TMDBClient, TMDBConfigError
from watchtrack.tvmaze_client import TVMazeClient

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5


@dataclass
class ItemResult:
    """Outcome for one reclassified item."""

    id: str
    title: str
    old_status: str
    new_status: Optional[str] = None
    success: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ReclassifyResult:
    """Summary of one batch run."""

    details: List[ItemResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.details)

    @property
    def failed(self) -> List[ItemResult]:
        return [d for d in self.details if not d.success]

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "details": [d.to_dict() for d in self.details],
        }


class ReclassificationJob:
    """Re-run the classifiers over a small batch of active items.

    Items are processed one at a time, oldest-updated first, so the catalog's
    rate limits are respected. A failing item is recorded and the batch moves
    on; only a configuration error stops the run.
    """

    def __init__(
        self,
        store,
        metadata_client: TMDBClient,
        region: str,
        limit: int = DEFAULT_LIMIT,
        tvmaze: Optional[TVMazeClient] = None,
        today: Optional[date] = None,
    ):
        self.store = store
        self.metadata_client = metadata_client
        self.region = region
        self.limit = limit
        self.tvmaze = tvmaze
        self.today = today

    def select_candidates(self) -> List[WatchlistItem]:
        return self.store.fetch_active(ACTIVE_STATUSES, self.limit)

    def process_item(self, item: WatchlistItem) -> ItemResult:
        """Reclassify and write back a single item."""
        result = ItemResult(id=item.id, title=item.title, old_status=item.status.value)

        try:
            enrichment = get_enriched_metadata(
                self.metadata_client,
                item.external_id,
                item.type,
                self.region,
                existing_metadata=item.metadata,
                current_status=item.status,
                last_watched_season=item.last_watched_season,
                progress=item.progress,
                tvmaze=self.tvmaze,
                today=self.today,
            )
            metadata = dict(enrichment.metadata)
            metadata["last_updated_at"] = int(time.time() * 1000)

            self.store.update_row(
                item.id,
                {
                    "metadata": prune_metadata(metadata, self.region),
                    "status": enrichment.status,
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                },
            )
        except TMDBConfigError:
            raise
        except Exception as e:
            logger.exception("Failed to reclassify %s (%s)", item.id, item.title)
            result.error = str(e)
            return result

        result.new_status = enrichment.status.value
        result.success = True
        if result.new_status != result.old_status:
            logger.info("%s: %s -> %s", item.title, result.old_status, result.new_status)
        return result

    def run(self) -> ReclassifyResult:
        """Process one batch and return the per-item summary."""
        summary = ReclassifyResult()
        for item in self.select_candidates():
            summary.details.append(self.process_item(item))
        return summary
