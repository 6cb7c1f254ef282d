"""Fetch fresh catalog metadata and classify it."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from watchtrack.classify import (
    Classification,
    ReleaseDates,
    classify_movie,
    classify_show,
    extract_release_dates,
)
from watchtrack.models import MovieStatus, ShowStatus, Status, parse_status
from watchtrack.tmdb_client import TMDBClient
from watchtrack.tvmaze_client import TVMazeClient

logger = logging.getLogger(__name__)

# Bulky detail sections never carried into stored metadata
HEAVY_FIELDS = ("credits", "production_companies", "images", "reviews")


@dataclass
class Enrichment:
    """Classifier output plus the merged (unpruned) metadata blob."""

    status: Status
    metadata: dict
    moved_to_library: bool


def get_enriched_metadata(
    client: TMDBClient,
    external_id: int,
    media_type: str,
    region: str,
    existing_metadata: Optional[dict] = None,
    current_status=None,
    last_watched_season: int = 0,
    progress: int = 0,
    tvmaze: Optional[TVMazeClient] = None,
    today: Optional[date] = None,
) -> Enrichment:
    """Fetch details for one item, classify it, and merge bookkeeping fields.

    Manual overrides and the dismissed flag in ``existing_metadata`` are read
    as classifier inputs and carried forward. A dropped item stays dropped.
    """
    existing = existing_metadata or {}
    current = parse_status(media_type, getattr(current_status, "value", current_status)) if current_status else None

    details = client.get_details(external_id, media_type, region)

    release = ReleaseDates()
    tvmaze_runtime = None
    if media_type == "movie":
        release = extract_release_dates(client.get_release_dates(external_id), region)
        result = classify_movie(details, release, region, current, existing, today=today)
    else:
        if tvmaze is not None:
            imdb_id = (details.get("external_ids") or {}).get("imdb_id")
            tvmaze_runtime = tvmaze.get_average_runtime(imdb_id)
        result = classify_show(details, last_watched_season, progress, today=today)

    if current in (MovieStatus.DROPPED, ShowStatus.DROPPED):
        result = Classification(current, True)

    dismissed = existing.get("dismissed_from_upcoming")
    if dismissed and (details.get("number_of_seasons") or 0) > (existing.get("number_of_seasons") or 0):
        logger.info(
            "New season detected for %s, restoring to upcoming",
            details.get("name") or details.get("title"),
        )
        dismissed = False

    manual = bool(existing.get("manual_date_override"))
    lean = {key: value for key, value in details.items() if key not in HEAVY_FIELDS}

    metadata = dict(existing)
    metadata.update(lean)
    metadata.update({
        "tvmaze_runtime": tvmaze_runtime,
        "digital_release_date": release.digital or (existing.get("digital_release_date") if manual else None),
        "digital_release_note": (
            release.digital_note if release.digital
            else (existing.get("digital_release_note") if manual else None)
        ),
        "theatrical_release_date": release.theatrical or existing.get("theatrical_release_date"),
        "manual_date_override": False if release.digital else manual,
        "moved_to_library": result.moved_to_library,
        "dismissed_from_upcoming": dismissed,
    })

    return Enrichment(status=result.status, metadata=metadata, moved_to_library=result.moved_to_library)
