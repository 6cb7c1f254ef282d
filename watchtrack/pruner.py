"""Shrink catalog metadata to the subset kept in long-term storage."""

import copy
from typing import Optional

PROVIDERS_KEY = "watch/providers"
TRAILER_HOST = "YouTube"

# Fields passed through verbatim when present
WHITELIST = (
    "poster_path",
    "backdrop_path",
    "overview",
    "vote_average",
    "release_date",
    "first_air_date",
    "runtime",
    "status",
    "type",
    "next_episode_to_air",
    "last_episode_to_air",
    "seasons",
    "external_ids",
    "genres",
    "number_of_episodes",
    "number_of_seasons",
    "episode_run_time",
    "tvmaze_runtime",
    # Bookkeeping written by this app
    "digital_release_date",
    "digital_release_note",
    "theatrical_release_date",
    "moved_to_library",
    "manual_date_override",
    "manual_ott_name",
    "dismissed_from_upcoming",
    "last_updated_at",
)


def _first_trailer(videos: list) -> Optional[dict]:
    for video in videos:
        if video.get("type") == "Trailer" and video.get("site") == TRAILER_HOST:
            return video
    return None


def prune_metadata(metadata: Optional[dict], region: str) -> Optional[dict]:
    """Return the whitelisted subset of ``metadata`` for ``region``.

    Pure and idempotent: pruning an already-pruned blob returns an equal blob.
    """
    if not metadata:
        return metadata

    pruned = {key: copy.deepcopy(metadata[key]) for key in WHITELIST if key in metadata}

    title = metadata.get("title") or metadata.get("name")
    if title:
        pruned["title"] = title
        pruned["name"] = metadata.get("name") or metadata.get("title")

    # Providers: only the requested region survives
    providers = (metadata.get(PROVIDERS_KEY) or {}).get("results") or {}
    if region in providers:
        pruned[PROVIDERS_KEY] = {"results": {region: copy.deepcopy(providers[region])}}
    else:
        pruned[PROVIDERS_KEY] = {}

    # Videos: at most the first hosted trailer
    videos = metadata.get("videos")
    if isinstance(videos, dict) and "results" in videos:
        trailer = _first_trailer(videos.get("results") or [])
        pruned["videos"] = {"results": [copy.deepcopy(trailer)] if trailer else []}
    elif "videos" in metadata:
        pruned["videos"] = copy.deepcopy(videos)

    return pruned
