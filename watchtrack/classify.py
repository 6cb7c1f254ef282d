"""Status classifiers for movies and shows.

Everything here is pure: same input, same output, no I/O. Both the interactive
mutation path and the scheduled reclassification job call these functions, so
the rules live in exactly one place.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

from watchtrack import dates
from watchtrack.models import MovieStatus, ShowMetadata, ShowStatus, Status, parse_status

# Release-date type codes in the catalog's release_dates response
PREMIERE = 1
THEATRICAL_LIMITED = 2
THEATRICAL = 3
DIGITAL = 4
PHYSICAL = 5

REGIONAL_PROVIDER_KINDS = ("flatrate", "ads", "free", "rent", "buy")
GLOBAL_PROVIDER_KINDS = ("flatrate", "rent", "buy")


@dataclass(frozen=True)
class Classification:
    """A status decision plus whether the item belongs in the main library."""

    status: Status
    moved_to_library: bool


@dataclass(frozen=True)
class ReleaseDates:
    """Release dates extracted for one region."""

    theatrical: Optional[str] = None
    digital: Optional[str] = None
    digital_note: Optional[str] = None


def determine_show_status(
    metadata: Union[dict, ShowMetadata, None],
    last_watched_season: int,
    progress: int = 0,
    today: Optional[date] = None,
) -> ShowStatus:
    """Derive a show's status from its seasons and the user's progress."""
    show = metadata if isinstance(metadata, ShowMetadata) else ShowMetadata.from_dict(metadata)
    today = today or dates.today()

    if last_watched_season == 0 and progress > 0:
        return ShowStatus.WATCHING

    released = [
        s for s in show.seasons
        if s.season_number > 0 and dates.is_released(s.air_date, today)
    ]

    if not released:
        # A dangling last-aired pointer means the show is already airing
        if show.last_episode_to_air:
            return ShowStatus.ONGOING
        return ShowStatus.NEW

    if last_watched_season == 0:
        return ShowStatus.FINISHED if show.is_terminal else ShowStatus.ONGOING

    if last_watched_season < len(released):
        return ShowStatus.WATCHING

    # Caught up with everything released so far
    next_episode = show.next_episode_to_air
    if next_episode and dates.is_future(next_episode.air_date, today):
        if next_episode.season_number == last_watched_season:
            return ShowStatus.WATCHING  # mid-season break
        return ShowStatus.RETURNING

    if any(
        s.season_number > last_watched_season and dates.is_future(s.air_date, today)
        for s in show.seasons
    ):
        return ShowStatus.RETURNING

    return ShowStatus.WATCHED


def classify_show(
    details: dict,
    last_watched_season: int = 0,
    progress: int = 0,
    today: Optional[date] = None,
) -> Classification:
    """Show status plus library placement; brand-new shows stay upcoming."""
    status = determine_show_status(details, last_watched_season, progress, today=today)
    return Classification(status=status, moved_to_library=status != ShowStatus.NEW)


def _first_of_type(release_dates: list, kind: int) -> Optional[dict]:
    for entry in release_dates:
        if entry.get("type") == kind:
            return entry
    return None


def extract_release_dates(release_data: Optional[dict], region: str) -> ReleaseDates:
    """Pick the regional theatrical and digital dates from a release_dates payload.

    Falls back to the earliest theatrical or digital date across all regions
    when the region has no theatrical date of its own.
    """
    results = (release_data or {}).get("results") or []

    theatrical = None
    digital = None
    digital_note = None

    regional = next((r for r in results if r.get("iso_3166_1") == region), None)
    if regional and regional.get("release_dates"):
        entries = regional["release_dates"]
        theatrical_entry = (
            _first_of_type(entries, THEATRICAL)
            or _first_of_type(entries, THEATRICAL_LIMITED)
        )
        digital_entry = _first_of_type(entries, DIGITAL) or _first_of_type(entries, PHYSICAL)

        if theatrical_entry:
            theatrical = theatrical_entry.get("release_date")
        if digital_entry and digital_entry.get("release_date"):
            digital = digital_entry["release_date"]
            digital_note = digital_entry.get("note") or None

    if not theatrical:
        candidates = [
            entry["release_date"]
            for result in results
            if isinstance(result.get("release_dates"), list)
            for entry in result["release_dates"]
            if entry.get("type") in (THEATRICAL_LIMITED, THEATRICAL, DIGITAL)
            and entry.get("release_date")
        ]
        if candidates:
            theatrical = min(candidates)

    return ReleaseDates(theatrical=theatrical, digital=digital, digital_note=digital_note)


def _has_providers(entry: Optional[dict], kinds: tuple) -> bool:
    entry = entry or {}
    return any(entry.get(kind) for kind in kinds)


def _enter_library(current: Optional[MovieStatus]) -> Classification:
    """Placement for a movie that is available to watch."""
    if current is None:
        return Classification(MovieStatus.UNWATCHED, True)
    if current == MovieStatus.COMING_SOON:
        # Leaves "coming soon" through the on-OTT bucket first
        return Classification(MovieStatus.ON_OTT, False)
    if current == MovieStatus.WATCHED:
        return Classification(MovieStatus.WATCHED, True)
    return Classification(MovieStatus.UNWATCHED, True)


def classify_movie(
    details: dict,
    release_dates: ReleaseDates,
    region: str,
    current_status: Optional[Union[str, MovieStatus]] = None,
    existing_metadata: Optional[dict] = None,
    today: Optional[date] = None,
) -> Classification:
    """Decide a movie's status and whether it belongs in the main library.

    Rules are checked in order and the first match wins:

    1. Streamable in the region and released: into the library.
    2. Streamable in the region, a future regional digital date, a digital
       date right after leaving "coming soon", or a manual date override:
       on-OTT, kept out of the library (unless the item already sat elsewhere).
    3. Released over six months ago with providers in any region: as rule 1.
    4. Released over a year ago with no provider data at all: as rule 1.
    5. Otherwise coming soon.

    A prior on-OTT status is never downgraded to unwatched, and a prior watched
    status always survives.
    """
    today = today or dates.today()
    current = parse_status("movie", getattr(current_status, "value", current_status)) if current_status else None
    existing_metadata = existing_metadata or {}

    release_str = details.get("release_date")
    if release_dates.theatrical and (not release_str or release_dates.theatrical < release_str):
        release_str = release_dates.theatrical
    release_date = dates.parse_date_local(release_str)
    digital_date = dates.parse_date_local(release_dates.digital)

    all_providers = (details.get("watch/providers") or {}).get("results") or {}
    has_regional = _has_providers(all_providers.get(region), REGIONAL_PROVIDER_KINDS)
    is_released = release_date is None or release_date <= today
    has_future_digital = digital_date is not None and digital_date > today
    manual_override = bool(existing_metadata.get("manual_date_override"))
    digital_transition = (
        current == MovieStatus.COMING_SOON and is_released and digital_date is not None
    )

    available_globally = False
    if release_date is not None and release_date < dates.months_before(today, 6):
        available_globally = any(
            _has_providers(entry, GLOBAL_PROVIDER_KINDS) for entry in all_providers.values()
        )
    old_release = release_date is not None and release_date < dates.years_before(today, 1)

    if has_regional and is_released:
        result = _enter_library(current)
    elif has_regional or has_future_digital or digital_transition or manual_override:
        if current is None or current == MovieStatus.COMING_SOON or manual_override or has_regional:
            result = Classification(MovieStatus.ON_OTT, False)
        else:
            result = Classification(MovieStatus.UNWATCHED, True)
    elif available_globally or old_release:
        result = _enter_library(current)
    else:
        result = Classification(MovieStatus.COMING_SOON, False)

    if current == MovieStatus.ON_OTT and result.status == MovieStatus.UNWATCHED:
        result = Classification(MovieStatus.ON_OTT, False)
    if current == MovieStatus.WATCHED:
        result = Classification(MovieStatus.WATCHED, True)

    return result
