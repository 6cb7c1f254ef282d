"""Data models for tracked movies and shows."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import List, Optional, Union

LOCAL_USER = "local-user"
MEDIA_TYPES = ("movie", "show")


class MovieStatus(str, Enum):
    """Lifecycle buckets for a movie."""

    COMING_SOON = "movie_coming_soon"
    ON_OTT = "movie_on_ott"
    UNWATCHED = "movie_unwatched"
    WATCHED = "movie_watched"
    DROPPED = "movie_dropped"


class ShowStatus(str, Enum):
    """Lifecycle buckets for a show."""

    NEW = "show_new"
    ONGOING = "show_ongoing"
    FINISHED = "show_finished"
    WATCHING = "show_watching"
    WATCHED = "show_watched"
    RETURNING = "show_returning"
    DROPPED = "show_dropped"


Status = Union[MovieStatus, ShowStatus]

# Statuses eligible for periodic reclassification
ACTIVE_STATUSES = (
    MovieStatus.COMING_SOON,
    MovieStatus.ON_OTT,
    ShowStatus.RETURNING,
    ShowStatus.ONGOING,
)


def parse_status(media_type: str, value: str) -> Status:
    """Resolve a raw status string against the enum for ``media_type``.

    Raises ValueError if the value does not belong to that type.
    """
    if media_type == "movie":
        return MovieStatus(value)
    if media_type == "show":
        return ShowStatus(value)
    raise ValueError(f"Invalid media type: {media_type}")


def status_belongs_to(media_type: str, status) -> bool:
    """Check that a status is one of the fixed values for ``media_type``."""
    try:
        parse_status(media_type, getattr(status, "value", status))
    except ValueError:
        return False
    return True


def default_status(media_type: str) -> Status:
    """Status shown for a freshly added item before classification completes."""
    return MovieStatus.UNWATCHED if media_type == "movie" else ShowStatus.NEW


def dropped_status(media_type: str) -> Status:
    return MovieStatus.DROPPED if media_type == "movie" else ShowStatus.DROPPED


@dataclass(frozen=True)
class EpisodePointer:
    """A single episode reference (last aired or next to air)."""

    air_date: Optional[str]
    season_number: int
    episode_number: int = 0
    runtime: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["EpisodePointer"]:
        if not data:
            return None
        return cls(
            air_date=data.get("air_date"),
            season_number=data.get("season_number") or 0,
            episode_number=data.get("episode_number") or 0,
            runtime=data.get("runtime"),
        )


@dataclass(frozen=True)
class Season:
    """Season summary as listed in show metadata."""

    season_number: int
    air_date: Optional[str] = None
    episode_count: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Season":
        return cls(
            season_number=data.get("season_number") or 0,
            air_date=data.get("air_date"),
            episode_count=data.get("episode_count"),
        )


@dataclass(frozen=True)
class ShowMetadata:
    """The subset of show metadata the show classifier reads."""

    status: Optional[str] = None
    type: Optional[str] = None
    seasons: List[Season] = field(default_factory=list)
    last_episode_to_air: Optional[EpisodePointer] = None
    next_episode_to_air: Optional[EpisodePointer] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ShowMetadata":
        data = data or {}
        return cls(
            status=data.get("status"),
            type=data.get("type"),
            seasons=[Season.from_dict(s) for s in data.get("seasons") or []],
            last_episode_to_air=EpisodePointer.from_dict(data.get("last_episode_to_air")),
            next_episode_to_air=EpisodePointer.from_dict(data.get("next_episode_to_air")),
        )

    @property
    def is_terminal(self) -> bool:
        """Ended, canceled, or a miniseries."""
        return (
            self.status in ("Ended", "Canceled", "Miniseries")
            or self.type == "Miniseries"
        )


@dataclass
class WatchlistItem:
    """Represents one tracked movie or show."""

    id: str
    external_id: int
    type: str  # "movie" or "show"
    title: str
    status: Status
    poster_path: Optional[str] = None
    vote_average: Optional[float] = None

    # Show progress
    last_watched_season: int = 0
    progress: int = 0

    # Pruned catalog snapshot plus manual override flags
    metadata: dict = field(default_factory=dict)

    user_id: str = LOCAL_USER
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self):
        if self.type not in MEDIA_TYPES:
            raise ValueError(f"Invalid media type: {self.type}")
        self.status = parse_status(self.type, getattr(self.status, "value", self.status))

    @property
    def key(self) -> tuple:
        return (self.external_id, self.type)

    @property
    def moved_to_library(self) -> bool:
        return bool(self.metadata.get("moved_to_library"))

    def to_dict(self) -> dict:
        """Convert to a persisted record (``tmdb_id`` holds the external id)."""
        data = asdict(self)
        data["tmdb_id"] = data.pop("external_id")
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "WatchlistItem":
        """Reconstruct from a persisted record."""
        return cls(
            id=str(data["id"]),
            external_id=int(data["tmdb_id"]),
            type=data["type"],
            title=data.get("title") or "Unknown",
            status=data["status"],
            poster_path=data.get("poster_path"),
            vote_average=data.get("vote_average"),
            last_watched_season=data.get("last_watched_season") or 0,
            progress=data.get("progress") or 0,
            metadata=data.get("metadata") or {},
            user_id=data.get("user_id") or LOCAL_USER,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
