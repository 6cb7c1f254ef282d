"""Shared fixtures: an in-memory catalog and a local store."""

from datetime import date

import pytest

from watchtrack.storage import LocalStore, StoreError, WatchlistStore
from watchtrack.tmdb_client import TMDBError

TODAY = date(2024, 6, 15)


class FakeCatalog:
    """Stands in for TMDBClient, serving canned details."""

    def __init__(self):
        self.details = {}
        self.release_dates = {}
        self.calls = []

    def add(self, external_id, media_type, details, release_dates=None):
        self.details[(external_id, media_type)] = details
        if release_dates is not None:
            self.release_dates[external_id] = release_dates

    def get_details(self, external_id, media_type, region):
        self.calls.append(("details", external_id, media_type))
        try:
            return dict(self.details[(external_id, media_type)])
        except KeyError:
            raise TMDBError(f"TMDB resource not found: /{media_type}/{external_id}")

    def get_release_dates(self, external_id):
        self.calls.append(("release_dates", external_id))
        return self.release_dates.get(external_id, {"results": []})


class FlakyStore(LocalStore):
    """Local store whose writes can be switched to fail."""

    fail_writes = False

    def _write(self, records):
        if self.fail_writes:
            raise StoreError("Cannot save local watchlist: disk full")
        super()._write(records)


@pytest.fixture
def catalog():
    catalog = FakeCatalog()
    catalog.add(
        27205,
        "movie",
        {
            "title": "Inception",
            "release_date": "2010-07-15",
            "poster_path": "/inception.jpg",
            "vote_average": 8.4,
            "credits": {"cast": []},
            "watch/providers": {
                "results": {"IN": {"flatrate": [{"provider_name": "Netflix"}]}}
            },
        },
    )
    catalog.add(
        1399,
        "show",
        {
            "name": "Game of Thrones",
            "status": "Ended",
            "number_of_seasons": 2,
            "external_ids": {"imdb_id": "tt0944947"},
            "seasons": [
                {"season_number": 0, "air_date": "2010-12-05", "episode_count": 10},
                {"season_number": 1, "air_date": "2011-04-17", "episode_count": 10},
                {"season_number": 2, "air_date": "2012-04-01", "episode_count": 10},
            ],
        },
    )
    return catalog


@pytest.fixture
def backend(tmp_path):
    return FlakyStore(data_dir=tmp_path)


@pytest.fixture
def store(backend):
    return WatchlistStore(backend)
