"""Tests for metadata pruning."""

import pytest

from watchtrack.pruner import prune_metadata


@pytest.fixture
def movie_details():
    """Full movie details as returned by the catalog."""
    return {
        "id": 27205,
        "title": "Inception",
        "poster_path": "/inception.jpg",
        "overview": "A thief who steals corporate secrets...",
        "release_date": "2010-07-15",
        "runtime": 148,
        "vote_average": 8.4,
        "budget": 160000000,
        "credits": {"cast": [{"name": "Leonardo DiCaprio"}]},
        "genres": [{"id": 28, "name": "Action"}],
        "manual_date_override": True,
        "watch/providers": {
            "results": {
                "IN": {"flatrate": [{"provider_name": "Netflix"}]},
                "US": {"rent": [{"provider_name": "Apple TV"}]},
            }
        },
        "videos": {
            "results": [
                {"type": "Teaser", "site": "YouTube", "key": "t1"},
                {"type": "Trailer", "site": "Vimeo", "key": "v1"},
                {"type": "Trailer", "site": "YouTube", "key": "y1"},
                {"type": "Trailer", "site": "YouTube", "key": "y2"},
            ]
        },
    }


def test_prune_keeps_only_region_providers(movie_details):
    pruned = prune_metadata(movie_details, "IN")
    assert pruned["watch/providers"] == {
        "results": {"IN": {"flatrate": [{"provider_name": "Netflix"}]}}
    }


def test_prune_missing_region_gives_empty_providers(movie_details):
    pruned = prune_metadata(movie_details, "JP")
    assert pruned["watch/providers"] == {}


def test_prune_keeps_first_hosted_trailer(movie_details):
    pruned = prune_metadata(movie_details, "IN")
    assert pruned["videos"] == {"results": [{"type": "Trailer", "site": "YouTube", "key": "y1"}]}


def test_prune_no_trailer_empties_videos(movie_details):
    movie_details["videos"] = {"results": [{"type": "Teaser", "site": "YouTube"}]}
    pruned = prune_metadata(movie_details, "IN")
    assert pruned["videos"] == {"results": []}


def test_prune_drops_unlisted_fields(movie_details):
    pruned = prune_metadata(movie_details, "IN")
    assert "budget" not in pruned
    assert "credits" not in pruned
    assert "id" not in pruned
    assert pruned["runtime"] == 148
    assert pruned["genres"] == [{"id": 28, "name": "Action"}]
    assert pruned["manual_date_override"] is True


def test_prune_cross_populates_title_and_name():
    pruned = prune_metadata({"name": "Dark"}, "IN")
    assert pruned["title"] == "Dark"
    assert pruned["name"] == "Dark"


def test_prune_is_idempotent(movie_details):
    once = prune_metadata(movie_details, "IN")
    assert prune_metadata(once, "IN") == once


def test_prune_is_idempotent_without_optional_sections():
    once = prune_metadata({"status": "Ended", "seasons": []}, "US")
    assert prune_metadata(once, "US") == once


def test_prune_does_not_mutate_input(movie_details):
    prune_metadata(movie_details, "IN")
    assert "US" in movie_details["watch/providers"]["results"]
    assert len(movie_details["videos"]["results"]) == 4


def test_prune_empty_input():
    assert prune_metadata(None, "IN") is None
    assert prune_metadata({}, "IN") == {}
