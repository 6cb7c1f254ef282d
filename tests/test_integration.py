"""Integration tests for end-to-end workflow."""

import json

import responses
from click.testing import CliRunner

from watchtrack.cli import cli
from watchtrack.config import Config
from watchtrack.storage import LocalStore

API = "https://api.themoviedb.org/3"

THRONES = {
    "name": "Game of Thrones",
    "status": "Ended",
    "number_of_seasons": 2,
    "poster_path": "/got.jpg",
    "credits": {"cast": [{"name": "Emilia Clarke"}]},
    "external_ids": {"imdb_id": "tt0944947"},
    "seasons": [
        {"season_number": 1, "air_date": "2011-04-17", "episode_count": 10},
        {"season_number": 2, "air_date": "2012-04-01", "episode_count": 10},
    ],
    "videos": {"results": [{"type": "Trailer", "site": "YouTube", "key": "abc"}]},
}


class TestEndToEndWorkflow:
    """Test complete setup -> add -> progress -> remove workflow."""

    @responses.activate
    def test_full_show_workflow(self, tmp_path, monkeypatch):
        """Track a show through its whole lifecycle."""
        monkeypatch.delenv("TMDB_API_KEY", raising=False)
        monkeypatch.delenv("WATCHTRACK_REGION", raising=False)
        runner = CliRunner()
        env = {"WATCHTRACK_DATA_DIR": str(tmp_path)}

        # 1. Setup
        responses.add(responses.GET, f"{API}/configuration", json={}, status=200)
        result = runner.invoke(cli, ["setup"], input="key123\nIN\n", env=env)
        assert result.exit_code == 0
        assert (tmp_path / "config.yaml").exists()

        # 2. Add
        responses.add(responses.GET, f"{API}/tv/1399", json=THRONES, status=200)
        responses.add(
            responses.GET,
            "https://api.tvmaze.com/lookup/shows",
            json={"averageRuntime": 57},
            status=200,
        )
        result = runner.invoke(cli, ["add", "1399", "--type", "show"], env=env)
        assert result.exit_code == 0
        assert "show_finished" in result.output

        item = LocalStore(data_dir=tmp_path).load()[0]
        assert item.title == "Game of Thrones"
        assert item.poster_path == "/got.jpg"
        assert item.metadata["tvmaze_runtime"] == 57
        assert "credits" not in item.metadata

        # 3. Watch an episode, then finish season one
        result = runner.invoke(cli, ["progress", "1399", "4"], env=env)
        assert result.exit_code == 0
        assert "show_watching" in result.output

        result = runner.invoke(cli, ["progress", "1399", "10"], env=env)
        assert result.exit_code == 0
        item = LocalStore(data_dir=tmp_path).load()[0]
        assert item.last_watched_season == 1
        assert item.progress == 0

        # 4. Finish the show
        result = runner.invoke(cli, ["watched", "1399", "--type", "show"], env=env)
        assert result.exit_code == 0
        assert "show_watched" in result.output

        # 5. Drop survives a refresh; restore re-derives the status
        runner.invoke(cli, ["drop", "1399", "--type", "show"], env=env)
        result = runner.invoke(cli, ["refresh", "1399", "--type", "show"], env=env)
        assert result.exit_code == 0
        assert "show_dropped" in result.output

        result = runner.invoke(cli, ["restore", "1399", "--type", "show"], env=env)
        assert "show_watched" in result.output

        # 6. Remove
        result = runner.invoke(cli, ["remove", "1399", "--type", "show"], env=env)
        assert result.exit_code == 0
        assert LocalStore(data_dir=tmp_path).load() == []

        # Log file written
        assert (tmp_path / "watchtrack.log").exists()

    @responses.activate
    def test_coming_soon_movie_reclassified(self, tmp_path, monkeypatch):
        """An unreleased movie moves to on-OTT once it starts streaming."""
        monkeypatch.delenv("TMDB_API_KEY", raising=False)
        monkeypatch.delenv("WATCHTRACK_REGION", raising=False)
        config = Config(data_dir=tmp_path)
        config.set_tmdb_api_key("key123")
        config.save()

        runner = CliRunner()
        env = {"WATCHTRACK_DATA_DIR": str(tmp_path)}

        responses.add(
            responses.GET,
            f"{API}/movie/600",
            json={"title": "Far Future", "release_date": "2999-01-01"},
            status=200,
        )
        responses.add(responses.GET, f"{API}/movie/600/release_dates", json={"results": []}, status=200)
        result = runner.invoke(cli, ["add", "600"], env=env)
        assert result.exit_code == 0
        assert "movie_coming_soon" in result.output

        # Now released and streaming in the region
        responses.replace(
            responses.GET,
            f"{API}/movie/600",
            json={
                "title": "Far Future",
                "release_date": "2000-01-01",
                "watch/providers": {"results": {"IN": {"flatrate": [{"provider_name": "Netflix"}]}}},
            },
            status=200,
        )
        result = runner.invoke(cli, ["reclassify", "--json"], env=env)
        assert result.exit_code == 0

        summary = json.loads(result.output)
        assert summary["processed"] == 1
        assert summary["details"][0]["old_status"] == "movie_coming_soon"
        assert summary["details"][0]["new_status"] == "movie_on_ott"
        assert LocalStore(data_dir=tmp_path).load()[0].status.value == "movie_on_ott"
