"""Tests for CLI commands."""

import json

import pytest
import responses
from click.testing import CliRunner

from watchtrack.cli import cli
from watchtrack.config import Config
from watchtrack.models import WatchlistItem
from watchtrack.storage import LocalStore

API = "https://api.themoviedb.org/3"


@pytest.fixture
def env(tmp_path, monkeypatch):
    monkeypatch.delenv("TMDB_API_KEY", raising=False)
    monkeypatch.delenv("WATCHTRACK_REGION", raising=False)
    return {"WATCHTRACK_DATA_DIR": str(tmp_path)}


@pytest.fixture
def configured(tmp_path, env):
    """A saved config with a TMDB key."""
    config = Config(data_dir=tmp_path)
    config.set_tmdb_api_key("key123")
    config.save()
    return env


def add_inception(status=200):
    responses.add(
        responses.GET,
        f"{API}/movie/27205",
        json={
            "title": "Inception",
            "release_date": "2010-07-15",
            "watch/providers": {"results": {"IN": {"flatrate": [{"provider_name": "Netflix"}]}}},
        },
        status=status,
    )
    responses.add(
        responses.GET,
        f"{API}/movie/27205/release_dates",
        json={"results": []},
        status=200,
    )


def test_cli_help():
    """CLI shows help message."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Watch tracker" in result.output


def test_cli_version():
    """CLI shows version."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


@pytest.mark.parametrize(
    "command",
    ["setup", "list", "add", "remove", "watched", "progress", "manual-date", "refresh", "reclassify", "validate"],
)
def test_cli_command_exists(command, env):
    runner = CliRunner()
    result = runner.invoke(cli, [command, "--help"], env=env)
    assert result.exit_code == 0


class TestSetupCommand:
    """Tests for setup command."""

    @responses.activate
    def test_setup_success(self, tmp_path, env):
        """Setup checks the key and saves config."""
        responses.add(responses.GET, f"{API}/configuration", json={}, status=200)

        runner = CliRunner()
        result = runner.invoke(cli, ["setup"], input="key123\nus\n", env=env)

        assert result.exit_code == 0
        assert "Setup complete" in result.output
        config = Config(data_dir=tmp_path)
        config.load()
        assert config.tmdb_api_key == "key123"
        assert config.region == "US"

    @responses.activate
    def test_setup_rejected_key(self, tmp_path, env):
        responses.add(responses.GET, f"{API}/configuration", status=401)

        runner = CliRunner()
        result = runner.invoke(cli, ["setup"], input="badkey\nIN\n", env=env)

        assert result.exit_code == 1
        assert "rejected" in result.output
        assert not (tmp_path / "config.yaml").exists()

    def test_setup_invalid_region(self, env):
        runner = CliRunner()
        result = runner.invoke(cli, ["setup"], input="key123\nIndia\n", env=env)
        assert result.exit_code == 1
        assert "Invalid region" in result.output


class TestWatchlistCommands:
    """Tests for commands that change the watchlist."""

    def test_add_without_config(self, env):
        runner = CliRunner()
        result = runner.invoke(cli, ["add", "27205"], env=env)
        assert result.exit_code == 1
        assert "not found" in result.output

    @responses.activate
    def test_add_movie(self, tmp_path, configured):
        add_inception()

        runner = CliRunner()
        result = runner.invoke(cli, ["add", "27205"], env=configured)

        assert result.exit_code == 0
        assert "Inception" in result.output
        assert "movie_unwatched" in result.output
        assert LocalStore(data_dir=tmp_path).load()[0].title == "Inception"

    @responses.activate
    def test_add_unknown_movie(self, tmp_path, configured):
        responses.add(responses.GET, f"{API}/movie/999", status=404)

        runner = CliRunner()
        result = runner.invoke(cli, ["add", "999"], env=configured)

        assert result.exit_code == 2
        assert "Change not saved" in result.output
        assert LocalStore(data_dir=tmp_path).load() == []

    @responses.activate
    def test_set_status_and_list(self, configured):
        add_inception()
        runner = CliRunner()
        runner.invoke(cli, ["add", "27205"], env=configured)

        result = runner.invoke(cli, ["set-status", "27205", "movie_watched"], env=configured)
        assert result.exit_code == 0

        result = runner.invoke(cli, ["list", "--status", "movie_watched"], env=configured)
        assert result.exit_code == 0
        assert "Inception" in result.output

    @responses.activate
    def test_set_status_rejects_show_status(self, configured):
        add_inception()
        runner = CliRunner()
        runner.invoke(cli, ["add", "27205"], env=configured)

        result = runner.invoke(cli, ["set-status", "27205", "show_watched"], env=configured)
        assert result.exit_code == 1
        assert "not valid" in result.output

    def test_mutating_untracked_item(self, configured):
        runner = CliRunner()
        result = runner.invoke(cli, ["watched", "27205"], env=configured)
        assert result.exit_code == 1
        assert "not in the watchlist" in result.output

    def test_manual_date_invalid(self, tmp_path, configured):
        LocalStore(data_dir=tmp_path).upsert(
            WatchlistItem(id="x", external_id=600, type="movie", title="Upcoming", status="movie_coming_soon")
        )

        runner = CliRunner()
        result = runner.invoke(cli, ["manual-date", "600", "--date", "soon"], env=configured)

        assert result.exit_code == 1
        assert "Invalid date" in result.output

    def test_list_empty(self, configured):
        runner = CliRunner()
        result = runner.invoke(cli, ["list"], env=configured)
        assert result.exit_code == 0
        assert "Watchlist is empty" in result.output


class TestReclassifyCommand:
    """Tests for the batch job command."""

    def test_reclassify_empty_json(self, configured):
        runner = CliRunner()
        result = runner.invoke(cli, ["reclassify", "--json"], env=configured)

        assert result.exit_code == 0
        assert json.loads(result.output) == {"processed": 0, "details": []}

    @responses.activate
    def test_reclassify_failure_exit_code(self, tmp_path, configured):
        LocalStore(data_dir=tmp_path).upsert(
            WatchlistItem(id="x", external_id=999, type="movie", title="Gone", status="movie_on_ott")
        )
        responses.add(responses.GET, f"{API}/movie/999", status=404)

        runner = CliRunner()
        result = runner.invoke(cli, ["reclassify"], env=configured)

        assert result.exit_code == 3
        assert "Gone" in result.output


class TestValidateCommand:
    """Tests for validate command."""

    def test_validate_without_config(self, env):
        runner = CliRunner()
        result = runner.invoke(cli, ["validate"], env=env)
        assert result.exit_code == 1
        assert "not found" in result.output

    @responses.activate
    def test_validate_success(self, configured):
        responses.add(responses.GET, f"{API}/configuration", json={}, status=200)

        runner = CliRunner()
        result = runner.invoke(cli, ["validate"], env=configured)

        assert result.exit_code == 0
        assert "Connection valid" in result.output
        assert "local" in result.output
