"""Configuration management for watchtrack."""

import os
import re
import stat
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_REGION = "IN"
DEFAULT_BATCH_LIMIT = 5

_REGION_RE = re.compile(r"^[A-Z]{2}$")


class ConfigError(Exception):
    """Configuration error."""

    pass


class Config:
    """Manages watchtrack configuration."""

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize config with data directory."""
        if data_dir is None:
            data_dir = Path.cwd() / "data"
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.config_path = self.data_dir / "config.yaml"
        self.log_path = self.data_dir / "watchtrack.log"

        # Catalog credentials
        self.tmdb_api_key: Optional[str] = None

        # Preferences
        self.region: str = DEFAULT_REGION

        # Remote store (signed-in mode)
        self.remote_url: Optional[str] = None
        self.remote_api_key: Optional[str] = None
        self.remote_user_id: Optional[str] = None
        self.remote_access_token: Optional[str] = None

        # Scheduled refresh
        self.batch_limit: int = DEFAULT_BATCH_LIMIT

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()

    @property
    def signed_in(self) -> bool:
        """True when a remote store and user are configured."""
        return bool(self.remote_url and self.remote_api_key and self.remote_user_id)

    def set_tmdb_api_key(self, api_key: str) -> None:
        self.tmdb_api_key = api_key

    def set_region(self, region: str) -> None:
        """Set the region used for providers and release dates."""
        region = (region or "").strip().upper()
        if not _REGION_RE.match(region):
            raise ConfigError(f"Invalid region: {region!r} (expected a two-letter code)")
        self.region = region

    def set_remote(
        self,
        url: str,
        api_key: str,
        user_id: str,
        access_token: Optional[str] = None,
    ) -> None:
        """Set remote store credentials."""
        self.remote_url = url.rstrip("/")
        self.remote_api_key = api_key
        self.remote_user_id = user_id
        self.remote_access_token = access_token

    def clear_remote(self) -> None:
        self.remote_url = None
        self.remote_api_key = None
        self.remote_user_id = None
        self.remote_access_token = None

    def set_batch_limit(self, limit: int) -> None:
        if limit < 1:
            raise ConfigError(f"Invalid batch limit: {limit}")
        self.batch_limit = limit

    def apply_env(self) -> None:
        """Let environment variables override file settings."""
        api_key = os.environ.get("TMDB_API_KEY")
        if api_key:
            self.tmdb_api_key = api_key
        region = os.environ.get("WATCHTRACK_REGION")
        if region:
            self.set_region(region)

    def save(self) -> None:
        """Save configuration to YAML file."""
        data = {
            "tmdb": {
                "api_key": self.tmdb_api_key,
            },
            "preferences": {
                "region": self.region,
            },
            "remote": {
                "url": self.remote_url,
                "api_key": self.remote_api_key,
                "user_id": self.remote_user_id,
                "access_token": self.remote_access_token,
            },
            "refresh": {
                "batch_limit": self.batch_limit,
            },
        }

        with open(self.config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

        # Set file permissions to 0600 (owner read/write only)
        if os.name != "nt":
            os.chmod(self.config_path, stat.S_IRUSR | stat.S_IWUSR)

    def load(self) -> None:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise ConfigError(
                f"Config file not found: {self.config_path}\n"
                "Run 'watchtrack setup' to configure."
            )

        with open(self.config_path) as f:
            data = yaml.safe_load(f) or {}

        tmdb = data.get("tmdb") or {}
        self.tmdb_api_key = tmdb.get("api_key")

        preferences = data.get("preferences") or {}
        self.set_region(preferences.get("region") or DEFAULT_REGION)

        remote = data.get("remote") or {}
        self.remote_url = remote.get("url")
        self.remote_api_key = remote.get("api_key")
        self.remote_user_id = remote.get("user_id")
        self.remote_access_token = remote.get("access_token")

        refresh = data.get("refresh") or {}
        self.set_batch_limit(int(refresh.get("batch_limit") or DEFAULT_BATCH_LIMIT))
