"""TVMaze lookup for average episode runtimes."""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class TVMazeClient:
    """Optional secondary source; every failure yields None."""

    API_URL = "https://api.tvmaze.com"

    def __init__(self, api_url: Optional[str] = None):
        self.api_url = (api_url or self.API_URL).rstrip("/")

    def get_average_runtime(self, imdb_id: Optional[str]) -> Optional[int]:
        """Average runtime in minutes for the show with ``imdb_id``."""
        if not imdb_id:
            return None

        try:
            response = requests.get(
                f"{self.api_url}/lookup/shows",
                params={"imdb": imdb_id},
                timeout=10,
            )
        except requests.RequestException as e:
            logger.warning("TVMaze lookup failed for %s: %s", imdb_id, e)
            return None

        if response.status_code != 200:
            return None

        try:
            return response.json().get("averageRuntime") or None
        except ValueError:
            logger.warning("TVMaze returned invalid JSON for %s", imdb_id)
            return None
