"""TMDB API client for movie and show metadata."""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class TMDBConfigError(Exception):
    """Missing or unusable TMDB credentials."""

    pass


class TMDBError(Exception):
    """TMDB API error."""

    pass


class TMDBClient:
    """Client for the TMDB v3 REST API."""

    API_URL = "https://api.themoviedb.org/3"
    APPEND_TO_RESPONSE = "watch/providers,videos,external_ids,release_dates"

    def __init__(self, api_key: Optional[str], api_url: Optional[str] = None):
        """Initialize TMDB client.

        Args:
            api_key: A v3 API key, or a v4 read access token (sent as bearer).
            api_url: Override for the API base URL.

        Raises:
            TMDBConfigError: If no API key is given.
        """
        if not api_key:
            raise TMDBConfigError(
                "TMDB API key not configured. Run 'watchtrack setup' or set TMDB_API_KEY."
            )
        self.api_key = api_key
        self.api_url = (api_url or self.API_URL).rstrip("/")

    @property
    def uses_bearer_token(self) -> bool:
        # v4 read tokens are long JWTs, v3 keys are ~32 hex chars
        return len(self.api_key) > 60

    def _get_headers(self) -> dict:
        """Build request headers."""
        headers = {"accept": "application/json"}
        if self.uses_bearer_token:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _get(self, endpoint: str, params: Optional[dict] = None) -> dict:
        params = dict(params or {})
        if not self.uses_bearer_token:
            params["api_key"] = self.api_key

        url = f"{self.api_url}{endpoint}"
        logger.debug("TMDB GET %s", endpoint)

        try:
            response = requests.get(
                url,
                params=params,
                headers=self._get_headers(),
                timeout=60,
            )
        except requests.RequestException as e:
            raise TMDBError(f"Cannot connect to TMDB: {e}")

        if response.status_code == 401:
            raise TMDBConfigError("TMDB rejected the API key")
        if response.status_code == 404:
            raise TMDBError(f"TMDB resource not found: {endpoint}")
        if response.status_code != 200:
            raise TMDBError(f"TMDB error: {response.status_code}")

        return response.json()

    @staticmethod
    def catalog_type(media_type: str) -> str:
        """Map a watchlist type to the catalog's path segment."""
        if media_type == "movie":
            return "movie"
        if media_type == "show":
            return "tv"
        raise ValueError(f"Invalid media type: {media_type}")

    def get_details(self, external_id: int, media_type: str, region: str) -> dict:
        """Fetch full details including providers, videos and external ids."""
        return self._get(
            f"/{self.catalog_type(media_type)}/{external_id}",
            {"append_to_response": self.APPEND_TO_RESPONSE, "region": region},
        )

    def get_release_dates(self, external_id: int) -> dict:
        """Fetch per-region release dates for a movie."""
        return self._get(f"/movie/{external_id}/release_dates")

    def test_connection(self) -> bool:
        """Test the API key.

        Returns True if the key is accepted, False otherwise.
        """
        try:
            self._get("/configuration")
            return True
        except (TMDBError, TMDBConfigError):
            return False
