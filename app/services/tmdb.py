"""TMDB (The Movie Database) API client for movie, show and episode details."""
from __future__ import annotations

import logging

import httpx

from app.config import Settings, get_settings
from app.errors import ProviderError

logger = logging.getLogger("uvicorn.error")

MEDIA_TYPES = ("movie", "tv")


class TMDBClient:
    def __init__(self, api_key: str, base_url: str = "https://api.themoviedb.org/3", timeout: float = 10.0):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "TMDBClient":
        settings = settings or get_settings()
        return cls(settings.tmdb_api_key, settings.tmdb_base_url, settings.tmdb_timeout_seconds)

    def _get(self, path: str, **params) -> dict:
        if not self.api_key:
            raise ProviderError("TMDB_API_KEY is not configured")
        params["api_key"] = self.api_key
        try:
            with httpx.Client(timeout=self.timeout) as client:
                r = client.get(f"{self.base_url}{path}", params=params)
        except httpx.HTTPError as e:
            raise ProviderError(f"TMDB request {path} failed: {type(e).__name__}: {e}") from e
        if not 200 <= r.status_code < 300:
            raise ProviderError(f"TMDB API error: status={r.status_code} path={path} body={r.text[:300]}")
        try:
            return r.json()
        except ValueError as e:
            raise ProviderError(f"TMDB returned a non-JSON body: status={r.status_code} path={path} body={r.text[:300]}") from e

    def fetch_details(self, external_id: str, media_type: str) -> dict:
        """Full details for a movie or show, with credits appended."""
        if media_type not in MEDIA_TYPES:
            raise ProviderError(f"Unsupported media type {media_type!r}")
        logger.info("[TMDB] Fetching %s/%s", media_type, external_id)
        return self._get(f"/{media_type}/{external_id}", append_to_response="credits")

    def fetch_season(self, external_id: str, season: int) -> dict:
        return self._get(f"/tv/{external_id}/season/{season}")
