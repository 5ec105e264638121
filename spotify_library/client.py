import json
from typing import Any, Dict, Optional

import httpx

from .errors import HTTPStatusError, SpotifyRequestError

SPOTIFY_API_BASE_URL = "https://api.spotify.com/v1"


class SpotifyClient:
    """Thin Spotify Web API client.

    The client holds no token and no connection state: every call receives
    the access token from the caller and opens its own httpx.Client, so one
    instance can be shared by any number of worker threads.
    """

    def __init__(
        self,
        *,
        base_url: str = SPOTIFY_API_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self._transport = transport

    def _url(self, path_or_url: str) -> str:
        if path_or_url.startswith("http://") or path_or_url.startswith("https://"):
            return path_or_url
        return f"{self.base_url}/{path_or_url.lstrip('/')}"

    def get_json(
        self,
        path_or_url: str,
        access_token: str,
        *,
        token_type: str = "Bearer",
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """GET a Web API resource with a bearer token and return the decoded JSON object."""

        url = self._url(path_or_url)
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.get(
                    url,
                    params=query or None,
                    headers={
                        "Authorization": f"{token_type or 'Bearer'} {access_token}",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as e:
            raise SpotifyRequestError(f"Spotify API request failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise HTTPStatusError(resp.status_code, resp.text, str(resp.request.url))

        if not resp.content:
            return {}

        try:
            payload = resp.json()
        except json.JSONDecodeError as e:
            raise SpotifyRequestError(
                f"Spotify API response was not JSON (status {resp.status_code}): {resp.text}"
            ) from e

        if not isinstance(payload, dict):
            raise SpotifyRequestError(f"Spotify API response was not an object: {payload}")
        return payload

    # -----------------
    # Convenience endpoints
    # -----------------

    def me(self, access_token: str) -> Dict[str, Any]:
        return self.get_json("/me", access_token)

    def current_user_playlists(self, access_token: str, *, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        return self.get_json("/me/playlists", access_token, params={"limit": limit, "offset": offset})

    def current_user_saved_tracks(self, access_token: str, *, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        return self.get_json("/me/tracks", access_token, params={"limit": limit, "offset": offset})

    def playlist(self, access_token: str, playlist_id: str) -> Dict[str, Any]:
        return self.get_json(f"/playlists/{playlist_id}", access_token)

    def playlist_items(self, access_token: str, playlist_id: str, *, limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        return self.get_json(
            f"/playlists/{playlist_id}/tracks",
            access_token,
            params={"limit": limit, "offset": offset},
        )
