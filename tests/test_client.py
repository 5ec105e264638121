import sys
import unittest
from pathlib import Path

# Ensure local imports work when running this file directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import httpx

from spotify_library.client import SpotifyClient
from spotify_library.errors import HTTPStatusError, SpotifyRequestError


class TestSpotifyClient(unittest.TestCase):
    def _client(self, handler):
        self.requests = []

        def recording(request):
            self.requests.append(request)
            return handler(request)

        return SpotifyClient(transport=httpx.MockTransport(recording))

    def test_get_json_sends_bearer_token_and_params(self):
        client = self._client(lambda r: httpx.Response(200, json={"items": [], "total": 0}))
        out = client.get_json("/me/tracks", "tok", params={"limit": 50, "offset": 100})

        self.assertEqual(out, {"items": [], "total": 0})
        req = self.requests[0]
        self.assertEqual(req.headers["Authorization"], "Bearer tok")
        self.assertEqual(req.url.path, "/v1/me/tracks")
        self.assertEqual(req.url.host, "api.spotify.com")
        self.assertEqual(dict(req.url.params), {"limit": "50", "offset": "100"})

    def test_absolute_next_url_is_used_as_is(self):
        client = self._client(lambda r: httpx.Response(200, json={}))
        client.get_json("https://api.spotify.com/v1/me/playlists?offset=50&limit=50", "tok")
        self.assertEqual(dict(self.requests[0].url.params), {"offset": "50", "limit": "50"})

    def test_non_2xx_raises_http_status_error_with_body(self):
        client = self._client(lambda r: httpx.Response(404, text='{"error":{"status":404}}'))
        with self.assertRaises(HTTPStatusError) as ctx:
            client.playlist("tok", "missing")
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertIn('"status":404', ctx.exception.body)
        self.assertIn("/playlists/missing", ctx.exception.url)

    def test_transport_error_is_wrapped(self):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = self._client(boom)
        with self.assertRaises(SpotifyRequestError):
            client.me("tok")

    def test_non_json_body_is_rejected(self):
        client = self._client(lambda r: httpx.Response(200, text="<html>"))
        with self.assertRaises(SpotifyRequestError):
            client.me("tok")

    def test_current_user_playlists_endpoint(self):
        client = self._client(lambda r: httpx.Response(200, json={"items": [], "next": None}))
        client.current_user_playlists("tok", limit=50, offset=0)
        req = self.requests[0]
        self.assertEqual(req.url.path, "/v1/me/playlists")
        self.assertEqual(dict(req.url.params), {"limit": "50", "offset": "0"})

    def test_playlist_items_endpoint(self):
        client = self._client(lambda r: httpx.Response(200, json={"items": []}))
        client.playlist_items("tok", "pl1", limit=100, offset=200)
        req = self.requests[0]
        self.assertEqual(req.url.path, "/v1/playlists/pl1/tracks")
        self.assertEqual(dict(req.url.params), {"limit": "100", "offset": "200"})


if __name__ == "__main__":
    unittest.main(verbosity=2)
