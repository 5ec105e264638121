import sys
import threading
import unittest
from pathlib import Path

# Ensure local imports work when running this file directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from spotify_library.data_loader import SpotifyLibraryLoader
from spotify_library.errors import HTTPStatusError, OperationCancelledError, PaginationError
from spotify_library.token_manager import TokenInfo

TOKEN = TokenInfo(access_token="tok", token_type="Bearer", expires_at=2000000000)
PLAYLISTS_URL = "https://api.spotify.com/v1/me/playlists"


def _track(track_id):
    return {"id": track_id, "name": f"Song {track_id}", "artists": [{"id": "a", "name": "Artist"}], "album": {"name": "Album"}}


class FakeClient:
    """Serves saved tracks, one playlist and a cursor-paged playlist listing."""

    def __init__(self, saved_total=0, playlist_total=0, null_every=0, fail_offset=None):
        self.saved_total = saved_total
        self.playlist_total = playlist_total
        self.null_every = null_every
        self.fail_offset = fail_offset
        self.calls = []
        self._lock = threading.Lock()

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    def _page(self, prefix, total, limit, offset):
        if self.fail_offset is not None and offset == self.fail_offset:
            raise HTTPStatusError(500, "server error", f"/{prefix}?offset={offset}")
        items = []
        for i in range(offset, min(offset + limit, total)):
            if self.null_every and i % self.null_every == 0:
                items.append({"track": None})
            else:
                items.append({"track": _track(f"{prefix}{i}")})
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def current_user_saved_tracks(self, access_token, limit=50, offset=0):
        self._record("saved", access_token, limit, offset)
        return self._page("liked", self.saved_total, limit, offset)

    def playlist(self, access_token, playlist_id):
        self._record("playlist", access_token, playlist_id)
        return {"id": playlist_id, "name": "Mix", "owner": {"display_name": "Sam"}, "tracks": {"total": self.playlist_total}}

    def playlist_items(self, access_token, playlist_id, limit=100, offset=0):
        self._record("playlist_items", access_token, limit, offset)
        return self._page("pl", self.playlist_total, limit, offset)

    def current_user_playlists(self, access_token, limit=50, offset=0):
        self._record("playlists", access_token, limit, offset)
        return {
            "items": [{"id": f"p{i}", "name": f"P{i}"} for i in range(offset, offset + limit)],
            "next": f"{PLAYLISTS_URL}?offset=50&limit=50",
        }

    def get_json(self, path_or_url, access_token, **kwargs):
        self._record("get_json", access_token, path_or_url)
        if path_or_url == f"{PLAYLISTS_URL}?offset=50&limit=50":
            return {"items": [{"id": f"p{i}", "name": f"P{i}"} for i in range(50, 70)], "next": None}
        raise AssertionError(f"unexpected url {path_or_url}")

    def me(self, access_token):
        return {"id": "u1", "display_name": "User"}


class TestSpotifyLibraryLoader(unittest.TestCase):
    def test_saved_tracks_first_page_then_remaining_offsets(self):
        client = FakeClient(saved_total=130)
        tracks = SpotifyLibraryLoader(client).load_saved_tracks(TOKEN)

        self.assertEqual([t.spotify_id for t in tracks], [f"liked{i}" for i in range(130)])
        offsets = sorted(c[3] for c in client.calls if c[0] == "saved")
        self.assertEqual(offsets, [0, 50, 100])
        self.assertTrue(all(c[1] == "tok" and c[2] == 50 for c in client.calls))

    def test_saved_tracks_single_page(self):
        client = FakeClient(saved_total=12)
        tracks = SpotifyLibraryLoader(client).load_saved_tracks(TOKEN)
        self.assertEqual(len(tracks), 12)
        self.assertEqual(len(client.calls), 1)

    def test_null_tracks_are_dropped(self):
        client = FakeClient(saved_total=100, null_every=10)
        tracks = SpotifyLibraryLoader(client).load_saved_tracks(TOKEN)
        self.assertEqual(len(tracks), 90)
        self.assertNotIn("liked0", {t.spotify_id for t in tracks})

    def test_playlist_with_tracks_uses_page_size_100(self):
        client = FakeClient(playlist_total=215)
        data = SpotifyLibraryLoader(client).load_playlist_with_tracks("pl1", TOKEN)

        self.assertEqual(data.playlist.id, "pl1")
        self.assertEqual(data.playlist.owner, "Sam")
        self.assertEqual(data.playlist.tracks_total, 215)
        self.assertEqual([t.spotify_id for t in data.tracks], [f"pl{i}" for i in range(215)])
        item_calls = [c for c in client.calls if c[0] == "playlist_items"]
        self.assertEqual(sorted(c[3] for c in item_calls), [0, 100, 200])
        self.assertTrue(all(c[2] == 100 for c in item_calls))

    def test_playlists_follow_next_cursor(self):
        client = FakeClient()
        playlists = SpotifyLibraryLoader(client).list_playlists(TOKEN)
        self.assertEqual(len(playlists), 70)
        self.assertEqual(playlists[0].id, "p0")
        self.assertEqual(playlists[-1].id, "p69")
        self.assertEqual(client.calls[0], ("playlists", "tok", 50, 0))
        self.assertEqual(client.calls[1], ("get_json", "tok", f"{PLAYLISTS_URL}?offset=50&limit=50"))

    def test_page_failure_surfaces_offset(self):
        client = FakeClient(saved_total=130, fail_offset=100)
        with self.assertRaises(PaginationError) as ctx:
            SpotifyLibraryLoader(client).load_saved_tracks(TOKEN)
        self.assertEqual(ctx.exception.offset, 100)
        self.assertIsInstance(ctx.exception.error, HTTPStatusError)

    def test_cancel_before_first_request(self):
        client = FakeClient(saved_total=130)
        cancel = threading.Event()
        cancel.set()
        loader = SpotifyLibraryLoader(client)

        with self.assertRaises(OperationCancelledError):
            loader.load_saved_tracks(TOKEN, cancel)
        with self.assertRaises(OperationCancelledError):
            loader.list_playlists(TOKEN, cancel)
        with self.assertRaises(OperationCancelledError):
            loader.load_playlist_with_tracks("pl1", TOKEN, cancel)
        self.assertEqual(client.calls, [])

    def test_fetch_profile(self):
        profile = SpotifyLibraryLoader(FakeClient()).fetch_profile(TOKEN)
        self.assertEqual((profile.id, profile.display_name), ("u1", "User"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
