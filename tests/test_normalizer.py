import json
import sys
import unittest
from pathlib import Path

# Ensure local imports work when running this file directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from spotify_library.models import ArtistRef
from spotify_library.normalizer import (
    first_image_url,
    normalize_playlist,
    normalize_profile,
    normalize_track,
    normalize_track_items,
)

TRACK = {
    "id": "t1",
    "name": "Song",
    "track_number": 3,
    "disc_number": 1,
    "duration_ms": 215000,
    "external_urls": {"spotify": "https://open.spotify.com/track/t1"},
    "external_ids": {"isrc": "USABC1234567"},
    "artists": [
        {"id": "a1", "name": "Artist One", "external_urls": {"spotify": "https://open.spotify.com/artist/a1"}},
        {"id": "a2", "name": "Artist Two"},
    ],
    "album": {
        "id": "al1",
        "name": "Album",
        "album_type": "album",
        "release_date": "2020-01-02",
        "total_tracks": 12,
        "external_urls": {"spotify": "https://open.spotify.com/album/al1"},
        "artists": [{"id": "a1", "name": "Artist One"}],
        "images": [{"url": "https://img/large"}, {"url": "https://img/small"}],
    },
}


class TestNormalizer(unittest.TestCase):
    def test_track_fields(self):
        t = normalize_track(TRACK)
        self.assertEqual(t.spotify_id, "t1")
        self.assertEqual(t.name, "Song")
        self.assertEqual(t.artists, "Artist One, Artist Two")
        self.assertEqual(t.artists_data[0], ArtistRef(id="a1", name="Artist One", external_url="https://open.spotify.com/artist/a1"))
        self.assertEqual(t.artist_id, "a1")
        self.assertEqual(t.artist_url, "https://open.spotify.com/artist/a1")
        self.assertEqual(t.album_name, "Album")
        self.assertEqual(t.album_artist, "Artist One")
        self.assertEqual(t.album_type, "album")
        self.assertEqual(t.release_date, "2020-01-02")
        self.assertEqual(t.track_number, 3)
        self.assertEqual(t.total_tracks, 12)
        self.assertEqual(t.duration_ms, 215000)
        self.assertEqual(t.image_url, "https://img/large")
        self.assertEqual(t.external_url, "https://open.spotify.com/track/t1")
        self.assertEqual(t.isrc, "USABC1234567")

    def test_track_without_artists_or_album(self):
        t = normalize_track({"id": "x", "name": "Bare"})
        self.assertEqual(t.artists, "")
        self.assertEqual(t.artist_id, "")
        self.assertEqual(t.image_url, "")
        self.assertEqual(t.track_number, 0)

    def test_null_tracks_are_skipped(self):
        items = [{"track": None}, {"track": TRACK}, {}, None, {"track": dict(TRACK, id="t2")}]
        tracks = normalize_track_items(items)
        self.assertEqual([t.spotify_id for t in tracks], ["t1", "t2"])

    def test_track_dict_is_json_serializable(self):
        json.dumps(normalize_track(TRACK).to_dict())

    def test_first_image_url(self):
        self.assertEqual(first_image_url([{"url": ""}, {"url": "u2"}]), "u2")
        self.assertEqual(first_image_url(None), "")
        self.assertEqual(first_image_url([]), "")

    def test_playlist_summary(self):
        p = normalize_playlist({
            "id": "pl",
            "name": "Road Trip",
            "owner": {"display_name": "Sam"},
            "tracks": {"total": 215},
            "images": [{"url": "https://img/pl"}],
            "public": True,
        })
        self.assertEqual((p.id, p.name, p.owner, p.tracks_total, p.image_url, p.is_public),
                         ("pl", "Road Trip", "Sam", 215, "https://img/pl", True))

    def test_profile_avatar(self):
        profile = normalize_profile({"id": "u1", "display_name": "User", "images": [{"url": "https://img/u1"}]})
        self.assertEqual(profile.avatar_url, "https://img/u1")
        self.assertEqual(normalize_profile({"id": "u2"}).avatar_url, "")


if __name__ == "__main__":
    unittest.main(verbosity=2)
