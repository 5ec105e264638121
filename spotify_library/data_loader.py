import logging
from threading import Event
from typing import List, Optional

from .client import SpotifyClient
from .errors import OperationCancelledError
from .models import CanonicalTrack, PlaylistSummary, PlaylistWithTracks, UserProfile
from .normalizer import normalize_playlist, normalize_profile, normalize_track_items
from .pagination import PageFetchCoordinator
from .token_manager import TokenInfo

logger = logging.getLogger(__name__)

PLAYLISTS_PAGE_SIZE = 50
SAVED_TRACKS_PAGE_SIZE = 50
PLAYLIST_TRACKS_PAGE_SIZE = 100


def _check_cancel(cancel: Optional[Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError("Spotify library fetch was cancelled")


class SpotifyLibraryLoader:
    """Retrieves the user's library with an access token supplied per call.

    The first page of a track collection is fetched synchronously; it carries
    the total, and the remaining offsets are handed to the coordinator.
    """

    def __init__(self, client: SpotifyClient, coordinator: Optional[PageFetchCoordinator] = None):
        self.client = client
        self.coordinator = coordinator or PageFetchCoordinator()

    def fetch_profile(self, token: TokenInfo) -> UserProfile:
        return normalize_profile(self.client.me(token.access_token))

    def list_playlists(self, token: TokenInfo, cancel: Optional[Event] = None) -> List[PlaylistSummary]:
        # Total is unknown up front, so follow the `next` cursor page by page.
        playlists: List[PlaylistSummary] = []

        _check_cancel(cancel)
        page = self.client.current_user_playlists(token.access_token, limit=PLAYLISTS_PAGE_SIZE, offset=0)
        while True:
            for item in page.get("items") or []:
                if isinstance(item, dict):
                    playlists.append(normalize_playlist(item))
            next_url = page.get("next")
            if not next_url:
                break
            _check_cancel(cancel)
            page = self.client.get_json(next_url, token.access_token)

        logger.info("Fetched %d playlists", len(playlists))
        return playlists

    def load_saved_tracks(self, token: TokenInfo, cancel: Optional[Event] = None) -> List[CanonicalTrack]:
        limit = SAVED_TRACKS_PAGE_SIZE

        def fetch_page(offset: int) -> List[CanonicalTrack]:
            page = self.client.current_user_saved_tracks(token.access_token, limit=limit, offset=offset)
            return normalize_track_items(page.get("items") or [])

        _check_cancel(cancel)
        first = self.client.current_user_saved_tracks(token.access_token, limit=limit, offset=0)
        tracks = normalize_track_items(first.get("items") or [])
        total = int(first.get("total") or 0)

        tracks.extend(self.coordinator.fetch_remaining(total, limit, fetch_page, cancel))
        logger.info("Fetched %d saved tracks (%d reported)", len(tracks), total)
        return tracks

    def load_playlist_with_tracks(
        self,
        playlist_id: str,
        token: TokenInfo,
        cancel: Optional[Event] = None,
    ) -> PlaylistWithTracks:
        limit = PLAYLIST_TRACKS_PAGE_SIZE

        def fetch_page(offset: int) -> List[CanonicalTrack]:
            page = self.client.playlist_items(token.access_token, playlist_id, limit=limit, offset=offset)
            return normalize_track_items(page.get("items") or [])

        _check_cancel(cancel)
        meta = self.client.playlist(token.access_token, playlist_id)
        summary = normalize_playlist(meta)

        _check_cancel(cancel)
        first = self.client.playlist_items(token.access_token, playlist_id, limit=limit, offset=0)
        tracks = normalize_track_items(first.get("items") or [])
        tracks.extend(self.coordinator.fetch_remaining(summary.tracks_total, limit, fetch_page, cancel))

        logger.info("Fetched playlist %s with %d tracks", playlist_id, len(tracks))
        return PlaylistWithTracks(playlist=summary, tracks=tracks)
