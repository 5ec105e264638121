from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass(frozen=True)
class ArtistRef:
    id: str
    name: str
    external_url: str = ""


@dataclass(frozen=True)
class CanonicalTrack:
    """Provider-independent track record handed to downstream processing."""

    spotify_id: str
    name: str
    artists: str
    artists_data: Tuple[ArtistRef, ...] = ()
    artist_id: str = ""
    artist_url: str = ""
    album_name: str = ""
    album_artist: str = ""
    album_id: str = ""
    album_type: str = ""
    album_url: str = ""
    release_date: str = ""
    track_number: int = 0
    disc_number: int = 0
    total_tracks: int = 0
    duration_ms: int = 0
    image_url: str = ""
    external_url: str = ""
    isrc: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PlaylistSummary:
    id: str
    name: str
    owner: str = ""
    tracks_total: int = 0
    image_url: str = ""
    is_public: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PlaylistWithTracks:
    playlist: PlaylistSummary
    tracks: List[CanonicalTrack] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "playlist": self.playlist.to_dict(),
            "tracks": [t.to_dict() for t in self.tracks],
        }


@dataclass(frozen=True)
class UserProfile:
    id: str
    display_name: str = ""
    email: str = ""
    avatar_urls: Tuple[str, ...] = ()

    @property
    def avatar_url(self) -> str:
        return self.avatar_urls[0] if self.avatar_urls else ""


@dataclass(frozen=True)
class AuthStatus:
    authenticated: bool
    display_name: str = ""
    user_id: str = ""
    avatar_url: str = ""
    expires_at: int = 0
    scope: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LoginResponse:
    url: str
    redirect_uri: str = ""
