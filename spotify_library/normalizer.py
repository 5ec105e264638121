from typing import Any, Iterable, List, Optional

from .models import ArtistRef, CanonicalTrack, PlaylistSummary, UserProfile


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _str(value: Any) -> str:
    return str(value) if value is not None else ""


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _spotify_url(obj: Any) -> str:
    return _str(_dict(_dict(obj).get("external_urls")).get("spotify"))


def first_image_url(images: Any) -> str:
    """Spotify sorts images by decreasing size, so the first one is the largest."""
    if not isinstance(images, list):
        return ""
    for image in images:
        url = _dict(image).get("url")
        if url:
            return str(url)
    return ""


def _artist_refs(artists: Any) -> List[ArtistRef]:
    if not isinstance(artists, list):
        return []
    return [
        ArtistRef(id=_str(a.get("id")), name=_str(a.get("name")), external_url=_spotify_url(a))
        for a in artists
        if isinstance(a, dict)
    ]


def _join_names(refs: List[ArtistRef]) -> str:
    return ", ".join(r.name for r in refs if r.name)


def normalize_track(track_obj: Any) -> Optional[CanonicalTrack]:
    """Map a Spotify track object to a CanonicalTrack (None for a missing payload)."""
    if not isinstance(track_obj, dict):
        return None

    album = _dict(track_obj.get("album"))
    artists = _artist_refs(track_obj.get("artists"))
    album_artists = _artist_refs(album.get("artists"))
    primary = artists[0] if artists else None

    return CanonicalTrack(
        spotify_id=_str(track_obj.get("id")),
        name=_str(track_obj.get("name")),
        artists=_join_names(artists),
        artists_data=tuple(artists),
        artist_id=primary.id if primary else "",
        artist_url=primary.external_url if primary else "",
        album_name=_str(album.get("name")),
        album_artist=_join_names(album_artists),
        album_id=_str(album.get("id")),
        album_type=_str(album.get("album_type")),
        album_url=_spotify_url(album),
        release_date=_str(album.get("release_date")),
        track_number=_int(track_obj.get("track_number")),
        disc_number=_int(track_obj.get("disc_number")),
        total_tracks=_int(album.get("total_tracks")),
        duration_ms=_int(track_obj.get("duration_ms")),
        image_url=first_image_url(album.get("images")),
        external_url=_spotify_url(track_obj),
        isrc=_str(_dict(track_obj.get("external_ids")).get("isrc")),
    )


def normalize_track_items(items: Iterable[Any]) -> List[CanonicalTrack]:
    """Normalize saved-track / playlist-item wrappers, skipping entries whose track is null."""
    out: List[CanonicalTrack] = []
    for item in items or []:
        track = normalize_track(_dict(item).get("track"))
        if track is not None:
            out.append(track)
    return out


def normalize_playlist(payload: Any) -> PlaylistSummary:
    p = _dict(payload)
    return PlaylistSummary(
        id=_str(p.get("id")),
        name=_str(p.get("name")),
        owner=_str(_dict(p.get("owner")).get("display_name")),
        tracks_total=_int(_dict(p.get("tracks")).get("total")),
        image_url=first_image_url(p.get("images")),
        is_public=bool(p.get("public")),
    )


def normalize_profile(payload: Any) -> UserProfile:
    p = _dict(payload)
    images = p.get("images") if isinstance(p.get("images"), list) else []
    return UserProfile(
        id=_str(p.get("id")),
        display_name=_str(p.get("display_name")),
        email=_str(p.get("email")),
        avatar_urls=tuple(str(_dict(i).get("url")) for i in images if _dict(i).get("url")),
    )
