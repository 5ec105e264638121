import json
import os
import threading
import time
import webbrowser
from typing import Optional

import questionary

from spotify_library import (
    LoginCancelledError,
    LoginTimeoutError,
    MissingClientCredentialsError,
    PlaylistWithTracks,
    SessionManager,
    SpotifyLibraryError,
)
from spotify_library.auth import spotify_app_setup_instructions
from utils.logger import log_info, log_success, log_warning, log_error


def _sanitize_playlist_name(name: str) -> str:
    return (name or "").replace("/", "-").replace("\\", "-").strip() or "playlist"


def _format_duration(duration_ms: int) -> str:
    seconds = int(duration_ms or 0) // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


def account_menu(session: SessionManager, config: dict) -> None:
    """Main loop for the Spotify account + library menu."""
    while True:
        choice = questionary.select(
            "🎧 Spotify Library — What would you like to do?",
            choices=[
                "Connect Spotify account",
                "Show account status",
                "List playlists",
                "Show liked songs",
                "Show playlist tracks",
                "Export playlist to JSON",
                "Set client credentials",
                "Disconnect account",
                "Exit",
            ],
        ).ask()

        if choice == "Connect Spotify account":
            connect_account(session, config)

        elif choice == "Show account status":
            show_status(session)

        elif choice == "List playlists":
            list_playlists(session)

        elif choice == "Show liked songs":
            show_liked_songs(session)

        elif choice == "Show playlist tracks":
            show_playlist_tracks(session)

        elif choice == "Export playlist to JSON":
            export_playlist_menu(session, config)

        elif choice == "Set client credentials":
            set_credentials(session, config)

        elif choice == "Disconnect account":
            disconnect(session)

        elif choice in ("Exit", None):
            break


def connect_account(session: SessionManager, config: dict) -> bool:
    """Run the loopback PKCE login and wait for the browser redirect."""
    cancel = threading.Event()
    try:
        login = session.start_login(cancel=cancel)
    except MissingClientCredentialsError as e:
        log_warning(str(e))
        log_info(spotify_app_setup_instructions())
        return False
    except (SpotifyLibraryError, OSError) as e:
        log_error(f"Failed to start Spotify login: {e}")
        return False

    log_info("\n" + "=" * 72)
    log_info("SPOTIFY AUTHENTICATION")
    log_info("=" * 72)
    log_info(f"Waiting for Spotify to redirect to: {login.redirect_uri}")
    log_info(f"Authorize URL:\n{login.url}")
    log_info("=" * 72)

    if questionary.confirm("Open the authorize URL in your default browser?", default=True).ask():
        if not webbrowser.open(login.url):
            log_warning("Could not open a browser; copy the URL above into one manually.")

    timeout = float(config.get("login_timeout", 120))
    try:
        session.wait_for_login(timeout=timeout)
    except LoginTimeoutError:
        cancel.set()
        log_warning(f"No response from Spotify within {int(timeout)}s. Login cancelled.")
        return False
    except LoginCancelledError as e:
        log_warning(str(e))
        return False
    except SpotifyLibraryError as e:
        log_error(f"Spotify authentication failed: {e}")
        return False

    try:
        status = session.status()
    except SpotifyLibraryError as e:
        log_warning(f"Spotify account connected, but fetching the account status failed: {e}")
        return True
    log_success(f"Spotify account connected: {status.display_name or status.user_id}")
    return True


def show_status(session: SessionManager) -> None:
    try:
        status = session.status()
    except SpotifyLibraryError as e:
        log_error(f"Failed to fetch Spotify status: {e}")
        return

    if not status.authenticated:
        log_info("Not connected to Spotify.")
        return

    exp_str = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(float(status.expires_at)))
    log_info(f"Signed in as: {status.display_name or status.user_id} ({status.user_id})")
    log_info(f"Token expires at: {exp_str}")
    log_info(f"Scopes: {status.scope or '(none)'}")


def list_playlists(session: SessionManager) -> list:
    try:
        playlists = session.fetch_playlists()
    except SpotifyLibraryError as e:
        log_error(f"Failed to fetch playlists: {e}")
        return []

    if not playlists:
        log_info("No playlists found for this account.")
        return []

    for p in playlists:
        visibility = "public" if p.is_public else "private"
        log_info(f"- {p.name} ({p.tracks_total} tracks) — {p.owner or '?'} [{visibility}]")
    log_info(f"{len(playlists)} playlists.")
    return playlists


def show_liked_songs(session: SessionManager) -> None:
    try:
        tracks = session.fetch_saved_tracks()
    except SpotifyLibraryError as e:
        log_error(f"Failed to fetch liked songs: {e}")
        return

    for t in tracks:
        log_info(f"- {t.artists} — {t.name} [{_format_duration(t.duration_ms)}]")
    log_info(f"{len(tracks)} liked songs.")


def _select_playlist(session: SessionManager) -> Optional[str]:
    try:
        playlists = session.fetch_playlists()
    except SpotifyLibraryError as e:
        log_error(f"Failed to fetch playlists: {e}")
        return None

    choices = [
        questionary.Choice(title=f"{p.name} ({p.tracks_total} tracks)", value=p.id)
        for p in playlists
        if p.id
    ]
    if not choices:
        log_info("No playlists found for this account.")
        return None

    return questionary.select("Select a playlist:", choices=choices).ask()


def _load_playlist(session: SessionManager, playlist_id: str) -> Optional[PlaylistWithTracks]:
    try:
        return session.fetch_playlist_with_tracks(playlist_id)
    except SpotifyLibraryError as e:
        log_error(f"Failed to fetch playlist tracks: {e}")
        return None


def show_playlist_tracks(session: SessionManager) -> None:
    playlist_id = _select_playlist(session)
    if not playlist_id:
        return

    data = _load_playlist(session, playlist_id)
    if data is None:
        return

    log_info(f"{data.playlist.name} — {data.playlist.owner}")
    for i, t in enumerate(data.tracks, start=1):
        log_info(f"{i:>4}. {t.artists} — {t.name} ({t.album_name})")
    log_info(f"{len(data.tracks)} tracks.")


def export_playlist(data: PlaylistWithTracks, export_dir: str) -> str:
    """Write a playlist and its tracks to <export_dir>/<name>.json and return the path."""
    os.makedirs(export_dir, exist_ok=True)
    path = os.path.join(export_dir, f"{_sanitize_playlist_name(data.playlist.name)}.json")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data.to_dict(), f, indent=2, ensure_ascii=False)
    return path


def export_playlist_menu(session: SessionManager, config: dict) -> None:
    playlist_id = _select_playlist(session)
    if not playlist_id:
        return

    data = _load_playlist(session, playlist_id)
    if data is None:
        return

    try:
        path = export_playlist(data, config.get("export_dir") or "exports")
    except OSError as e:
        log_error(f"Failed to write export: {e}")
        return
    log_success(f"Exported {len(data.tracks)} tracks to {path}")


def set_credentials(session: SessionManager, config: dict) -> None:
    log_info(spotify_app_setup_instructions(
        redirect_uri=f"http://{config.get('spotify_callback_host', '127.0.0.1')}:{config.get('spotify_callback_port', 3000)}/callback"
    ))

    client_id = questionary.text("Spotify Client ID (leave empty to clear the override):").ask()
    if client_id is None:
        return
    client_secret = questionary.password("Spotify Client Secret (leave empty to clear the override):").ask()
    if client_secret is None:
        return

    try:
        session.set_client_credentials(client_id, client_secret)
    except OSError as e:
        log_error(f"Failed to save client credentials: {e}")
        return

    creds = session.credentials()
    log_success(f"Client credentials saved (client id from: {creds.client_id_source}).")


def disconnect(session: SessionManager) -> None:
    if not questionary.confirm("Disconnect your Spotify account?", default=False).ask():
        return
    session.logout()
    log_info("Disconnected Spotify account.")
