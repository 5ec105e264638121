"""Spotify session lifecycle: PKCE login, token persistence and refresh.

A SessionManager is built once at process start and handed to every caller.
It is the only writer of the current token, the cached profile and the
active login attempt; all three live behind one internal lock, which the
loopback callback handler takes as well.
"""

import enum
import hmac
import logging
import os
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .auth import DEFAULT_SCOPES, ClientCredentials, CredentialStore, SpotifyTokenEndpoint, build_authorize_url
from .callback_server import DEFAULT_CALLBACK_HOST, DEFAULT_CALLBACK_PORT, CallbackServer
from .client import SpotifyClient
from .data_loader import SpotifyLibraryLoader
from .errors import (
    LoginCancelledError,
    LoginTimeoutError,
    MalformedCallbackError,
    MissingClientCredentialsError,
    MissingRefreshTokenError,
    NotAuthenticatedError,
    OperationCancelledError,
    RefreshError,
    SpotifyLibraryError,
    StateMismatchError,
)
from .models import AuthStatus, CanonicalTrack, LoginResponse, PlaylistSummary, PlaylistWithTracks, UserProfile
from .pagination import WORKER_COUNT, PageFetchCoordinator
from .pkce import generate_pkce_pair, generate_state
from .token_manager import TOKEN_FILE_NAME, TokenInfo, TokenManager

logger = logging.getLogger(__name__)

SUCCESS_PAGE = (
    "<html><head><title>Spotify connected</title></head>"
    "<body><p>Spotify login successful. You can close this window.</p></body></html>"
)


def _error_page(message: str) -> str:
    return f"<html><body><p>Spotify login failed: {message}</p></body></html>"


class AuthState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    LOGIN_PENDING = "login_pending"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"


@dataclass
class LoginSession:
    code_verifier: str
    state: str
    redirect_uri: str
    server: CallbackServer
    result: "queue.Queue[Optional[BaseException]]" = field(default_factory=lambda: queue.Queue(maxsize=1))

    def publish(self, error: Optional[BaseException]) -> None:
        # Best-effort single-slot signal: a second outcome is dropped.
        try:
            self.result.put_nowait(error)
        except queue.Full:
            pass


class SessionManager:
    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        *,
        token_manager: TokenManager,
        credential_store: CredentialStore,
        token_endpoint: Optional[SpotifyTokenEndpoint] = None,
        loader: Optional[SpotifyLibraryLoader] = None,
        callback_host: str = DEFAULT_CALLBACK_HOST,
        callback_port: int = DEFAULT_CALLBACK_PORT,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or {}
        self.token_manager = token_manager
        self.credential_store = credential_store
        self.token_endpoint = token_endpoint or SpotifyTokenEndpoint(self.credentials, clock=clock)
        self.loader = loader or SpotifyLibraryLoader(SpotifyClient())
        self.callback_host = callback_host
        self.callback_port = int(callback_port)
        self._clock = clock

        self._lock = threading.Lock()
        self._tokens: Optional[TokenInfo] = None
        self._profile: Optional[UserProfile] = None
        self._login: Optional[LoginSession] = None
        self._state = AuthState.UNAUTHENTICATED

    @classmethod
    def from_config(cls, config: Dict[str, Any], data_dir: str) -> "SessionManager":
        timeout = float(config.get("spotify_request_timeout", 30))
        coordinator = PageFetchCoordinator(
            int(config.get("page_worker_count", WORKER_COUNT)),
            show_progress=bool(config.get("show_progress", False)),
        )
        credential_store = CredentialStore(data_dir)

        def credentials() -> ClientCredentials:
            return credential_store.resolve(config)

        return cls(
            config,
            token_manager=TokenManager(cache_path=os.path.join(data_dir, TOKEN_FILE_NAME)),
            credential_store=credential_store,
            token_endpoint=SpotifyTokenEndpoint(credentials, timeout=timeout),
            loader=SpotifyLibraryLoader(SpotifyClient(timeout=timeout), coordinator),
            callback_host=str(config.get("spotify_callback_host") or DEFAULT_CALLBACK_HOST),
            callback_port=int(config.get("spotify_callback_port", DEFAULT_CALLBACK_PORT)),
        )

    @property
    def state(self) -> AuthState:
        with self._lock:
            return self._state

    def credentials(self) -> ClientCredentials:
        return self.credential_store.resolve(self.config)

    def set_client_credentials(self, client_id: str, client_secret: str) -> None:
        """Store override credentials; empty values clear the override."""
        self.credential_store.set_client_id_override(client_id)
        self.credential_store.set_client_secret_override(client_secret)

    # -----------------
    # Login
    # -----------------

    def start_login(self, cancel: Optional[threading.Event] = None) -> LoginResponse:
        """Open the loopback listener and return the Spotify authorize URL."""
        credentials = self.credentials()
        if not credentials.client_id:
            raise MissingClientCredentialsError("Missing Spotify client id")

        with self._lock:
            if self._login is not None:
                previous = self._login
                previous.server.close()
                # Give the old listener a moment to release the fixed port.
                previous.server.wait_closed(timeout=1.0)
                previous.publish(LoginCancelledError("Superseded by a new login attempt"))
                self._login = None

            pkce = generate_pkce_pair()
            server = CallbackServer(host=self.callback_host, port=self.callback_port)
            login = LoginSession(
                code_verifier=pkce.code_verifier,
                state=generate_state(),
                redirect_uri=server.redirect_uri,
                server=server,
            )
            url = build_authorize_url(
                client_id=credentials.client_id,
                redirect_uri=login.redirect_uri,
                state=login.state,
                code_challenge=pkce.code_challenge,
                scopes=self.config.get("spotify_scopes") or DEFAULT_SCOPES,
                show_dialog=bool(self.config.get("spotify_show_dialog", True)),
            )

            self._login = login
            self._state = AuthState.LOGIN_PENDING
            server.start(
                lambda query: self._handle_callback(login, query),
                cancel=cancel,
                on_cancel=lambda: self._abandon_login(login),
            )

        logger.info("Spotify login started; waiting for callback on %s", login.redirect_uri)
        return LoginResponse(url=url, redirect_uri=login.redirect_uri)

    def wait_for_login(self, timeout: Optional[float] = None) -> None:
        """Block until the active login attempt reports its outcome."""
        with self._lock:
            login = self._login
        if login is None:
            raise SpotifyLibraryError("No Spotify login attempt in progress")

        try:
            error = login.result.get(timeout=timeout)
        except queue.Empty:
            raise LoginTimeoutError(f"No Spotify callback received within {timeout} seconds")
        if error is not None:
            raise error

    def _handle_callback(self, login: LoginSession, query: Dict[str, str]) -> Tuple[int, str]:
        with self._lock:
            status, body, error = self._complete_login_locked(login, query)
            if error is not None:
                logger.error("Spotify login failed: %s", error)
                if self._login is login:
                    self._state = AuthState.AUTHENTICATED if self._tokens else AuthState.UNAUTHENTICATED
            login.publish(error)
            return status, body

    def _complete_login_locked(
        self, login: LoginSession, query: Dict[str, str]
    ) -> Tuple[int, str, Optional[BaseException]]:
        state = (query.get("state") or "").strip()
        code = (query.get("code") or "").strip()
        if not state or not code:
            reason = query.get("error") or "missing state or code"
            return 400, _error_page("invalid response from Spotify."), MalformedCallbackError(
                f"Invalid callback from Spotify: {reason}"
            )

        if self._login is not login or not hmac.compare_digest(state, login.state):
            return 400, _error_page("state mismatch."), StateMismatchError(
                "OAuth state mismatch; refusing to exchange the authorization code"
            )

        try:
            tokens = self.token_endpoint.exchange_code(
                code=code, redirect_uri=login.redirect_uri, code_verifier=login.code_verifier
            )
            self._save_tokens_locked(tokens)
            self._profile = self._fetch_profile_locked()
        except Exception as e:
            return 500, _error_page("could not complete the token exchange."), e

        self._state = AuthState.AUTHENTICATED
        logger.info("Spotify login completed for %s", self._profile.display_name or self._profile.id)
        return 200, SUCCESS_PAGE, None

    def _abandon_login(self, login: LoginSession) -> None:
        login.publish(LoginCancelledError("Spotify login was cancelled"))
        with self._lock:
            if self._login is login and self._state == AuthState.LOGIN_PENDING:
                self._state = AuthState.AUTHENTICATED if self._tokens else AuthState.UNAUTHENTICATED
        logger.info("Spotify login cancelled; callback listener closed")

    # -----------------
    # Status / logout
    # -----------------

    def status(self, cancel: Optional[threading.Event] = None) -> AuthStatus:
        with self._lock:
            if self._tokens is None:
                self._tokens = self.token_manager.load()
                if self._tokens is not None and self._state == AuthState.UNAUTHENTICATED:
                    self._state = AuthState.AUTHENTICATED

            if self._tokens is None:
                return AuthStatus(authenticated=False)

            if cancel is not None and cancel.is_set():
                raise OperationCancelledError("Spotify status check was cancelled")
            self._ensure_fresh_locked()

            if self._profile is None:
                self._profile = self._fetch_profile_locked()

            return AuthStatus(
                authenticated=True,
                display_name=self._profile.display_name,
                user_id=self._profile.id,
                avatar_url=self._profile.avatar_url,
                expires_at=self._tokens.expires_at,
                scope=self._tokens.scope,
            )

    def logout(self) -> None:
        with self._lock:
            self._tokens = None
            self._profile = None
            if self._state != AuthState.LOGIN_PENDING:
                self._state = AuthState.UNAUTHENTICATED
            self.token_manager.clear()
        logger.info("Spotify tokens cleared")

    # -----------------
    # Library
    # -----------------

    def fetch_playlists(self, cancel: Optional[threading.Event] = None) -> List[PlaylistSummary]:
        return self.loader.list_playlists(self._fresh_token(), cancel)

    def fetch_saved_tracks(self, cancel: Optional[threading.Event] = None) -> List[CanonicalTrack]:
        return self.loader.load_saved_tracks(self._fresh_token(), cancel)

    def fetch_playlist_with_tracks(
        self, playlist_id: str, cancel: Optional[threading.Event] = None
    ) -> PlaylistWithTracks:
        return self.loader.load_playlist_with_tracks(playlist_id, self._fresh_token(), cancel)

    def _fresh_token(self) -> TokenInfo:
        # The lock covers only token bookkeeping; page fetches run outside it.
        with self._lock:
            if self._tokens is None:
                self._tokens = self.token_manager.load()
            if self._tokens is None:
                raise NotAuthenticatedError("Not authenticated with Spotify")
            if self._state == AuthState.UNAUTHENTICATED:
                self._state = AuthState.AUTHENTICATED
            return self._ensure_fresh_locked()

    # -----------------
    # Internals (caller holds the lock)
    # -----------------

    def _ensure_fresh_locked(self) -> TokenInfo:
        if self._tokens is None:
            raise NotAuthenticatedError("No Spotify token available")

        if not TokenManager.is_stale(self._tokens, now=self._clock()):
            return self._tokens

        if not self._tokens.refresh_token:
            self._drop_tokens_locked()
            raise MissingRefreshTokenError("Spotify token expired and no refresh token is stored")

        previous_state = self._state
        self._state = AuthState.REFRESHING
        try:
            refreshed = self.token_endpoint.refresh(refresh_token=self._tokens.refresh_token)
        except RefreshError as e:
            if e.is_irrecoverable:
                logger.warning("Spotify refresh token rejected; signing out")
                self._drop_tokens_locked()
            else:
                self._state = previous_state
            raise
        except BaseException:
            self._state = previous_state
            raise

        self._save_tokens_locked(refreshed)
        self._state = previous_state
        logger.debug("Spotify access token refreshed; expires at %s", refreshed.expires_at)
        return refreshed

    def _save_tokens_locked(self, tokens: TokenInfo) -> None:
        self.token_manager.save(tokens)
        self._tokens = tokens

    def _drop_tokens_locked(self) -> None:
        self._tokens = None
        self._profile = None
        self._state = AuthState.UNAUTHENTICATED
        self.token_manager.clear()

    def _fetch_profile_locked(self) -> UserProfile:
        return self.loader.fetch_profile(self._ensure_fresh_locked())
