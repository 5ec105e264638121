import json
import logging
import os
import urllib.parse
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Type

import httpx

from .errors import MissingClientCredentialsError, RefreshError, TokenEndpointError, TokenExchangeError
from .token_manager import TokenInfo

logger = logging.getLogger(__name__)

SPOTIFY_ACCOUNTS_BASE_URL = "https://accounts.spotify.com"
SPOTIFY_AUTHORIZE_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/authorize"
SPOTIFY_TOKEN_URL = f"{SPOTIFY_ACCOUNTS_BASE_URL}/api/token"

# Read-only access to the user's library and playlists.
DEFAULT_SCOPES = [
    "user-library-read",
    "playlist-read-private",
    "playlist-read-collaborative",
]

# Exportify's public Client ID (convenient fallback, but could change upstream).
# There is no public secret; set one through env, override file or config.
BUILTIN_CLIENT_ID = "d99b082b01d74d61a100c9a0e056380b"
BUILTIN_CLIENT_SECRET = ""

CLIENT_ID_ENV = "SPOTIFY_CLIENT_ID"
CLIENT_SECRET_ENV = "SPOTIFY_CLIENT_SECRET"
CLIENT_ID_FILE = "spotify_client_id"
CLIENT_SECRET_FILE = "spotify_client_secret"


@dataclass(frozen=True)
class ClientCredentials:
    client_id: str
    client_secret: str
    client_id_source: str = "builtin"
    client_secret_source: str = "builtin"

    @property
    def complete(self) -> bool:
        return bool(self.client_id and self.client_secret)


class CredentialStore:
    """Resolves the Spotify app credentials.

    Each value is taken from the first non-empty source:
    environment variable, override file in the data dir, config key, built-in default.
    """

    def __init__(self, data_dir: str, *, environ: Optional[Dict[str, str]] = None):
        self.data_dir = data_dir
        self.environ = os.environ if environ is None else environ

    def _path(self, name: str) -> str:
        return os.path.join(self.data_dir, name)

    def _read_override(self, name: str) -> str:
        try:
            with open(self._path(name), "r", encoding="utf-8") as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""

    def _write_override(self, name: str, value: str) -> None:
        value = (value or "").strip()
        path = self._path(name)
        if not value:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            return

        os.makedirs(self.data_dir, mode=0o700, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(value)

    def set_client_id_override(self, client_id: str) -> None:
        """Persist a custom client id (empty clears it)."""
        self._write_override(CLIENT_ID_FILE, client_id)

    def set_client_secret_override(self, client_secret: str) -> None:
        """Persist a custom client secret (empty clears it)."""
        self._write_override(CLIENT_SECRET_FILE, client_secret)

    def _resolve_one(self, env_key: str, file_name: str, config_value: Any, builtin: str):
        candidates = (
            ("env", self.environ.get(env_key, "")),
            ("override_file", self._read_override(file_name)),
            ("config", config_value),
        )
        for source, value in candidates:
            value = str(value or "").strip()
            if value:
                return value, source
        return builtin, "builtin"

    def resolve(self, config: Optional[Dict[str, Any]] = None) -> ClientCredentials:
        config = config or {}
        client_id, id_source = self._resolve_one(
            CLIENT_ID_ENV, CLIENT_ID_FILE, config.get("spotify_client_id"), BUILTIN_CLIENT_ID
        )
        client_secret, secret_source = self._resolve_one(
            CLIENT_SECRET_ENV, CLIENT_SECRET_FILE, config.get("spotify_client_secret"), BUILTIN_CLIENT_SECRET
        )
        return ClientCredentials(
            client_id=client_id,
            client_secret=client_secret,
            client_id_source=id_source,
            client_secret_source=secret_source,
        )


def build_authorize_url(
    *,
    client_id: str,
    redirect_uri: str,
    state: str,
    code_challenge: str,
    scopes: Optional[Iterable[str]] = None,
    show_dialog: bool = True,
) -> str:
    scope_list = list(scopes if scopes is not None else DEFAULT_SCOPES)
    scope_str = " ".join([str(s).strip() for s in scope_list if str(s).strip()])

    params: Dict[str, str] = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "state": state,
        "scope": scope_str,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "show_dialog": "true" if show_dialog else "false",
    }
    return f"{SPOTIFY_AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"


def spotify_app_setup_instructions(*, redirect_uri: str = "http://127.0.0.1:3000/callback") -> str:
    """Return user-facing setup instructions for creating a Spotify Developer app."""

    redirect_uri = str(redirect_uri or "").strip() or "http://127.0.0.1:3000/callback"
    return (
        "Spotify app setup:\n"
        "1) Go to https://developer.spotify.com/dashboard\n"
        "2) Create an app (or select an existing app)\n"
        f"3) Add this Redirect URI in the app settings: {redirect_uri}\n"
        "4) Copy the Client ID and Client Secret into the 'Set client credentials' menu,\n"
        f"   or export {CLIENT_ID_ENV} / {CLIENT_SECRET_ENV}\n\n"
        "Notes:\n"
        "- If port 3000 is busy a random port is used; add that redirect URI too if login fails.\n"
        "- Redirect URI must match *exactly* what you configure in the Spotify dashboard.\n"
    )


class SpotifyTokenEndpoint:
    """Talks to the accounts token endpoint (code exchange + refresh)."""

    def __init__(
        self,
        credentials: Callable[[], ClientCredentials],
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self._credentials = credentials
        self.timeout = float(timeout)
        self._transport = transport
        self._clock = clock

    def _now(self) -> Optional[float]:
        return self._clock() if self._clock is not None else None

    def exchange_code(self, *, code: str, redirect_uri: str, code_verifier: str) -> TokenInfo:
        payload = self._post_form(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "code_verifier": code_verifier,
            },
            TokenExchangeError,
        )
        token = TokenInfo.from_spotify_token_response(payload, now=self._now())
        if not token.access_token:
            raise TokenExchangeError(f"Spotify token exchange returned no access token: {payload}")
        return token

    def refresh(self, *, refresh_token: str) -> TokenInfo:
        payload = self._post_form(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
            RefreshError,
        )

        # Spotify may omit refresh_token on refresh; keep existing.
        token = TokenInfo.from_spotify_token_response(
            payload, now=self._now(), previous_refresh_token=refresh_token
        )
        if not token.access_token:
            raise RefreshError(f"Spotify token refresh returned no access token: {payload}")
        return token

    def _post_form(self, form: Dict[str, Any], error_cls: Type[TokenEndpointError]) -> Dict[str, Any]:
        credentials = self._credentials()
        if not credentials.complete:
            raise MissingClientCredentialsError(
                "Missing Spotify client credentials (client id and client secret are both required)"
            )

        data = {k: str(v) for k, v in (form or {}).items() if v is not None}
        grant = data.get("grant_type", "")

        try:
            with httpx.Client(timeout=self.timeout, follow_redirects=False, transport=self._transport) as client:
                resp = client.post(
                    SPOTIFY_TOKEN_URL,
                    data=data,
                    auth=(credentials.client_id, credentials.client_secret),
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as e:
            raise error_cls(f"Spotify token request ({grant}) failed: {e}") from e

        if resp.status_code != 200:
            logger.warning("Spotify token request (%s) returned HTTP %s", grant, resp.status_code)
            raise error_cls(
                f"Spotify token request ({grant}) failed (HTTP {resp.status_code}): {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            payload = resp.json()
        except json.JSONDecodeError as e:
            raise error_cls(f"Spotify token response was not JSON: {resp.text}", body=resp.text) from e

        if not isinstance(payload, dict):
            raise error_cls(f"Spotify token response was not an object: {payload}", body=resp.text)

        return payload
