import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

TOKEN_FILE_NAME = "spotify_oauth.json"

# Tokens with fewer seconds than this left are refreshed before use.
REFRESH_SKEW_SECONDS = 30


@dataclass(frozen=True)
class TokenInfo:
    """Canonical token record stored by TokenManager."""

    access_token: str
    token_type: str
    expires_at: int
    refresh_token: str = ""
    scope: str = ""

    @staticmethod
    def from_spotify_token_response(
        payload: Dict[str, Any],
        *,
        now: Optional[float] = None,
        previous_refresh_token: str = "",
    ) -> "TokenInfo":
        """Convert Spotify token response JSON into TokenInfo.

        Spotify returns:
        - access_token
        - token_type
        - expires_in (seconds)
        - refresh_token (optional; omitted on most refreshes)
        - scope (space-delimited string)
        """

        issued_at = int(time.time() if now is None else now)
        expires_in = int(payload.get("expires_in") or 0)

        return TokenInfo(
            access_token=str(payload.get("access_token") or ""),
            token_type=str(payload.get("token_type") or "Bearer"),
            expires_at=issued_at + expires_in,
            refresh_token=str(payload.get("refresh_token") or previous_refresh_token or ""),
            scope=str(payload.get("scope") or ""),
        )

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "TokenInfo":
        return TokenInfo(
            access_token=str(data.get("access_token") or ""),
            token_type=str(data.get("token_type") or "Bearer"),
            expires_at=int(data.get("expires_at") or 0),
            refresh_token=str(data.get("refresh_token") or ""),
            scope=str(data.get("scope") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "scope": self.scope,
            "token_type": self.token_type,
        }

    def seconds_left(self, *, now: Optional[float] = None) -> float:
        return float(self.expires_at) - float(time.time() if now is None else now)


class TokenManager:
    """Persists the token record as a private JSON file."""

    def __init__(self, *, cache_path: str):
        self.cache_path = cache_path

    def ensure_cache_dir(self) -> None:
        parent = os.path.dirname(self.cache_path)
        if parent:
            os.makedirs(parent, mode=0o700, exist_ok=True)

    def load(self) -> Optional[TokenInfo]:
        """Load the token record; None when absent or unreadable."""
        if not os.path.exists(self.cache_path):
            return None

        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable token file %s: %s", self.cache_path, e)
            return None

        if not isinstance(data, dict):
            logger.warning("Ignoring token file %s: not a JSON object", self.cache_path)
            return None

        try:
            token = TokenInfo.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring token file %s with invalid fields: %s", self.cache_path, e)
            return None
        if not token.access_token:
            return None
        return token

    def save(self, token: TokenInfo) -> None:
        """Replace the token file with `token` (owner-only permissions)."""
        if not token.access_token:
            raise ValueError("Refusing to persist a token record without an access token")

        self.ensure_cache_dir()
        directory = os.path.dirname(self.cache_path) or "."
        fd, tmp_path = tempfile.mkstemp(prefix=".spotify_oauth.", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(token.to_dict(), f, indent=2)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.cache_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def clear(self) -> None:
        try:
            os.remove(self.cache_path)
        except FileNotFoundError:
            pass

    @staticmethod
    def is_stale(token: TokenInfo, *, now: Optional[float] = None, skew_seconds: int = REFRESH_SKEW_SECONDS) -> bool:
        return token.seconds_left(now=now) < float(skew_seconds)
