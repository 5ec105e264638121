"""Spotify account session + library retrieval.

Integration points:
- menus/account_menu.py (interactive login, status and library browsing)
- main.py builds one SessionManager at startup and passes it around
"""

from .auth import ClientCredentials, CredentialStore, SpotifyTokenEndpoint
from .callback_server import CallbackServer
from .client import SpotifyClient
from .data_loader import SpotifyLibraryLoader
from .errors import (
    HTTPStatusError,
    LoginCancelledError,
    LoginTimeoutError,
    MalformedCallbackError,
    MissingClientCredentialsError,
    MissingRefreshTokenError,
    NotAuthenticatedError,
    OperationCancelledError,
    PaginationError,
    RefreshError,
    SpotifyLibraryError,
    SpotifyRequestError,
    StateMismatchError,
    TokenExchangeError,
)
from .models import AuthStatus, CanonicalTrack, LoginResponse, PlaylistSummary, PlaylistWithTracks, UserProfile
from .pagination import PageFetchCoordinator
from .session import AuthState, SessionManager
from .token_manager import TokenInfo, TokenManager

__all__ = [
    "AuthState",
    "AuthStatus",
    "CallbackServer",
    "CanonicalTrack",
    "ClientCredentials",
    "CredentialStore",
    "HTTPStatusError",
    "LoginCancelledError",
    "LoginResponse",
    "LoginTimeoutError",
    "MalformedCallbackError",
    "MissingClientCredentialsError",
    "MissingRefreshTokenError",
    "NotAuthenticatedError",
    "OperationCancelledError",
    "PageFetchCoordinator",
    "PaginationError",
    "PlaylistSummary",
    "PlaylistWithTracks",
    "RefreshError",
    "SessionManager",
    "SpotifyClient",
    "SpotifyLibraryError",
    "SpotifyLibraryLoader",
    "SpotifyRequestError",
    "SpotifyTokenEndpoint",
    "StateMismatchError",
    "TokenExchangeError",
    "TokenInfo",
    "TokenManager",
    "UserProfile",
]
