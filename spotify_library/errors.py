from typing import Optional


class SpotifyLibraryError(RuntimeError):
    """Base class for every error raised by spotify_library."""


class MalformedCallbackError(SpotifyLibraryError):
    """The loopback callback arrived without a state or code parameter."""


class StateMismatchError(SpotifyLibraryError):
    """The callback state does not belong to the active login attempt (possible CSRF/replay)."""


class MissingClientCredentialsError(SpotifyLibraryError):
    """No usable client id / client secret could be resolved."""


class NotAuthenticatedError(SpotifyLibraryError):
    """An operation needed a Spotify token but none is stored."""


class MissingRefreshTokenError(SpotifyLibraryError):
    """The stored token is stale and carries no refresh token."""


class TokenEndpointError(SpotifyLibraryError):
    """A request to the accounts token endpoint failed."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TokenExchangeError(TokenEndpointError):
    pass


class RefreshError(TokenEndpointError):
    @property
    def is_irrecoverable(self) -> bool:
        # 400 invalid_grant / 401 invalid_client: the refresh token is dead.
        return self.status_code in (400, 401)


class SpotifyRequestError(SpotifyLibraryError):
    """Transport failure or undecodable body from the Web API."""


class HTTPStatusError(SpotifyLibraryError):
    """Non-2xx response from the Web API; the body is kept for diagnostics."""

    def __init__(self, status_code: int, body: str, url: str = ""):
        super().__init__(f"Spotify API error {status_code} for {url or 'request'}: {body}")
        self.status_code = status_code
        self.body = body
        self.url = url


class OperationCancelledError(SpotifyLibraryError):
    pass


class PaginationError(SpotifyLibraryError):
    """A page fetch failed; carries the offset of the failing page."""

    def __init__(self, offset: int, error: BaseException):
        super().__init__(f"failed fetching page at offset {offset}: {error}")
        self.offset = offset
        self.error = error


class LoginCancelledError(SpotifyLibraryError):
    pass


class LoginTimeoutError(SpotifyLibraryError):
    pass
