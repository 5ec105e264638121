"""One-shot loopback HTTP listener used as the OAuth redirect target.

The server binds 127.0.0.1, preferring a fixed port so the redirect URI
registered with Spotify usually matches, and falls back to an ephemeral port
when the fixed one is taken. It serves on a background thread until either a
`/callback` request has been handled, `close()` is called, or the caller's
cancel event fires. Each accepted connection is read on its own thread with a
socket timeout, so an idle client never holds up the accept loop. The
listening socket is released on every one of those paths.
"""

import logging
import threading
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_CALLBACK_HOST = "127.0.0.1"
DEFAULT_CALLBACK_PORT = 3000
CALLBACK_PATH = "/callback"

# Browsers open speculative connections that may never send a request line.
REQUEST_TIMEOUT_SECONDS = 5.0

# handler(query) -> (http status, html body)
CallbackHandler = Callable[[Dict[str, str]], Tuple[int, str]]

_ALREADY_HANDLED_PAGE = "<html><body><p>This login response was already handled.</p></body></html>"


class _LoopbackHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    # server_close() must not wait for handler threads stuck on idle sockets.
    block_on_close = False
    callback_server: "CallbackServer"


class _RequestHandler(BaseHTTPRequestHandler):
    server: _LoopbackHTTPServer
    timeout = REQUEST_TIMEOUT_SECONDS

    def do_GET(self):
        parsed = urllib.parse.urlparse(self.path)
        if parsed.path != CALLBACK_PATH:
            self._respond(404, "<html><body><p>Not found.</p></body></html>")
            return

        query = {k: v[0] for k, v in urllib.parse.parse_qs(parsed.query, keep_blank_values=True).items() if v}
        status, body = self.server.callback_server.dispatch(query)
        self._respond(status, body)

    def _respond(self, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format, *args):
        logger.debug("callback server: " + format, *args)


class CallbackServer:
    """Ephemeral listener that accepts exactly one `/callback` request."""

    def __init__(
        self,
        *,
        host: str = DEFAULT_CALLBACK_HOST,
        port: int = DEFAULT_CALLBACK_PORT,
        poll_interval: float = 0.1,
    ):
        self.poll_interval = float(poll_interval)
        self._httpd = self._bind(host, int(port))
        self._httpd.callback_server = self
        self._httpd.timeout = self.poll_interval
        self._handler: Optional[CallbackHandler] = None
        self._on_cancel: Optional[Callable[[], None]] = None
        self._cancel: Optional[threading.Event] = None
        self._claim_lock = threading.Lock()
        self._claimed = False
        self._done = threading.Event()
        self._closed = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @staticmethod
    def _bind(host: str, port: int) -> _LoopbackHTTPServer:
        try:
            return _LoopbackHTTPServer((host, port), _RequestHandler)
        except OSError as e:
            if port == 0:
                raise
            logger.info("Callback port %s busy (%s); falling back to an ephemeral port", port, e)
            return _LoopbackHTTPServer((host, 0), _RequestHandler)

    @property
    def host(self) -> str:
        return str(self._httpd.server_address[0])

    @property
    def port(self) -> int:
        return int(self._httpd.server_address[1])

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}{CALLBACK_PATH}"

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def start(
        self,
        handler: CallbackHandler,
        *,
        cancel: Optional[threading.Event] = None,
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> "CallbackServer":
        if self._thread is not None:
            raise RuntimeError("Callback server already started")
        self._handler = handler
        self._cancel = cancel
        self._on_cancel = on_cancel
        self._thread = threading.Thread(target=self._serve, name=f"spotify-callback-{self.port}", daemon=True)
        self._thread.start()
        return self

    def dispatch(self, query: Dict[str, str]) -> Tuple[int, str]:
        # One callback per listener, whatever its outcome.
        with self._claim_lock:
            if self._claimed:
                return 409, _ALREADY_HANDLED_PAGE
            self._claimed = True
        self._done.set()
        if self._handler is None:
            return 503, "<html><body><p>Login is not ready.</p></body></html>"
        return self._handler(query)

    def _serve(self) -> None:
        cancelled = False
        try:
            while not self._done.is_set():
                if self._cancel is not None and self._cancel.is_set():
                    cancelled = True
                    break
                # Accepts at most one connection and hands it to a handler thread.
                self._httpd.handle_request()
        finally:
            self._httpd.server_close()
            self._closed.set()
            logger.debug("Callback server on port %s closed", self.port)

        if cancelled and self._on_cancel is not None:
            self._on_cancel()

    def close(self) -> None:
        """Stop serving; the socket is released by the serve thread within one poll interval."""
        self._done.set()
        if self._thread is None and not self._closed.is_set():
            self._httpd.server_close()
            self._closed.set()

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        return self._closed.wait(timeout)

    def __enter__(self) -> "CallbackServer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
