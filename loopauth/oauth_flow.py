"""
Authorization code flow for native applications, using a loopback redirect.

One call to AuthorizationCodeFlow.run() is one sign-in attempt:

1. A LoopbackAuthServer is started on an ephemeral port of 127.0.0.1.
2. The user's browser is opened on http://127.0.0.1:{port}/signin?nonce=...,
   which redirects to the provider's consent screen. The local server owns
   the provider URL so only the loopback address goes through the OS.
3. The attempt settles on whichever happens first: the server receives the
   callback, the timeout elapses, or the user cancels.
4. The server keeps serving for a short grace delay so the browser can
   still load the final page, then it is stopped.
"""

import threading
import time
import urllib.parse
import webbrowser
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Callable, Iterable, Optional

from .constants import LOOPBACK_HOST, OAUTH_CALLBACK_TIMEOUT, SERVER_GRACE_DELAY
from .oauth_server import LoopbackAuthServer, build_redirect_uri
from .utils import CancellationToken, PendingResult, TimedOut, UserCancelled, makeDebugPrinter

TIMED_OUT_ERROR = "Timed out waiting for the sign in callback."
USER_CANCELLATION_ERROR = "User cancelled."


class FlowRequest:
    """Immutable input of one sign-in attempt."""

    __slots__ = ('_client_id', '_client_secret', '_scopes', '_auth_url', '_timeout')

    def __init__(self, client_id: str, client_secret: str, scopes: Iterable[str], auth_url: str,
                 timeout: float = OAUTH_CALLBACK_TIMEOUT):
        self._client_id = client_id
        self._client_secret = client_secret
        self._scopes = tuple(scopes)
        self._auth_url = auth_url
        self._timeout = timeout

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def client_secret(self) -> str:
        return self._client_secret

    @property
    def scopes(self) -> tuple:
        return self._scopes

    @property
    def scope(self) -> str:
        """Scopes as sent on the wire, space-joined in request order."""
        return ' '.join(self._scopes)

    @property
    def auth_url(self) -> str:
        return self._auth_url

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def provider_host(self) -> str:
        return urllib.parse.urlsplit(self._auth_url).netloc

    def __repr__(self):
        # The client secret stays out of reprs and debug output.
        return 'FlowRequest(client_id=%r, scopes=%r, auth_url=%r, timeout=%r)' % (
            self._client_id, self._scopes, self._auth_url, self._timeout)


class AuthResponse:
    """Authorization code of a successful attempt, with what is needed to rebuild its redirect URI."""

    def __init__(self, code: str, port: int, nonce: str):
        self.code = code
        self.port = port
        self.nonce = nonce

    @property
    def redirect_uri(self) -> str:
        return build_redirect_uri(self.port, self.nonce)

    def __repr__(self):
        return 'AuthResponse(port=%r)' % (self.port,)


class AuthorizationCodeFlow:
    """Runs sign-in attempts against the provider's authorization endpoint."""

    def __init__(self, open_url: Callable[[str], bool] = webbrowser.open,
                 grace_delay: float = SERVER_GRACE_DELAY, media_dir: Optional[str] = None,
                 print_debug_fn: Optional[Callable[[str], None]] = None,
                 server_factory: Callable[..., LoopbackAuthServer] = LoopbackAuthServer):
        """
        Initialize the flow.

        Args:
            open_url: Opens a URL in the user's default browser, returns False when it could not
            grace_delay: Seconds the loopback server keeps serving after the attempt settled
            media_dir: Optional directory with the index.html shown once signed in
            print_debug_fn: Function receiving debug messages
            server_factory: Builds the loopback server, given the login URL
        """
        self._open_url = open_url
        self._grace_delay = grace_delay
        self._media_dir = media_dir
        self._print_debug_fn = print_debug_fn
        self._server_factory = server_factory
        self._print_debug = makeDebugPrinter(print_debug_fn)
        self._teardown_lock = threading.Lock()
        self._stop_timers = []

    @staticmethod
    def build_login_url(request: FlowRequest) -> str:
        """Build the provider authorization URL, without the redirect URI added by the loopback server."""
        params = urllib.parse.urlencode([
            ('client_id', request.client_id),
            ('response_type', 'code'),
            ('scope', request.scope),
        ])
        separator = '&' if urllib.parse.urlsplit(request.auth_url).query else '?'
        return '%s%s%s' % (request.auth_url, separator, params)

    def run(self, request: FlowRequest, cancellation: Optional[CancellationToken] = None) -> AuthResponse:
        """
        Run one sign-in attempt.

        The timeout counts from the start of the attempt. The browser is opened
        on its own thread, so a slow or blocking open_url neither delays the
        timeout nor holds back a cancellation.

        Args:
            request: The attempt's client, scopes, provider and timeout
            cancellation: Optional token the UI uses to cancel the attempt

        Returns:
            AuthResponse with the authorization code

        Raises:
            TimedOut, UserCancelled, ProviderDenied, NonceMismatch, BindError
        """
        if cancellation is not None and cancellation.is_cancelled:
            raise UserCancelled(USER_CANCELLATION_ERROR)

        deadline = time.monotonic() + request.timeout
        server = self._server_factory(self.build_login_url(request), media_dir=self._media_dir,
                                      print_debug_fn=self._print_debug_fn)
        try:
            port = server.start()
            signin_url = 'http://%s:%d/signin?nonce=%s' % (
                LOOPBACK_HOST, port, urllib.parse.quote(server.nonce, safe=''))

            outcome = self._race(server.await_result(), cancellation)

            opener = threading.Thread(target=self._open_browser, args=(signin_url,), name='loopauth-open-url')
            opener.daemon = True
            opener.start()

            result = self._wait(outcome, deadline)
            return AuthResponse(result['code'], port, server.nonce)
        finally:
            self._schedule_stop(server)

    def wait_for_teardown(self, timeout: Optional[float] = None):
        """Block until the servers of finished attempts are stopped."""
        with self._teardown_lock:
            timers = list(self._stop_timers)
        for timer in timers:
            timer.join(timeout)

    def _open_browser(self, signin_url: str):
        try:
            opened = self._open_url(signin_url)
        except webbrowser.Error as e:
            self._print_debug("failed to open the browser: %s" % (e,))
            opened = False
        if not opened:
            print("\nCould not open browser. Please visit this URL to sign in:\n%s\n" % (signin_url,))

    def _race(self, server_result: Future, cancellation: Optional[CancellationToken]) -> PendingResult:
        # The server, the timeout and the cancellation each try to settle the
        # outcome; the first one wins and the others become no-ops.
        outcome = PendingResult()

        def _on_server_result(future: Future):
            if future.cancelled():
                return
            exc = future.exception()
            if exc is not None:
                outcome.reject(exc)
            else:
                outcome.resolve(future.result())

        server_result.add_done_callback(_on_server_result)
        if cancellation is not None:
            cancellation.on_cancel(lambda: outcome.reject(UserCancelled(USER_CANCELLATION_ERROR)))
        return outcome

    def _wait(self, outcome: PendingResult, deadline: float):
        try:
            return outcome.future.result(timeout=max(0.0, deadline - time.monotonic()))
        except FutureTimeoutError:
            outcome.reject(TimedOut(TIMED_OUT_ERROR))
            # Another source may have won between the deadline and the reject.
            return outcome.future.result()

    def _schedule_stop(self, server: LoopbackAuthServer):
        if self._grace_delay <= 0:
            server.stop()
            return
        self._print_debug("loopback server stops in %s seconds" % (self._grace_delay,))
        timer = threading.Timer(self._grace_delay, server.stop)
        timer.daemon = True
        with self._teardown_lock:
            self._stop_timers = [t for t in self._stop_timers if t.is_alive()]
            self._stop_timers.append(timer)
        timer.start()
