"""
Loopback HTTP server for the OAuth 2.0 native-app redirect flow.

The server binds an ephemeral port on 127.0.0.1 and serves three routes:

- /signin?nonce=N redirects the browser to the provider's consent screen,
  asking the provider to come back to /callback?nonce=N.
- /callback?nonce=N&code=C (or &error=E) settles the pending result of the
  attempt and, on success, redirects the browser to /.
- / serves a static "you are signed in" page.

See: https://developers.google.com/identity/protocols/oauth2/native-app#redirect-uri_loopback
"""

import hmac
import html
import http.server
import os
import secrets
import threading
import urllib.parse
from concurrent.futures import Future
from typing import Callable, Dict, List, Optional

from .constants import LOOPBACK_HOST
from .utils import BindError, LoopAuthException, NonceMismatch, PendingResult, ProviderDenied, makeDebugPrinter


class ServerState:
    """Lifecycle of a LoopbackAuthServer. An instance goes through it once."""
    IDLE = 'idle'
    LISTENING = 'listening'
    AWAITING_CALLBACK = 'awaiting_callback'
    RESOLVED = 'resolved'
    STOPPED = 'stopped'


_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>{title}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: #1e1e1e;
            color: #ffffff;
            display: flex;
            align-items: center;
            justify-content: center;
            min-height: 100vh;
            margin: 0;
        }}
        .container {{
            text-align: center;
            padding: 48px 40px;
            max-width: 500px;
            width: 90%;
            border-radius: 16px;
            background: rgba(255, 255, 255, 0.05);
        }}
        .title {{
            font-size: 28px;
            font-weight: 500;
            margin-bottom: 16px;
        }}
        .error-message {{
            font-size: 16px;
            color: #F02463;
            padding: 12px 20px;
            border-radius: 8px;
            font-family: 'Courier New', monospace;
            background: rgba(240, 36, 99, 0.1);
        }}
        .message {{
            font-size: 16px;
            color: rgba(255, 255, 255, 0.7);
            line-height: 1.6;
        }}
    </style>
</head>
<body>
    <div class="container">
        <h1 class="title">{title}</h1>
        {body}
    </div>
</body>
</html>
"""

_SIGNED_IN_BODY = """<p class="message">
            You are signed in now and can close this page.
        </p>"""

_ERROR_BODY = """<div class="error-message">{error_msg}</div>
        <p class="message">
            The sign in process encountered an error.<br>
            Please return to your application and try again.
        </p>"""


def _render_page(title: str, body: str) -> bytes:
    return _PAGE_TEMPLATE.format(title=html.escape(title), body=body).encode('utf-8')


def _first(params: Dict[str, List[str]], name: str) -> Optional[str]:
    values = params.get(name)
    if not values:
        return None
    return values[0]


class LoopbackCallbackHandler(http.server.BaseHTTPRequestHandler):
    """Routes browser requests to the LoopbackAuthServer owning this listener."""

    def __init__(self, *args, auth_server=None, **kwargs):
        self.auth_server = auth_server
        super().__init__(*args, **kwargs)

    def do_GET(self):
        parsed = urllib.parse.urlparse(self.path)
        params = urllib.parse.parse_qs(parsed.query)

        if parsed.path == '/signin':
            self._handle_signin(params)
        elif parsed.path == '/callback':
            self._handle_callback(params)
        elif parsed.path == '/':
            self._handle_index()
        else:
            self.send_error_response(404, "Not Found")

    def _handle_signin(self, params):
        if not self.auth_server.is_valid_nonce(_first(params, 'nonce')):
            self.send_error_response(400, "Invalid sign in request: nonce mismatch")
            return

        self.auth_server.mark_awaiting_callback()
        self.send_redirect(self.auth_server.provider_url)

    def _handle_callback(self, params):
        if not self.auth_server.is_valid_nonce(_first(params, 'nonce')):
            # Never look at a code carried by a request that is not ours.
            self.auth_server.reject(NonceMismatch("Callback nonce does not match this sign in attempt"))
            self.send_error_response(400, "Nonce does not match")
            return

        error = _first(params, 'error')
        if error is not None:
            self.auth_server.reject(ProviderDenied(error, _first(params, 'error_description')))
            self.send_error_response(400, error)
            return

        code = _first(params, 'code')
        if not code:
            self.auth_server.reject(ProviderDenied('invalid_response', 'callback carried neither code nor error'))
            self.send_error_response(400, "Missing authorization code")
            return

        self.auth_server.resolve({'code': code})
        self.send_redirect('/')

    def _handle_index(self):
        self.send_response(200)
        self.send_header('Content-type', 'text/html; charset=utf-8')
        self.end_headers()
        self.wfile.write(self.auth_server.index_page())
        self.wfile.flush()

    def send_redirect(self, location: str):
        self.send_response(302)
        self.send_header('Location', location)
        self.send_header('Content-Length', '0')
        self.end_headers()

    def send_error_response(self, status: int, error_msg: str):
        """Send an error page with the given status."""
        self.send_response(status)
        self.send_header('Content-type', 'text/html; charset=utf-8')
        self.end_headers()
        body = _ERROR_BODY.format(error_msg=html.escape(error_msg))
        self.wfile.write(_render_page("Sign In Failed", body))
        self.wfile.flush()

    def log_message(self, format, *args):
        """Send request logs to the debug function instead of stderr."""
        self.auth_server.print_debug("loopback server: %s" % (format % args,))


class LoopbackAuthServer:
    """Short-lived local HTTP server capturing the authorization code of one sign-in attempt."""

    def __init__(self, login_url: str, media_dir: Optional[str] = None, state: Optional[str] = None,
                 nonce: Optional[str] = None, print_debug_fn: Optional[Callable[[str], None]] = None):
        """
        Initialize the loopback server.

        Args:
            login_url: Provider authorization URL carrying client_id, response_type and scope
            media_dir: Optional directory holding the index.html served on /
            state: Optional state value forwarded to the provider
            nonce: Nonce of this attempt, a random one is generated when omitted
            print_debug_fn: Function receiving debug messages
        """
        self._login_url = login_url
        self._media_dir = media_dir
        self._state_param = state
        self._nonce = nonce or secrets.token_urlsafe(32)
        self._pending = PendingResult()
        self._httpd = None
        self._thread = None
        self._port = None
        self._state = ServerState.IDLE
        self._stop_lock = threading.Lock()
        self.print_debug = makeDebugPrinter(print_debug_fn)

    @property
    def nonce(self) -> str:
        return self._nonce

    @property
    def port(self) -> Optional[int]:
        return self._port

    @property
    def state(self) -> str:
        return self._state

    @property
    def redirect_uri(self) -> str:
        """Redirect URI registered with the provider for this attempt."""
        if self._port is None:
            raise LoopAuthException("Loopback server is not started")
        return build_redirect_uri(self._port, self._nonce)

    @property
    def provider_url(self) -> str:
        """Provider authorization URL the /signin route redirects to."""
        parts = urllib.parse.urlsplit(self._login_url)
        query = urllib.parse.parse_qsl(parts.query, keep_blank_values=True)
        query.append(('redirect_uri', self.redirect_uri))
        if self._state_param:
            query.append(('state', self._state_param))
        return urllib.parse.urlunsplit(parts._replace(query=urllib.parse.urlencode(query)))

    def start(self) -> int:
        """
        Start listening on an ephemeral loopback port.

        Returns:
            The port number the server is listening on

        Raises:
            BindError: If no port could be acquired
        """
        if self._state != ServerState.IDLE:
            raise LoopAuthException("Loopback server can only be started once (state: %s)" % self._state)

        handler = lambda *args, **kwargs: LoopbackCallbackHandler(
            *args,
            auth_server=self,
            **kwargs
        )

        try:
            self._httpd = http.server.ThreadingHTTPServer((LOOPBACK_HOST, 0), handler)
        except OSError as e:
            raise BindError("Failed to bind a loopback port: %s" % (e,))
        self._httpd.daemon_threads = True
        self._port = self._httpd.server_address[1]

        self._thread = threading.Thread(target=self._httpd.serve_forever, kwargs={'poll_interval': 0.2})
        self._thread.daemon = True
        self._thread.start()

        with self._stop_lock:
            if self._state == ServerState.IDLE:
                self._state = ServerState.LISTENING
        self.print_debug("loopback server listening on %s:%d" % (LOOPBACK_HOST, self._port))
        return self._port

    def await_result(self) -> Future:
        """
        Get the future settled by the /callback route.

        It resolves to {'code': ...} or fails with NonceMismatch or
        ProviderDenied, exactly once.
        """
        return self._pending.future

    def stop(self):
        """Stop the server and release the port. Safe to call any number of times."""
        with self._stop_lock:
            httpd = self._httpd
            self._httpd = None
            self._state = ServerState.STOPPED
        if httpd is None:
            return

        try:
            httpd.shutdown()
        except Exception as e:
            self.print_debug("loopback server shutdown failed: %s" % (e,))
        try:
            httpd.server_close()
        except OSError as e:
            self.print_debug("loopback server close failed: %s" % (e,))

        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=1)
        self.print_debug("loopback server stopped")

    def is_valid_nonce(self, value: Optional[str]) -> bool:
        if value is None:
            return False
        return hmac.compare_digest(value.encode('utf-8'), self._nonce.encode('utf-8'))

    def mark_awaiting_callback(self):
        with self._stop_lock:
            if self._state == ServerState.LISTENING:
                self._state = ServerState.AWAITING_CALLBACK

    def resolve(self, value) -> bool:
        if not self._pending.resolve(value):
            self.print_debug("loopback server: late callback ignored")
            return False
        self._mark_resolved()
        return True

    def reject(self, exc: BaseException) -> bool:
        if not self._pending.reject(exc):
            self.print_debug("loopback server: late callback ignored (%s)" % (exc,))
            return False
        self._mark_resolved()
        return True

    def _mark_resolved(self):
        # Stopped is terminal.
        with self._stop_lock:
            if self._state != ServerState.STOPPED:
                self._state = ServerState.RESOLVED

    def index_page(self) -> bytes:
        if self._media_dir:
            path = os.path.join(self._media_dir, 'index.html')
            if os.path.isfile(path):
                with open(path, 'rb') as f:
                    return f.read()
        return _render_page("Signed In", _SIGNED_IN_BODY)


def build_redirect_uri(port: int, nonce: str) -> str:
    """Build the loopback redirect URI of an attempt, identical for the consent and exchange requests."""
    return 'http://%s:%d/callback?nonce=%s' % (LOOPBACK_HOST, port, urllib.parse.quote(nonce, safe=''))
