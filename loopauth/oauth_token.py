"""
Token endpoint calls of the authorization code flow.

- exchange(): trade an authorization code for a TokenSet
- validate(): resolve an access token to the identity it was issued for
- refresh(): get a fresh access token from a stored refresh token

See:
https://developers.google.com/identity/protocols/oauth2/native-app#exchange-authorization-code
"""

import time
from typing import Callable, Dict, Optional

import requests

from .constants import HTTP_TIMEOUT, TOKEN_URL, TOKENINFO_URL
from .request_utils import getCurlCommandString
from .utils import ExchangeRejected, InvalidToken, NetworkError, makeDebugPrinter


class TokenSet:
    """Tokens returned by the token endpoint.

    The refresh token is a long-lived secret; callers own its storage.
    """

    def __init__(self, access_token: str, token_type: str, expires_in: int,
                 refresh_token: Optional[str], granted_scope: str, expires_at: Optional[int] = None):
        self.access_token = access_token
        self.token_type = token_type
        self.expires_in = expires_in
        self.refresh_token = refresh_token
        self.granted_scope = granted_scope
        self.expires_at = expires_at if expires_at is not None else int(time.time()) + expires_in

    @classmethod
    def from_response(cls, data: Dict, refresh_token: Optional[str] = None) -> 'TokenSet':
        """
        Build a TokenSet from a token endpoint response.

        Args:
            data: Decoded JSON body of the response
            refresh_token: Refresh token to keep when the response carries none
        """
        return cls(
            access_token=data['access_token'],
            token_type=data.get('token_type', 'Bearer'),
            expires_in=int(data.get('expires_in', 3600)),
            refresh_token=data.get('refresh_token') or refresh_token,
            granted_scope=data.get('scope', ''),
        )

    def __repr__(self):
        return 'TokenSet(token_type=%r, expires_at=%r, granted_scope=%r)' % (
            self.token_type, self.expires_at, self.granted_scope)


class Identity:
    """Account an access token was issued for."""

    def __init__(self, email: str, audience: Optional[str], scope: str, expires_in: int, access_token: str):
        self.email = email
        self.audience = audience
        self.scope = scope
        self.expires_in = expires_in
        self.access_token = access_token

    def __repr__(self):
        return 'Identity(email=%r, audience=%r)' % (self.email, self.audience)


def _json_body(response: requests.Response) -> Dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class TokenExchangeClient:
    """Talks to the provider's token and token-info endpoints."""

    def __init__(self, token_url: str = TOKEN_URL, tokeninfo_url: str = TOKENINFO_URL,
                 timeout: float = HTTP_TIMEOUT, session: Optional[requests.Session] = None,
                 print_debug_fn: Optional[Callable[[str], None]] = None):
        self._token_url = token_url
        self._tokeninfo_url = tokeninfo_url
        self._timeout = timeout
        self._session = session or requests.Session()
        self._print_debug = makeDebugPrinter(print_debug_fn)

    def exchange(self, code: str, redirect_uri: str, client_id: str, client_secret: str) -> TokenSet:
        """
        Exchange an authorization code for tokens.

        Args:
            code: Authorization code received on the loopback callback
            redirect_uri: The exact redirect URI sent with the authorization request
            client_id: OAuth client ID
            client_secret: OAuth client secret

        Returns:
            TokenSet

        Raises:
            ExchangeRejected: If the provider refuses the code
            NetworkError: If the provider cannot be reached
        """
        return self._token_request({
            'code': code,
            'redirect_uri': redirect_uri,
            'client_id': client_id,
            'client_secret': client_secret,
            'grant_type': 'authorization_code',
        })

    def refresh(self, refresh_token: str, client_id: str, client_secret: str) -> TokenSet:
        """
        Get a fresh access token from a refresh token.

        Raises:
            ExchangeRejected: If the refresh token is revoked or expired
            NetworkError: If the provider cannot be reached
        """
        return self._token_request({
            'refresh_token': refresh_token,
            'client_id': client_id,
            'client_secret': client_secret,
            'grant_type': 'refresh_token',
        }, refresh_token=refresh_token)

    def validate(self, access_token: str, client_id: Optional[str] = None) -> Identity:
        """
        Confirm an access token is live and get the identity behind it.

        Args:
            access_token: The access token to check
            client_id: When given, the token must have been issued to this client

        Returns:
            Identity

        Raises:
            InvalidToken: If the provider cannot resolve the token
            NetworkError: If the provider cannot be reached
        """
        prepared = requests.Request('GET', self._tokeninfo_url, params={'access_token': access_token}).prepare()
        response = self._send(prepared)
        data = _json_body(response)

        if response.status_code != 200:
            detail = data.get('error_description') or data.get('error') or 'HTTP %d' % response.status_code
            raise InvalidToken("Token validation failed: %s" % (detail,), code=response.status_code)

        email = data.get('email')
        if not email:
            raise InvalidToken("Token validation failed: no email claim in token info")

        audience = data.get('aud') or data.get('azp')
        if client_id is not None and audience != client_id:
            raise InvalidToken("Token validation failed: token was issued to another client")

        try:
            expires_in = int(data.get('expires_in', 0))
        except (TypeError, ValueError):
            raise InvalidToken("Token validation failed: malformed expires_in in token info")

        return Identity(
            email=email,
            audience=audience,
            scope=data.get('scope', ''),
            expires_in=expires_in,
            access_token=access_token,
        )

    def _token_request(self, payload: Dict[str, str], refresh_token: Optional[str] = None) -> TokenSet:
        prepared = requests.Request(
            'POST',
            self._token_url,
            data=payload,
            headers={'Content-Type': 'application/x-www-form-urlencoded'}
        ).prepare()
        response = self._send(prepared)
        data = _json_body(response)

        if response.status_code != 200 or 'error' in data:
            raise ExchangeRejected(
                data.get('error') or 'http_%d' % response.status_code,
                data.get('error_description'),
                code=response.status_code
            )
        if 'access_token' not in data:
            raise ExchangeRejected('invalid_response', 'no access_token in token response', code=response.status_code)

        try:
            return TokenSet.from_response(data, refresh_token=refresh_token)
        except (TypeError, ValueError) as e:
            raise ExchangeRejected('invalid_response', 'malformed token response: %s' % (e,), code=response.status_code)

    def _send(self, prepared: requests.PreparedRequest) -> requests.Response:
        self._print_debug("cURL command:")
        self._print_debug(getCurlCommandString(prepared))
        try:
            response = self._session.send(prepared, timeout=self._timeout)
        except requests.exceptions.RequestException as e:
            raise NetworkError("Failed to reach %s: %s" % (prepared.url.split('?')[0], e))
        self._print_debug("%s %s ==> %s" % (prepared.method, prepared.url.split('?')[0], response.status_code))
        return response
