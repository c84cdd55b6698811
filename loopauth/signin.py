"""
Sign in, sign out and account tokens on top of the authorization code flow.

A successful sign in stores the refresh token under the account email in the
secret store and tells the user through the notifier. Collaborators are duck
typed:

- secret store: store(account, refresh_token, scope=None), get(account),
  delete(account), accounts()
- notifier: notify(level, message) with level "info", "warning" or "error"
"""

from typing import Callable, Optional

import yaml

from .oauth_flow import AuthorizationCodeFlow, FlowRequest
from .oauth_token import Identity, TokenExchangeClient, TokenSet
from .utils import (AccountNotFound, CancellationToken, LoopAuthException, NonceMismatch, TimedOut,
                    UserCancelled, makeDebugPrinter)


def perform_signin(request: FlowRequest, secret_store, notifier,
                   flow: Optional[AuthorizationCodeFlow] = None,
                   token_client: Optional[TokenExchangeClient] = None,
                   cancellation: Optional[CancellationToken] = None,
                   print_debug_fn: Optional[Callable[[str], None]] = None) -> Optional[Identity]:
    """
    Sign in to the provider and remember the account.

    Args:
        request: Client, scopes, provider and timeout of the attempt
        secret_store: Where the refresh token is stored
        notifier: Receives the outcome for the user
        flow: Authorization code flow to use
        token_client: Token endpoint client to use
        cancellation: Token the UI uses to cancel the attempt
        print_debug_fn: Function receiving debug messages

    Returns:
        The signed in Identity, or None if the sign in did not complete
    """
    printDebug = makeDebugPrinter(print_debug_fn)
    flow = flow or AuthorizationCodeFlow(print_debug_fn=print_debug_fn)
    token_client = token_client or TokenExchangeClient(print_debug_fn=print_debug_fn)

    try:
        auth_response = flow.run(request, cancellation=cancellation)
        tokens = token_client.exchange(
            auth_response.code,
            auth_response.redirect_uri,
            request.client_id,
            request.client_secret
        )
        identity = token_client.validate(tokens.access_token, client_id=request.client_id)
    except UserCancelled:
        printDebug("sign in cancelled by user")
        notifier.notify('info', "Sign in cancelled.")
        return None
    except TimedOut as e:
        printDebug("sign in timed out: %s" % (e,))
        notifier.notify('warning', "Sign in timed out.")
        return None
    except NonceMismatch as e:
        printDebug("sign in rejected a callback with a foreign nonce, possible forged request: %s" % (e,))
        notifier.notify('error', "Sign in to %s failed: the callback did not match this sign in attempt." % (request.provider_host,))
        return None
    except LoopAuthException as e:
        printDebug("sign in failed: %s" % (e,))
        notifier.notify('error', "Sign in to %s failed: %s" % (request.provider_host, e))
        return None

    if tokens.refresh_token:
        try:
            secret_store.store(identity.email, tokens.refresh_token, scope=tokens.granted_scope)
        except (OSError, yaml.YAMLError) as e:
            printDebug("failed to store the account %s: %s" % (identity.email, e))
            notifier.notify('error', "Signed in as %s but the account could not be saved: %s" % (identity.email, e))
            return None
    else:
        printDebug("no refresh token returned for %s, account not stored" % (identity.email,))

    notifier.notify('info', "You are now signed in as %s." % (identity.email,))
    return identity


def perform_signout(account: str, secret_store, notifier) -> bool:
    """
    Forget a signed in account and its refresh token.

    Returns:
        True if the account was signed in
    """
    if not secret_store.delete(account):
        notifier.notify('warning', "Account %s is not signed in." % (account,))
        return False
    notifier.notify('info', "Signed out of %s." % (account,))
    return True


def get_account_token(account: str, request: FlowRequest, secret_store,
                      token_client: Optional[TokenExchangeClient] = None) -> TokenSet:
    """
    Get a fresh access token for a signed in account.

    Args:
        account: Account key the refresh token was stored under
        request: Provides the client id and secret
        secret_store: Where the refresh token is stored
        token_client: Token endpoint client to use

    Returns:
        TokenSet carrying the new access token

    Raises:
        AccountNotFound: If the account is not signed in
        ExchangeRejected: If the refresh token is no longer valid
        NetworkError: If the provider cannot be reached
    """
    entry = secret_store.get(account)
    if not entry or not entry.get('refresh_token'):
        raise AccountNotFound("Account %s is not signed in" % (account,))

    token_client = token_client or TokenExchangeClient()
    return token_client.refresh(entry['refresh_token'], request.client_id, request.client_secret)
