"""loopauth: OAuth 2.0 sign in for desktop applications using the loopback redirect flow"""

__version__ = "1.0.0"
__license__ = "Apache v2"

from .oauth_flow import AuthorizationCodeFlow, AuthResponse, FlowRequest
from .oauth_server import LoopbackAuthServer, ServerState
from .oauth_token import Identity, TokenExchangeClient, TokenSet
from .signin import get_account_token, perform_signin, perform_signout
from .utils import (AccountNotFound, BindError, CancellationToken, CredentialsFileStore, ExchangeRejected,
                    InvalidToken, LoopAuthException, NetworkError, NonceMismatch, PendingResult, ProviderDenied,
                    TimedOut, UserCancelled, loadFlowRequest, set_default_print_debug_fn)
