from concurrent.futures import Future, InvalidStateError
from datetime import datetime, timezone
import os
import yaml
import tempfile
import stat
import shutil
import time

from typing import Callable, Optional

from . import constants
from .constants import CONFIG_FILE_PATH, EPHEMERAL_CREDS_ENV_VAR


class LoopAuthException ( Exception ):
    '''Exception type used for the errors of a sign-in attempt.'''

    def __init__(self, message, code=None):
        """
        Initialize the exception with a message and an optional status code.

        Args:
            message (str): The error message.
            code (int, optional): An optional status code returned by the provider. Defaults to None.
        """
        super().__init__(message)
        self.code = code


class BindError( LoopAuthException ):
    '''No loopback port could be acquired for the callback server.'''
    pass


class NonceMismatch( LoopAuthException ):
    '''A request carried a nonce that does not belong to this sign-in attempt.'''
    pass


class ProviderDenied( LoopAuthException ):
    '''The identity provider redirected back with an OAuth error instead of a code.'''

    def __init__( self, error, description = None ):
        message = "Provider denied authorization: %s" % ( error, )
        if description:
            message = "%s - %s" % ( message, description )
        super().__init__( message )
        self.error = error
        self.description = description


class TimedOut( LoopAuthException ):
    '''No callback was received before the deadline.'''
    pass


class UserCancelled( LoopAuthException ):
    '''The user cancelled the sign-in attempt.'''
    pass


class ExchangeRejected( LoopAuthException ):
    '''The token endpoint refused the exchange.'''

    def __init__( self, error, description = None, code = None ):
        message = "Token exchange rejected: %s" % ( error, )
        if description:
            message = "%s - %s" % ( message, description )
        super().__init__( message, code = code )
        self.error = error
        self.description = description


class InvalidToken( LoopAuthException ):
    '''The provider could not resolve an access token to an identity.'''
    pass


class NetworkError( LoopAuthException ):
    '''The provider could not be reached.'''
    pass


class AccountNotFound( LoopAuthException ):
    '''No stored credentials exist for the requested account.'''
    pass


# Default function to call with debug messages.
DEFAULT_PRINT_DEBUG_FN: Optional[Callable[[str], None]] = None

def set_default_print_debug_fn( fn: Optional[Callable[[str], None]] = None ):
    """
    Set a default function to call with debug messages.

    Args:
        fn (function): the function to call with debug messages.
    """
    global DEFAULT_PRINT_DEBUG_FN
    DEFAULT_PRINT_DEBUG_FN = fn

def makeDebugPrinter( fn: Optional[Callable[[str], None]] = None ) -> Callable[[str], None]:
    '''Build a function that timestamps messages and hands them to fn (or the default debug function).

    Args:
        fn (function): the function to call with debug messages.

    Returns:
        a callable taking a message, doing nothing when no debug function is set.
    '''
    def _printDebug( msg ):
        target = fn or DEFAULT_PRINT_DEBUG_FN
        if target is not None:
            time_string = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%SZ")
            target( f"{time_string}: {msg}" )
    return _printDebug


class PendingResult( object ):
    '''Single-assignment result slot.

    The first call to resolve() or reject() settles the slot, every later
    call is a no-op returning False. Consumers wait on the underlying future.
    '''

    def __init__( self ):
        self._future = Future()

    @property
    def future( self ) -> Future:
        return self._future

    def is_done( self ) -> bool:
        return self._future.done()

    def resolve( self, value ) -> bool:
        try:
            self._future.set_result( value )
        except InvalidStateError:
            return False
        return True

    def reject( self, exc: BaseException ) -> bool:
        try:
            self._future.set_exception( exc )
        except InvalidStateError:
            return False
        return True


class CancellationToken( object ):
    '''Cancellation signal handed to a sign-in attempt by the surrounding UI.'''

    def __init__( self ):
        self._signal = PendingResult()

    def cancel( self ):
        '''Request cancellation. Calling it more than once has no further effect.'''
        self._signal.resolve( True )

    @property
    def is_cancelled( self ) -> bool:
        return self._signal.is_done()

    def on_cancel( self, callback: Callable[[], None] ):
        '''Run callback once when cancellation is requested, or right away if it already was.'''
        self._signal.future.add_done_callback( lambda _: callback() )


def _isEphemeral():
    return bool( os.environ.get( EPHEMERAL_CREDS_ENV_VAR ) )

def loadCredentials():
    """
    Load credentials from config file.

    Returns:
        dict: Loaded credentials or None if file doesn't exist
    """
    # If ephemeral credentials mode is enabled, skip disk operations entirely
    if _isEphemeral():
        return None

    try:
        with open(CONFIG_FILE_PATH, 'rb') as f:
            return yaml.safe_load(f.read())
    except FileNotFoundError:
        return None

def writeCredentials( conf ):
    """
    Securely write the credentials configuration to a file on disk.

    Args:
        conf (dict): full configuration to write, replacing the file content.
    """
    if _isEphemeral():
        return

    content = yaml.safe_dump( conf, default_flow_style = False ).encode()

    # For security reasons we first write it to a temporary file, chmod it and
    # then move it to a final location. Without doing that, there is a potential race condition
    # with the file being written to and read from by another user (before we chmod it).
    fd, tmp_path = tempfile.mkstemp()

    os.chmod( tmp_path, stat.S_IWUSR | stat.S_IRUSR )  # 0o600

    try:
        try:
            os.write(fd, content)
        finally:
            os.close(fd)

        # Move is an atomic operation on unix.
        shutil.move(tmp_path, CONFIG_FILE_PATH)
    finally:
        if os.path.isfile(tmp_path):
            os.unlink(tmp_path)


class CredentialsFileStore( object ):
    '''Refresh tokens of signed-in accounts, kept under "accounts" in the credentials file.

    In ephemeral mode nothing touches the disk and the accounts only live
    as long as this object.
    '''

    def __init__( self ):
        self._memory = {}

    def _load( self ):
        if _isEphemeral():
            return self._memory
        return loadCredentials() or {}

    def _save( self, conf ):
        if _isEphemeral():
            self._memory = conf
            return
        writeCredentials( conf )

    def store( self, account, refresh_token, scope = None ):
        '''Persist the refresh token of an account, replacing any previous one.

        Args:
            account (str): account key, usually the email address.
            refresh_token (str): long-lived refresh token.
            scope (str): scopes granted with the token.
        '''
        conf = self._load()
        conf.setdefault( 'accounts', {} )
        entry = {
            'refresh_token': refresh_token,
            'signed_in_at': int( time.time() ),
        }
        if scope:
            entry[ 'scope' ] = scope
        conf[ 'accounts' ][ account ] = entry
        self._save( conf )

    def get( self, account ):
        '''Get the stored entry of an account, or None.'''
        return ( self._load().get( 'accounts' ) or {} ).get( account, None )

    def delete( self, account ):
        '''Forget an account.

        Returns:
            True if the account was known.
        '''
        conf = self._load()
        accounts = conf.get( 'accounts' ) or {}
        if account not in accounts:
            return False
        accounts.pop( account )
        conf[ 'accounts' ] = accounts
        self._save( conf )
        return True

    def accounts( self ):
        '''Get all stored accounts as a dict of account -> entry.'''
        return dict( self._load().get( 'accounts' ) or {} )


def loadFlowRequest( client_id = None, client_secret = None, scopes = None, auth_url = None, timeout = None ):
    '''Build the FlowRequest of a sign-in attempt.

    Each value is taken from the first source that has it: the arguments,
    the LOOPAUTH_* environment variables, the "client" section of the
    credentials file and finally the defaults.

    Returns:
        a FlowRequest.
    '''
    from .oauth_flow import FlowRequest

    client = ( loadCredentials() or {} ).get( 'client' ) or {}

    client_id = client_id or os.environ.get( constants.CLIENT_ID_ENV_VAR ) or client.get( 'id' )
    if not client_id:
        raise LoopAuthException( "No OAuth client id configured, set %s or the client section of %s" % ( constants.CLIENT_ID_ENV_VAR, CONFIG_FILE_PATH ) )
    client_secret = client_secret or os.environ.get( constants.CLIENT_SECRET_ENV_VAR ) or client.get( 'secret' ) or ''

    if not scopes:
        envScopes = os.environ.get( constants.SCOPES_ENV_VAR )
        if envScopes:
            scopes = envScopes.split()
        else:
            scopes = client.get( 'scopes' ) or constants.DEFAULT_SCOPES

    auth_url = auth_url or os.environ.get( constants.AUTH_URL_ENV_VAR ) or client.get( 'auth_url' ) or constants.AUTH_URL

    if timeout is None:
        timeout = client.get( 'timeout', constants.OAUTH_CALLBACK_TIMEOUT )

    return FlowRequest( client_id, client_secret, scopes, auth_url, timeout )
