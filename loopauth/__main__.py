import sys


def _eprint( msg ):
    sys.stderr.write( msg )
    sys.stderr.write( "\n" )


def cli(args):
    """
    Command line interface for loopauth.

    Args:
        args (list): list of CLI arguments to parse.
    """
    import argparse
    import threading
    import webbrowser

    from . import utils
    from .constants import MEDIA_DIR
    from .oauth_flow import AuthorizationCodeFlow
    from .oauth_token import TokenExchangeClient
    from .signin import perform_signin, perform_signout, get_account_token
    from .term_utils import ConsoleNotifier, formatAccounts

    parser = argparse.ArgumentParser( prog = 'loopauth' )
    parser.add_argument( 'action',
                         type = str,
                         help = 'action to perform, currently supported "signin" (sign in with the browser), "signout" (forget an account), "accounts" (list signed in accounts), "token" (print a fresh access token for an account), "version"' )

    # Hack around a bit so that we can pass the help
    # to the proper sub-command line.
    rootArgs = args[ 1: 2 ]

    # Everything after the command name and the action name that is passed
    # to the action argument parser.
    actionArgs = args[ 2: ]
    args = parser.parse_args( rootArgs )

    def add_client_args( parser ):
        parser.add_argument( '--client-id',
                             type = str,
                             default = None,
                             help = 'OAuth client ID (default: $LOOPAUTH_CLIENT_ID or the credentials file)' )
        parser.add_argument( '--client-secret',
                             type = str,
                             default = None,
                             help = 'OAuth client secret (default: $LOOPAUTH_CLIENT_SECRET or the credentials file)' )
        parser.add_argument( '--debug',
                             action = 'store_true',
                             help = 'print debug messages to stderr' )

    store = utils.CredentialsFileStore()
    notifier = ConsoleNotifier()

    if args.action.lower() == 'version':
        from . import __version__
        print( "loopauth version %s" % ( __version__, ) )
    elif args.action.lower() == 'signin':
        parser = argparse.ArgumentParser( prog = 'loopauth signin' )
        add_client_args( parser )
        parser.add_argument( '--scope',
                             type = str,
                             action = 'append',
                             default = None,
                             help = 'scope to request, can be repeated (default: the configured scopes)' )
        parser.add_argument( '--timeout',
                             type = float,
                             default = None,
                             help = 'seconds to wait for the browser sign in (default: 300)' )
        parser.add_argument( '--no-browser',
                             action = 'store_true',
                             help = 'print the sign in URL instead of opening the browser' )
        signinArgs = parser.parse_args( actionArgs )

        debugFn = _eprint if signinArgs.debug else None
        try:
            request = utils.loadFlowRequest( client_id = signinArgs.client_id,
                                             client_secret = signinArgs.client_secret,
                                             scopes = signinArgs.scope,
                                             timeout = signinArgs.timeout )
        except utils.LoopAuthException as e:
            _eprint( str( e ) )
            sys.exit( 1 )

        if signinArgs.no_browser:
            # The flow prints the URL when it could not be opened.
            openUrl = lambda url: False
        else:
            openUrl = webbrowser.open

        flow = AuthorizationCodeFlow( open_url = openUrl, media_dir = MEDIA_DIR, print_debug_fn = debugFn )
        cancellation = utils.CancellationToken()
        result = {}

        def _signin():
            result[ 'identity' ] = perform_signin( request, store, notifier,
                                                   flow = flow,
                                                   token_client = TokenExchangeClient( print_debug_fn = debugFn ),
                                                   cancellation = cancellation,
                                                   print_debug_fn = debugFn )

        worker = threading.Thread( target = _signin, name = 'loopauth-signin' )
        worker.daemon = True
        worker.start()
        print( "Waiting for sign in to %s, press Ctrl-C to cancel..." % ( request.provider_host, ) )
        try:
            while worker.is_alive():
                worker.join( 0.5 )
        except KeyboardInterrupt:
            cancellation.cancel()
            worker.join()

        # Wait for the loopback server to stop after its grace delay.
        flow.wait_for_teardown()

        if result.get( 'identity' ) is None:
            sys.exit( 1 )
    elif args.action.lower() == 'signout':
        parser = argparse.ArgumentParser( prog = 'loopauth signout' )
        parser.add_argument( 'account',
                             type = str,
                             help = 'account to sign out of' )
        signoutArgs = parser.parse_args( actionArgs )
        if not perform_signout( signoutArgs.account, store, notifier ):
            sys.exit( 1 )
    elif args.action.lower() == 'accounts':
        print( formatAccounts( store.accounts() ) )
    elif args.action.lower() == 'token':
        parser = argparse.ArgumentParser( prog = 'loopauth token' )
        parser.add_argument( 'account',
                             type = str,
                             help = 'signed in account to get an access token for' )
        add_client_args( parser )
        tokenArgs = parser.parse_args( actionArgs )

        debugFn = _eprint if tokenArgs.debug else None
        try:
            request = utils.loadFlowRequest( client_id = tokenArgs.client_id,
                                             client_secret = tokenArgs.client_secret )
            tokens = get_account_token( tokenArgs.account, request, store,
                                        token_client = TokenExchangeClient( print_debug_fn = debugFn ) )
        except utils.LoopAuthException as e:
            _eprint( str( e ) )
            sys.exit( 1 )
        print( tokens.access_token )
    else:
        _eprint( "Unknown action: %s" % ( args.action, ) )
        sys.exit( 1 )


def main():
    cli( sys.argv )


if __name__ == "__main__":
    main()
