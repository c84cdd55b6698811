import os

# Path to the configuration file. Can be overriden for tests.
CONFIG_FILE_PATH = os.environ.get( 'LOOPAUTH_CREDS_FILE', None ) or os.path.expanduser( '~/.loopauth' )

# Ephemeral credentials mode - when set, disables all credential persistence to disk.
# Refresh tokens obtained while it is set only live in memory for the current process.
EPHEMERAL_CREDS_ENV_VAR = 'LOOPAUTH_EPHEMERAL_CREDS'

# Environment variables consulted when building a sign-in request.
CLIENT_ID_ENV_VAR = 'LOOPAUTH_CLIENT_ID'
CLIENT_SECRET_ENV_VAR = 'LOOPAUTH_CLIENT_SECRET'
SCOPES_ENV_VAR = 'LOOPAUTH_SCOPES'
AUTH_URL_ENV_VAR = 'LOOPAUTH_AUTH_URL'

# Identity provider endpoints (Google).
# See: https://developers.google.com/identity/protocols/oauth2/native-app
AUTH_URL = 'https://accounts.google.com/o/oauth2/auth'
TOKEN_URL = 'https://oauth2.googleapis.com/token'
TOKENINFO_URL = 'https://oauth2.googleapis.com/tokeninfo'

DEFAULT_SCOPES = (
    'https://www.googleapis.com/auth/userinfo.email',
    'https://www.googleapis.com/auth/earthengine',
    'https://www.googleapis.com/auth/devstorage.full_control',
)

# Loopback server.
LOOPBACK_HOST = '127.0.0.1'
OAUTH_CALLBACK_TIMEOUT = 300  # 5 minutes
SERVER_GRACE_DELAY = 5  # seconds the server keeps serving after the flow settled

# Outbound HTTP requests to the provider.
HTTP_TIMEOUT = 10

# Static pages served by the loopback server.
MEDIA_DIR = os.path.join( os.path.dirname( os.path.abspath( __file__ ) ), 'media' )
