import os
import sys
import tempfile

import pytest
import requests

# Get the directory of the current conftest.py file
current_dir = os.path.dirname(os.path.abspath(__file__))

# Calculate the project root (adjust the number of ".." if needed)
project_root = os.path.abspath(os.path.join(current_dir, '../../'))

# Insert the project root at the beginning of sys.path
if project_root not in sys.path:
    sys.path.insert(0, project_root)


@pytest.fixture
def loopback_get():
    """GET a loopback URL without following redirects or going through a proxy."""
    session = requests.Session()
    session.trust_env = False

    def _get(url):
        return session.get(url, allow_redirects=False, timeout=5)

    yield _get
    session.close()


@pytest.fixture
def creds_file(monkeypatch):
    """Point the credentials file to a fresh temporary path."""
    import loopauth.utils

    fd, file_path = tempfile.mkstemp()
    os.close(fd)
    os.unlink(file_path)
    monkeypatch.setattr(loopauth.utils, "CONFIG_FILE_PATH", file_path)
    monkeypatch.delenv("LOOPAUTH_EPHEMERAL_CREDS", raising=False)
    for name in ("LOOPAUTH_CLIENT_ID", "LOOPAUTH_CLIENT_SECRET", "LOOPAUTH_SCOPES", "LOOPAUTH_AUTH_URL"):
        monkeypatch.delenv(name, raising=False)
    yield file_path
    if os.path.isfile(file_path):
        os.unlink(file_path)
