import os
import stat
import threading

import pytest
import yaml

import loopauth.utils
from loopauth.utils import (CancellationToken, CredentialsFileStore, LoopAuthException, PendingResult,
                            loadCredentials, loadFlowRequest, makeDebugPrinter, set_default_print_debug_fn)


class TestPendingResult:

    def test_first_resolution_wins(self):
        pending = PendingResult()
        assert pending.resolve({'code': 'A'}) is True
        assert pending.resolve({'code': 'B'}) is False
        assert pending.reject(ValueError("late")) is False
        assert pending.future.result(timeout=0) == {'code': 'A'}

    def test_reject(self):
        pending = PendingResult()
        assert pending.reject(ValueError("boom")) is True
        assert pending.resolve('late') is False
        with pytest.raises(ValueError):
            pending.future.result(timeout=0)

    def test_concurrent_resolution_settles_once(self):
        pending = PendingResult()
        wins = []
        barrier = threading.Barrier(8)

        def _resolve(i):
            barrier.wait()
            if pending.resolve(i):
                wins.append(i)

        threads = [threading.Thread(target=_resolve, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(wins) == 1
        assert pending.future.result(timeout=0) == wins[0]


class TestCancellationToken:

    def test_callbacks_run_once(self):
        token = CancellationToken()
        calls = []
        token.on_cancel(lambda: calls.append(1))
        assert not token.is_cancelled

        token.cancel()
        token.cancel()

        assert token.is_cancelled
        assert calls == [1]

    def test_callback_registered_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []
        token.on_cancel(lambda: calls.append(1))
        assert calls == [1]


class TestDebugPrinter:

    def test_explicit_function(self):
        messages = []
        makeDebugPrinter(messages.append)("hello")
        assert len(messages) == 1
        assert messages[0].endswith(": hello")

    def test_default_function(self):
        messages = []
        set_default_print_debug_fn(messages.append)
        try:
            makeDebugPrinter()("hello")
        finally:
            set_default_print_debug_fn(None)
        assert len(messages) == 1

    def test_no_function(self):
        makeDebugPrinter()("nobody listens")


class TestCredentialsFileStore:

    def test_store_and_get(self, creds_file):
        store = CredentialsFileStore()
        store.store('user@example.com', '1//refresh', scope='openid email')

        entry = store.get('user@example.com')
        assert entry['refresh_token'] == '1//refresh'
        assert entry['scope'] == 'openid email'
        assert 'signed_in_at' in entry

        with open(creds_file, 'r') as f:
            conf = yaml.safe_load(f)
        assert conf['accounts']['user@example.com']['refresh_token'] == '1//refresh'

    def test_file_is_private(self, creds_file):
        CredentialsFileStore().store('user@example.com', '1//refresh')

        file_stat = os.stat(creds_file)
        assert stat.S_IMODE(file_stat.st_mode) == 0o600

    def test_keeps_other_sections(self, creds_file):
        with open(creds_file, 'w') as f:
            f.write(yaml.safe_dump({'client': {'id': 'my-client'}}))

        CredentialsFileStore().store('user@example.com', '1//refresh')

        conf = loadCredentials()
        assert conf['client'] == {'id': 'my-client'}
        assert 'user@example.com' in conf['accounts']

    def test_delete(self, creds_file):
        store = CredentialsFileStore()
        store.store('a@example.com', 'ra')
        store.store('b@example.com', 'rb')

        assert store.delete('a@example.com') is True
        assert store.delete('a@example.com') is False
        assert list(store.accounts().keys()) == ['b@example.com']

    def test_get_unknown_account(self, creds_file):
        assert CredentialsFileStore().get('nobody@example.com') is None
        assert CredentialsFileStore().accounts() == {}

    def test_ephemeral_mode_does_not_touch_disk(self, creds_file, monkeypatch):
        monkeypatch.setenv('LOOPAUTH_EPHEMERAL_CREDS', '1')
        store = CredentialsFileStore()
        store.store('user@example.com', '1//refresh')

        assert store.get('user@example.com')['refresh_token'] == '1//refresh'
        assert not os.path.exists(creds_file)
        assert loadCredentials() is None


class TestLoadFlowRequest:

    def test_arguments_win(self, creds_file, monkeypatch):
        monkeypatch.setenv('LOOPAUTH_CLIENT_ID', 'env-client')
        request = loadFlowRequest(client_id='arg-client', client_secret='arg-secret', scopes=['openid'], timeout=30)

        assert request.client_id == 'arg-client'
        assert request.client_secret == 'arg-secret'
        assert request.scopes == ('openid',)
        assert request.timeout == 30

    def test_environment(self, creds_file, monkeypatch):
        monkeypatch.setenv('LOOPAUTH_CLIENT_ID', 'env-client')
        monkeypatch.setenv('LOOPAUTH_CLIENT_SECRET', 'env-secret')
        monkeypatch.setenv('LOOPAUTH_SCOPES', 'openid email')
        monkeypatch.setenv('LOOPAUTH_AUTH_URL', 'https://idp.example.com/auth')

        request = loadFlowRequest()

        assert request.client_id == 'env-client'
        assert request.client_secret == 'env-secret'
        assert request.scope == 'openid email'
        assert request.auth_url == 'https://idp.example.com/auth'
        assert request.timeout == 300

    def test_credentials_file(self, creds_file):
        with open(creds_file, 'w') as f:
            f.write(yaml.safe_dump({'client': {
                'id': 'file-client',
                'secret': 'file-secret',
                'scopes': ['openid'],
                'timeout': 60,
            }}))

        request = loadFlowRequest()

        assert request.client_id == 'file-client'
        assert request.client_secret == 'file-secret'
        assert request.scopes == ('openid',)
        assert request.timeout == 60

    def test_defaults(self, creds_file):
        request = loadFlowRequest(client_id='my-client')

        assert request.auth_url == 'https://accounts.google.com/o/oauth2/auth'
        assert 'https://www.googleapis.com/auth/userinfo.email' in request.scopes
        assert request.client_secret == ''

    def test_missing_client_id(self, creds_file):
        with pytest.raises(LoopAuthException) as exc_info:
            loadFlowRequest()
        assert 'LOOPAUTH_CLIENT_ID' in str(exc_info.value)
