import shlex

import requests

from loopauth.request_utils import getCurlCommandString


def _prepare(method, url, **kwargs):
    return requests.Request(method, url, **kwargs).prepare()


def test_form_post():
    request = _prepare('POST', 'https://idp.example.com/token', data={'client_id': 'my-client', 'grant_type': 'authorization_code'})

    tokens = shlex.split(getCurlCommandString(request))

    assert tokens[:3] == ['curl', '-X', 'POST']
    assert tokens[-1] == 'https://idp.example.com/token'
    assert '-d' in tokens
    assert tokens[tokens.index('-d') + 1] == 'client_id=my-client&grant_type=authorization_code'


def test_secrets_in_body_are_redacted():
    request = _prepare('POST', 'https://idp.example.com/token', data={
        'code': 'XYZ',
        'client_secret': 'shh',
        'refresh_token': '1//refresh',
    })

    command = getCurlCommandString(request)

    assert 'XYZ' not in command
    assert 'shh' not in command
    assert '1//refresh' not in command
    assert 'redacted' in command


def test_secrets_in_query_are_redacted():
    request = _prepare('GET', 'https://idp.example.com/tokeninfo', params={'access_token': 'ya29.access'})

    command = getCurlCommandString(request)

    assert 'ya29.access' not in command
    assert command.split()[-1].startswith("'https://idp.example.com/tokeninfo?access_token=")


def test_authorization_header_is_redacted():
    request = _prepare('GET', 'https://idp.example.com/userinfo', headers={'Authorization': 'Bearer ya29.access'})

    command = getCurlCommandString(request)

    assert 'ya29.access' not in command
    assert 'Authorization: <redacted>' in command
