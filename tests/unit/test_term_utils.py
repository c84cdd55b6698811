import io

from rich.console import Console

from loopauth.term_utils import ConsoleNotifier, formatAccounts


def _notifier():
    buffer = io.StringIO()
    return ConsoleNotifier(Console(file=buffer, force_terminal=False, width=200)), buffer


def test_notify_levels():
    notifier, buffer = _notifier()

    notifier.notify('info', "You are now signed in.")
    notifier.notify('warning', "Sign in timed out.")
    notifier.notify('error', "Sign in failed.")

    lines = buffer.getvalue().splitlines()
    assert lines == [
        "INFO You are now signed in.",
        "WARNING Sign in timed out.",
        "ERROR Sign in failed.",
    ]


def test_notify_does_not_interpret_markup():
    notifier, buffer = _notifier()

    notifier.notify('error', "Sign in failed: [bold]access_denied[/bold]")

    assert "[bold]access_denied[/bold]" in buffer.getvalue()


def test_unknown_level_is_info():
    notifier, buffer = _notifier()

    notifier.notify('debug', "hello")

    assert buffer.getvalue().startswith("INFO hello")


def test_format_accounts_empty():
    assert formatAccounts({}) == "No signed in accounts."


def test_format_accounts_sorted():
    table = formatAccounts({
        'b@example.com': {'refresh_token': 'rb'},
        'a@example.com': {'refresh_token': 'ra', 'signed_in_at': 0, 'scope': 'openid'},
    })

    assert table.index('a@example.com') < table.index('b@example.com')
    assert '1970-01-01 00:00:00Z' in table
    assert 'ra' not in table.replace('a@example.com', '')
