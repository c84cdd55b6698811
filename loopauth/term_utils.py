import time

from rich.console import Console
from rich.markup import escape
from tabulate import tabulate

# Markup and label per notification level.
LEVELS = {
    'info': ( 'bold cyan', 'INFO' ),
    'warning': ( 'bold yellow', 'WARNING' ),
    'error': ( 'bold red', 'ERROR' ),
}


class ConsoleNotifier:
    """Notification collaborator printing to the terminal."""

    def __init__(self, console: Console = None):
        self._console = console or Console()

    def notify(self, level: str, message: str) -> None:
        """
        Show a message to the user.

        Args:
            level: one of "info", "warning" or "error".
            message: plain text message, markup in it is not interpreted.
        """
        style, label = LEVELS.get(level, LEVELS['info'])
        self._console.print(f"[{style}]{label}[/{style}] {escape(message)}")


def formatAccounts(accounts: dict) -> str:
    """
    Format signed-in accounts as a table, for example:

    +-------------------+----------------------+------------------------------------------------+
    | account           | signed in            | scope                                          |
    +===================+======================+================================================+
    | user@example.com  | 2026-10-18 15:40:00Z | https://www.googleapis.com/auth/userinfo.email |
    +-------------------+----------------------+------------------------------------------------+
    """
    if not accounts:
        return "No signed in accounts."

    rows = []
    for account, entry in sorted(accounts.items()):
        signedInAt = entry.get('signed_in_at')
        rows.append([
            account,
            time.strftime("%Y-%m-%d %H:%M:%SZ", time.gmtime(signedInAt)) if signedInAt is not None else '',
            entry.get('scope', ''),
        ])
    return tabulate(rows, headers=['account', 'signed in', 'scope'], tablefmt='grid')
