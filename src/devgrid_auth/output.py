"""Terminal output for the devgrid-auth CLI.

Two streams, two audiences:

* **stdout** carries data only: the access token, the signed-in account and
  the session list. ``TOKEN=$(devgrid-auth token)`` therefore never picks up
  prompts or status lines.
* **stderr** carries the verification code, progress, suggestions and
  errors.

Data is rendered as a Rich table on an interactive terminal, tab-separated
text when piped, or JSON with ``--json``. ``NO_COLOR``, ``TERM=dumb`` and
``--no-color`` turn Rich styling off entirely.

:class:`OutputManager` is installed once per invocation by
:func:`~devgrid_auth.app.main_callback`; commands reach it through
:func:`get_output` or the module-level shortcuts.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from devgrid_auth.models import AuthenticationSession


class OutputFormat(str, Enum):
    """Data formats. ``AUTO`` becomes ``RICH`` on a colour TTY, else ``PLAIN``."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


# kind -> (prefix, Rich style, silenced by --quiet)
_MESSAGE_STYLES: dict[str, tuple[str, str, bool]] = {
    "info": ("", "", True),
    "success": ("", "green", True),
    "suggest": ("→ ", "dim", True),
    "notice": ("", "bold", False),
    "error": ("Error: ", "bold red", False),
}


def _is_tty() -> bool:
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set to anything, or ``TERM`` is ``dumb``."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


def resolve_format(requested: OutputFormat, no_color: bool) -> OutputFormat:
    if requested != OutputFormat.AUTO:
        return requested
    return OutputFormat.RICH if _is_tty() and not no_color else OutputFormat.PLAIN


def _account_record(session: AuthenticationSession) -> dict[str, Any]:
    return {
        "id": session.id,
        "account": session.account.label,
        "account_id": session.account.id,
        "scopes": list(session.scopes),
    }


class OutputManager:
    """Writes command results to stdout and diagnostics to stderr.

    Args:
        format: Data format; ``AUTO`` is resolved from the terminal.
        no_color: Disable Rich styling even on a TTY.
        quiet: Drop informational stderr messages. The verification code and
            errors are always shown.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
    ) -> None:
        self.no_color = no_color or _should_disable_color()
        self.quiet = quiet
        self.format = resolve_format(format, self.no_color)
        self._out = Console(
            file=sys.stdout,
            no_color=self.no_color,
            force_terminal=self.format == OutputFormat.RICH,
            highlight=False,
        )
        self._err = Console(file=sys.stderr, stderr=True, no_color=self.no_color, highlight=False)

    # -- stdout ---------------------------------------------------------

    def print_token(self, token: str) -> None:
        """Write a bare access token, whatever the format."""
        self._write(token)

    def print_account(self, session: AuthenticationSession) -> None:
        record = _account_record(session)
        if self.format == OutputFormat.JSON:
            self._write(json.dumps(record, indent=2, ensure_ascii=False))
            return
        record["scopes"] = " ".join(record["scopes"])
        if self.format == OutputFormat.PLAIN:
            for key, value in record.items():
                self._write(f"{key}\t{value}")
            return
        grid = Table.grid(padding=(0, 2))
        grid.add_column(style="bold")
        grid.add_column()
        for key, value in record.items():
            grid.add_row(key.replace("_", " ").title(), escape(str(value)))
        self._out.print(grid)

    def print_sessions(self, sessions: list[AuthenticationSession]) -> None:
        """Write one row per session: id, account label, account id, scopes."""
        if self.format == OutputFormat.JSON:
            records = [_account_record(s) for s in sessions]
            self._write(json.dumps(records, indent=2, ensure_ascii=False))
            return

        headers = ["ID", "Account", "Account ID", "Scopes"]
        rows = [[s.id, s.account.label, s.account.id, " ".join(s.scopes)] for s in sessions]
        if self.format == OutputFormat.PLAIN:
            for line in [headers, *rows]:
                self._write("\t".join(line))
            return
        table = Table(title="Sessions", header_style="bold cyan")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*(escape(cell) for cell in row))
        self._out.print(table)

    # -- stderr ---------------------------------------------------------

    def info(self, message: str) -> None:
        self._say("info", message)

    def notice(self, message: str) -> None:
        """Something the user has to act on, such as the verification code."""
        self._say("notice", message)

    def success(self, message: str) -> None:
        self._say("success", message)

    def suggest(self, message: str) -> None:
        self._say("suggest", message)

    def error(self, message: str) -> None:
        self._say("error", message)

    def _say(self, kind: str, message: str) -> None:
        prefix, style, quietable = _MESSAGE_STYLES[kind]
        if quietable and self.quiet:
            return
        text = prefix + message
        if self.no_color:
            print(text, file=sys.stderr, flush=True)
        elif style:
            self._err.print(f"[{style}]{escape(text)}[/{style}]")
        else:
            self._err.print(escape(text))

    @staticmethod
    def _write(line: str) -> None:
        print(line, file=sys.stdout, flush=True)


_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed manager, creating a default one on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(manager: OutputManager) -> None:
    global _output
    _output = manager


def reset_output() -> None:
    global _output
    _output = None


def info(message: str) -> None:
    get_output().info(message)


def notice(message: str) -> None:
    get_output().notice(message)


def success(message: str) -> None:
    get_output().success(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def error(message: str) -> None:
    get_output().error(message)
