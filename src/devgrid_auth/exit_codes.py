"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~devgrid_auth.exceptions.DevGridAuthError` subclass.
Shell wrappers can inspect the exit code to tell a rejected sign-in apart
from a network outage without parsing stderr.

Example::

    $ devgrid-auth login
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- authorization was denied or expired
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_AUTH_FAILURE = 3
"""The authorization server rejected or abandoned the sign-in."""

EXIT_NOT_AUTHENTICATED = 4
"""No valid session exists for a command that requires one."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_CANCELLED = 130
"""The user interrupted the command."""
