"""Exception hierarchy for devgrid-auth.

All exceptions inherit from :class:`DevGridAuthError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`devgrid_auth.exit_codes`. The CLI entry point in
:func:`devgrid_auth.app.main` catches ``DevGridAuthError`` and exits with the
appropriate code.

Subclass hierarchy::

    DevGridAuthError (exit 1)
    +-- ConfigError                 (exit 1)
    +-- AuthError                   (exit 3)
    |   +-- DeviceFlowError
    |   |   +-- DeviceCodeExpiredError
    |   |   +-- AccessDeniedError
    |   +-- PollingTimeoutError
    |   +-- DeviceFlowCancelledError (exit 130)
    |   +-- AuthServiceError
    +-- NetworkError                (exit 6)

Only ``authorization_pending`` and ``slow_down`` are retried by the polling
loop; every other error in this module is terminal for the operation that
raised it.
"""

from __future__ import annotations

from devgrid_auth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CANCELLED,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
)


class DevGridAuthError(Exception):
    """Base exception for all devgrid-auth errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(DevGridAuthError):
    """Raised when the auth configuration is missing or unreadable.

    Never retryable, and always raised before any network call is made.
    """

    exit_code = EXIT_GENERIC_FAILURE


class NetworkError(DevGridAuthError):
    """Raised on transport-level failures talking to the authorization server.

    Covers connection failures, timeouts, and 2xx responses whose body is not
    the JSON document the endpoint promised.
    """

    exit_code = EXIT_CONNECTION_ERROR


class AuthError(DevGridAuthError):
    """Raised when a sign-in or refresh cannot complete."""

    exit_code = EXIT_AUTH_FAILURE


class DeviceFlowError(AuthError):
    """Structured OAuth error returned by the token endpoint.

    Args:
        code: The ``error`` field of the response, e.g.
            ``"authorization_pending"`` or ``"access_denied"``.
        description: The ``error_description`` field, or the raw body when
            the server sent none.
    """

    def __init__(self, code: str, description: str = "") -> None:
        self.code = code
        self.description = description or code
        super().__init__(self.description)


class DeviceCodeExpiredError(DeviceFlowError):
    """The device code expired before the user completed verification."""

    def __init__(self, description: str = "") -> None:
        super().__init__(
            "expired_token",
            description or "Device authorization expired before completion.",
        )


class AccessDeniedError(DeviceFlowError):
    """The user (or server policy) denied the authorization request."""

    def __init__(self, description: str = "") -> None:
        super().__init__(
            "access_denied", description or "Authorization denied by user."
        )


class PollingTimeoutError(AuthError):
    """The polling deadline passed without the server resolving the request."""

    def __init__(self, message: str = "Timed out waiting for device authorization.") -> None:
        super().__init__(message)


class DeviceFlowCancelledError(AuthError):
    """Polling was stopped by a cancellation signal."""

    exit_code = EXIT_CANCELLED

    def __init__(self, message: str = "Device authorization was cancelled.") -> None:
        super().__init__(message)


class AuthServiceError(AuthError):
    """Non-2xx response whose body is not a structured OAuth error.

    Args:
        status_code: HTTP status returned by the server.
        body: Raw response text.
    """

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Auth service error ({status_code}): {body}")

    @property
    def is_transient(self) -> bool:
        """Whether the failure is likely to clear up on a later attempt."""
        return self.status_code >= 500 or self.status_code == 429
