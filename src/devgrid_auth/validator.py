"""Session freshness checks and silent refresh.

A session is *fresh* while its expiry lies more than
:data:`EXPIRY_BUFFER` in the future. A stale session with a refresh token is
renewed through :meth:`DeviceCodeClient.refresh_token
<devgrid_auth.client.DeviceCodeClient.refresh_token>`; one without is dead.

Refresh failures are split in two:

* terminal -- the server rejected the refresh token (an OAuth error or a 4xx
  response). The session is dropped.
* transient -- the server could not be reached, answered with 5xx/429, or the
  local configuration is incomplete. The session is kept in storage so a
  later call can retry, but it is not handed out since its access token is
  stale.

A refresh that succeeds but returns a token which is itself inside the
buffer is saved yet not handed out either.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from devgrid_auth.client import DeviceCodeClient
from devgrid_auth.exceptions import (
    AuthServiceError,
    ConfigError,
    DevGridAuthError,
    NetworkError,
)
from devgrid_auth.models import AuthConfig, StoredSession, split_scopes

logger = logging.getLogger(__name__)

EXPIRY_BUFFER = timedelta(seconds=60)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CheckOutcome(str, enum.Enum):
    FRESH = "fresh"
    REFRESHED = "refreshed"
    RETAINED = "retained"
    DEAD = "dead"


@dataclass(frozen=True)
class SessionCheck:
    """Result of :meth:`SessionValidator.check`.

    Attributes:
        outcome: What happened to the session.
        session: The usable (possibly refreshed) session for ``FRESH`` and
            ``REFRESHED``, and ``None`` for ``DEAD``. For ``RETAINED`` it is
            the session to keep in storage: the untouched original after a
            transient failure, or the refreshed copy when the new token
            already falls inside the expiry buffer.
    """

    outcome: CheckOutcome
    session: Optional[StoredSession]

    @property
    def usable(self) -> bool:
        return self.outcome in (CheckOutcome.FRESH, CheckOutcome.REFRESHED)

    @property
    def keep(self) -> bool:
        return self.outcome is not CheckOutcome.DEAD


class SessionValidator:
    """Decide whether stored sessions are usable, refreshing them when possible.

    Args:
        client: Transport used for the refresh-token exchange.
        config: Auth configuration; completeness is checked only when a
            refresh is actually needed.
        clock: Returns the current aware UTC time. Injectable for tests.
    """

    def __init__(
        self,
        client: DeviceCodeClient,
        config: AuthConfig,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._client = client
        self._config = config
        self._clock = clock

    def is_fresh(self, session: StoredSession, now: Optional[datetime] = None) -> bool:
        """Return True iff *session* expires more than 60 seconds after *now*."""
        now = now or self._clock()
        return session.expires_at > now + EXPIRY_BUFFER

    async def ensure_valid(self, session: StoredSession) -> Optional[StoredSession]:
        """Return a usable version of *session*, or ``None`` if it cannot be used."""
        result = await self.check(session)
        return result.session if result.usable else None

    async def check(self, session: StoredSession) -> SessionCheck:
        """Classify *session*, refreshing it if it is stale and refreshable."""
        if self.is_fresh(session):
            return SessionCheck(CheckOutcome.FRESH, session)

        if not session.refresh_token:
            logger.info("Session %s expired and cannot be refreshed", session.id)
            return SessionCheck(CheckOutcome.DEAD, None)

        try:
            refreshed = await self._refresh(session)
        except (NetworkError, ConfigError) as exc:
            logger.warning("Could not refresh session %s, will retry later: %s", session.id, exc)
            return SessionCheck(CheckOutcome.RETAINED, session)
        except AuthServiceError as exc:
            if exc.is_transient:
                logger.warning(
                    "Could not refresh session %s, will retry later: %s", session.id, exc
                )
                return SessionCheck(CheckOutcome.RETAINED, session)
            logger.warning("Failed to refresh session %s: %s", session.id, exc)
            return SessionCheck(CheckOutcome.DEAD, None)
        except DevGridAuthError as exc:
            logger.warning("Failed to refresh session %s: %s", session.id, exc)
            return SessionCheck(CheckOutcome.DEAD, None)

        if not self.is_fresh(refreshed):
            logger.warning(
                "Refreshed token for session %s expires within %ss, not using it",
                session.id,
                int(EXPIRY_BUFFER.total_seconds()),
            )
            return SessionCheck(CheckOutcome.RETAINED, refreshed)

        logger.info("Refreshed access token for session %s", session.id)
        return SessionCheck(CheckOutcome.REFRESHED, refreshed)

    async def _refresh(self, session: StoredSession) -> StoredSession:
        assert session.refresh_token
        config = self._config.require()
        token = await self._client.refresh_token(config, session.refresh_token)
        return session.model_copy(
            update={
                "access_token": token.access_token,
                "refresh_token": token.refresh_token or session.refresh_token,
                "expires_at": token.expires_at(self._clock()),
                "scopes": split_scopes(token.scope, session.scopes),
            }
        )
