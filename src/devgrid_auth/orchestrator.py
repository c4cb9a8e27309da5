"""Device authorization flow and session lifecycle.

:class:`DeviceFlowOrchestrator` runs the OAuth2 Device Authorization Grant
(:rfc:`8628`) end to end and owns the persisted session list.

Flow (:meth:`~DeviceFlowOrchestrator.create_session`)::

    INIT -> DEVICE_CODE_REQUESTED -> AWAITING_VERIFICATION -> POLLING
         -> SUCCESS | EXPIRED | DENIED | ERROR

1. Check the auth config (no network call when incomplete).
2. Request a device code for the configured scopes plus the requested ones.
3. Hand the code to the verification prompt (opens a browser, prints the
   code, ...).
4. Poll the token endpoint. ``authorization_pending`` keeps polling,
   ``slow_down`` adds 5 seconds to the interval (uncapped), everything else
   ends the flow.
5. Persist a new :class:`~devgrid_auth.models.StoredSession` and fire an
   ``added`` notification.

Every read-modify-write of the session list runs under a single
:class:`asyncio.Lock`, and notifications fire only after the write.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, Union

from devgrid_auth.accounts import build_account_info
from devgrid_auth.client import DeviceCodeClient
from devgrid_auth.events import SessionChangeEmitter
from devgrid_auth.exceptions import (
    AccessDeniedError,
    DeviceCodeExpiredError,
    DeviceFlowCancelledError,
    DeviceFlowError,
    DevGridAuthError,
    PollingTimeoutError,
)
from devgrid_auth.models import (
    AccountInfo,
    AuthConfig,
    AuthenticationSession,
    DeviceCodeResponse,
    SessionChangeEvent,
    StoredSession,
    TokenResponse,
    split_scopes,
)
from devgrid_auth.session_store import SessionStore
from devgrid_auth.validator import SessionValidator, utc_now

logger = logging.getLogger(__name__)

SLOW_DOWN_INCREMENT = 5

VerificationPrompt = Callable[[DeviceCodeResponse], Awaitable[None]]


class FlowState(str, enum.Enum):
    INIT = "init"
    DEVICE_CODE_REQUESTED = "device_code_requested"
    AWAITING_VERIFICATION = "awaiting_verification"
    POLLING = "polling"
    SUCCESS = "success"
    EXPIRED = "expired"
    DENIED = "denied"
    ERROR = "error"


# --- Poll attempt outcomes ---


@dataclass(frozen=True)
class PollSuccess:
    token: TokenResponse


@dataclass(frozen=True)
class PollRetry:
    after: float


@dataclass(frozen=True)
class PollTerminal:
    error: Exception


PollOutcome = Union[PollSuccess, PollRetry, PollTerminal]


def combine_scopes(base: Optional[str], requested: Optional[list[str]] = None) -> list[str]:
    """Ordered-unique union of the configured base scopes and *requested*."""
    return split_scopes(base, requested)


def classify_poll_error(exc: Exception, interval: float) -> PollOutcome:
    """Map an exception from one token request to a :data:`PollOutcome`.

    Only ``authorization_pending`` and ``slow_down`` are retried. A
    ``slow_down`` reply returns the already increased interval.
    """
    if not isinstance(exc, DeviceFlowError):
        return PollTerminal(exc)
    if exc.code == "authorization_pending":
        return PollRetry(interval)
    if exc.code == "slow_down":
        return PollRetry(interval + SLOW_DOWN_INCREMENT)
    if exc.code == "expired_token":
        return PollTerminal(DeviceCodeExpiredError())
    if exc.code == "access_denied":
        return PollTerminal(AccessDeniedError(exc.description))
    return PollTerminal(exc)


class DeviceFlowOrchestrator:
    """Run device flows and manage the stored sessions.

    Args:
        config: Auth configuration; checked for completeness on each
            :meth:`create_session`.
        client: Transport for the authorization server.
        store: Persistence for the session list.
        validator: Freshness checks and refresh. Built from *client* and
            *config* when omitted.
        emitter: Receives change notifications. A private one is created when
            omitted.
        prompt: Default verification prompt used by :meth:`create_session`.
            When ``None``, polling starts right after the device code is
            issued.
        clock: Current aware UTC time, used for token expiry.
        monotonic: Monotonic seconds, used for the polling deadline.
        sleep: Coroutine used to wait between polling attempts.
    """

    def __init__(
        self,
        config: AuthConfig,
        client: DeviceCodeClient,
        store: SessionStore,
        validator: Optional[SessionValidator] = None,
        emitter: Optional[SessionChangeEmitter] = None,
        prompt: Optional[VerificationPrompt] = None,
        clock: Callable[[], datetime] = utc_now,
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._client = client
        self._store = store
        self._validator = validator or SessionValidator(client, config, clock=clock)
        self._emitter = emitter or SessionChangeEmitter()
        self._prompt = prompt
        self._clock = clock
        self._monotonic = monotonic
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._state = FlowState.INIT

    @property
    def state(self) -> FlowState:
        """State of the most recent (or running) device flow."""
        return self._state

    @property
    def emitter(self) -> SessionChangeEmitter:
        return self._emitter

    # ------------------------------------------------------------------ #
    # Session CRUD
    # ------------------------------------------------------------------ #

    async def get_sessions(
        self,
        scopes: Optional[list[str]] = None,
        account: Union[AccountInfo, str, None] = None,
    ) -> list[AuthenticationSession]:
        """Return usable sessions matching *scopes* and *account*.

        Stale sessions are refreshed first. Dead ones are removed from
        storage and reported in a single ``removed`` notification; refreshed
        ones are saved without a notification. A refresh that yields a token
        already inside the expiry buffer is saved but not returned. Never
        raises for corrupt storage or failed refreshes.

        Args:
            scopes: Every one of these must be granted. ``None`` or empty
                matches all sessions.
            account: Account (or account id) to match exactly. ``None``
                matches all sessions.
        """
        async with self._lock:
            stored = await self._store.load()
            checks = [await self._validator.check(session) for session in stored]
            kept = [check.session for check in checks if check.keep and check.session]
            removed = [s for s, check in zip(stored, checks) if not check.keep]
            changed = any(
                check.session is not session
                for session, check in zip(stored, checks)
                if check.keep
            )
            if removed or changed:
                await self._store.save(kept)

        if removed:
            self._emitter.fire(
                SessionChangeEvent(removed=[session.to_public() for session in removed])
            )

        account_id = account.id if isinstance(account, AccountInfo) else account
        return [
            check.session.to_public()
            for check in checks
            if check.usable
            and check.session is not None
            and (account_id is None or check.session.account.id == account_id)
            and check.session.has_scopes(scopes)
        ]

    async def create_session(
        self,
        scopes: Optional[list[str]] = None,
        prompt: Optional[VerificationPrompt] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> AuthenticationSession:
        """Run a device flow and persist the resulting session.

        Args:
            scopes: Scopes requested on top of the configured base scope.
            prompt: Overrides the default verification prompt for this call.
            cancel: When set, polling stops with
                :class:`DeviceFlowCancelledError`.

        Returns:
            The public view of the new session.

        Raises:
            ConfigError: If the auth configuration is incomplete.
            DeviceCodeExpiredError: If the code expired before verification.
            AccessDeniedError: If the user denied the request.
            PollingTimeoutError: If ``expires_in`` elapsed while polling.
            DeviceFlowError: For any other OAuth error.
            NetworkError: On transport failures.
        """
        self._state = FlowState.INIT
        try:
            session = await self._run_flow(scopes or [], prompt or self._prompt, cancel)
        except DevGridAuthError as exc:
            self._state = _terminal_state(exc)
            logger.error("Device flow failed: %s", exc)
            raise
        except BaseException:
            self._state = FlowState.ERROR
            raise

        async with self._lock:
            sessions = await self._store.load()
            sessions.append(session)
            await self._store.save(sessions)

        public = session.to_public()
        self._emitter.fire(SessionChangeEvent(added=[public]))
        return public

    async def remove_session(self, session_id: str) -> None:
        """Delete the session with *session_id*; unknown ids are ignored."""
        async with self._lock:
            sessions = await self._store.load()
            remaining = [s for s in sessions if s.id != session_id]
            if len(remaining) == len(sessions):
                return
            await self._store.save(remaining)

        dropped = [s.to_public() for s in sessions if s.id == session_id]
        self._emitter.fire(SessionChangeEvent(removed=dropped))
        logger.info("Removed session %s", session_id)

    async def remove_all_sessions(self) -> list[AuthenticationSession]:
        """Delete every stored session and return what was removed."""
        async with self._lock:
            sessions = await self._store.load()
            if not sessions:
                return []
            await self._store.clear()

        dropped = [s.to_public() for s in sessions]
        self._emitter.fire(SessionChangeEvent(removed=dropped))
        logger.info("Removed %d session(s)", len(dropped))
        return dropped

    # ------------------------------------------------------------------ #
    # Device flow
    # ------------------------------------------------------------------ #

    async def _run_flow(
        self,
        requested: list[str],
        prompt: Optional[VerificationPrompt],
        cancel: Optional[asyncio.Event],
    ) -> StoredSession:
        config = self._config.require()
        combined = combine_scopes(config.scope, requested)
        logger.info("Starting device authorization flow")

        self._state = FlowState.DEVICE_CODE_REQUESTED
        device = await self._client.request_device_code(config, combined)

        self._state = FlowState.AWAITING_VERIFICATION
        if prompt is not None:
            await prompt(device)

        self._state = FlowState.POLLING
        token = await self.poll_for_token(config, device, cancel=cancel)
        self._state = FlowState.SUCCESS
        logger.info("Device flow completed")

        return StoredSession(
            id=str(uuid.uuid4()),
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            expires_at=token.expires_at(self._clock()),
            account=build_account_info(token.id_token),
            scopes=split_scopes(token.scope, combined),
        )

    async def poll_for_token(
        self,
        config: AuthConfig,
        device: DeviceCodeResponse,
        cancel: Optional[asyncio.Event] = None,
    ) -> TokenResponse:
        """Poll the token endpoint until the device code resolves.

        The first attempt is made immediately. Waits never extend past the
        ``expires_in`` deadline.

        Raises:
            DeviceCodeExpiredError: On ``expired_token``.
            AccessDeniedError: On ``access_denied``.
            DeviceFlowError: On any other OAuth error code.
            NetworkError: On transport failure (not retried).
            PollingTimeoutError: When the deadline passes.
            DeviceFlowCancelledError: When *cancel* is set.
        """
        deadline = self._monotonic() + device.expires_in
        interval: float = device.poll_interval

        while self._monotonic() < deadline:
            if cancel is not None and cancel.is_set():
                raise DeviceFlowCancelledError()

            outcome = await self._attempt(config, device, interval)
            if isinstance(outcome, PollSuccess):
                return outcome.token
            if isinstance(outcome, PollTerminal):
                raise outcome.error

            interval = outcome.after
            remaining = deadline - self._monotonic()
            if remaining <= 0:
                break
            await self._wait(min(interval, remaining), cancel)

        raise PollingTimeoutError()

    async def _attempt(
        self, config: AuthConfig, device: DeviceCodeResponse, interval: float
    ) -> PollOutcome:
        try:
            token = await self._client.request_token(config, device.device_code)
        except DevGridAuthError as exc:
            outcome = classify_poll_error(exc, interval)
            if isinstance(outcome, PollRetry):
                logger.debug("Authorization pending, next poll in %ss", outcome.after)
            return outcome
        return PollSuccess(token)

    async def _wait(self, seconds: float, cancel: Optional[asyncio.Event]) -> None:
        if cancel is None:
            await self._sleep(seconds)
            return
        pending = [
            asyncio.ensure_future(self._sleep(seconds)),
            asyncio.ensure_future(cancel.wait()),
        ]
        try:
            await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        if cancel.is_set():
            raise DeviceFlowCancelledError()


def _terminal_state(exc: Exception) -> FlowState:
    if isinstance(exc, DeviceCodeExpiredError):
        return FlowState.EXPIRED
    if isinstance(exc, AccessDeniedError):
        return FlowState.DENIED
    return FlowState.ERROR
