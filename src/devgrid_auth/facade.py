"""Consumer-facing authentication API.

:class:`AuthFacade` is what UI code and API clients talk to. It never
prompts on its own: :meth:`~AuthFacade.get_access_token`,
:meth:`~AuthFacade.is_authenticated` and :meth:`~AuthFacade.get_account`
only read (and silently refresh) stored sessions, so they are safe to call
before every API request. Only :meth:`~AuthFacade.sign_in` starts a device
flow.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from devgrid_auth.models import AccountInfo, AuthenticationSession
from devgrid_auth.orchestrator import DeviceFlowOrchestrator, VerificationPrompt

DEFAULT_SCOPES = ["openid", "profile", "email"]


class AuthFacade:
    """Thin wrapper over :class:`DeviceFlowOrchestrator` for consumers.

    Args:
        orchestrator: The session manager to delegate to.
        scopes: Scopes requested on sign-in and required of the current
            session.
    """

    def __init__(
        self,
        orchestrator: DeviceFlowOrchestrator,
        scopes: Optional[list[str]] = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._scopes = list(scopes) if scopes is not None else list(DEFAULT_SCOPES)

    @property
    def scopes(self) -> list[str]:
        return list(self._scopes)

    async def current_session(self) -> Optional[AuthenticationSession]:
        """Return the first usable session with the default scopes, if any."""
        sessions = await self._orchestrator.get_sessions(self._scopes)
        return sessions[0] if sessions else None

    async def get_access_token(self) -> Optional[str]:
        session = await self.current_session()
        return session.access_token if session else None

    async def is_authenticated(self) -> bool:
        return await self.current_session() is not None

    async def get_account(self) -> Optional[AccountInfo]:
        session = await self.current_session()
        return session.account if session else None

    async def sign_in(
        self,
        prompt: Optional[VerificationPrompt] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> AuthenticationSession:
        """Run the device flow for the default scopes.

        Errors propagate unchanged so the caller can show them to the user.
        """
        return await self._orchestrator.create_session(
            self._scopes, prompt=prompt, cancel=cancel
        )

    async def sign_out(self, all_accounts: bool = False) -> list[AuthenticationSession]:
        """Remove the current session, or every session with *all_accounts*.

        Confirming with the user is the caller's job.

        Returns:
            The sessions that were removed (empty when not signed in).
        """
        if all_accounts:
            return await self._orchestrator.remove_all_sessions()
        session = await self.current_session()
        if session is None:
            return []
        await self._orchestrator.remove_session(session.id)
        return [session]
