"""Application context wiring the auth components together.

Build one :class:`AuthContext` at startup and pass it (or its
:attr:`~AuthContext.facade`) to whatever needs credentials; there is no
module-level client or session manager.

Typical usage::

    async with AuthContext.create() as ctx:
        token = await ctx.facade.get_access_token()
"""

from __future__ import annotations

from typing import Optional

import httpx

from devgrid_auth.client import DeviceCodeClient
from devgrid_auth.config import load_auth_config
from devgrid_auth.events import SessionChangeEmitter
from devgrid_auth.facade import AuthFacade
from devgrid_auth.models import AuthConfig
from devgrid_auth.orchestrator import DeviceFlowOrchestrator, VerificationPrompt
from devgrid_auth.secret_store import FileSecretStore, SecretStore
from devgrid_auth.session_store import SessionStore


class AuthContext:
    """Owns the long-lived auth objects for one process.

    Args:
        config: Auth configuration (may be incomplete until first sign-in).
        secrets: Secret backend for the session list.
        client: Transport for the authorization server.
        prompt: Verification prompt used by sign-in.
        scopes: Default scopes for the facade.
    """

    def __init__(
        self,
        config: AuthConfig,
        secrets: SecretStore,
        client: DeviceCodeClient,
        prompt: Optional[VerificationPrompt] = None,
        scopes: Optional[list[str]] = None,
    ) -> None:
        self.config = config
        self.secrets = secrets
        self.client = client
        self.emitter = SessionChangeEmitter()
        self.store = SessionStore(secrets)
        self.orchestrator = DeviceFlowOrchestrator(
            config,
            client,
            self.store,
            emitter=self.emitter,
            prompt=prompt,
        )
        self.facade = AuthFacade(self.orchestrator, scopes=scopes)

    @classmethod
    def create(
        cls,
        config: Optional[AuthConfig] = None,
        secrets: Optional[SecretStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        prompt: Optional[VerificationPrompt] = None,
        scopes: Optional[list[str]] = None,
    ) -> AuthContext:
        """Build a context from defaults: packaged config and file-backed secrets."""
        return cls(
            config=config if config is not None else load_auth_config(),
            secrets=secrets if secrets is not None else FileSecretStore(),
            client=DeviceCodeClient(transport=transport),
            prompt=prompt,
            scopes=scopes,
        )

    async def __aenter__(self) -> AuthContext:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()
