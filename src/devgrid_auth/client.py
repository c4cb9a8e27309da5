"""Transport for the OAuth2 Device Authorization Grant (:rfc:`8628`).

:class:`DeviceCodeClient` issues the three form-encoded requests the session
layer needs and types their responses:

1. ``POST https://{domain}/oauth/device/code`` -- obtain ``device_code`` +
   ``user_code`` (:meth:`~DeviceCodeClient.request_device_code`).
2. ``POST https://{domain}/oauth/token`` with the device-code grant
   (:meth:`~DeviceCodeClient.request_token`).
3. ``POST https://{domain}/oauth/token`` with the refresh-token grant
   (:meth:`~DeviceCodeClient.refresh_token`).

The client holds no session state. Error responses are mapped as follows:

* failed requests (transport, decoding, redirects) and undecodable 2xx
  bodies -> :class:`NetworkError`
* non-2xx with an ``{error, error_description}`` body -> :class:`DeviceFlowError`
* any other non-2xx -> :class:`AuthServiceError` carrying status and body

See Also:
    :class:`devgrid_auth.orchestrator.DeviceFlowOrchestrator` for the polling
    loop built on top of :meth:`~DeviceCodeClient.request_token`.
"""

from __future__ import annotations

from typing import Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from devgrid_auth.exceptions import AuthServiceError, DeviceFlowError, NetworkError
from devgrid_auth.models import AuthConfig, DeviceCodeResponse, TokenResponse

DEVICE_CODE_GRANT = "urn:ietf:params:oauth:grant-type:device_code"
REFRESH_TOKEN_GRANT = "refresh_token"

T = TypeVar("T", bound=BaseModel)


class DeviceCodeClient:
    """Asynchronous client for the authorization server endpoints.

    Wraps a lazily created :class:`httpx.AsyncClient`. Use it as an async
    context manager, or call :meth:`aclose` when done.

    Args:
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.

    Example::

        async with DeviceCodeClient() as client:
            device = await client.request_device_code(config, ["openid"])
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> DeviceCodeClient:
        self._ensure_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Endpoints
    # ------------------------------------------------------------------ #

    async def request_device_code(
        self, config: AuthConfig, scopes: list[str]
    ) -> DeviceCodeResponse:
        """Start a device authorization.

        Args:
            config: Complete auth configuration.
            scopes: Scopes to request; sent space-joined.

        Raises:
            NetworkError: On transport failure or an undecodable response.
            DeviceFlowError: If the server returns a structured OAuth error.
            AuthServiceError: On any other non-2xx response.
        """
        return await self.post_form(
            config.device_code_url,
            {
                "client_id": config.client_id or "",
                "audience": config.audience or "",
                "scope": " ".join(scopes),
            },
            DeviceCodeResponse,
        )

    async def request_token(self, config: AuthConfig, device_code: str) -> TokenResponse:
        """Exchange a device code for tokens (one polling attempt)."""
        return await self.post_form(
            config.token_url,
            {
                "grant_type": DEVICE_CODE_GRANT,
                "device_code": device_code,
                "client_id": config.client_id or "",
            },
            TokenResponse,
        )

    async def refresh_token(self, config: AuthConfig, refresh_token: str) -> TokenResponse:
        """Exchange a refresh token for a new access token."""
        return await self.post_form(
            config.token_url,
            {
                "grant_type": REFRESH_TOKEN_GRANT,
                "client_id": config.client_id or "",
                "refresh_token": refresh_token,
            },
            TokenResponse,
        )

    # ------------------------------------------------------------------ #
    # Shared transport
    # ------------------------------------------------------------------ #

    async def post_form(self, url: str, body: dict[str, str], model: type[T]) -> T:
        """POST *body* form-encoded to *url* and decode the reply into *model*.

        Args:
            url: Absolute endpoint URL.
            body: Form fields.
            model: Pydantic model describing a successful response.

        Returns:
            The validated *model* instance.

        Raises:
            NetworkError: On a failed request (including an undecodable
                response stream), or when a 2xx body is not
                valid JSON for *model*.
            DeviceFlowError: On non-2xx with an ``error`` field.
            AuthServiceError: On non-2xx without a decodable error body.
        """
        client = self._ensure_client()
        try:
            response = await client.post(
                url,
                data=body,
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as exc:
            raise NetworkError(f"Request to {url} failed: {exc}") from exc

        if response.is_success:
            try:
                return model.model_validate_json(response.content)
            except ValidationError as exc:
                raise NetworkError(f"Invalid response from auth service: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            raise AuthServiceError(response.status_code, response.text) from None

        if not isinstance(payload, dict) or not payload.get("error"):
            raise AuthServiceError(response.status_code, response.text)
        raise DeviceFlowError(
            str(payload["error"]),
            str(payload.get("error_description") or response.text),
        )

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client
