"""Canonical Pydantic models shared across all devgrid-auth modules.

The models fall into three groups:

**Configuration** -- :class:`AuthConfig`, loaded once from packaged JSON by
:func:`devgrid_auth.config.load_auth_config`.

**Wire models** -- typed views of authorization-server responses:
:class:`DeviceCodeResponse` and :class:`TokenResponse`. Unknown keys sent by
the server are ignored.

**Session models** -- :class:`StoredSession` (what is persisted, including
refresh token and expiry), :class:`AuthenticationSession` (the public view
handed to consumers), :class:`AccountInfo`, and
:class:`SessionChangeEvent`.

All models use Pydantic v2.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from devgrid_auth.exceptions import ConfigError


def split_scopes(*values: str | list[str] | tuple[str, ...] | None) -> list[str]:
    """Flatten scope strings and lists into an ordered, de-duplicated list.

    Every entry is whitespace-split, so ``"openid profile"`` and
    ``["openid", "profile"]`` contribute the same scopes. The first occurrence
    of a scope fixes its position.

    Example::

        >>> split_scopes("openid profile", ["read:repo", "openid"])
        ['openid', 'profile', 'read:repo']
    """
    merged: dict[str, None] = {}
    for value in values:
        if not value:
            continue
        items = [value] if isinstance(value, str) else list(value)
        for item in items:
            for scope in (item or "").split():
                merged.setdefault(scope, None)
    return list(merged)


# --- Configuration ---


class AuthConfig(BaseModel):
    """Authorization server settings for the device flow.

    Field names accept both the snake_case Python names and the camelCase
    keys used in the packaged ``config.json``. Every field is optional at
    load time; :meth:`require` checks completeness lazily, on first use.

    Example::

        AuthConfig(
            domain="auth.example.com",
            client_id="abc",
            audience="api",
            scope="openid profile",
        )
    """

    model_config = ConfigDict(populate_by_name=True)

    domain: Optional[str] = None
    client_id: Optional[str] = Field(default=None, alias="clientId")
    audience: Optional[str] = None
    scope: Optional[str] = None

    def missing_fields(self) -> list[str]:
        """Return the names of required fields that are empty."""
        return [
            name
            for name in ("domain", "client_id", "audience", "scope")
            if not getattr(self, name)
        ]

    def require(self) -> AuthConfig:
        """Return ``self`` if complete.

        Raises:
            ConfigError: If any of ``domain``, ``client_id``, ``audience``
                or ``scope`` is missing.
        """
        missing = self.missing_fields()
        if missing:
            raise ConfigError(
                "Auth configuration is incomplete; missing: " + ", ".join(missing)
            )
        return self

    @property
    def device_code_url(self) -> str:
        return f"https://{self.domain}/oauth/device/code"

    @property
    def token_url(self) -> str:
        return f"https://{self.domain}/oauth/token"


# --- Wire models ---


class DeviceCodeResponse(BaseModel):
    """Response of the device authorization endpoint (:rfc:`8628` section 3.2)."""

    model_config = ConfigDict(extra="ignore")

    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: Optional[str] = None
    expires_in: int
    interval: Optional[int] = None

    @property
    def poll_interval(self) -> int:
        """Polling interval in seconds.

        Defaults to 5 when the server omits it and is clamped to at least 1.
        """
        if self.interval is None:
            return 5
        return max(self.interval, 1)

    @property
    def browser_uri(self) -> str:
        """URI to open for the user, preferring the one with the code pre-filled."""
        return self.verification_uri_complete or self.verification_uri


class TokenResponse(BaseModel):
    """Successful response of the token endpoint."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1)
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: int
    scope: Optional[str] = None
    token_type: str = "Bearer"

    def expires_at(self, now: datetime | None = None) -> datetime:
        """Absolute expiry derived from *now* and the reported lifetime."""
        now = now or datetime.now(timezone.utc)
        return now + timedelta(seconds=self.expires_in)


# --- Sessions ---


class AccountInfo(BaseModel):
    """Identity of the signed-in account."""

    id: str
    label: str


class AuthenticationSession(BaseModel):
    """Public view of a session.

    This is the only session shape that leaves the orchestrator; it never
    carries the refresh token or the expiry.
    """

    id: str
    access_token: str
    account: AccountInfo
    scopes: list[str] = Field(default_factory=list)


class StoredSession(BaseModel):
    """A persisted session, as serialised into the secret store.

    Attributes:
        id: Opaque unique identifier (a UUID4 string).
        access_token: Bearer credential; never empty.
        refresh_token: Optional credential for silent renewal.
        expires_at: Aware UTC instant derived from issuance time plus the
            server-reported lifetime.
        account: Account the tokens were issued to.
        scopes: Granted scopes, de-duplicated, in first-seen order.
    """

    id: str
    access_token: str = Field(min_length=1)
    refresh_token: Optional[str] = None
    expires_at: datetime
    account: AccountInfo
    scopes: list[str] = Field(default_factory=list)

    @field_validator("scopes")
    @classmethod
    def _dedupe_scopes(cls, value: list[str]) -> list[str]:
        return split_scopes(value)

    @field_validator("expires_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def has_scopes(self, scopes: list[str] | None) -> bool:
        """Return True when every scope in *scopes* was granted to this session."""
        if not scopes:
            return True
        granted = set(self.scopes)
        return all(scope in granted for scope in scopes)

    def to_public(self) -> AuthenticationSession:
        return AuthenticationSession(
            id=self.id,
            access_token=self.access_token,
            account=self.account,
            scopes=list(self.scopes),
        )


class SessionChangeEvent(BaseModel):
    """Notification describing sessions added, removed, or changed."""

    added: list[AuthenticationSession] = Field(default_factory=list)
    removed: list[AuthenticationSession] = Field(default_factory=list)
    changed: list[AuthenticationSession] = Field(default_factory=list)
