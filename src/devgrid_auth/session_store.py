"""Persistence of the session list.

All sessions live in a single JSON array stored under one fixed key of the
injected :class:`~devgrid_auth.secret_store.SecretStore`. The list is the
unit of persistence: every save replaces the whole value.

A blob that cannot be decoded is treated as an empty list and a warning is
logged; corruption never surfaces as an exception.
"""

from __future__ import annotations

import logging

from pydantic import TypeAdapter, ValidationError

from devgrid_auth.models import StoredSession
from devgrid_auth.secret_store import SecretStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "devgrid.auth.sessions"

_SESSIONS = TypeAdapter(list[StoredSession])


class SessionStore:
    """Load and save the list of :class:`~devgrid_auth.models.StoredSession`.

    Args:
        secrets: Backend holding the serialised list.
        key: Storage key, defaulting to :data:`STORAGE_KEY`.
    """

    def __init__(self, secrets: SecretStore, key: str = STORAGE_KEY) -> None:
        self._secrets = secrets
        self._key = key

    async def load(self) -> list[StoredSession]:
        """Return every stored session, or an empty list if none or unreadable."""
        raw = await self._secrets.get(self._key)
        if not raw:
            return []
        try:
            return _SESSIONS.validate_json(raw) or []
        except (ValidationError, ValueError) as exc:
            logger.warning("Failed to parse stored sessions, ignoring them: %s", exc)
            return []

    async def save(self, sessions: list[StoredSession]) -> None:
        """Replace the stored list with *sessions*."""
        await self._secrets.store(self._key, _SESSIONS.dump_json(sessions).decode())

    async def clear(self) -> None:
        """Delete the stored list entirely."""
        await self._secrets.delete(self._key)
