"""Secret storage backends.

The session layer only needs an opaque key/value store with three async
operations -- ``get``, ``store`` and ``delete`` -- described by the
:class:`SecretStore` protocol. Hosts with a keychain or secret manager inject
their own implementation; two are provided here:

- :class:`MemorySecretStore` -- process-local dict, for tests and
  short-lived embedders.
- :class:`FileSecretStore` -- one file per key under
  ``<data_dir>/secrets/`` (typically
  ``~/.local/share/devgrid-auth/secrets/``). Files are written atomically
  with ``0o600`` permissions so secrets are never world-readable, even
  momentarily.

See Also:
    :class:`~devgrid_auth.session_store.SessionStore` -- the only consumer.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from devgrid_auth.config import atomic_write, get_data_dir

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@runtime_checkable
class SecretStore(Protocol):
    """Opaque encrypted key/value persistence supplied by the host."""

    async def get(self, key: str) -> Optional[str]:
        """Return the value stored under *key*, or ``None`` if absent."""
        ...

    async def store(self, key: str, value: str) -> None:
        """Replace the value stored under *key*."""
        ...

    async def delete(self, key: str) -> None:
        """Remove *key*. Deleting an absent key is a no-op."""
        ...


class MemorySecretStore:
    """In-memory :class:`SecretStore`.

    Args:
        initial: Optional mapping to pre-populate the store with.
    """

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    async def store(self, key: str, value: str) -> None:
        self._values[key] = value

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)


class FileSecretStore:
    """File-backed :class:`SecretStore` with one ``0o600`` file per key.

    Args:
        directory: Where to keep the secret files. Defaults to
            ``get_data_dir() / "secrets"``.

    Example::

        store = FileSecretStore()
        await store.store("devgrid.auth.sessions", "[]")
        assert await store.get("devgrid.auth.sessions") == "[]"
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self._directory = directory if directory is not None else get_data_dir() / "secrets"

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        """Return the file that holds *key*."""
        return self._directory / f"{_UNSAFE_CHARS.sub('_', key)}.secret"

    async def get(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, self.path_for(key))

    async def store(self, key: str, value: str) -> None:
        await asyncio.to_thread(atomic_write, self.path_for(key), value, 0o600)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self.path_for(key).unlink, missing_ok=True)

    @staticmethod
    def _read(path: Path) -> Optional[str]:
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")
