"""Configuration loading with XDG paths, atomic writes, and env overrides.

This module handles the persistent configuration concerns of devgrid-auth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.devgrid-auth/`` on macOS and Windows. See :func:`get_data_dir`.
* **Auth config** -- :func:`load_auth_config` reads the static
  ``config.json`` packaged with :mod:`devgrid_auth` (or an explicit path),
  then layers ``DEVGRID_AUTH_*`` environment variables on top.
  Completeness is *not* checked here; callers invoke
  :meth:`~devgrid_auth.models.AuthConfig.require` on first use.
* **Atomic writes** -- :func:`atomic_write` writes via a temp file and
  ``os.replace`` so secrets are never left half-written.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from importlib import resources
from pathlib import Path
from typing import Any, Optional

from devgrid_auth.exceptions import ConfigError
from devgrid_auth.models import AuthConfig

_APP_NAME = "devgrid-auth"
_PACKAGED_CONFIG = "config.json"

CONFIG_PATH_ENV = "DEVGRID_AUTH_CONFIG"

# Environment variable -> AuthConfig field.
_ENV_OVERRIDES = {
    "DEVGRID_AUTH_DOMAIN": "domain",
    "DEVGRID_AUTH_CLIENT_ID": "client_id",
    "DEVGRID_AUTH_AUDIENCE": "audience",
    "DEVGRID_AUTH_SCOPE": "scope",
}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_data_dir() -> Path:
    """Return the data directory (secrets, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/devgrid-auth/`` (default
    ``~/.local/share/devgrid-auth/``). On macOS/Windows: ``~/.devgrid-auth/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = Path.home() / f".{_APP_NAME}"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. When *mode* is given
    the permissions are applied before any content is written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Auth config ---


def _read_packaged_config() -> dict[str, Any]:
    text = resources.files("devgrid_auth").joinpath(_PACKAGED_CONFIG).read_text(
        encoding="utf-8"
    )
    return json.loads(text)


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Auth config file not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigError(f"Invalid auth config at {path}: {exc}") from exc


def load_auth_config(path: Optional[Path] = None) -> AuthConfig:
    """Load the auth configuration.

    Precedence (high to low):
        1. ``DEVGRID_AUTH_DOMAIN``, ``DEVGRID_AUTH_CLIENT_ID``,
           ``DEVGRID_AUTH_AUDIENCE``, ``DEVGRID_AUTH_SCOPE``
        2. The file at *path*, or at ``$DEVGRID_AUTH_CONFIG``
        3. The ``config.json`` packaged with :mod:`devgrid_auth`

    The file holds an ``"auth"`` object with ``domain``, ``clientId``,
    ``audience`` and ``scope`` keys. Missing values are tolerated here.

    Raises:
        ConfigError: If an explicit config file is missing or not valid JSON.
    """
    if path is None and os.environ.get(CONFIG_PATH_ENV):
        path = Path(os.environ[CONFIG_PATH_ENV]).expanduser()

    raw = _read_config_file(path) if path is not None else _read_packaged_config()
    section = raw.get("auth") or {}
    if not isinstance(section, dict):
        raise ConfigError("The 'auth' section of the config must be an object")

    config = AuthConfig.model_validate(section)
    for env_var, field in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            setattr(config, field, value)
    return config
