"""Account derivation from ID tokens.

The ID token is read without signature verification: it is only used to pick
a stable account id and a display label, never to authorize anything.
Decoding is best effort and never raises.
"""

from __future__ import annotations

import base64
import json
import uuid
from typing import Any, Optional

from devgrid_auth.models import AccountInfo

DEFAULT_ACCOUNT_LABEL = "DevGrid Account"

_ID_CLAIMS = ("sub", "email", "preferred_username")
_LABEL_CLAIMS = ("name", "email", "nickname")


def decode_id_token(id_token: Optional[str]) -> Optional[dict[str, Any]]:
    """Return the claims of a JWT payload, or ``None`` if it cannot be read.

    Example::

        >>> decode_id_token("not-a-jwt") is None
        True
    """
    if not id_token:
        return None
    parts = id_token.split(".")
    if len(parts) < 2:
        return None
    payload = parts[1]
    try:
        raw = base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4))
        claims = json.loads(raw.decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    return claims if isinstance(claims, dict) else None


def _first_claim(claims: dict[str, Any], names: tuple[str, ...]) -> Optional[str]:
    for name in names:
        value = claims.get(name)
        if value:
            return str(value)
    return None


def build_account_info(id_token: Optional[str]) -> AccountInfo:
    """Derive the account for a freshly issued token.

    The id falls back through ``sub``, ``email``, ``preferred_username`` and
    finally a random UUID; the label through ``name``, ``email``,
    ``nickname`` and :data:`DEFAULT_ACCOUNT_LABEL`.
    """
    claims = decode_id_token(id_token) or {}
    return AccountInfo(
        id=_first_claim(claims, _ID_CLAIMS) or str(uuid.uuid4()),
        label=_first_claim(claims, _LABEL_CLAIMS) or DEFAULT_ACCOUNT_LABEL,
    )
