"""
auth/tokens.py -- Caller tokens: signed JWTs carrying identity and role.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       the caller identity (sub), the caller's role, and expiry. Verification
       returns None on any failure -- the route layer turns that into a 401.

  Issuance: tokens are minted by whoever operates the ledger (the CLI's
       `token` command, or tests). There is no login flow here; credential
       issuance belongs to the identity provider in front of the ledger.

  SECRET_KEY: sourced from core.config.get_settings(). Dev mode (DEBUG=true)
       auto-generates a random key with a warning; production mode refuses to
       start without one.

Layer rule: no imports from api/. Import from core/ is allowed -- core/ is the
kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.config import get_settings
from core.models import CallerContext, Role

logger = logging.getLogger("coilledger.auth")

_ALGORITHM = "HS256"


def create_access_token(identity: str, role: Role | str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for a ledger participant.

    Args:
        identity:       Caller identity, stored as the JWT subject claim.
        role:           Role value ("Authority", "Manufacturer", ...).
        expire_seconds: Token lifetime in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    settings = get_settings()
    duration = expire_seconds if expire_seconds > 0 else settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": identity,
        "role": Role(role).value,
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> CallerContext | None:
    """Verify a JWT and return the CallerContext it carries, or None.

    Returning None (rather than raising) keeps the caller simple: any invalid
    token -- bad signature, expired, missing claims, unknown role -- is
    treated as unauthenticated.
    """
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    identity = payload.get("sub")
    role = payload.get("role")
    if not identity or not role:
        return None
    try:
        return CallerContext(identity=identity, role=Role(role))
    except ValueError:
        logger.warning("Rejected token for %s with unknown role %r", identity, role)
        return None
