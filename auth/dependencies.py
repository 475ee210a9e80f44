"""
auth/dependencies.py -- FastAPI Depends() helpers that resolve the caller.

The caller is identified by an Authorization: Bearer <JWT> header. The token's
claims become a CallerContext, which is the only thing the ledger engine ever
sees about who is calling.

try_get_caller() is the soft variant (returns None on failure).
get_caller() wraps it and raises HTTP 401 if unauthenticated.
require_authority() wraps get_caller() and raises HTTP 403 for other roles.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.tokens import decode_access_token
from core.models import CallerContext, Role


def try_get_caller(request: Request) -> CallerContext | None:
    """Return the CallerContext for a valid Bearer token, None otherwise. Never raises."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return decode_access_token(auth_header[7:])


def get_caller(request: Request) -> CallerContext:
    """Require a caller. Raises HTTP 401 if the request carries no valid token.

    Use as a FastAPI dependency:
        @router.post("/invoke")
        def route(caller: CallerContext = Depends(get_caller)): ...
    """
    caller = try_get_caller(request)
    if caller is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return caller


def require_authority(request: Request) -> CallerContext:
    """Require the Authority role. 401 if unauthenticated, 403 otherwise."""
    caller = get_caller(request)
    if caller.role is not Role.AUTHORITY:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Authority role required."},
        )
    return caller
