"""
auth/dependencies.py -- FastAPI Depends() helpers for the redeemed session.

A redeemed magic link leaves an "access_token" JWT cookie behind. Two places
are checked in priority order:
  1. JWT cookie ("access_token") -- set by the redemption route.
  2. Authorization: Bearer <token> header -- scripts reusing the same JWT.

try_get_current_account() is the soft variant (returns None on failure).
get_current_account() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from api/ or cache/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Account
from auth.tokens import decode_access_token


def try_get_current_account(request: Request) -> Account | None:
    """Return the Account the request is logged in as, or None. Never raises."""
    account_store = request.app.state.account_store

    # 1. Cookie (set by redemption)
    token: str | None = request.cookies.get("access_token")

    # 2. Authorization: Bearer header
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]

    if not token:
        return None
    payload = decode_access_token(token)
    if not payload:
        return None
    return account_store.get_by_id(payload["account_id"])


def get_current_account(request: Request) -> Account:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(account: Account = Depends(get_current_account)): ...
    """
    account = try_get_current_account(request)
    if account is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return account
