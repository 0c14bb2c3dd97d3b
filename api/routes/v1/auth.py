"""
api/routes/v1/auth.py -- Session endpoints for accounts logged in by magic link.

Routes:
  GET  /api/v1/auth/me      -- account the current session belongs to (requires auth)

Issuing links is a CLI concern (main.py); there is deliberately no HTTP
endpoint that mints them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.models import AccountResponse
from auth.dependencies import get_current_account
from auth.models import Account

router = APIRouter()


@router.get("/auth/me", response_model=AccountResponse)
async def me(current_account: Account = Depends(get_current_account)) -> AccountResponse:
    """Return identity information for the currently authenticated account."""
    return AccountResponse(
        id=current_account.id,
        login=current_account.login,
        email=current_account.email,
    )

