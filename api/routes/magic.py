"""
api/routes/magic.py -- Redemption endpoint for magic login links.

Route:
  GET /{endpoint}/{public_key}  -- redeem once; 302 + session cookie, or 404

Mounted at the site root (no /api/v1 prefix) because the path is the link
itself. It must be registered after every other router so it only catches
two-segment paths nothing else claimed.

Every rejection raises the same HTTPException(404) Starlette raises for an
unknown route, so the response does not reveal whether the endpoint was
stale, the key unknown/used/expired, the hash wrong, or the companion server
switched off.

Sync handler on purpose: bcrypt blocks, so FastAPI runs this in its thread
pool instead of on the event loop.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import RedirectResponse

from api.limiter import limiter
from auth.magic import redeem
from auth.store import AccountStore
from auth.tokens import create_access_token, set_auth_cookie
from core.config import get_settings
from core.errors import RedemptionRejected

logger = logging.getLogger("magiclogin.api")

router = APIRouter()

_settings = get_settings()


def _not_found() -> HTTPException:
    return HTTPException(status_code=404)


@limiter.limit(_settings.redeem_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.get("/{endpoint}/{public_key}", include_in_schema=False)
def redeem_magic_link(request: Request, endpoint: str, public_key: str) -> RedirectResponse:
    """Log the bearer in as the account the link was minted for."""
    state = request.app.state
    if not state.companion.is_active():
        raise _not_found()

    try:
        account_id = redeem(endpoint, public_key, state.registry, state.token_cache, _settings.domain)
    except RedemptionRejected:
        raise _not_found() from None

    account_store: AccountStore = state.account_store
    account = account_store.get_by_id(account_id)
    if account is None:
        # Deleted between minting and redemption.
        logger.warning("Magic login redeemed for missing account #%s", account_id)
        raise _not_found()

    token = create_access_token(account.id, account.login)
    resp = RedirectResponse(_settings.login_redirect_path, status_code=302)
    set_auth_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp
