"""
auth/tokens.py -- Binding hashes for magic links and the session JWT.

Security design decisions:
  Binding hash: bcrypt over "publicKey|endpoint|domain|accountId". bcrypt is
       salted and slow, so a leaked token store does not let anyone test
       guesses cheaply. bcrypt only reads the first 72 bytes of its input and
       the binding string is often longer, so it is reduced to a SHA-256 hex
       digest first; otherwise the account id at the end would be cut off and
       never checked.

  Session: python-jose with HS256. After a magic link is redeemed the
       redemption route hands out the same kind of signed cookie a password
       login would. Verification returns None on any failure.

  _dummy_hash() enables timing equalization in the redemption path so the
       response time does not reveal which check rejected the request.

  SECRET_KEY: sourced from core.config.get_settings() when a session JWT is
       signed or checked, never at import. The CLI imports this module for
       binding hashes and must be able to report bad configuration itself.

Layer rule: no imports from api/ or cache/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("magiclogin.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Binding hash (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def binding_material(public_key: str, endpoint: str, domain: str, account_id: int) -> str:
    return f"{public_key}|{endpoint}|{domain}|{account_id}"


def _prehash(material: str) -> bytes:
    return hashlib.sha256(material.encode("utf-8")).hexdigest().encode("ascii")


def hash_binding(material: str) -> str:
    """Return a salted bcrypt hash of the binding material."""
    salt = bcrypt.gensalt(rounds=get_settings().bcrypt_rounds)
    return bcrypt.hashpw(_prehash(material), salt).decode("utf-8")


def verify_binding(material: str, hashed: str) -> bool:
    """Return True if material matches the stored hash.

    bcrypt.checkpw compares in constant time. A malformed stored hash counts
    as a mismatch.
    """
    try:
        return bcrypt.checkpw(_prehash(material), hashed.encode("utf-8"))
    except ValueError:
        return False


@lru_cache
def _dummy_hash() -> str:
    """Hash computed on first use and reused, so dummy checks cost one bcrypt verify."""
    return hash_binding("magiclogin_timing_dummy")


def burn_verification_time() -> None:
    """Spend one bcrypt check worth of time and discard the result."""
    verify_binding("magiclogin_timing_dummy_miss", _dummy_hash())


# ---------------------------------------------------------------------------
# Session JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(account_id: int, login: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT for the account a magic link logged in as.

    Args:
        account_id:     Numeric account ID stored in the DB.
        login:          Account login stored as the JWT subject claim.
        expire_seconds: Session duration in seconds. If 0 (default), uses
                        Settings.token_expire_seconds.
    """
    settings = get_settings()
    duration = expire_seconds if expire_seconds > 0 else settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": login,
        "account_id": account_id,
        "amr": "magic_link",
        "exp": expire,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, get_settings().secret_key, algorithms=[_ALGORITHM])
        if "account_id" not in payload:
            return None
        return payload
    except JWTError:
        return None


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": the cookie survives the top-level navigation that follows
        a magic link click, but is not sent on cross-site POSTs.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the JWT expiry so both expire together.
    """
    settings = get_settings()
    duration = expire_seconds if expire_seconds > 0 else settings.token_expire_seconds
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=duration,
    )
