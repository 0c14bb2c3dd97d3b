"""
auth/magic.py -- Minting and redeeming single-use magic login links.

A magic link looks like:

    {home_url}/{endpoint}/{public_key}

endpoint is the current value of the rotating endpoint secret
(auth/endpoint.py). public_key is random and doubles as the token store key.
The store keeps a bcrypt hash binding the public key to the endpoint, the
site domain, and the account id, so a record only verifies for the exact
link it was minted for.

Redemption takes the record out of the store before verifying it. A failed
verification therefore still burns the link and a stored hash can never be
guessed at repeatedly.

Layer rule: no imports from api/. The token store is passed in, not imported.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from auth.models import Account, MagicLink, TokenRecord
from auth.tokens import binding_material, burn_verification_time, hash_binding, verify_binding
from core.errors import RedemptionRejected

if TYPE_CHECKING:
    from auth.endpoint import EndpointRegistry
    from cache.store import TokenCache

logger = logging.getLogger("magiclogin.auth")

MAGIC_LINK_TTL = 5 * 60

_KEY_NAMESPACE = "magic-login/"

# Byte-length ranges (inclusive) of the three hex groups of a public key.
_KEY_GROUPS = ((3, 7), (4, 7), (5, 7))


def new_public_key() -> str:
    """Return a fresh public key such as "1f2e3d-4c5b6a79-8877665544".

    Three groups of CSPRNG bytes, each of a randomly chosen length, hex
    encoded and joined with "-". At least 12 random bytes per key.
    """
    groups = []
    for low, high in _KEY_GROUPS:
        size = low + secrets.randbelow(high - low + 1)
        groups.append(secrets.token_bytes(size).hex())
    return "-".join(groups)


def store_key(public_key: str) -> str:
    return f"{_KEY_NAMESPACE}{public_key}"


def domain_of(home_url: str) -> str:
    return urlparse(home_url).hostname or ""


def compose_url(home_url: str, endpoint: str, public_key: str) -> str:
    """Assemble the shareable magic URL. Pure; never persisted."""
    return f"{home_url.rstrip('/')}/{endpoint}/{public_key}"


def mint(
    account: Account,
    registry: EndpointRegistry,
    cache: TokenCache,
    home_url: str,
    ttl: int = MAGIC_LINK_TTL,
) -> MagicLink:
    """Issue a magic link for an existing account.

    Reads the endpoint secret once (creating it if needed) and writes exactly
    one record to the token store. The caller is responsible for resolving
    the account and for checking the companion server is active.
    """
    logger.debug("Generating a new magic login for account #%s", account.id)

    endpoint = registry.current()
    public_key = new_public_key()
    domain = domain_of(home_url)
    record = TokenRecord(
        account_id=account.id,
        private_hash=hash_binding(binding_material(public_key, endpoint, domain, account.id)),
        issued_at=cache.clock(),
    )
    cache.put(store_key(public_key), record.to_dict(), ttl)

    return MagicLink(public_key=public_key, url=compose_url(home_url, endpoint, public_key))


def redeem(
    endpoint_segment: str,
    public_key: str,
    registry: EndpointRegistry,
    cache: TokenCache,
    domain: str,
) -> int:
    """Consume a magic link and return the account id it logs in as.

    Raises RedemptionRejected -- always the same exception with the same
    message -- if the endpoint does not match, the key is unknown, expired or
    already used, or the stored hash does not verify.

    The endpoint secret is read once. A rotation that lands mid-request does
    not affect this request's decision.
    """
    endpoint = registry.current()
    if not hmac.compare_digest(endpoint_segment.encode("utf-8"), endpoint.encode("utf-8")):
        burn_verification_time()
        raise RedemptionRejected()

    data = cache.take(store_key(public_key))
    if data is None:
        burn_verification_time()
        raise RedemptionRejected()

    record = TokenRecord.from_dict(data)
    if not verify_binding(binding_material(public_key, endpoint, domain, record.account_id), record.private_hash):
        logger.warning("Magic login hash mismatch; link consumed")
        raise RedemptionRejected()

    logger.info("Magic login redeemed for account #%s", record.account_id)
    return record.account_id
