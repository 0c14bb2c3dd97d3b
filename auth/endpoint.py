"""
auth/endpoint.py -- The rotating endpoint secret that prefixes every magic URL.

There is exactly one live value, kept as a named option so every process
sharing the database reads the same one. Rotating it is the only revocation
mechanism: a link minted under the old value points at a path prefix that no
longer matches, even if its record is still sitting in the token store.
"""

from __future__ import annotations

import logging
import secrets

from core.errors import StorageFault
from core.options import OptionStore

logger = logging.getLogger("magiclogin.auth")

ENDPOINT_OPTION = "magic_login_endpoint"


def _new_endpoint() -> str:
    return secrets.token_hex(12)


class EndpointRegistry:
    def __init__(self, options: OptionStore) -> None:
        self._options = options

    def current(self) -> str:
        """Return the endpoint secret, creating it on first use.

        Insert-if-absent followed by a read: concurrent first callers may each
        generate a candidate, but only one INSERT lands and all of them read
        back that value.
        """
        if self._options.add(ENDPOINT_OPTION, _new_endpoint()):
            logger.info("Magic login endpoint created")
        value = self._options.get(ENDPOINT_OPTION)
        if value is None:
            # add() never deletes, so a missing row means the store lost it.
            raise StorageFault("Magic login endpoint vanished after creation")
        return value

    def rotate(self) -> None:
        """Replace the endpoint secret. Every outstanding magic link stops resolving."""
        self._options.update(ENDPOINT_OPTION, _new_endpoint())
        logger.info("Magic login endpoint rotated")
