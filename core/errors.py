"""
core/errors.py -- Error kinds raised by magic-login operations.

Every error is resolved at the boundary of the operation that detected it.
The CLI prints the message and exits non-zero; the API turns
RedemptionRejected into a plain 404. Nothing here is retried: issuing or
invalidating twice would mint a second token or rotate the secret again.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError


class MagicLoginError(Exception):
    """Base class for every error the operator or the HTTP layer can see."""


class AccountNotFound(MagicLoginError):
    """The locator did not resolve to an existing account."""


class AccountExists(MagicLoginError):
    """An account with the same login or email is already in the directory."""


class CapabilityNotActive(MagicLoginError):
    """The companion redemption server is not installed or not active."""


class InvalidToggleValue(MagicLoginError):
    """Toggle received something other than "on" or "off"."""


class LaunchFailed(MagicLoginError):
    """The browser could not be opened. The issued link is still valid."""


class RedemptionRejected(MagicLoginError):
    """A magic link could not be redeemed.

    Raised for an unknown endpoint, an unknown/expired/consumed key, and a
    hash mismatch alike. The message never says which.
    """

    def __init__(self) -> None:
        super().__init__("Not Found")


class StorageFault(MagicLoginError):
    """The backing store could not be reached or rejected the operation."""


@contextmanager
def storage_fault(operation: str) -> Iterator[None]:
    """Translate driver errors raised inside the block into StorageFault."""
    try:
        yield
    except (sqlite3.Error, SQLAlchemyError) as exc:
        raise StorageFault(f"{operation} failed: {exc}") from exc
