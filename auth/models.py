"""
auth/models.py -- Domain dataclasses for accounts, locators, and magic links.

Pattern: Data class (pure data container, zero logic). Stores and the magic
link protocol in auth/magic.py do the work.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Union


@dataclass
class Account:
    """An identity a magic link can log in as.

    Accounts are owned by the account directory (auth/store.py). The magic
    link protocol only reads them, and only id is bound into the token hash.
    """

    login: str
    email: str
    id: int | None = None
    created_at: str | None = None


# ---------------------------------------------------------------------------
# Locators -- the tagged form of "user id, login, or email" accepted by the CLI
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmailLocator:
    email: str


@dataclass(frozen=True)
class LoginLocator:
    login: str


@dataclass(frozen=True)
class IdLocator:
    id: int


Locator = Union[EmailLocator, LoginLocator, IdLocator]


# ---------------------------------------------------------------------------
# Magic links
# ---------------------------------------------------------------------------


@dataclass
class TokenRecord:
    """What the ephemeral store keeps for one issued magic link.

    private_hash is bcrypt(publicKey|endpoint|domain|accountId). The public
    key itself is the store key and is not repeated here.
    """

    account_id: int
    private_hash: str
    issued_at: float

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> TokenRecord:
        return cls(
            account_id=int(data["account_id"]),
            private_hash=str(data["private_hash"]),
            issued_at=float(data["issued_at"]),
        )


@dataclass
class MagicLink:
    """Result of minting: the store key and the shareable URL. Never persisted."""

    public_key: str
    url: str
