"""
auth/locator.py -- Classify a raw CLI locator string into a tagged Locator.

The operator may name an account by id, login, or email. Classification
happens once, here, so AccountStore.resolve() only ever sees an explicit
EmailLocator, IdLocator, or LoginLocator.
"""

from __future__ import annotations

import re

from auth.models import EmailLocator, IdLocator, Locator, LoginLocator

# Deliberately loose: one @, no whitespace, a dot somewhere in the domain.
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_ID_RE = re.compile(r"^[1-9]\d*$")


def classify_locator(raw: str) -> Locator:
    """Return the tagged form of raw.

    Email-looking strings become EmailLocator, positive integers become
    IdLocator, everything else is a LoginLocator.
    """
    value = raw.strip()
    if _EMAIL_RE.match(value):
        return EmailLocator(value)
    if _ID_RE.match(value):
        return IdLocator(int(value))
    return LoginLocator(value)
