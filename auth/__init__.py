"""auth/ -- Accounts, magic link minting/redemption, and session tokens.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or cache/ (the token store is passed in).
api/ and main.py import from auth/, not the other way around.
"""
