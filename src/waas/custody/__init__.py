"""Credential and custodial key management.

- CustodyManager: account creation, sign-in, legacy migration, key access
- SessionSigner: session token issue/verify
- CustodialKey: request-scoped plaintext key
"""

from waas.custody.keys import CustodialKey, derive_address
from waas.custody.manager import CustodyManager, Session
from waas.custody.sessions import SessionClaims, SessionSigner

__all__ = [
    "CustodialKey",
    "CustodyManager",
    "Session",
    "SessionClaims",
    "SessionSigner",
    "derive_address",
]
