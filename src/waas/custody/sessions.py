"""Session tokens (HS256 JWT).

Claims: sub (account id), address (primary address), iat, exp.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from waas.errors import Unauthorized

ALGORITHM = "HS256"
DEFAULT_TTL = timedelta(hours=12)


@dataclass
class SessionClaims:
    """Verified session contents."""
    account_id: str
    address: Optional[str]
    expires_at: datetime


class SessionSigner:
    """Issues and verifies session tokens with a server-held secret."""

    def __init__(self, secret: str, ttl: timedelta = DEFAULT_TTL):
        if not secret:
            raise ValueError("Session secret is required")
        self._secret = secret
        self.ttl = ttl

    def issue(self, account_id: str, address: Optional[str], now: Optional[datetime] = None) -> str:
        """Issue a token bound to an account and its primary address."""
        now = now or datetime.now(timezone.utc)
        payload = {
            "sub": account_id,
            "address": address,
            "iat": int(now.timestamp()),
            "exp": int((now + self.ttl).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: Optional[str]) -> SessionClaims:
        """Verify signature and expiry.

        Raises:
            Unauthorized: Missing, malformed, expired or badly signed token
        """
        if not token:
            raise Unauthorized()
        try:
            payload = jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except JWTError:
            raise Unauthorized()

        subject = payload.get("sub")
        if not subject or not isinstance(subject, str) or "exp" not in payload:
            raise Unauthorized()

        return SessionClaims(
            account_id=subject,
            address=payload.get("address"),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
