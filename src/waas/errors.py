"""Error taxonomy.

Every client-visible failure is a WalletError subclass carrying the HTTP
status it maps to. The API layer converts them to ``{"error": message}``
bodies; nothing here is retried by the server.
"""

from typing import Any, Optional


class WalletError(Exception):
    """Base class for client-visible errors."""

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Serialize to the JSON error body."""
        body: dict[str, Any] = {"error": self.message}
        body.update(self.extra)
        return body


class BadRequest(WalletError):
    """Missing or malformed request fields."""

    status_code = 400
    default_message = "Bad request"


class InvalidCredentials(WalletError):
    """Unknown account or wrong password (deliberately indistinguishable)."""

    status_code = 401
    default_message = "Invalid credentials"


class Unauthorized(WalletError):
    """Missing, malformed, expired or badly signed session."""

    status_code = 401
    default_message = "Unauthorized"


class Conflict(WalletError):
    """Account already exists."""

    status_code = 409
    default_message = "User already exists"


class MigrationRequired(WalletError):
    """Authenticated, but the record holds no recoverable custodial key."""

    status_code = 409
    default_message = "account_requires_migration"


class Gone(WalletError):
    """Retired endpoint."""

    status_code = 410
    default_message = "Deprecated: sponsorship removed. Use AA endpoint /v1/wallet/send-aa."


class LimitExceeded(WalletError):
    """Daily sponsored volume or request rate exceeded."""

    status_code = 429
    default_message = "Limit exceeded"


class Failed(WalletError):
    """Underlying RPC or signing error; message is passed through."""

    status_code = 500
    default_message = "Transaction failed"


class NotConfigured(WalletError):
    """Account-abstraction dependencies are absent."""

    status_code = 501
    default_message = (
        "AA not configured. Set BICONOMY_BUNDLER_URL and BICONOMY_PAYMASTER_URL."
    )


class SubmissionIncomplete(WalletError):
    """Sponsored send produced no confirmable transaction hash.

    State may have changed on chain; callers must re-query, not resubmit.
    """

    status_code = 502
    default_message = "Failed to obtain transaction hash from AA send"


class TimedOut(WalletError):
    """Broadcast transaction was not confirmed within the wait window."""

    status_code = 504
    default_message = "Transaction not confirmed in time"


class DecryptionFailed(Exception):
    """Custodial key ciphertext failed authentication or is malformed.

    Internal only: callers map this to InvalidCredentials or Unauthorized so
    clients cannot tell it apart from a credential mismatch.
    """

    pass
