"""Transfer request variants and results.

A transfer is one of two tagged variants sharing the same precondition
(authenticated account, decrypted custodial key):

- DirectTransfer: signed by the custodial key, paid for by the account
  Built -> Submitted -> Confirmed | TimedOut | Failed
- SponsoredTransfer: ERC-4337 user operation, gas covered by the paymaster
  AccountResolved -> Encoded -> Submitted -> HashObtained | SubmissionIncomplete | Failed
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from waas.errors import Failed, SubmissionIncomplete, TimedOut


class TransferStatus(str, Enum):
    """Stage reached by a transfer."""

    BUILT = "built"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    ACCOUNT_RESOLVED = "account_resolved"
    ENCODED = "encoded"
    HASH_OBTAINED = "hash_obtained"
    SUBMISSION_INCOMPLETE = "submission_incomplete"


@dataclass
class DirectTransfer:
    """Native or token transfer signed by the custodial key."""
    to: str
    amount: int                    # base units, no decimal scaling
    token: Optional[str] = None    # None = configured token


@dataclass
class SponsoredTransfer:
    """Token transfer sent from the smart account with sponsored gas."""
    to: str
    amount: int                    # base units


Transfer = Union[DirectTransfer, SponsoredTransfer]


@dataclass
class TransferResult:
    """Outcome of a transfer attempt."""
    status: TransferStatus
    tx_hash: Optional[str] = None
    user_op_hash: Optional[str] = None
    smart_account_address: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status in (TransferStatus.CONFIRMED, TransferStatus.HASH_OBTAINED)

    def raise_for_status(self) -> "TransferResult":
        """Convert a terminal failure into the matching client error."""
        if self.status == TransferStatus.TIMED_OUT:
            raise TimedOut(txHash=self.tx_hash)
        if self.status == TransferStatus.SUBMISSION_INCOMPLETE:
            raise SubmissionIncomplete(userOpHash=self.user_op_hash)
        if self.status == TransferStatus.FAILED:
            raise Failed(self.error)
        return self


@dataclass
class Balance:
    """Point-in-time balances in base units."""
    address: str
    native: int
    token: int


@dataclass
class TransferEvent:
    """Token Transfer event touching an account."""
    hash: str
    direction: str                 # "send" | "receive"
    amount: str
    sender: str
    recipient: str
    block_number: int
    log_index: int
    token: str
    status: str = "confirmed"
