"""Transfer execution.

This module builds, signs and submits transfers, and reads balances and
transfer history for custodial accounts.
"""

from waas.execution.base import (
    Balance,
    DirectTransfer,
    SponsoredTransfer,
    TransferEvent,
    TransferResult,
    TransferStatus,
)
from waas.execution.engine import TransactionEngine

__all__ = [
    "Balance",
    "DirectTransfer",
    "SponsoredTransfer",
    "TransactionEngine",
    "TransferEvent",
    "TransferResult",
    "TransferStatus",
]
