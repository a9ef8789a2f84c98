"""Per-account daily spend counters.

Counters are keyed by (account_id, UTC date) and live in process memory only:
a restart resets every limit to zero, so this is an abuse dampener, not a
security boundary. Policy (the threshold) is applied by the caller.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def utc_today() -> date:
    """Current calendar day in UTC."""
    return datetime.now(timezone.utc).date()


class SpendLimiter:
    """Tracks cumulative base-unit amounts moved per account per day."""

    def __init__(
        self,
        retention_days: int = 7,
        today: Callable[[], date] = utc_today,
    ):
        """Initialize the limiter.

        Args:
            retention_days: Days of counters kept before pruning
            today: Clock returning the current UTC date
        """
        self.retention_days = max(retention_days, 1)
        self._today = today
        self._counters: dict[tuple[str, date], int] = {}
        self._last_prune: Optional[date] = None

    def record_spend(self, account_id: str, amount: int) -> int:
        """Add amount to today's counter.

        Returns:
            Today's new total
        """
        if amount < 0:
            raise ValueError("Spend amount must be non-negative")

        day = self._today()
        if self._last_prune != day:
            self.prune(day)

        key = (account_id, day)
        total = self._counters.get(key, 0) + int(amount)
        self._counters[key] = total
        logger.debug(f"Spend for {account_id} on {day}: {total}")
        return total

    def current_spend(self, account_id: str) -> int:
        """Today's counter, defaulting to zero."""
        return self._counters.get((account_id, self._today()), 0)

    def would_exceed(self, account_id: str, amount: int, limit: int) -> bool:
        """Check a prospective spend against a limit (0 = unlimited)."""
        if limit <= 0:
            return False
        return self.current_spend(account_id) + amount > limit

    def prune(self, today: Optional[date] = None) -> int:
        """Drop counters older than the retention window.

        Returns:
            Number of entries removed
        """
        today = today or self._today()
        cutoff = today - timedelta(days=self.retention_days)
        stale = [key for key in self._counters if key[1] < cutoff]
        for key in stale:
            del self._counters[key]
        self._last_prune = today
        if stale:
            logger.debug(f"Pruned {len(stale)} spend counters older than {cutoff}")
        return len(stale)

    def __len__(self) -> int:
        return len(self._counters)


_limiter: Optional[SpendLimiter] = None


def get_spend_limiter() -> SpendLimiter:
    """Get the process-wide limiter."""
    global _limiter
    if _limiter is None:
        from waas.config import get_settings

        _limiter = SpendLimiter(retention_days=get_settings().spend_retention_days)
    return _limiter


def reset_spend_limiter() -> None:
    """Forget the process-wide limiter (useful for testing)."""
    global _limiter
    _limiter = None
