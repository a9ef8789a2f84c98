"""Record store interface.

Both backends expose the same narrow contract:
- get(account_id) -> AccountRecord | None
- create(record): insert only, Conflict if the account_id is taken
- save(record): upsert keyed by account_id
- set_field(account_id, field, value): single-field update

save() never replaces a stored smart_account_address with None.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, replace
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class AccountRecord:
    """Stored account.

    password and private_key are legacy plaintext fields. They are readable
    so old records keep working, but every write path clears them.
    """
    account_id: str
    password_hash: Optional[str] = None
    custodial_key_ciphertext: Optional[str] = None
    primary_address: Optional[str] = None
    smart_account_address: Optional[str] = None
    password: Optional[str] = None          # legacy plaintext
    private_key: Optional[str] = None       # legacy plaintext

    @property
    def is_legacy(self) -> bool:
        """True if the record still carries plaintext secrets."""
        return bool(self.password or self.private_key)

    def normalized(self) -> "AccountRecord":
        """Copy with plaintext fields dropped where a protected form exists."""
        return replace(
            self,
            password=None if self.password_hash else self.password,
            private_key=None if self.custodial_key_ciphertext else self.private_key,
        )


# Legacy plaintext fields cannot be written through set_field
FIELD_NAMES = frozenset(f.name for f in fields(AccountRecord)) - {
    "account_id",
    "password",
    "private_key",
}


class RecordStore(ABC):
    """Abstract account record store."""

    backend = "abstract"

    @abstractmethod
    async def get(self, account_id: str) -> Optional[AccountRecord]:
        """Load a record, or None if absent."""
        pass

    @abstractmethod
    async def create(self, record: AccountRecord) -> None:
        """Insert a new record.

        Raises:
            Conflict: A record with this account_id already exists
        """
        pass

    @abstractmethod
    async def save(self, record: AccountRecord) -> None:
        """Insert or update a record."""
        pass

    @abstractmethod
    async def set_field(self, account_id: str, field: str, value: Any) -> None:
        """Update a single field of an existing record."""
        pass

    async def set_if_absent(self, account_id: str, field: str, value: Any) -> bool:
        """Set a field only when it is currently empty.

        Returns:
            True if the value was written
        """
        record = await self.get(account_id)
        if record is None or getattr(record, field) is not None:
            return False
        await self.set_field(account_id, field, value)
        return True

    async def close(self) -> None:
        """Release backend resources."""
        pass

    @staticmethod
    def _check_field(field: str) -> None:
        if field not in FIELD_NAMES:
            raise ValueError(f"Unknown record field: {field}")
