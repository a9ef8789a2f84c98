"""JSON file record store.

Layout: a single ``users.json`` object mapping email -> record fields.
Reads accept both the current snake_case keys and the camelCase keys written
by earlier deployments; writes always use snake_case.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from waas.errors import Conflict
from waas.store.base import AccountRecord, RecordStore

logger = logging.getLogger(__name__)

USERS_FILE = "users.json"

# Earlier key name -> AccountRecord field
LEGACY_KEYS = {
    "passwordHash": "password_hash",
    "encryptedPk": "custodial_key_ciphertext",
    "walletAddress": "primary_address",
    "smartAccountAddress": "smart_account_address",
    "privateKey": "private_key",
}

STORED_FIELDS = (
    "password_hash",
    "custodial_key_ciphertext",
    "primary_address",
    "smart_account_address",
    "password",
    "private_key",
)


def _from_entry(account_id: str, entry: dict) -> AccountRecord:
    values: dict[str, Any] = {}
    for key, value in entry.items():
        name = LEGACY_KEYS.get(key, key)
        if name in STORED_FIELDS and value is not None:
            values.setdefault(name, value)
    return AccountRecord(account_id=account_id, **values)


def _to_entry(record: AccountRecord) -> dict:
    return {name: getattr(record, name) for name in STORED_FIELDS if getattr(record, name)}


class FileRecordStore(RecordStore):
    """Record store backed by a JSON file."""

    backend = "file"

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)
        self.path = self.data_dir / USERS_FILE
        self._lock = asyncio.Lock()

    def _ensure_store(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self._write({})

    def _read(self) -> dict:
        self._ensure_store()
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def _write(self, data: dict) -> None:
        # Write to a temp file and rename so readers never see a partial file
        fd, tmp = tempfile.mkstemp(dir=self.data_dir, prefix=".users-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        except Exception:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    async def get(self, account_id: str) -> Optional[AccountRecord]:
        """Load a record by email."""
        entry = self._read().get(account_id)
        if entry is None:
            return None
        return _from_entry(account_id, entry)

    async def create(self, record: AccountRecord) -> None:
        """Insert a record if the email is not taken."""
        record = record.normalized()
        async with self._lock:
            data = self._read()
            if record.account_id in data:
                raise Conflict()
            data[record.account_id] = _to_entry(record)
            self._write(data)

    async def save(self, record: AccountRecord) -> None:
        """Upsert a record, keeping a stored smart account address."""
        record = record.normalized()
        async with self._lock:
            data = self._read()
            previous = data.get(record.account_id)
            if previous and record.smart_account_address is None:
                record.smart_account_address = _from_entry(
                    record.account_id, previous
                ).smart_account_address
            data[record.account_id] = _to_entry(record)
            self._write(data)

    async def set_field(self, account_id: str, field: str, value: Any) -> None:
        """Update one field of an existing record."""
        self._check_field(field)
        async with self._lock:
            data = self._read()
            if account_id not in data:
                logger.warning(f"set_field on missing record {account_id}")
                return
            record = _from_entry(account_id, data[account_id])
            setattr(record, field, value)
            data[account_id] = _to_entry(record)
            self._write(data)
