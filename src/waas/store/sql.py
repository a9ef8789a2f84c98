"""Relational record store (SQLAlchemy async)."""

import asyncio
import logging
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine

from waas.errors import Conflict
from waas.store.base import AccountRecord, RecordStore
from waas.store.database import create_session_factory, init_db, session_scope
from waas.store.models import COLUMN_MAP, Account

logger = logging.getLogger(__name__)


def _to_record(row: Account) -> AccountRecord:
    return AccountRecord(
        account_id=row.email,
        **{name: getattr(row, column) for name, column in COLUMN_MAP.items()},
    )


class SqlRecordStore(RecordStore):
    """Record store backed by a relational database."""

    backend = "sql"

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = create_session_factory(engine)
        self._initialized = False
        self._schema_lock = asyncio.Lock()

    async def _ensure_schema(self) -> None:
        if self._initialized:
            return
        async with self._schema_lock:
            if not self._initialized:
                await init_db(self.engine)
                self._initialized = True

    async def get(self, account_id: str) -> Optional[AccountRecord]:
        """Load a record by email."""
        await self._ensure_schema()
        async with session_scope(self._session_factory) as session:
            result = await session.execute(select(Account).where(Account.email == account_id))
            row = result.scalar_one_or_none()
            return _to_record(row) if row else None

    async def create(self, record: AccountRecord) -> None:
        """Insert a record; the email primary key rejects duplicates."""
        await self._ensure_schema()
        record = record.normalized()
        row = Account(email=record.account_id)
        for name, column in COLUMN_MAP.items():
            setattr(row, column, getattr(record, name))
        try:
            async with session_scope(self._session_factory) as session:
                session.add(row)
        except IntegrityError:
            logger.info(f"Insert rejected for existing account {record.account_id}")
            raise Conflict()

    async def save(self, record: AccountRecord) -> None:
        """Upsert a record, keeping a stored smart account address."""
        await self._ensure_schema()
        record = record.normalized()
        async with session_scope(self._session_factory) as session:
            row = await session.get(Account, record.account_id)
            if row is None:
                row = Account(email=record.account_id)
                session.add(row)

            for name, column in COLUMN_MAP.items():
                value = getattr(record, name)
                if name == "smart_account_address" and value is None:
                    continue
                setattr(row, column, value)

    async def set_field(self, account_id: str, field: str, value: Any) -> None:
        """Update one column of an existing row."""
        self._check_field(field)
        await self._ensure_schema()
        async with session_scope(self._session_factory) as session:
            await session.execute(
                update(Account)
                .where(Account.email == account_id)
                .values({COLUMN_MAP[field]: value})
            )
        logger.debug(f"Updated {field} for {account_id}")

    async def close(self) -> None:
        """Dispose the engine."""
        await self.engine.dispose()
