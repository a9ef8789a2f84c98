"""Factory for the process-wide record store.

The backend is picked once, from configuration: SQL when DATABASE_URL is set,
the JSON file store otherwise. It is never re-evaluated per call.
"""

import logging
from typing import Optional

from waas.config import Settings, get_settings
from waas.store.base import RecordStore

logger = logging.getLogger(__name__)

_store: Optional[RecordStore] = None


def create_record_store(settings: Settings) -> RecordStore:
    """Build a store for the given settings."""
    if settings.database_url:
        from waas.store.database import create_engine
        from waas.store.sql import SqlRecordStore

        engine = create_engine(
            settings.database_url, echo=settings.debug and not settings.is_production
        )
        store: RecordStore = SqlRecordStore(engine)
    else:
        from waas.store.file import FileRecordStore

        store = FileRecordStore(settings.data_dir)

    logger.info(f"Record store backend: {store.backend}")
    return store


def get_record_store() -> RecordStore:
    """Get the process-wide record store."""
    global _store
    if _store is None:
        _store = create_record_store(get_settings())
    return _store


async def close_record_store() -> None:
    """Close and forget the process-wide store."""
    global _store
    if _store is not None:
        await _store.close()
        _store = None
