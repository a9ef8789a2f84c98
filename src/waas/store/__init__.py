"""Account record storage."""

from waas.store.base import AccountRecord, RecordStore
from waas.store.factory import close_record_store, create_record_store, get_record_store

__all__ = [
    "AccountRecord",
    "RecordStore",
    "close_record_store",
    "create_record_store",
    "get_record_store",
]
