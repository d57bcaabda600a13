"""Record stores (PostgreSQL via psycopg2, in-memory for dry-run / mock mode)."""

from .record_store import InMemoryRecordStore, PgRecordStore, RecordStore, RecordStoreError

__all__ = [
    "InMemoryRecordStore",
    "PgRecordStore",
    "RecordStore",
    "RecordStoreError",
]
