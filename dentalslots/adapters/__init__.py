"""
Adapters layer - Record stores (SQL database, in-memory mock data).
"""

from .memory_store import InMemoryRecordStore
from .sql_store import SqlRecordStore, create_store_engine

__all__ = ["InMemoryRecordStore", "SqlRecordStore", "create_store_engine"]
