from scheduling_engine.storage.base import JobStore, RecordStore
from scheduling_engine.storage.memory import InMemoryJobStore, InMemoryRecordStore
from scheduling_engine.storage.sqlite_jobs import SQLiteJobStore

__all__ = [
    "RecordStore",
    "JobStore",
    "InMemoryRecordStore",
    "InMemoryJobStore",
    "SQLiteJobStore",
]
