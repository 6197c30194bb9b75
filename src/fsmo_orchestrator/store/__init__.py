"""Shared SYSVOL store: file primitives and record codecs."""

from fsmo_orchestrator.store.records import PriorityRecord, SeizureLock
from fsmo_orchestrator.store.shared import (
    HISTORY_FILE,
    PRIORITIES_FILE,
    SharedStore,
    lock_file_name,
)

__all__ = [
    "HISTORY_FILE",
    "PRIORITIES_FILE",
    "PriorityRecord",
    "SeizureLock",
    "SharedStore",
    "lock_file_name",
]
