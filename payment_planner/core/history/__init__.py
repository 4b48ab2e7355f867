from .models import (
    FINAL_STATUSES,
    HistorySnapshot,
    PaymentHistoryEntry,
    PaymentStatus,
    PaymentTimelineEntry,
    make_timeline_entry,
)
from .storage import HistoryStorage, InMemoryStorage, JsonFileStorage, StorageError
from .store import PaymentLifecycleStore
from .timeline import append_timeline_entries, map_deposit_status, merge_entries, merge_timelines
from .tracking import DepositStatusResolver, DepositStatusResult, entry_from_indexer_deposit

__all__ = [
    "FINAL_STATUSES",
    "HistorySnapshot",
    "PaymentHistoryEntry",
    "PaymentStatus",
    "PaymentTimelineEntry",
    "make_timeline_entry",
    "HistoryStorage",
    "InMemoryStorage",
    "JsonFileStorage",
    "StorageError",
    "PaymentLifecycleStore",
    "append_timeline_entries",
    "map_deposit_status",
    "merge_entries",
    "merge_timelines",
    "DepositStatusResolver",
    "DepositStatusResult",
    "entry_from_indexer_deposit",
]
