"""looptrack storage layer."""

from looptrack.storage.models import RecordSet, SyncEvent, UsageRecord
from looptrack.storage.records import (
    LoadResult,
    LoadStatus,
    MergeOutcome,
    OwnedRecord,
    RecordStore,
    aggregate,
)

__all__ = [
    "RecordSet",
    "SyncEvent",
    "UsageRecord",
    "LoadResult",
    "LoadStatus",
    "MergeOutcome",
    "OwnedRecord",
    "RecordStore",
    "aggregate",
]
