"""looptrack cross-machine sync.

Merges observed sessions into this machine's record file and exchanges
record files with other machines through a shared folder.
"""

from looptrack.sync.engine import AggregateView, SyncCycleResult, SyncEngine, SyncReport
from looptrack.sync.exchange import (
    ExchangeResult,
    PullResult,
    ReplicaExchange,
    exchange,
    pull_shared_to_local,
    push_local_to_shared,
)

__all__ = [
    "AggregateView",
    "SyncCycleResult",
    "SyncEngine",
    "SyncReport",
    "ExchangeResult",
    "PullResult",
    "ReplicaExchange",
    "exchange",
    "pull_shared_to_local",
    "push_local_to_shared",
]
