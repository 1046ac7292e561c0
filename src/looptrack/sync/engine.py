"""Sync cycle orchestration.

A sync cycle asks the observation source for sessions, merges them into
this machine's record file and saves it. An exchange cycle then pushes that
file to the cloud folder and pulls everyone else's.
"""

from dataclasses import dataclass, field
from pathlib import Path

from looptrack.sources.base import ObservationSource
from looptrack.storage.models import RecordSet
from looptrack.storage.records import OwnedRecord, RecordStore, aggregate
from looptrack.sync.exchange import ExchangeResult, exchange
from looptrack.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SyncReport:
    """Counts from one sync cycle."""
    machine_id: str
    new_sessions: int = 0
    updated_sessions: int = 0
    total_sessions: int = 0
    skipped_sessions: int = 0
    source_available: bool = True

    def summary(self) -> str:
        return (
            f"Synced: {self.new_sessions} new, {self.updated_sessions} updated, "
            f"{self.total_sessions} total sessions"
        )

    def to_dict(self) -> dict:
        return {
            "machine_id": self.machine_id,
            "new_sessions": self.new_sessions,
            "updated_sessions": self.updated_sessions,
            "total_sessions": self.total_sessions,
            "skipped_sessions": self.skipped_sessions,
            "source_available": self.source_available,
        }


@dataclass
class SyncCycleResult:
    record_set: RecordSet
    report: SyncReport
    exchange: ExchangeResult | None = None


@dataclass
class AggregateView:
    """Every machine's sessions in one read-only view."""
    records: dict[str, OwnedRecord] = field(default_factory=dict)
    machines: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    last_sync: str | None = None

    def to_dict(self) -> dict:
        return {
            "sessions": {rid: owned.to_dict() for rid, owned in self.records.items()},
            "machines": self.machines,
            "warnings": self.warnings,
            "lastSync": self.last_sync,
        }


class SyncEngine:
    """Runs sync and exchange cycles against one data directory."""

    def __init__(self, store: RecordStore, source: ObservationSource) -> None:
        self.store = store
        self.source = source

    @property
    def data_dir(self) -> Path:
        return self.store.data_dir

    def run_sync_cycle(self, machine_id: str) -> SyncCycleResult:
        """Fetch observations, merge them and save this machine's file.

        If the source is unavailable nothing is written and the report
        shows zero new and zero updated sessions.
        """
        logger.info(f"Syncing usage data for {machine_id} from {self.source.name}")
        existing = self.store.load(machine_id)
        observations = self.source.fetch()

        if observations is None:
            logger.info("No data to sync.")
            report = SyncReport(
                machine_id=machine_id,
                total_sessions=len(existing.sessions),
                source_available=False,
            )
            return SyncCycleResult(record_set=existing, report=report)

        outcome = self.store.merge(existing, observations)
        self.store.save(outcome.record_set, machine_id)

        report = SyncReport(
            machine_id=machine_id,
            new_sessions=outcome.new_count,
            updated_sessions=outcome.updated_count,
            total_sessions=outcome.total_count,
            skipped_sessions=outcome.skipped_count,
        )
        logger.info(report.summary())
        return SyncCycleResult(record_set=outcome.record_set, report=report)

    def run_exchange_cycle(
        self,
        local_dir: Path,
        shared_dir: Path,
        machine_id: str,
    ) -> ExchangeResult:
        """Push this machine's file, then pull peers' files."""
        result = exchange(local_dir, shared_dir, machine_id)
        logger.info(f"Exchange with {shared_dir}: {result.summary()}")
        return result

    def run_full_cycle(self, machine_id: str, shared_dir: Path | None = None) -> SyncCycleResult:
        """Sync cycle followed by an exchange when a shared folder is set."""
        result = self.run_sync_cycle(machine_id)
        if shared_dir is not None:
            result.exchange = self.run_exchange_cycle(self.data_dir, shared_dir, machine_id)
        return result

    def aggregate_all(self) -> AggregateView:
        """All record files in the data directory, tagged by machine."""
        loaded = self.store.load_all()
        last_syncs = [rs.last_sync for rs in loaded.record_sets.values() if rs.last_sync]
        return AggregateView(
            records=aggregate(loaded.record_sets),
            machines=sorted(loaded.record_sets),
            warnings=loaded.warnings,
            last_sync=max(last_syncs) if last_syncs else None,
        )
