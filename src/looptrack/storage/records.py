"""Per-machine record files.

Each machine owns exactly one ``usage-<machine_id>.json`` in the data
directory. Only that machine's sync cycle writes it; everything else in the
directory is a peer snapshot pulled from the cloud folder.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from looptrack.storage.models import (
    RecordSet,
    SyncEvent,
    UsageRecord,
    normalize_observation,
    record_id_for,
)
from looptrack.utils.fileio import atomic_write_text
from looptrack.utils.logging import get_logger

logger = get_logger(__name__)

RECORD_PREFIX = "usage-"
RECORD_SUFFIX = ".json"
LEGACY_RECORD_FILE = "usage.json"


def utc_now() -> str:
    """Current time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def validate_machine_id(machine_id: str) -> str:
    if not machine_id or not machine_id.strip():
        raise ValueError("machine id must not be empty")
    if "/" in machine_id or "\\" in machine_id or machine_id in (".", ".."):
        raise ValueError(f"machine id is not filename-safe: {machine_id!r}")
    return machine_id


def record_filename(machine_id: str) -> str:
    return f"{RECORD_PREFIX}{validate_machine_id(machine_id)}{RECORD_SUFFIX}"


def machine_id_from_filename(name: str) -> str | None:
    """Machine id encoded in a record filename, or None if it is not one."""
    if not (name.startswith(RECORD_PREFIX) and name.endswith(RECORD_SUFFIX)):
        return None
    machine_id = name[len(RECORD_PREFIX):-len(RECORD_SUFFIX)]
    return machine_id or None


def iter_record_files(directory: Path) -> list[Path]:
    """Record files in ``directory`` sorted by name."""
    if not directory.is_dir():
        return []
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and machine_id_from_filename(p.name) is not None
    )


class LoadStatus(Enum):
    """Outcome of reading a record file."""
    OK = "ok"
    MISSING = "missing"
    CORRUPT = "corrupt"


@dataclass
class LoadResult:
    """A record set plus how it was obtained.

    MISSING and CORRUPT both carry an empty record set so callers can
    proceed; ``reason`` says why.
    """
    record_set: RecordSet
    status: LoadStatus = LoadStatus.OK
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is LoadStatus.OK

    @property
    def is_warning(self) -> bool:
        return self.status is LoadStatus.CORRUPT


def read_record_file(path: Path) -> LoadResult:
    """Read and validate one record file without raising."""
    if not path.exists():
        return LoadResult(RecordSet(), LoadStatus.MISSING, f"{path.name} does not exist")
    try:
        return LoadResult(RecordSet.from_json(path.read_bytes()))
    except (OSError, ValidationError, ValueError) as e:
        return LoadResult(RecordSet(), LoadStatus.CORRUPT, f"could not load {path.name}: {e}")


@dataclass
class MergeOutcome:
    """Result of merging observations into a record set."""
    record_set: RecordSet
    new_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0

    @property
    def total_count(self) -> int:
        return len(self.record_set.sessions)


@dataclass
class OwnedRecord:
    """A usage record tagged with the machine whose file it came from."""
    machine_id: str
    record: UsageRecord

    def to_dict(self) -> dict[str, Any]:
        data = self.record.model_dump(by_alias=True)
        data["machineId"] = self.machine_id
        return data


@dataclass
class LoadAllResult:
    record_sets: dict[str, RecordSet] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


class RecordStore:
    """Loads, merges and saves the record files under one data directory."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)

    def path_for(self, machine_id: str) -> Path:
        return self.data_dir / record_filename(machine_id)

    def load_result(self, machine_id: str) -> LoadResult:
        """Read the record set for ``machine_id`` as a tagged result."""
        return read_record_file(self.path_for(machine_id))

    def load(self, machine_id: str) -> RecordSet:
        """Record set for ``machine_id``; empty if missing or unreadable."""
        result = self.load_result(machine_id)
        if result.is_warning:
            logger.warning(f"Could not load existing data for {machine_id}: {result.reason}")
        return result.record_set

    def merge(
        self,
        existing: RecordSet,
        incoming: Iterable[Mapping[str, Any]],
        now: str | None = None,
    ) -> MergeOutcome:
        """Merge raw observations into a copy of ``existing``.

        Every observation replaces whatever was stored under its record id.
        ``syncedAt`` and ``lastSync`` are set to the merge time, so merging
        the same observations twice changes only those timestamps.
        Observations that cannot be normalized are skipped and counted.
        """
        now = now or utc_now()
        sessions = dict(existing.sessions)
        new_count = 0
        updated_count = 0
        skipped_count = 0

        for raw in incoming:
            record_id = record_id_for(raw)
            try:
                record = normalize_observation(raw, synced_at=now)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed session {record_id}: {e}")
                skipped_count += 1
                continue
            if record_id in sessions:
                updated_count += 1
            else:
                new_count += 1
            sessions[record_id] = record

        event = SyncEvent(
            timestamp=now,
            new_sessions=new_count,
            updated_sessions=updated_count,
            total_sessions=len(sessions),
        )
        merged = RecordSet(
            sessions=sessions,
            syncs=[*existing.syncs, event],
            last_sync=now,
        )
        return MergeOutcome(
            merged, new_count=new_count, updated_count=updated_count, skipped_count=skipped_count
        )

    def save(self, record_set: RecordSet, machine_id: str) -> Path:
        """Write the whole record set for ``machine_id``."""
        path = self.path_for(machine_id)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        atomic_write_text(path, record_set.to_json())
        logger.debug(f"Saved {len(record_set.sessions)} sessions to {path}")
        return path

    def machine_ids(self) -> list[str]:
        return [machine_id_from_filename(p.name) for p in iter_record_files(self.data_dir)]

    def load_all(self) -> LoadAllResult:
        """Load every record file, skipping the ones that fail to parse."""
        result = LoadAllResult()
        for path in iter_record_files(self.data_dir):
            machine_id = machine_id_from_filename(path.name)
            loaded = read_record_file(path)
            if not loaded.ok:
                logger.warning(f"Skipping {path.name}: {loaded.reason}")
                result.warnings.append(loaded.reason or path.name)
                continue
            result.record_sets[machine_id] = loaded.record_set
        return result

    def migrate_legacy(self, machine_id: str) -> bool:
        """Rename a single-machine ``usage.json`` to this machine's file."""
        legacy = self.data_dir / LEGACY_RECORD_FILE
        target = self.path_for(machine_id)
        if not legacy.exists() or target.exists():
            return False
        logger.info(f"Migrating {LEGACY_RECORD_FILE} to {target.name}")
        legacy.rename(target)
        return True


def aggregate(record_sets: Mapping[str, RecordSet]) -> dict[str, OwnedRecord]:
    """Merge every machine's sessions into one view tagged by owner.

    Record ids come from per-machine source data and are not expected to
    collide; if they do, the machine iterated last wins.
    """
    merged: dict[str, OwnedRecord] = {}
    for machine_id, record_set in record_sets.items():
        for record_id, record in record_set.sessions.items():
            previous = merged.get(record_id)
            if previous is not None and previous.machine_id != machine_id:
                logger.debug(
                    f"Record {record_id} present on {previous.machine_id} and {machine_id}; "
                    f"keeping {machine_id}"
                )
            merged[record_id] = OwnedRecord(machine_id=machine_id, record=record)
    return merged
