"""Replica exchange between the local data directory and a cloud folder.

Push own, pull others:

- push copies this machine's record file to the shared folder, always
  overwriting. No timestamps are compared.
- pull copies every other machine's record file from the shared folder to
  the local directory. This machine's own file is never pulled back.

Each file in the shared folder has exactly one writer: its owner.
"""

from dataclasses import dataclass, field
from pathlib import Path

from looptrack.errors import ExchangeError
from looptrack.storage.models import RecordSet
from looptrack.storage.records import iter_record_files, machine_id_from_filename, record_filename
from looptrack.utils.fileio import atomic_write_bytes, copy_file_atomic
from looptrack.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PullResult:
    """Outcome of one pull phase."""
    pulled: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)  # filename -> reason


@dataclass
class ExchangeResult:
    """Outcome of a push + pull cycle."""
    machine_id: str
    pushed: bool = False
    pull: PullResult = field(default_factory=PullResult)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        parts = [
            "pushed" if self.pushed else "nothing to push",
            f"pulled {len(self.pull.pulled)} peer file(s)",
        ]
        if self.pull.skipped:
            parts.append(f"skipped {len(self.pull.skipped)}")
        if self.errors:
            parts.append(f"{len(self.errors)} error(s)")
        return ", ".join(parts)


def _ensure_dir(path: Path, phase: str) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ExchangeError(phase, str(path), f"cannot create directory: {e}") from e


def push_local_to_shared(local_dir: Path, shared_dir: Path, machine_id: str) -> bool:
    """Copy this machine's record file into the shared folder.

    Returns:
        True if a local file existed and was copied.

    Raises:
        ExchangeError: If the shared folder cannot be created or the copy
            fails.
    """
    local_dir, shared_dir = Path(local_dir), Path(shared_dir)
    _ensure_dir(shared_dir, "push")

    name = record_filename(machine_id)
    local_file = local_dir / name
    if not local_file.exists():
        logger.debug(f"No local {name} yet, nothing to push")
        return False

    try:
        copy_file_atomic(local_file, shared_dir / name)
    except OSError as e:
        raise ExchangeError("push", str(local_file), f"cannot copy: {e}") from e
    logger.info(f"Pushed {name} to {shared_dir}")
    return True


def pull_shared_to_local(local_dir: Path, shared_dir: Path, machine_id: str) -> PullResult:
    """Copy every peer's record file from the shared folder.

    Files that do not parse as a record set (corrupt, or still being
    written by the cloud client) or cannot be written locally are skipped;
    they are picked up on a later cycle.

    Raises:
        ExchangeError: If the local directory cannot be created.
    """
    local_dir, shared_dir = Path(local_dir), Path(shared_dir)
    result = PullResult()

    if not shared_dir.is_dir():
        logger.debug(f"Shared folder {shared_dir} does not exist, nothing to pull")
        return result

    _ensure_dir(local_dir, "pull")
    own_name = record_filename(machine_id)

    for shared_file in iter_record_files(shared_dir):
        name = shared_file.name
        if name == own_name:
            continue

        try:
            data = shared_file.read_bytes()
            RecordSet.from_json(data)
            atomic_write_bytes(local_dir / name, data)
        except (OSError, ValueError) as e:
            reason = str(e).splitlines()[0] if str(e) else type(e).__name__
            logger.warning(f"Failed to sync {name}: {reason}")
            result.skipped[name] = reason
            continue

        result.pulled.append(name)
        logger.debug(f"Pulled {name} ({machine_id_from_filename(name)})")

    if result.pulled:
        logger.info(f"Pulled {len(result.pulled)} peer file(s) from {shared_dir}")
    return result


def exchange(local_dir: Path, shared_dir: Path, machine_id: str) -> ExchangeResult:
    """Push, then pull.

    Pushing first means the shared folder already holds this machine's
    latest state while peers are read. A phase that fails as a whole is
    recorded in ``errors`` and does not stop the other phase.
    """
    result = ExchangeResult(machine_id=machine_id)

    try:
        result.pushed = push_local_to_shared(local_dir, shared_dir, machine_id)
    except ExchangeError as e:
        logger.error(str(e))
        result.errors.append(str(e))

    try:
        result.pull = pull_shared_to_local(local_dir, shared_dir, machine_id)
    except ExchangeError as e:
        logger.error(str(e))
        result.errors.append(str(e))

    return result


class ReplicaExchange:
    """Push/pull bound to one local directory and one shared folder."""

    def __init__(self, local_dir: Path, shared_dir: Path) -> None:
        self.local_dir = Path(local_dir)
        self.shared_dir = Path(shared_dir)

    def push(self, machine_id: str) -> bool:
        return push_local_to_shared(self.local_dir, self.shared_dir, machine_id)

    def pull(self, machine_id: str) -> PullResult:
        return pull_shared_to_local(self.local_dir, self.shared_dir, machine_id)

    def exchange(self, machine_id: str) -> ExchangeResult:
        return exchange(self.local_dir, self.shared_dir, machine_id)
