"""Periodic sync loop.

Runs a full cycle (sync + exchange) every ``interval`` seconds. When the
cloud folder watcher reports a changed peer file, an extra pull runs in
between. Everything runs on the calling thread, one cycle at a time; the
watcher thread only sets an event.
"""

import signal
import threading
import time
from datetime import datetime
from pathlib import Path

from looptrack.config import WatchConfig
from looptrack.errors import LooptrackError
from looptrack.sync.engine import SyncCycleResult, SyncEngine
from looptrack.sync.exchange import PullResult, pull_shared_to_local
from looptrack.sync.watcher import SharedDirWatcher
from looptrack.utils.logging import get_logger

logger = get_logger(__name__)


class SyncDaemon:
    """Serial sync loop for one machine."""

    def __init__(
        self,
        engine: SyncEngine,
        machine_id: str,
        shared_dir: Path | None = None,
        config: WatchConfig | None = None,
    ) -> None:
        self.engine = engine
        self.machine_id = machine_id
        self.shared_dir = Path(shared_dir) if shared_dir else None
        self.config = config or WatchConfig()
        self.watcher: SharedDirWatcher | None = None
        self.started_at: datetime | None = None
        self.last_result: SyncCycleResult | None = None

        self._shutdown_event = threading.Event()
        self._peer_event = threading.Event()

        # Stats
        self.cycles_run = 0
        self.pulls_triggered = 0
        self.cycles_failed = 0

    def _on_peer_change(self, path: Path, event_type: str) -> None:
        self._peer_event.set()

    def run_cycle(self) -> SyncCycleResult | None:
        """One full cycle; failures are logged and counted."""
        try:
            result = self.engine.run_full_cycle(self.machine_id, self.shared_dir)
        except (OSError, LooptrackError) as e:
            logger.error(f"Sync cycle failed: {e}")
            self.cycles_failed += 1
            return None
        self.cycles_run += 1
        self.last_result = result
        return result

    def pull_peers(self) -> PullResult | None:
        if self.shared_dir is None:
            return None
        try:
            result = pull_shared_to_local(self.engine.data_dir, self.shared_dir, self.machine_id)
        except (OSError, LooptrackError) as e:
            logger.error(f"Pull failed: {e}")
            return None
        self.pulls_triggered += 1
        return result

    def _start_watcher(self) -> None:
        if self.shared_dir is None or not self.config.enabled:
            return
        self.watcher = SharedDirWatcher(
            self.shared_dir,
            self.machine_id,
            on_peer_change=self._on_peer_change,
            debounce_seconds=self.config.debounce_seconds,
        )
        if not self.watcher.start():
            self.watcher = None

    def run(self, max_cycles: int | None = None) -> None:
        """Loop until stopped or ``max_cycles`` full cycles have run."""
        self.started_at = datetime.now()
        logger.info(
            f"Sync loop started for {self.machine_id} "
            f"(interval {self.config.interval:.0f}s, cloud: {self.shared_dir or 'none'})"
        )

        # The first cycle creates the shared folder, so start watching after it.
        self.run_cycle()
        self._start_watcher()
        next_cycle = time.monotonic() + self.config.interval

        try:
            while not self._shutdown_event.is_set():
                if max_cycles is not None and self.cycles_run + self.cycles_failed >= max_cycles:
                    break

                timeout = max(next_cycle - time.monotonic(), 0)
                woke = self._peer_event.wait(timeout)
                if self._shutdown_event.is_set():
                    break

                if woke:
                    self._peer_event.clear()
                    self.pull_peers()
                    continue

                self.run_cycle()
                next_cycle = time.monotonic() + self.config.interval
        finally:
            if self.watcher:
                self.watcher.stop()
            logger.info(
                f"Sync loop stopped after {self.cycles_run} cycle(s), "
                f"{self.pulls_triggered} triggered pull(s)"
            )

    def stop(self) -> None:
        self._shutdown_event.set()
        self._peer_event.set()

    def install_signal_handlers(self) -> None:
        def handle_signal(signum: int, frame: object) -> None:
            logger.info(f"Received signal {signum}, initiating shutdown...")
            self.stop()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)
