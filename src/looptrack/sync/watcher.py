"""Cloud folder watcher.

Notices when a peer's record file lands in the shared folder so the watch
loop can pull it without waiting for the next full cycle.
"""

import threading
import time
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from looptrack.storage.records import machine_id_from_filename
from looptrack.utils.logging import get_logger

logger = get_logger(__name__)


class PeerFileEventHandler(FileSystemEventHandler):
    """Forward changes to other machines' record files."""

    def __init__(
        self,
        machine_id: str,
        on_change: Callable[[Path, str], None],
        debounce_seconds: float = 2.0,
    ) -> None:
        self.machine_id = machine_id
        self.on_change = on_change
        self._debounce_lock = threading.Lock()
        self._recent_events: dict[str, float] = {}
        self._debounce_seconds = debounce_seconds

    def _is_peer_file(self, path: str) -> bool:
        owner = machine_id_from_filename(Path(path).name)
        return owner is not None and owner != self.machine_id

    def _is_debounced(self, path: str) -> bool:
        current_time = time.time()

        with self._debounce_lock:
            last_time = self._recent_events.get(path, 0)
            if current_time - last_time < self._debounce_seconds:
                return True
            self._recent_events[path] = current_time

            cutoff = current_time - self._debounce_seconds * 2
            self._recent_events = {
                k: v for k, v in self._recent_events.items()
                if v > cutoff
            }

        return False

    def _handle_event(self, path: str, event_type: str) -> None:
        if not self._is_peer_file(path):
            return
        if self._is_debounced(path):
            return
        self.on_change(Path(path), event_type)

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle_event(event.src_path, "created")

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._handle_event(event.src_path, "modified")

    def on_moved(self, event: FileSystemEvent) -> None:
        # Cloud clients and our own writers finish with a rename.
        if event.is_directory:
            return
        self._handle_event(event.dest_path, "moved")


class SharedDirWatcher:
    """Watch a shared folder for peer record files."""

    def __init__(
        self,
        shared_dir: Path,
        machine_id: str,
        on_peer_change: Callable[[Path, str], None],
        debounce_seconds: float = 2.0,
    ) -> None:
        self.shared_dir = Path(shared_dir)
        self.machine_id = machine_id
        self.on_peer_change = on_peer_change
        self.debounce_seconds = debounce_seconds
        self.observer = Observer()
        self._running = False

    def _handle_change(self, path: Path, event_type: str) -> None:
        logger.debug(f"Peer file {event_type}: {path.name}")
        self.on_peer_change(path, event_type)

    def start(self) -> bool:
        """Start watching. Returns False if the folder does not exist."""
        if not self.shared_dir.is_dir():
            logger.warning(f"Watch path does not exist: {self.shared_dir}")
            return False

        handler = PeerFileEventHandler(
            machine_id=self.machine_id,
            on_change=self._handle_change,
            debounce_seconds=self.debounce_seconds,
        )
        self.observer.schedule(handler, str(self.shared_dir), recursive=False)
        self.observer.start()
        self._running = True
        logger.info(f"Watching: {self.shared_dir}")
        return True

    def stop(self) -> None:
        if self._running:
            self.observer.stop()
            self.observer.join(timeout=5)
            self._running = False
            logger.info("Cloud folder watcher stopped.")

    @property
    def is_running(self) -> bool:
        return self._running
