"""Tests for the periodic sync loop."""

from looptrack.config import WatchConfig
from looptrack.sources.base import StaticSource
from looptrack.storage.records import RecordStore
from looptrack.sync.daemon import SyncDaemon
from looptrack.sync.engine import SyncEngine

from conftest import MACHINE_A, MACHINE_B, SAMPLE_DATA_B, read_usage_file, write_usage_file


def _daemon(data_dir, sessions, shared_dir=None, **watch):
    engine = SyncEngine(RecordStore(data_dir), StaticSource(sessions))
    return SyncDaemon(engine, MACHINE_A, shared_dir=shared_dir, config=WatchConfig(**watch))


def test_daemon_single_cycle(local_dir, cloud_dir, raw_sessions):
    """Test one cycle syncs and exchanges, then stops the watcher."""
    write_usage_file(cloud_dir, MACHINE_B, SAMPLE_DATA_B)
    daemon = _daemon(local_dir, raw_sessions, cloud_dir)

    daemon.run(max_cycles=1)

    assert daemon.cycles_run == 1
    assert daemon.cycles_failed == 0
    assert daemon.last_result.report.new_sessions == 2
    assert read_usage_file(cloud_dir, MACHINE_A) is not None
    assert read_usage_file(local_dir, MACHINE_B) == SAMPLE_DATA_B
    assert daemon.watcher is not None
    assert not daemon.watcher.is_running


def test_daemon_without_cloud_folder(local_dir, raw_sessions):
    daemon = _daemon(local_dir, raw_sessions)

    daemon.run(max_cycles=1)

    assert daemon.cycles_run == 1
    assert daemon.last_result.exchange is None
    assert daemon.watcher is None


def test_daemon_stop_before_loop(local_dir, raw_sessions):
    """Test a stopped daemon exits after its first cycle."""
    daemon = _daemon(local_dir, raw_sessions)
    daemon.stop()

    daemon.run()

    assert daemon.cycles_run == 1


def test_daemon_peer_change_triggers_pull(local_dir, cloud_dir, raw_sessions):
    """Test a peer event pulls before the next full cycle."""
    daemon = _daemon(local_dir, raw_sessions, cloud_dir, interval=0.0, enabled=False)
    daemon._on_peer_change(cloud_dir / "usage-machine-b.json", "created")

    daemon.run(max_cycles=2)

    assert daemon.pulls_triggered == 1
    assert daemon.cycles_run == 2


def test_daemon_counts_failed_cycles(temp_dir, raw_sessions):
    """Test a cycle that can't write is logged and counted, not raised."""
    blocker = temp_dir / "blocker"
    blocker.write_text("")
    daemon = _daemon(blocker, raw_sessions)

    daemon.run(max_cycles=1)

    assert daemon.cycles_run == 0
    assert daemon.cycles_failed == 1
    assert daemon.last_result is None
