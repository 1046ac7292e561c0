"""Tests for the local record store."""

import json

import pytest

from looptrack.storage.models import RecordSet
from looptrack.storage.records import (
    LoadStatus,
    RecordStore,
    aggregate,
    machine_id_from_filename,
    record_filename,
)

from conftest import MACHINE_A, MACHINE_B, SAMPLE_DATA_A, SAMPLE_DATA_B, write_usage_file

T1 = "2025-01-05T09:00:00.000Z"
T2 = "2025-01-05T10:00:00.000Z"


@pytest.fixture
def store(temp_dir):
    """Create a store over an empty data directory."""
    return RecordStore(temp_dir / "data")


def test_record_filename_round_trip():
    """Record file names encode the machine id."""
    assert record_filename("laptop") == "usage-laptop.json"
    assert machine_id_from_filename("usage-laptop.json") == "laptop"
    assert machine_id_from_filename("usage-my-mac.json") == "my-mac"
    assert machine_id_from_filename("config.json") is None
    assert machine_id_from_filename("usage-.json") is None
    assert machine_id_from_filename("usage-laptop.json.tmp") is None


def test_record_filename_rejects_unsafe_ids():
    """Machine ids can't escape the data directory."""
    with pytest.raises(ValueError):
        record_filename("")
    with pytest.raises(ValueError):
        record_filename("../etc")
    with pytest.raises(ValueError):
        record_filename("a\\b")


def test_load_missing(store):
    """A missing file loads as an empty record set."""
    result = store.load_result(MACHINE_A)

    assert result.status is LoadStatus.MISSING
    assert not result.is_warning
    assert store.load(MACHINE_A) == RecordSet()


def test_load_corrupt(store):
    """A corrupt file loads as an empty record set with a warning."""
    store.data_dir.mkdir(parents=True)
    store.path_for(MACHINE_A).write_text("not valid json {{{")

    result = store.load_result(MACHINE_A)

    assert result.status is LoadStatus.CORRUPT
    assert result.is_warning
    assert "usage-machine-a.json" in result.reason
    assert store.load(MACHINE_A).sessions == {}


def test_load_existing(store):
    """A valid file loads with its sessions."""
    write_usage_file(store.data_dir, MACHINE_A, SAMPLE_DATA_A)

    result = store.load_result(MACHINE_A)

    assert result.ok
    assert set(result.record_set.sessions) == {"session-1", "session-2"}
    assert result.record_set.last_sync == "2025-01-01T12:00:00Z"


def test_merge_into_empty(store, raw_sessions):
    """Every observation is new when merging into nothing."""
    outcome = store.merge(RecordSet(), raw_sessions, now=T1)

    assert outcome.new_count == 2
    assert outcome.updated_count == 0
    assert outcome.total_count == 2
    assert outcome.record_set.last_sync == T1
    assert len(outcome.record_set.syncs) == 1
    event = outcome.record_set.syncs[0]
    assert (event.new_sessions, event.updated_sessions, event.total_sessions) == (2, 0, 2)


def test_merge_counts_new_and_updated(store):
    """An existing id counts as updated, an unseen id as new."""
    existing = store.merge(RecordSet(), [{"sessionId": "R", "inputTokens": 1}], now=T1).record_set

    outcome = store.merge(
        existing,
        [{"sessionId": "R", "inputTokens": 5}, {"sessionId": "S", "inputTokens": 2}],
        now=T2,
    )

    assert outcome.new_count == 1
    assert outcome.updated_count == 1
    assert outcome.total_count == 2
    assert outcome.record_set.sessions["R"].input_tokens == 5
    assert outcome.record_set.sessions["R"].synced_at == T2
    assert len(outcome.record_set.syncs) == 2


def test_merge_skips_malformed_observations(store):
    """A session with unusable values is skipped; the rest merge."""
    outcome = store.merge(
        RecordSet(),
        [
            {"sessionId": "good", "inputTokens": 10},
            {"sessionId": "bad", "inputTokens": "n/a"},
            {"sessionId": "worse", "outputTokens": {"n": 1}},
        ],
        now=T1,
    )

    assert outcome.new_count == 1
    assert outcome.skipped_count == 2
    assert set(outcome.record_set.sessions) == {"good"}
    assert outcome.record_set.syncs[0].new_sessions == 1


def test_merge_replaces_whole_record(store):
    """Fields missing from the new observation are not carried over."""
    existing = store.merge(
        RecordSet(), [{"sessionId": "R", "inputTokens": 1, "modelsUsed": ["m1"]}], now=T1
    ).record_set

    outcome = store.merge(existing, [{"sessionId": "R", "inputTokens": 2}], now=T2)

    assert outcome.record_set.sessions["R"].models_used == []


def test_merge_keeps_unobserved_sessions(store):
    """Sessions the source no longer reports stay in the record set."""
    existing = store.merge(RecordSet(), [{"sessionId": "old"}], now=T1).record_set

    outcome = store.merge(existing, [{"sessionId": "new"}], now=T2)

    assert set(outcome.record_set.sessions) == {"old", "new"}
    assert outcome.record_set.sessions["old"].synced_at == T1


def test_merge_does_not_mutate_existing(store, raw_sessions):
    """The input record set is left as it was."""
    existing = RecordSet()

    store.merge(existing, raw_sessions, now=T1)

    assert existing.sessions == {}
    assert existing.syncs == []


def test_merge_is_idempotent_on_content(store, raw_sessions):
    """Merging twice changes only the timestamps."""
    first = store.merge(RecordSet(), raw_sessions, now=T1).record_set
    second = store.merge(first, raw_sessions, now=T2).record_set

    assert set(first.sessions) == set(second.sessions)
    for record_id in first.sessions:
        assert first.sessions[record_id].content() == second.sessions[record_id].content()
        assert second.sessions[record_id].synced_at == T2
    assert second.last_sync == T2


def test_save_and_load(store, raw_sessions):
    """Saved record sets load back unchanged."""
    merged = store.merge(RecordSet(), raw_sessions, now=T1).record_set

    path = store.save(merged, MACHINE_A)

    assert path == store.data_dir / "usage-machine-a.json"
    assert store.load(MACHINE_A) == merged
    data = json.loads(path.read_text())
    assert set(data) == {"sessions", "syncs", "lastSync"}
    assert data["syncs"][0]["newSessions"] == 2


def test_save_creates_directory_and_leaves_no_temp_file(store):
    """Saving into a missing directory creates it; no temp file remains."""
    store.save(RecordSet(last_sync=T1), MACHINE_A)

    assert sorted(p.name for p in store.data_dir.iterdir()) == ["usage-machine-a.json"]


def test_machine_ids(store):
    """Machine ids come from record file names."""
    write_usage_file(store.data_dir, MACHINE_B, SAMPLE_DATA_B)
    write_usage_file(store.data_dir, MACHINE_A, SAMPLE_DATA_A)
    (store.data_dir / "config.json").write_text("{}")

    assert store.machine_ids() == [MACHINE_A, MACHINE_B]


def test_load_all_skips_corrupt(store):
    """Corrupt files are skipped with a warning."""
    write_usage_file(store.data_dir, MACHINE_A, SAMPLE_DATA_A)
    (store.data_dir / "usage-broken.json").write_text("{{{")

    result = store.load_all()

    assert list(result.record_sets) == [MACHINE_A]
    assert len(result.warnings) == 1
    assert "usage-broken.json" in result.warnings[0]


def test_aggregate_tags_owner():
    """Aggregated records carry their owning machine."""
    record_sets = {
        MACHINE_A: RecordSet.model_validate(SAMPLE_DATA_A),
        MACHINE_B: RecordSet.model_validate(SAMPLE_DATA_B),
    }

    merged = aggregate(record_sets)

    assert set(merged) == {"session-1", "session-2", "session-3"}
    assert merged["session-3"].machine_id == MACHINE_B
    assert merged["session-1"].to_dict()["machineId"] == MACHINE_A


def test_aggregate_collision_last_machine_wins():
    """Colliding ids resolve to the machine iterated last."""
    a = RecordSet.model_validate({"sessions": {"dup": {"sessionId": "dup", "inputTokens": 1}}})
    b = RecordSet.model_validate({"sessions": {"dup": {"sessionId": "dup", "inputTokens": 2}}})

    merged = aggregate({MACHINE_A: a, MACHINE_B: b})

    assert merged["dup"].machine_id == MACHINE_B
    assert merged["dup"].record.input_tokens == 2


def test_migrate_legacy(store):
    """A single-machine usage.json becomes this machine's file."""
    store.data_dir.mkdir(parents=True)
    (store.data_dir / "usage.json").write_text(json.dumps(SAMPLE_DATA_A))

    assert store.migrate_legacy(MACHINE_A) is True
    assert not (store.data_dir / "usage.json").exists()
    assert set(store.load(MACHINE_A).sessions) == {"session-1", "session-2"}


def test_migrate_legacy_keeps_existing_file(store):
    """Migration never overwrites an existing machine file."""
    write_usage_file(store.data_dir, MACHINE_A, SAMPLE_DATA_B)
    (store.data_dir / "usage.json").write_text(json.dumps(SAMPLE_DATA_A))

    assert store.migrate_legacy(MACHINE_A) is False
    assert (store.data_dir / "usage.json").exists()
    assert set(store.load(MACHINE_A).sessions) == {"session-3"}
