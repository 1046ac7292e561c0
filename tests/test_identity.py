"""Tests for machine identity."""

import pytest
from pydantic import ValidationError

from looptrack.identity import (
    Identity,
    default_machine_id,
    load_identity,
    sanitize_machine_id,
    save_identity,
)


def test_sanitize_machine_id():
    """Host names become lower-case dash-separated ids."""
    assert sanitize_machine_id("Taylors-MacBook-Pro.local") == "taylors-macbook-pro-local"
    assert sanitize_machine_id("WORK PC") == "work-pc"
    assert sanitize_machine_id("a__b") == "a-b"


def test_default_machine_id(monkeypatch):
    monkeypatch.setattr("looptrack.identity.socket.gethostname", lambda: "Build.Box")

    assert default_machine_id() == "build-box"


def test_save_and_load_identity(temp_dir):
    """Identity round-trips through identity.json."""
    path = temp_dir / "identity.json"
    identity = Identity(machine_id="laptop", cloud_dir="~/Dropbox/looptrack")

    save_identity(identity, path)
    loaded = load_identity(path)

    assert loaded == identity
    assert '"machineId": "laptop"' in path.read_text()
    assert loaded.cloud_path is not None
    assert "~" not in str(loaded.cloud_path)


def test_load_missing_identity(temp_dir):
    assert load_identity(temp_dir / "identity.json") is None


def test_load_invalid_identity(temp_dir):
    """An unreadable identity file is treated as absent."""
    path = temp_dir / "identity.json"
    path.write_text("{not json")

    assert load_identity(path) is None


def test_identity_rejects_unsafe_machine_id():
    """Machine ids must be usable in file names."""
    with pytest.raises(ValidationError):
        Identity(machine_id="../escape")
    with pytest.raises(ValidationError):
        Identity(machine_id="")


def test_identity_without_cloud_folder():
    assert Identity(machine_id="desk").cloud_path is None
