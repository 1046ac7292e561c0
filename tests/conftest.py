"""Pytest configuration and fixtures."""

import json
import tempfile
from pathlib import Path

import pytest

MACHINE_A = "machine-a"
MACHINE_B = "machine-b"

SAMPLE_DATA_A = {
    "sessions": {
        "session-1": {
            "sessionId": "session-1",
            "projectPath": "/proj/a",
            "inputTokens": 100,
            "outputTokens": 50,
            "totalCost": 0.01,
            "syncedAt": "2025-01-01T10:00:00Z",
        },
        "session-2": {
            "sessionId": "session-2",
            "projectPath": "/proj/b",
            "inputTokens": 200,
            "outputTokens": 100,
            "totalCost": 0.02,
            "syncedAt": "2025-01-01T11:00:00Z",
        },
    },
    "lastSync": "2025-01-01T12:00:00Z",
}

SAMPLE_DATA_B = {
    "sessions": {
        "session-3": {
            "sessionId": "session-3",
            "projectPath": "/proj/c",
            "inputTokens": 300,
            "outputTokens": 150,
            "totalCost": 0.03,
            "syncedAt": "2025-01-02T10:00:00Z",
        },
    },
    "lastSync": "2025-01-02T12:00:00Z",
}


def write_usage_file(directory: Path, machine_id: str, data: dict) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"usage-{machine_id}.json"
    path.write_text(json.dumps(data, indent=2))
    return path


def read_usage_file(directory: Path, machine_id: str) -> dict | None:
    path = directory / f"usage-{machine_id}.json"
    if not path.exists():
        return None
    return json.loads(path.read_text())


def list_usage_files(directory: Path) -> list[str]:
    if not directory.exists():
        return []
    return sorted(
        p.name for p in directory.iterdir()
        if p.name.startswith("usage-") and p.name.endswith(".json")
    )


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def local_dir(temp_dir):
    path = temp_dir / "local"
    path.mkdir()
    return path


@pytest.fixture
def cloud_dir(temp_dir):
    path = temp_dir / "cloud"
    path.mkdir()
    return path


@pytest.fixture
def raw_sessions():
    """Sessions as ccusage reports them."""
    return [
        {
            "sessionId": "-Users-me-Dev-looptrack",
            "projectPath": "Unknown Project",
            "inputTokens": 1200,
            "outputTokens": 340,
            "cacheCreationTokens": 5000,
            "cacheReadTokens": 20000,
            "totalTokens": 26540,
            "totalCost": 0.42,
            "lastActivity": "2025-01-03",
            "modelsUsed": ["claude-sonnet-4-20250514"],
        },
        {
            "sessionId": "-Users-me-Dev-site",
            "projectPath": "/Users/me/Dev/site",
            "inputTokens": 10,
            "outputTokens": 5,
            "totalCost": 0.001,
            "lastActivity": "2025-01-02",
        },
    ]
