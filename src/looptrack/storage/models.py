"""Record models for per-machine usage files.

Field names are snake_case in Python and camelCase on disk, so files stay
readable by older looptrack installs and the dashboard.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

UNKNOWN_PROJECT = "Unknown Project"
UNKNOWN_PROJECT_NAME = "Unknown"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UsageRecord(_CamelModel):
    """One coding-assistant session as last observed on its machine."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    session_id: str | None = None
    project_path: str | None = None
    project_name: str = UNKNOWN_PROJECT_NAME
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    cache_creation_tokens: int = Field(default=0, ge=0)
    cache_read_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    total_cost: float = Field(default=0.0, ge=0)
    start_time: str | None = None
    last_activity: str | None = None
    models_used: list[str] = Field(default_factory=list)
    synced_at: str | None = None

    @property
    def activity_date(self) -> str | None:
        """Date part (YYYY-MM-DD) of the last activity, or start time."""
        stamp = self.last_activity or self.start_time
        if not stamp:
            return None
        return stamp.split("T")[0]

    def content(self) -> dict[str, Any]:
        """Record fields without the merge timestamp."""
        return self.model_dump(by_alias=True, exclude={"synced_at"})


class SyncEvent(_CamelModel):
    """One entry in a record set's append-only sync log."""
    timestamp: str
    new_sessions: int = 0
    updated_sessions: int = 0
    total_sessions: int = 0


class RecordSet(_CamelModel):
    """A machine's sessions keyed by record id, plus its sync history."""
    sessions: dict[str, UsageRecord] = Field(default_factory=dict)
    syncs: list[SyncEvent] = Field(default_factory=list)
    last_sync: str | None = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def from_json(cls, data: str | bytes) -> "RecordSet":
        return cls.model_validate_json(data)


# Raw observations come from different ccusage versions; the first key
# present wins.
FIELD_FALLBACKS: dict[str, tuple[str, ...]] = {
    "session_id": ("sessionId", "id"),
    "project_path": ("projectPath", "project"),
    "input_tokens": ("inputTokens", "input_tokens"),
    "output_tokens": ("outputTokens", "output_tokens"),
    "cache_creation_tokens": ("cacheCreationTokens", "cache_creation_tokens"),
    "cache_read_tokens": ("cacheReadTokens", "cache_read_tokens"),
    "total_tokens": ("totalTokens", "total_tokens"),
    "total_cost": ("totalCost", "cost", "costUSD"),
    "start_time": ("startTime", "start_time"),
    "last_activity": ("lastActivity", "last_activity", "endTime"),
    "models_used": ("modelsUsed", "models"),
}

_INT_FIELDS = {
    "input_tokens", "output_tokens", "cache_creation_tokens",
    "cache_read_tokens", "total_tokens",
}


def _first(raw: Mapping[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def decode_project_path(session_id: str | None) -> str | None:
    """Decode a dash-encoded project directory name.

    ccusage names sessions after the project directory with every path
    separator replaced by a dash, e.g. ``-Users-me-Dev-app`` for
    ``/Users/me/Dev/app``.
    """
    if not session_id or not session_id.startswith("-"):
        return None
    return session_id.replace("-", "/")


def project_name(project_path: str | None) -> str:
    """Last path segment of a project path."""
    if not project_path:
        return UNKNOWN_PROJECT_NAME
    return project_path.rstrip("/").split("/")[-1] or project_path


def record_id_for(raw: Mapping[str, Any]) -> str:
    """Stable merge key for a raw observation."""
    provided = _first(raw, FIELD_FALLBACKS["session_id"])
    if provided is not None:
        return str(provided)
    path = _first(raw, FIELD_FALLBACKS["project_path"])
    start = _first(raw, FIELD_FALLBACKS["start_time"])
    return f"{path}-{start}"


def normalize_observation(raw: Mapping[str, Any], synced_at: str) -> UsageRecord:
    """Turn one raw ccusage session into a UsageRecord."""
    values: dict[str, Any] = {}
    for field_name, keys in FIELD_FALLBACKS.items():
        value = _first(raw, keys)
        if value is None:
            continue
        if field_name in _INT_FIELDS:
            value = max(int(value), 0)
        elif field_name == "total_cost":
            value = max(float(value), 0.0)
        elif field_name == "models_used":
            value = [str(m) for m in value] if isinstance(value, list) else [str(value)]
        else:
            value = str(value)
        values[field_name] = value

    path = values.get("project_path")
    if not path or path == UNKNOWN_PROJECT:
        # Only ccusage's own sessionId carries the encoded directory.
        session_id = raw.get("sessionId")
        path = decode_project_path(session_id if isinstance(session_id, str) else None)
    values["project_path"] = path
    values["project_name"] = project_name(path)

    if "total_tokens" not in values:
        values["total_tokens"] = sum(values.get(f, 0) for f in _INT_FIELDS - {"total_tokens"})

    return UsageRecord(synced_at=synced_at, **values)
