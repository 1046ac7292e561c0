"""Machine identity.

The identity file lives outside the data directory so a data directory can
be wiped or re-pulled without changing who this machine is.
"""

import re
import socket
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from looptrack.storage.records import validate_machine_id
from looptrack.utils.fileio import atomic_write_text
from looptrack.utils.logging import get_logger

logger = get_logger(__name__)


class Identity(BaseModel):
    """Contents of identity.json."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    machine_id: str
    cloud_dir: str | None = None

    @field_validator("machine_id")
    @classmethod
    def _filename_safe(cls, value: str) -> str:
        return validate_machine_id(value)

    @property
    def cloud_path(self) -> Path | None:
        return Path(self.cloud_dir).expanduser() if self.cloud_dir else None


def sanitize_machine_id(value: str) -> str:
    """Lower-case and replace anything outside [a-z0-9-] with dashes."""
    cleaned = re.sub(r"[^a-z0-9-]", "-", value.lower())
    return re.sub(r"-+", "-", cleaned)


def default_machine_id() -> str:
    """Machine id derived from the host name."""
    return sanitize_machine_id(socket.gethostname()) or "machine"


def load_identity(path: Path) -> Identity | None:
    """Load the identity file; None if absent or unreadable."""
    if not path.exists():
        return None
    try:
        return Identity.model_validate_json(path.read_bytes())
    except (OSError, ValidationError) as e:
        logger.warning(f"Could not load identity from {path}: {e}")
        return None


def save_identity(identity: Identity, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write_text(path, identity.model_dump_json(by_alias=True, indent=2))
