"""Base observation source interface.

A source returns raw session mappings as the external tool reports them,
or None when the tool is unavailable. Field-name differences are left to
``looptrack.storage.models.normalize_observation``.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

RawSession = Mapping[str, Any]


class ObservationSource(ABC):
    """Base class for usage observation sources."""

    name: str = "base"

    @abstractmethod
    def fetch(self) -> list[RawSession] | None:
        """Fetch the sessions currently known to the source.

        Returns:
            List of raw session mappings, or None if the source could not
            be queried. An empty list means the source answered with no
            sessions.
        """


class StaticSource(ObservationSource):
    """Serves a fixed list of sessions."""

    name = "static"

    def __init__(self, sessions: list[RawSession] | None) -> None:
        self.sessions = sessions

    def fetch(self) -> list[RawSession] | None:
        if self.sessions is None:
            return None
        return list(self.sessions)
