"""Observation sources feeding the sync cycle."""

from looptrack.sources.base import ObservationSource, StaticSource
from looptrack.sources.ccusage import CcusageSource

__all__ = ["ObservationSource", "StaticSource", "CcusageSource"]
