"""ccusage observation source.

Runs ``ccusage session --json`` and returns its ``sessions`` array.
"""

import json
import subprocess

from looptrack.config import SourceConfig
from looptrack.sources.base import ObservationSource, RawSession
from looptrack.utils.logging import get_logger

logger = get_logger(__name__)

MAX_OUTPUT_BYTES = 10 * 1024 * 1024


class CcusageSource(ObservationSource):
    """Shells out to ccusage for per-session usage."""

    name = "ccusage"

    def __init__(self, config: SourceConfig | None = None) -> None:
        self.config = config or SourceConfig()

    def _run(self) -> str | None:
        try:
            result = subprocess.run(
                self.config.command,
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
                check=True,
            )
        except FileNotFoundError:
            logger.warning(f"ccusage not available: {self.config.command[0]} not found")
            return None
        except subprocess.TimeoutExpired:
            logger.warning(f"ccusage timed out after {self.config.timeout}s")
            return None
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or "").strip().splitlines()
            logger.warning(
                f"ccusage exited with status {e.returncode}"
                + (f": {detail[-1]}" if detail else "")
            )
            return None

        if len(result.stdout) > MAX_OUTPUT_BYTES:
            logger.warning(f"ccusage output exceeds {MAX_OUTPUT_BYTES} bytes, ignoring")
            return None
        return result.stdout

    def fetch(self) -> list[RawSession] | None:
        if not self.config.enabled:
            logger.info("ccusage source disabled in config")
            return None

        output = self._run()
        if output is None:
            return None

        try:
            payload = json.loads(output)
        except json.JSONDecodeError as e:
            logger.warning(f"ccusage returned invalid JSON: {e}")
            return None

        sessions = payload.get("sessions") if isinstance(payload, dict) else None
        if not isinstance(sessions, list):
            logger.warning("ccusage output has no sessions array")
            return None

        return [s for s in sessions if isinstance(s, dict)]
