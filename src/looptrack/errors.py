"""Exception types raised by looptrack."""


class LooptrackError(Exception):
    """Base class for looptrack errors."""


class ConfigError(LooptrackError):
    """Configuration file is malformed or fails validation."""


class ExchangeError(LooptrackError):
    """A push or pull phase failed as a whole."""

    def __init__(self, phase: str, path: str, reason: str) -> None:
        self.phase = phase
        self.path = path
        self.reason = reason
        super().__init__(f"{phase} failed: {path}: {reason}")
