"""looptrack: usage tracking for coding-assistant sessions across machines."""

__version__ = "0.3.0"
