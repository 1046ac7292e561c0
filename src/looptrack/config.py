"""looptrack configuration management."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from looptrack.errors import ConfigError

# Default paths
DEFAULT_CONFIG_DIR = Path.home() / ".looptrack"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "looptrack.yaml"

DATA_DIR_ENV = "LOOPTRACK_DATA_DIR"
CLOUD_DIR_ENV = "LOOPTRACK_CLOUD_DIR"


class SourceConfig(BaseModel):
    """Configuration for the external usage-reporting tool."""
    command: list[str] = Field(default_factory=lambda: [
        "npx", "ccusage@latest", "session", "--json"
    ])
    timeout: int = 120  # seconds
    enabled: bool = True


class WatchConfig(BaseModel):
    """Configuration for the periodic sync loop."""
    interval: float = 900.0  # seconds between full cycles
    debounce_seconds: float = 2.0
    enabled: bool = True  # react to peer files landing in the cloud folder


class LoggingConfig(BaseModel):
    """Configuration for log output."""
    level: str = "INFO"
    log_dir: str | None = None  # None = ~/.looptrack/logs
    console: bool = True


class LooptrackConfig(BaseModel):
    """Main looptrack configuration."""
    version: str = "1.0"
    data_dir: str = str(DEFAULT_CONFIG_DIR / "data")
    identity_file: str = str(DEFAULT_CONFIG_DIR / "identity.json")
    source: SourceConfig = Field(default_factory=SourceConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def data_path(self) -> Path:
        """Data directory, honouring the LOOPTRACK_DATA_DIR override."""
        override = os.getenv(DATA_DIR_ENV)
        return Path(override or self.data_dir).expanduser()

    @property
    def identity_path(self) -> Path:
        return Path(self.identity_file).expanduser()

    @property
    def log_path(self) -> Path:
        if self.logging.log_dir:
            return Path(self.logging.log_dir).expanduser()
        return DEFAULT_CONFIG_DIR / "logs"


def get_default_config() -> LooptrackConfig:
    """Get default configuration rooted at ~/.looptrack."""
    return LooptrackConfig()


def load_config(config_path: Path | None = None) -> LooptrackConfig:
    """Load configuration from file or return defaults.

    Raises:
        ConfigError: If the file exists but is not valid YAML or does not
            match the configuration schema.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        if data:
            try:
                return LooptrackConfig.model_validate(data)
            except ValidationError as e:
                raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e

    return get_default_config()


def save_config(config: LooptrackConfig, config_path: Path | None = None) -> None:
    """Save configuration to file."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False, sort_keys=False)


def ensure_config_dir(
    config: LooptrackConfig | None = None,
    config_dir: Path | None = None,
) -> Path:
    """Ensure the config directory and its data/log directories exist."""
    config = config or get_default_config()
    config_dir = config_dir or DEFAULT_CONFIG_DIR

    config_dir.mkdir(parents=True, exist_ok=True)
    config.data_path.mkdir(parents=True, exist_ok=True)
    config.log_path.mkdir(parents=True, exist_ok=True)

    return config_dir


def get_config_path() -> Path:
    """Get the config file path."""
    return DEFAULT_CONFIG_FILE


def get_nested_value(config: LooptrackConfig, key: str) -> Any:
    """Get a nested config value using dotted key notation.

    Examples:
        get_nested_value(config, "source.timeout")   -> 120
        get_nested_value(config, "source.command.0") -> "npx"
        get_nested_value(config, "logging.level")    -> "INFO"
    """
    parts = key.split(".")
    obj: Any = config

    for part in parts:
        if isinstance(obj, list):
            try:
                obj = obj[int(part)]
            except (ValueError, IndexError):
                return None
        elif isinstance(obj, dict):
            obj = obj.get(part)
        elif hasattr(obj, part):
            obj = getattr(obj, part)
        else:
            return None

        if obj is None:
            return None

    return obj


def set_nested_value(config: LooptrackConfig, key: str, value: str) -> None:
    """Set a nested config value using dotted key notation.

    Examples:
        set_nested_value(config, "watch.interval", "600")
        set_nested_value(config, "logging.level", "DEBUG")
        set_nested_value(config, "source.enabled", "false")

    Note: Values are coerced to the type of the field they replace.
    """
    parts = key.split(".")
    obj: Any = config

    # Navigate to parent object
    for part in parts[:-1]:
        if isinstance(obj, list):
            obj = obj[int(part)]
        elif hasattr(obj, part):
            obj = getattr(obj, part)
        else:
            raise KeyError(f"Invalid config key: {key}")

    final_key = parts[-1]

    if isinstance(obj, list):
        obj[int(final_key)] = value
        return

    if not hasattr(obj, final_key):
        raise KeyError(f"Invalid config key: {key}")

    current = getattr(obj, final_key)
    coerced: Any = value
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes", "on")
    elif isinstance(current, int):
        coerced = int(value)
    elif isinstance(current, float):
        coerced = float(value)
    elif isinstance(current, list):
        coerced = value.split()
    elif current is None and value.lower() in ("none", "null", ""):
        coerced = None

    setattr(obj, final_key, coerced)
