"""Configuration system for procmon."""

import math
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

MIN_INTERVAL_MS = 100


class ConfigError(ValueError):
    """Invalid configuration value. Fatal before the poll loop starts."""


@dataclass
class MonitorConfig:
    """Poll loop configuration."""

    interval_ms: int = 2000  # Milliseconds between ticks (minimum 100)
    default_process_type: str = "python"  # Preselected type for the interactive prompt


@dataclass
class HistoryConfig:
    """Per-process history configuration."""

    window_size: int = 100  # Samples kept per CPU/memory window


@dataclass
class AlertsConfig:
    """Alert thresholds. Zero or negative disables a threshold."""

    cpu_percent: float = 0.0  # e.g. 80.0
    memory_mb: float = 0.0  # e.g. 500.0
    cooldown_ms: int = 30_000  # Min ms between repeated alerts for the same process/kind
    bell: bool = True  # Ring the terminal bell when an alert fires


@dataclass
class DisplayConfig:
    """Terminal rendering configuration."""

    name_width: int = 44  # Max chars for the script/process column
    sparkline_points: int = 30  # Points in the per-row memory sparkline
    trace_sparkline_points: int = 60  # Points in the live trace sparklines
    graph_width: int = 70  # Columns in the trace summary graphs
    graph_height: int = 12  # Rows in the trace summary graphs
    cpu_warn: float = 30.0  # CPU % where color turns yellow
    cpu_high: float = 70.0  # CPU % where color turns red
    memory_warn_mb: float = 200.0  # Memory MB where color turns yellow
    memory_high_mb: float = 500.0  # Memory MB where color turns red


@dataclass
class ExportConfig:
    """Export configuration."""

    directory: str = "."  # Where JSON/CSV exports are written


@dataclass
class WebConfig:
    """Dashboard configuration."""

    host: str = "127.0.0.1"
    port: int = 3000  # Used when --web is given without a port
    refresh_seconds: int = 2  # HTML auto-refresh


@dataclass
class SystemConfig:
    """Log file configuration."""

    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


def _load_section(cls: type, data: dict) -> object:
    """Build a section dataclass from TOML data, using dataclass defaults for missing fields."""
    defaults = cls()
    values = {}
    for f in fields(cls):
        default = getattr(defaults, f.name)
        value = data.get(f.name, default)
        # tomlkit returns its own wrapper types; unwrap to plain Python values
        if hasattr(value, "unwrap"):
            value = value.unwrap()
        if isinstance(default, bool) and not isinstance(value, bool):
            raise ConfigError(f"{cls.__name__}.{f.name} must be true or false, got {value!r}")
        if isinstance(default, (int, float)) and not isinstance(default, bool):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{cls.__name__}.{f.name} must be a number, got {value!r}")
            value = type(default)(value)
        values[f.name] = value
    return cls(**values)


@dataclass
class Config:
    """Main configuration container."""

    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    web: WebConfig = field(default_factory=WebConfig)
    system: SystemConfig = field(default_factory=SystemConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "procmon"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "procmon"

    @property
    def log_path(self) -> Path:
        """Session log path (JSON Lines)."""
        return self.state_dir / "procmon.log"

    @property
    def export_dir(self) -> Path:
        """Directory exports are written to."""
        return Path(self.export.directory).expanduser()

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for f in fields(self):
            doc.add(f.name, _dataclass_to_table(getattr(self, f.name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions.

        Raises:
            ConfigError: If the file cannot be parsed or holds invalid values.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ConfigError(f"Failed to parse config file {path}: {e}") from e

        sections = {}
        for f in fields(cls):
            section_cls = type(getattr(defaults, f.name))
            sections[f.name] = _load_section(section_cls, data.get(f.name, {}))

        config = cls(**sections)
        validate_interval(config.monitor.interval_ms)
        window_size = config.history.window_size
        if window_size < 1:
            raise ConfigError(f"history.window_size must be >= 1, got {window_size}")
        return config


def validate_interval(interval_ms: object) -> int:
    """Parse and check a poll interval in milliseconds.

    Raises:
        ConfigError: If the value is not an integer >= 100.
    """
    try:
        value = int(str(interval_ms).strip())
    except ValueError:
        raise ConfigError(f"Interval must be a number >= {MIN_INTERVAL_MS}ms") from None
    if value < MIN_INTERVAL_MS:
        raise ConfigError(f"Interval must be a number >= {MIN_INTERVAL_MS}ms")
    return value


def validate_pid(pid: object) -> int:
    """Parse a trace target PID.

    Raises:
        ConfigError: If the value is not a positive integer.
    """
    try:
        value = int(str(pid).strip())
    except ValueError:
        raise ConfigError("--trace requires a valid PID number") from None
    if value <= 0:
        raise ConfigError("--trace requires a valid PID number")
    return value


def validate_threshold(value: object, name: str) -> float | None:
    """Parse an alert threshold given on the command line. None means not set.

    Raises:
        ConfigError: If the value is not a finite number above zero.
    """
    if value is None:
        return None
    try:
        parsed = float(str(value).strip())
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(parsed) or parsed <= 0:
        raise ConfigError(f"{name} must be a number above zero, got {value!r}")
    return parsed
