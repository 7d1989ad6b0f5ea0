"""
Pulse Configuration Management.

Handles loading and validating configuration from various sources:
- Default values
- Configuration file (TOML)
- Environment variables
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Union

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import yaml

from pulse_cli.exceptions import ConfigurationError, InvalidCronExpr
from pulse_cli.scheduler.cron import CronExpr, resolve_timezone

logger = logging.getLogger(__name__)

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "pulse"
DEFAULT_CONFIG_FILE = "config.toml"
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "pulse"

ALERT_TYPES = ("alarm", "digest")
DISK_USAGE_OPERATION = "check-disk-usage"
NEWS_OPERATION = "fetch-news"
TWITTER_OPERATION = "track-tweets"
LOG_MEDIUM = "log"
EMAIL_MEDIUM = "email"

_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, "d": 86400}


@dataclass
class ValidationError:
    """Validation error for configuration."""
    field: str
    message: str
    severity: str  # "error" or "warning"

    def __str__(self) -> str:
        return f"[{self.severity.upper()}] {self.field}: {self.message}"


@dataclass
class SchedulerConfig:
    """Configuration for the tick scheduler."""

    tick_ms: int = 5000
    operation_timeout: float = 300.0  # seconds, 0 disables
    shutdown_grace: float = 10.0  # seconds to wait for in-flight operations
    misfire_grace_time: int = 30  # seconds a late tick may still run
    timezone: str = ""  # zone cron fields are evaluated in, empty for the host zone

    @property
    def tick_interval(self) -> float:
        """Tick interval in seconds."""
        return self.tick_ms / 1000


@dataclass
class ScheduleConfig:
    """A schedule entry. No cron expression means every tick."""

    operation: str
    cron: Optional[str] = None


@dataclass
class AlertConfig:
    """An alert rule.

    ``alert_interval`` is the cooldown of an alarm or the window of a
    digest, in seconds or as a duration string (``"30m"``, ``"1h"``).
    """

    event: str
    mediums: list[str] = field(default_factory=lambda: [EMAIL_MEDIUM])
    alert_type: str = "alarm"
    alert_interval: Optional[Union[float, str]] = None
    name: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            self.name = f"{self.event}-{self.alert_type}"

    @property
    def interval_seconds(self) -> Optional[float]:
        if self.alert_interval is None:
            return None
        return parse_duration(self.alert_interval)


@dataclass
class EmailConfig:
    """SMTP settings for the email medium."""

    smtp_host: str = ""
    smtp_port: int = 587
    username: str = ""
    password: str = ""
    from_address: str = ""
    recipients: list[str] = field(default_factory=list)
    start_tls: bool = True

    @property
    def configured(self) -> bool:
        return bool(self.smtp_host and self.recipients)

    def __post_init__(self) -> None:
        if not self.from_address:
            self.from_address = self.username


@dataclass
class FilesystemConfig:
    """A mount point and its maximum usage percentage."""

    mount: str
    max_usage: float = 90.0


@dataclass
class SystemMonitorConfig:
    """Configuration for the disk usage check."""

    filesystems: list[FilesystemConfig] = field(default_factory=list)


@dataclass
class NewsConfig:
    """Configuration for the New York Times newscast."""

    api_key: str = ""
    viewed_period: Optional[int] = 1
    emailed_period: Optional[int] = None
    shared_period: Optional[int] = None
    shared_mediums: list[str] = field(default_factory=list)
    max_articles: int = 10


@dataclass
class TwitterTermsConfig:
    """A named group of search terms tracked together."""

    group_name: str
    terms: list[str] = field(default_factory=list)


@dataclass
class TwitterConfig:
    """Configuration for tweet tracking."""

    bearer_token: str = ""
    terms: list[TwitterTermsConfig] = field(default_factory=list)
    max_tweets: int = 100  # most favourited tweets kept per group
    language: str = "en"


@dataclass
class CommandConfig:
    """A shell command exposed as an operation named ``id``."""

    id: str
    command: str
    event: str = "command-output"


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[Path] = None


@dataclass
class PulseConfig:
    """Main configuration container for Pulse."""

    # Paths
    config_dir: Path = DEFAULT_CONFIG_DIR
    data_dir: Path = DEFAULT_DATA_DIR

    # Sub-configurations
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    schedules: list[ScheduleConfig] = field(default_factory=list)
    alerts: list[AlertConfig] = field(default_factory=list)
    email: EmailConfig = field(default_factory=EmailConfig)
    system_monitor: SystemMonitorConfig = field(default_factory=SystemMonitorConfig)
    news: NewsConfig = field(default_factory=NewsConfig)
    twitter: TwitterConfig = field(default_factory=TwitterConfig)
    commands: list[CommandConfig] = field(default_factory=list)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Database
    database_url: str = ""

    def __post_init__(self):
        """Initialize derived values."""
        if not self.database_url:
            self.database_url = f"sqlite:///{self.data_dir}/pulse.db"

    def operation_names(self) -> list[str]:
        """Names of the operations this configuration provides."""
        names = []
        if self.system_monitor.filesystems:
            names.append(DISK_USAGE_OPERATION)
        if self.news.api_key:
            names.append(NEWS_OPERATION)
        if self.twitter.bearer_token and self.twitter.terms:
            names.append(TWITTER_OPERATION)
        names.extend(command.id for command in self.commands)
        return names

    def medium_ids(self) -> list[str]:
        """Ids of the mediums this configuration provides."""
        ids = [LOG_MEDIUM]
        if self.email.configured:
            ids.append(EMAIL_MEDIUM)
        return ids


def parse_duration(value: Union[int, float, str]) -> float:
    """
    Parse a duration into seconds.

    Accepts a number of seconds or a string with an optional unit
    (``ms``, ``s``, ``m``, ``h``, ``d``).

    Raises:
        ConfigurationError: If the value is not a valid duration
    """
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    match = _DURATION_PATTERN.match(str(value))
    if not match:
        raise ConfigurationError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[unit or "s"]


def get_config_path(env_prefix: str = "PULSE_") -> Path:
    """Default config file location, honouring ``PULSE_CONFIG_DIR``."""
    env_config_dir = os.environ.get(f"{env_prefix}CONFIG_DIR")
    config_dir = Path(env_config_dir) if env_config_dir else DEFAULT_CONFIG_DIR
    return config_dir / DEFAULT_CONFIG_FILE


def load_config(
    config_path: Optional[Path] = None,
    env_prefix: str = "PULSE_"
) -> PulseConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file
    3. Default values

    Args:
        config_path: Path to config file (default: ~/.config/pulse/config.toml)
        env_prefix: Prefix for environment variables

    Returns:
        Loaded configuration

    Raises:
        ConfigurationError: If the config file cannot be parsed
    """
    config = PulseConfig()

    if config_path is None:
        config_path = get_config_path(env_prefix)

    if config_path.exists():
        config = _load_from_file(config_path, config)
    else:
        logger.debug(f"No config file at {config_path}, using defaults")

    # Override with environment variables
    config = _load_from_env(config, env_prefix)

    return config


def _update(section: Any, data: dict[str, Any], name: str) -> None:
    for key, value in data.items():
        if hasattr(section, key):
            setattr(section, key, value)
        else:
            logger.warning(f"Ignoring unknown config key {name}.{key}")


def _build(cls: type, data: Any, name: str) -> Any:
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config entry {name} must be a table")
    try:
        return cls(**data)
    except TypeError as e:
        raise ConfigurationError(f"Invalid config entry {name}: {e}") from e


def _load_from_file(path: Path, config: PulseConfig) -> PulseConfig:
    """Load configuration from a TOML file."""
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Failed to load config from {path}: {e}") from e

    logger.debug(f"Loaded config from {path}")

    if "scheduler" in data:
        _update(config.scheduler, data["scheduler"], "scheduler")

    if "email" in data:
        _update(config.email, data["email"], "email")
        if not config.email.from_address:
            config.email.from_address = config.email.username

    if "news" in data:
        news = dict(data["news"])
        # NYT settings may also be nested under new_york_times
        news.update(news.pop("new_york_times", {}))
        _update(config.news, news, "news")

    if "twitter" in data:
        twitter = dict(data["twitter"])
        terms = twitter.pop("terms", [])
        _update(config.twitter, twitter, "twitter")
        config.twitter.terms = [
            _build(TwitterTermsConfig, entry, f"twitter.terms[{i}]")
            for i, entry in enumerate(terms)
        ]

    if "logging" in data:
        _update(config.logging, data["logging"], "logging")
        if config.logging.file:
            config.logging.file = Path(config.logging.file)

    if "system_monitor" in data:
        config.system_monitor.filesystems = [
            _build(FilesystemConfig, entry, f"system_monitor.filesystems[{i}]")
            for i, entry in enumerate(data["system_monitor"].get("filesystems", []))
        ]

    config.schedules = [
        _build(ScheduleConfig, entry, f"schedules[{i}]")
        for i, entry in enumerate(data.get("schedules", []))
    ]
    config.alerts = [
        _build(AlertConfig, entry, f"alerts[{i}]")
        for i, entry in enumerate(data.get("alerts", []))
    ]
    config.commands = [
        _build(CommandConfig, entry, f"commands[{i}]")
        for i, entry in enumerate(data.get("commands", []))
    ]

    # Top-level settings
    if "config_dir" in data:
        config.config_dir = Path(data["config_dir"]).expanduser()
    if "data_dir" in data:
        config.data_dir = Path(data["data_dir"]).expanduser()
        if "database_url" not in data:
            config.database_url = f"sqlite:///{config.data_dir}/pulse.db"
    if "database_url" in data:
        config.database_url = data["database_url"]

    return config


def _load_from_env(config: PulseConfig, prefix: str) -> PulseConfig:
    """Load configuration from environment variables."""

    # Scheduler settings
    if env_val := os.environ.get(f"{prefix}TICK_MS"):
        config.scheduler.tick_ms = int(env_val)
    if env_val := os.environ.get(f"{prefix}OPERATION_TIMEOUT"):
        config.scheduler.operation_timeout = float(env_val)
    if env_val := os.environ.get(f"{prefix}TIMEZONE"):
        config.scheduler.timezone = env_val

    # Email settings
    if env_val := os.environ.get(f"{prefix}SMTP_HOST"):
        config.email.smtp_host = env_val
    if env_val := os.environ.get(f"{prefix}SMTP_PORT"):
        config.email.smtp_port = int(env_val)
    if env_val := os.environ.get(f"{prefix}SMTP_USERNAME"):
        config.email.username = env_val
    if env_val := os.environ.get(f"{prefix}SMTP_PASSWORD"):
        config.email.password = env_val
    if env_val := os.environ.get(f"{prefix}EMAIL_RECIPIENTS"):
        config.email.recipients = [r.strip() for r in env_val.split(",") if r.strip()]

    # News settings
    if env_val := os.environ.get(f"{prefix}NYT_API_KEY"):
        config.news.api_key = env_val

    # Twitter settings
    if env_val := os.environ.get(f"{prefix}TWITTER_BEARER_TOKEN"):
        config.twitter.bearer_token = env_val

    # Logging settings
    if env_val := os.environ.get(f"{prefix}LOG_LEVEL"):
        config.logging.level = env_val.upper()

    # Paths
    if env_val := os.environ.get(f"{prefix}CONFIG_DIR"):
        config.config_dir = Path(env_val)
    if env_val := os.environ.get(f"{prefix}DATA_DIR"):
        if config.database_url == f"sqlite:///{config.data_dir}/pulse.db":
            config.database_url = f"sqlite:///{Path(env_val)}/pulse.db"
        config.data_dir = Path(env_val)
    if env_val := os.environ.get(f"{prefix}DATABASE_URL"):
        config.database_url = env_val

    return config


EXAMPLE_CONFIG = """\
# Pulse configuration

[scheduler]
tick_ms = 5000
operation_timeout = 300
shutdown_grace = 10
# Zone cron schedules are evaluated in, the host zone when unset
# timezone = "Europe/London"

[system_monitor]
filesystems = [
    { mount = "/", max_usage = 90.0 },
]

# Run on every tick when no cron expression is given
[[schedules]]
operation = "check-disk-usage"

# [[schedules]]
# operation = "fetch-news"
# cron = "0 0 7 * * *"

[[alerts]]
event = "high-disk-usage"
alert_type = "alarm"
alert_interval = "1h"
mediums = ["log"]

# [email]
# smtp_host = "smtp.example.com"
# username = "pulse@example.com"
# password = ""
# recipients = ["you@example.com"]

# [news]
# api_key = ""
# viewed_period = 1

# [twitter]
# bearer_token = ""
# max_tweets = 100
#
# [[twitter.terms]]
# group_name = "python"
# terms = ["python", "pypi"]
"""


def write_example_config(path: Path, force: bool = False) -> Path:
    """
    Write an example configuration file.

    Args:
        path: Destination file
        force: Overwrite an existing file

    Returns:
        The written path
    """
    if path.exists() and not force:
        raise ConfigurationError(f"Config file already exists: {path}")

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write(EXAMPLE_CONFIG)
    return path


def ensure_directories(config: PulseConfig) -> None:
    """Ensure all required directories exist."""
    config.config_dir.mkdir(parents=True, exist_ok=True)
    config.data_dir.mkdir(parents=True, exist_ok=True)


def get_default_config() -> PulseConfig:
    """Get the default configuration."""
    return PulseConfig()


def validate_config(config: Optional[PulseConfig] = None) -> List[ValidationError]:
    """
    Validate configuration and return list of errors.

    Args:
        config: Configuration to validate (default: loaded from file)

    Returns:
        List of validation errors (empty if valid)
    """
    if config is None:
        config = load_config()

    errors: List[ValidationError] = []

    # Scheduler validation
    if config.scheduler.tick_ms <= 0:
        errors.append(ValidationError(
            field="scheduler.tick_ms",
            message=f"Tick interval must be positive, got {config.scheduler.tick_ms}",
            severity="error"
        ))
    if config.scheduler.operation_timeout < 0:
        errors.append(ValidationError(
            field="scheduler.operation_timeout",
            message="Operation timeout must not be negative",
            severity="error"
        ))

    try:
        tz = resolve_timezone(config.scheduler.timezone)
    except ConfigurationError as e:
        errors.append(ValidationError(field="scheduler.timezone", message=e.message, severity="error"))
        tz = "UTC"

    # Schedule validation
    operations = config.operation_names()
    if not config.schedules:
        errors.append(ValidationError(
            field="schedules",
            message="No schedules configured. The daemon will not run any operation.",
            severity="warning"
        ))
    for i, schedule in enumerate(config.schedules):
        if schedule.operation not in operations:
            errors.append(ValidationError(
                field=f"schedules[{i}].operation",
                message=f"Unknown operation: {schedule.operation}",
                severity="error"
            ))
        if schedule.cron is not None:
            try:
                CronExpr.parse(schedule.cron, timezone=tz)
            except InvalidCronExpr as e:
                errors.append(ValidationError(
                    field=f"schedules[{i}].cron",
                    message=e.message,
                    severity="error"
                ))

    # Alert validation
    mediums = config.medium_ids()
    seen_names = set()
    for i, alert in enumerate(config.alerts):
        if alert.name in seen_names:
            errors.append(ValidationError(
                field=f"alerts[{i}].name",
                message=f"Duplicate alert name: {alert.name}",
                severity="error"
            ))
        seen_names.add(alert.name)

        if alert.alert_type not in ALERT_TYPES:
            errors.append(ValidationError(
                field=f"alerts[{i}].alert_type",
                message=f"Alert type must be one of {', '.join(ALERT_TYPES)}",
                severity="error"
            ))

        try:
            interval = alert.interval_seconds
        except ConfigurationError as e:
            errors.append(ValidationError(field=f"alerts[{i}].alert_interval", message=e.message, severity="error"))
            interval = None
        else:
            if alert.alert_type == "digest" and not interval:
                errors.append(ValidationError(
                    field=f"alerts[{i}].alert_interval",
                    message="Digest alerts need a positive alert_interval",
                    severity="error"
                ))
            if interval is not None and interval < 0:
                errors.append(ValidationError(
                    field=f"alerts[{i}].alert_interval",
                    message="Alert interval must not be negative",
                    severity="error"
                ))

        if not alert.mediums:
            errors.append(ValidationError(
                field=f"alerts[{i}].mediums",
                message="Alert has no mediums",
                severity="error"
            ))
        for medium in alert.mediums:
            if medium not in mediums:
                message = (
                    "Email medium is used but [email] is not configured"
                    if medium == EMAIL_MEDIUM
                    else f"Unknown medium: {medium}"
                )
                errors.append(ValidationError(field=f"alerts[{i}].mediums", message=message, severity="error"))

    # News validation
    if any(s.operation == NEWS_OPERATION for s in config.schedules) and not config.news.api_key:
        errors.append(ValidationError(
            field="news.api_key",
            message="New York Times API key not set but fetch-news is scheduled.",
            severity="error"
        ))

    # Twitter validation
    scheduled = {s.operation for s in config.schedules}
    if TWITTER_OPERATION in scheduled and not (config.twitter.bearer_token and config.twitter.terms):
        errors.append(ValidationError(
            field="twitter",
            message="track-tweets is scheduled but no bearer token or term groups are set.",
            severity="error"
        ))
    if config.twitter.max_tweets <= 0:
        errors.append(ValidationError(
            field="twitter.max_tweets",
            message=f"max_tweets must be positive, got {config.twitter.max_tweets}",
            severity="error"
        ))
    group_names = set()
    for i, group in enumerate(config.twitter.terms):
        if group.group_name in group_names:
            errors.append(ValidationError(
                field=f"twitter.terms[{i}].group_name",
                message=f"Duplicate term group: {group.group_name}",
                severity="error"
            ))
        group_names.add(group.group_name)
        if not group.terms:
            errors.append(ValidationError(
                field=f"twitter.terms[{i}].terms",
                message=f"Term group {group.group_name} has no terms",
                severity="error"
            ))

    # Path validation
    if not config.data_dir.exists():
        errors.append(ValidationError(
            field="data_dir",
            message=f"Data directory does not exist: {config.data_dir}",
            severity="warning"
        ))

    return errors


def config_to_dict(config: PulseConfig, mask_secrets: bool = True) -> dict[str, Any]:
    """
    Convert configuration to dictionary.

    Args:
        config: Configuration to convert
        mask_secrets: If True, mask sensitive values like API keys

    Returns:
        Dictionary representation of config
    """
    def mask_value(key: str, value: Any) -> Any:
        """Mask sensitive values."""
        if not mask_secrets:
            return value
        sensitive_keys = {"api_key", "password", "secret", "token"}
        if value and any(sk in key.lower() for sk in sensitive_keys):
            if isinstance(value, str) and len(value) > 4:
                return value[:4] + "****"
            return "****"
        return value

    return {
        "config_dir": str(config.config_dir),
        "data_dir": str(config.data_dir),
        "database_url": config.database_url,
        "scheduler": {
            "tick_ms": config.scheduler.tick_ms,
            "operation_timeout": config.scheduler.operation_timeout,
            "shutdown_grace": config.scheduler.shutdown_grace,
            "misfire_grace_time": config.scheduler.misfire_grace_time,
            "timezone": config.scheduler.timezone,
        },
        "schedules": [
            {"operation": s.operation, "cron": s.cron} for s in config.schedules
        ],
        "alerts": [
            {
                "name": a.name,
                "event": a.event,
                "alert_type": a.alert_type,
                "alert_interval": a.alert_interval,
                "mediums": list(a.mediums),
            }
            for a in config.alerts
        ],
        "email": {
            "smtp_host": config.email.smtp_host,
            "smtp_port": config.email.smtp_port,
            "username": config.email.username,
            "password": mask_value("password", config.email.password),
            "from_address": config.email.from_address,
            "recipients": list(config.email.recipients),
            "start_tls": config.email.start_tls,
        },
        "system_monitor": {
            "filesystems": [
                {"mount": f.mount, "max_usage": f.max_usage}
                for f in config.system_monitor.filesystems
            ],
        },
        "news": {
            "api_key": mask_value("api_key", config.news.api_key),
            "viewed_period": config.news.viewed_period,
            "emailed_period": config.news.emailed_period,
            "shared_period": config.news.shared_period,
            "shared_mediums": list(config.news.shared_mediums),
            "max_articles": config.news.max_articles,
        },
        "twitter": {
            "bearer_token": mask_value("bearer_token", config.twitter.bearer_token),
            "max_tweets": config.twitter.max_tweets,
            "language": config.twitter.language,
            "terms": [
                {"group_name": g.group_name, "terms": list(g.terms)} for g in config.twitter.terms
            ],
        },
        "commands": [
            {"id": c.id, "command": c.command, "event": c.event} for c in config.commands
        ],
        "logging": {
            "level": config.logging.level,
            "format": config.logging.format,
            "file": str(config.logging.file) if config.logging.file else None,
        },
    }


def export_config_yaml(config: PulseConfig, mask_secrets: bool = True) -> str:
    """
    Export configuration as YAML string.

    Args:
        config: Configuration to export
        mask_secrets: If True, mask sensitive values

    Returns:
        YAML string representation of config
    """
    config_dict = config_to_dict(config, mask_secrets)
    return yaml.dump(config_dict, default_flow_style=False, sort_keys=False, allow_unicode=True)


def export_config_json(config: PulseConfig, mask_secrets: bool = True) -> str:
    """
    Export configuration as JSON string.

    Args:
        config: Configuration to export
        mask_secrets: If True, mask sensitive values

    Returns:
        JSON string representation of config
    """
    config_dict = config_to_dict(config, mask_secrets)
    return json.dumps(config_dict, indent=2)
