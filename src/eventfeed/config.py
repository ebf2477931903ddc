"""Event feed client configuration from YAML file.

Environment variables ARE supported using ${VAR_NAME} and ${VAR_NAME:-default}
syntax in YAML files. An optional .env file is loaded first so its values are
visible to the expansion.

Example config.yaml:

    eventfeed:
      entry_point: https://api.us.cdl.paloaltonetworks.com
      channel_id: EventFilter
      poll:
        sleep_ms: 200
        ack: true
      correlation:
        enabled: true
        time_window_seconds: 120

    credentials:
      client_id: ${CLIENT_ID}
      client_secret: ${CLIENT_SECRET}
      refresh_token: ${REFRESH_TOKEN}
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from core.errors.exceptions import ConfigError
from core.oauth2.models import IDP_REVOKE_URL, IDP_TOKEN_URL
from core.resilience.retry import DEFAULT_DELAY_SECONDS, DEFAULT_MAX_ATTEMPTS, RetryConfig
from eventfeed.correlation import (
    DEFAULT_EXPECTED_SIZE,
    DEFAULT_GC_MULTIPLIER,
    DEFAULT_TIME_WINDOW_SECONDS,
    CorrelationConfig,
)
from eventfeed.schemas import PollOptions

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_POINT = "https://api.us.paloaltonetworks.com"
DEFAULT_CHANNEL_ID = "EventFilter"
DEFAULT_SLEEP_MS = 200
DEFAULT_POLL_TIMEOUT_MS = 1000
DEFAULT_FETCH_TIMEOUT_MS = 45000
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _as_bool(value: Any, name: str) -> bool:
    """Booleans arrive as strings after env expansion."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _as_number(value: Any, name: str, cast=float):
    try:
        return cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{name} must be a number, got {value!r}", cause=e) from e


@dataclass
class CredentialsConfig:
    """Credential material; either a token pair or a refresh token is required."""

    client_id: str = ""
    client_secret: str = ""
    access_token: str | None = None
    refresh_token: str | None = None
    idp_token_url: str = IDP_TOKEN_URL
    idp_revoke_url: str = IDP_REVOKE_URL

    def validate(self) -> None:
        if not self.client_id or not self.client_secret:
            raise ConfigError("credentials.client_id and credentials.client_secret are required")
        if not self.refresh_token:
            raise ConfigError("credentials.refresh_token is required")

    def __repr__(self) -> str:
        return f"CredentialsConfig(client_id={self.client_id!r}, idp_token_url={self.idp_token_url!r})"


@dataclass
class PollConfig:
    sleep_ms: int = DEFAULT_SLEEP_MS
    ack: bool = False
    poll_timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS
    fetch_timeout_ms: int = DEFAULT_FETCH_TIMEOUT_MS

    @property
    def sleep_seconds(self) -> float:
        return self.sleep_ms / 1000.0

    def to_poll_options(self) -> PollOptions:
        return PollOptions(poll_timeout=self.poll_timeout_ms, fetch_timeout=self.fetch_timeout_ms)


@dataclass
class CorrelationSettings:
    enabled: bool = False
    time_window_seconds: float = DEFAULT_TIME_WINDOW_SECONDS
    absolute_time: bool = False
    gc_multiplier: int = DEFAULT_GC_MULTIPLIER
    expected_size: int = DEFAULT_EXPECTED_SIZE

    def to_engine_config(self) -> CorrelationConfig | None:
        if not self.enabled:
            return None
        return CorrelationConfig(
            time_window=self.time_window_seconds,
            absolute_time=self.absolute_time,
            gc_multiplier=self.gc_multiplier,
            expected_size=self.expected_size,
        )


@dataclass
class EventFeedConfig:
    """Top-level client configuration."""

    entry_point: str = DEFAULT_ENTRY_POINT
    channel_id: str = DEFAULT_CHANNEL_ID
    auto_refresh: bool = True
    log_level: str = "INFO"
    allow_duplicates: bool = False
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    retry: RetryConfig = field(default_factory=RetryConfig)
    poll: PollConfig = field(default_factory=PollConfig)
    correlation: CorrelationSettings = field(default_factory=CorrelationSettings)
    credentials: CredentialsConfig = field(default_factory=CredentialsConfig)

    def validate(self) -> None:
        """Validate configuration for correctness and constraints."""
        if not self.entry_point:
            raise ConfigError("eventfeed.entry_point is required")
        if not self.entry_point.startswith(("http://", "https://")):
            raise ConfigError(
                f"eventfeed.entry_point must start with http:// or https://, got: {self.entry_point!r}"
            )
        if not self.channel_id:
            raise ConfigError("eventfeed.channel_id cannot be empty")
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ConfigError(
                f"eventfeed.log_level must be one of {VALID_LOG_LEVELS}, got '{self.log_level}'"
            )
        if self.fetch_timeout_seconds <= 0:
            raise ConfigError(
                f"eventfeed.fetch_timeout_seconds must be > 0, got {self.fetch_timeout_seconds}"
            )
        if self.poll.sleep_ms <= 0:
            raise ConfigError(f"eventfeed.poll.sleep_ms must be > 0, got {self.poll.sleep_ms}")
        if self.poll.poll_timeout_ms < 0 or self.poll.fetch_timeout_ms < 0:
            raise ConfigError("eventfeed.poll timeouts must be >= 0")
        # Builds (and so validates) the engine settings
        self.correlation.to_engine_config()
        self.credentials.validate()


def _build_config(feed: dict[str, Any], creds: dict[str, Any]) -> EventFeedConfig:
    retry = feed.get("retry") or {}
    poll = feed.get("poll") or {}
    corr = feed.get("correlation") or {}

    return EventFeedConfig(
        entry_point=str(feed.get("entry_point", DEFAULT_ENTRY_POINT)).rstrip("/"),
        channel_id=str(feed.get("channel_id", DEFAULT_CHANNEL_ID)),
        auto_refresh=_as_bool(feed.get("auto_refresh", True), "eventfeed.auto_refresh"),
        log_level=str(feed.get("log_level", "INFO")).upper(),
        allow_duplicates=_as_bool(feed.get("allow_duplicates", False), "eventfeed.allow_duplicates"),
        fetch_timeout_seconds=_as_number(
            feed.get("fetch_timeout_seconds", DEFAULT_FETCH_TIMEOUT_SECONDS),
            "eventfeed.fetch_timeout_seconds",
        ),
        retry=RetryConfig.from_millis(
            max_attempts=_as_number(
                retry.get("max_attempts", DEFAULT_MAX_ATTEMPTS), "eventfeed.retry.max_attempts", int
            ),
            delay_ms=_as_number(
                retry.get("delay_ms", DEFAULT_DELAY_SECONDS * 1000), "eventfeed.retry.delay_ms"
            ),
        ),
        poll=PollConfig(
            sleep_ms=_as_number(poll.get("sleep_ms", DEFAULT_SLEEP_MS), "eventfeed.poll.sleep_ms", int),
            ack=_as_bool(poll.get("ack", False), "eventfeed.poll.ack"),
            poll_timeout_ms=_as_number(
                poll.get("poll_timeout_ms", DEFAULT_POLL_TIMEOUT_MS),
                "eventfeed.poll.poll_timeout_ms",
                int,
            ),
            fetch_timeout_ms=_as_number(
                poll.get("fetch_timeout_ms", DEFAULT_FETCH_TIMEOUT_MS),
                "eventfeed.poll.fetch_timeout_ms",
                int,
            ),
        ),
        correlation=CorrelationSettings(
            enabled=_as_bool(corr.get("enabled", False), "eventfeed.correlation.enabled"),
            time_window_seconds=_as_number(
                corr.get("time_window_seconds", DEFAULT_TIME_WINDOW_SECONDS),
                "eventfeed.correlation.time_window_seconds",
            ),
            absolute_time=_as_bool(
                corr.get("absolute_time", False), "eventfeed.correlation.absolute_time"
            ),
            gc_multiplier=_as_number(
                corr.get("gc_multiplier", DEFAULT_GC_MULTIPLIER),
                "eventfeed.correlation.gc_multiplier",
                int,
            ),
            expected_size=_as_number(
                corr.get("expected_size", DEFAULT_EXPECTED_SIZE),
                "eventfeed.correlation.expected_size",
                int,
            ),
        ),
        credentials=CredentialsConfig(
            client_id=str(creds.get("client_id") or ""),
            client_secret=str(creds.get("client_secret") or ""),
            access_token=creds.get("access_token") or None,
            refresh_token=creds.get("refresh_token") or None,
            idp_token_url=creds.get("idp_token_url") or IDP_TOKEN_URL,
            idp_revoke_url=creds.get("idp_revoke_url") or IDP_REVOKE_URL,
        ),
    )


def load_config(
    config_path: Path | str,
    overrides: dict[str, Any] | None = None,
    env_file: Path | str | None = None,
) -> EventFeedConfig:
    """Load the client configuration from a YAML file.

    Args:
        config_path: YAML file with ``eventfeed`` and ``credentials`` sections
        overrides: Dict deep-merged over the file contents (same layout)
        env_file: Optional .env file loaded before variable expansion

    Raises:
        ConfigError: Missing file, missing section or invalid values
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    if env_file is not None:
        load_dotenv(env_file)

    logger.info("Loading configuration from file: %s", config_path)
    yaml_data = _expand_env_vars(load_yaml(config_path))

    if overrides:
        logger.debug("Applying overrides: %s", list(overrides.keys()))
        yaml_data = _deep_merge(yaml_data, overrides)

    if "eventfeed" not in yaml_data:
        raise ConfigError(
            "Invalid config file: missing 'eventfeed:' section\n"
            "See config.example.yaml for correct structure"
        )

    config = _build_config(yaml_data.get("eventfeed") or {}, yaml_data.get("credentials") or {})
    config.validate()
    logger.debug("Configuration validation passed")
    return config


__all__ = [
    "EventFeedConfig",
    "CredentialsConfig",
    "PollConfig",
    "CorrelationSettings",
    "load_config",
    "load_yaml",
]
