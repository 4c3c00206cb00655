"""
Centralized configuration for the notification relay.

- Pure dataclasses, loaded from OS env (plus a repo-root .env via python-dotenv).
- Strong typing & validation in __post_init__.
- Immutable singleton via functools.lru_cache.
- Secrets never logged (masked).
"""

from __future__ import annotations

import functools
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional, cast
from urllib.parse import urlparse

from dotenv import load_dotenv

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------
def _mask_secret(value: Optional[str]) -> str:
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "***"
    return value[:2] + "…" + value[-2:]


def _get_env_str(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    v = os.getenv(key, default)
    if required and (v is None or str(v).strip() == ""):
        raise ValueError(f"Missing required env var: {key}")
    return v


def _get_env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip().lower()
    return v in {"1", "true", "t", "yes", "y", "on"}


def _get_env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"Env var {key} must be an integer")


def _validate_choice(value: str, *, choices: tuple[str, ...], key: str) -> str:
    if value not in choices:
        raise ValueError(f"{key} must be one of {choices}, got {value!r}")
    return value


def _validate_url(value: Optional[str], *, key: str, allowed_schemes: tuple[str, ...]) -> Optional[str]:
    if value in (None, ""):
        return None
    parsed = urlparse(value)
    if parsed.scheme not in allowed_schemes or not parsed.netloc:
        raise ValueError(f"{key} must be a valid URL with scheme in {allowed_schemes}")
    return value


def _validate_postgres_dsn(value: str, *, key: str) -> str:
    if not value.startswith("postgresql://") and not value.startswith("postgresql+asyncpg://"):
        raise ValueError(f"{key} must start with postgresql:// or postgresql+asyncpg://")
    return value


def _validate_text(value: str, *, key: str, max_length: int, required: bool = True) -> str:
    if required and not value.strip():
        raise ValueError(f"{key} must be set and non-empty")
    if len(value) > max_length:
        raise ValueError(f"{key} must be at most {max_length} characters")
    return value


# ------------------------------------------------------------------------------
# Section dataclasses (immutable)
# ------------------------------------------------------------------------------
EnvName = Literal["local", "dev", "staging", "prod"]
JwtAlg = Literal["HS256", "RS256"]
LogFormat = Literal["json", "console"]


@dataclass(frozen=True)
class OutboxWorkerSettings:
    batch_size: int = 100
    poll_interval_ms: int = 800
    max_retry_attempts: int = 10
    base_retry_seconds: int = 5
    max_backoff_seconds: int = 300
    # Run the dispatch loop inside the API process lifespan
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ValueError("OUTBOX_BATCH_SIZE must be > 0")
        if self.poll_interval_ms <= 0:
            raise ValueError("OUTBOX_POLL_INTERVAL_MS must be > 0")
        if self.max_retry_attempts < 0:
            raise ValueError("OUTBOX_MAX_RETRY_ATTEMPTS must be >= 0")
        if self.base_retry_seconds < 0:
            raise ValueError("OUTBOX_BASE_RETRY_SECONDS must be >= 0")
        if self.max_backoff_seconds < self.base_retry_seconds:
            raise ValueError("OUTBOX_MAX_BACKOFF_SECONDS must be >= OUTBOX_BASE_RETRY_SECONDS")

    @property
    def poll_interval_seconds(self) -> float:
        return self.poll_interval_ms / 1000.0


@dataclass(frozen=True)
class BrokerSettings:
    topic_arn: str = ""
    fifo: bool = False
    region: Optional[str] = None

    def __post_init__(self) -> None:
        if self.topic_arn and not self.topic_arn.startswith("arn:"):
            raise ValueError("AWS_SNS_TOPIC_ARN must be an ARN (arn:...)")
        if self.fifo and self.topic_arn and not self.topic_arn.endswith(".fifo"):
            raise ValueError("AWS_SNS_FIFO requires a FIFO topic (ARN ending in .fifo)")

    @property
    def is_enabled(self) -> bool:
        return bool(self.topic_arn.strip())


@dataclass(frozen=True)
class WebNotificationSettings:
    enabled: bool = False
    hub_path: str = "/hubs/notifications"
    broadcast_method: str = "notificationReceived"
    user_group_prefix: str = "user-"
    # Only push when the envelope declares a matching channel tag
    require_channel_tag: bool = True
    channel_tag: str = "web"
    # Upper bound on concurrent group sends for one envelope
    max_batch_size: int = 100
    redis_channel_prefix: str = "notifications:group:"

    def __post_init__(self) -> None:
        _validate_text(self.hub_path, key="WEB_NOTIFICATIONS_HUB_PATH", max_length=200)
        if not self.hub_path.startswith("/"):
            raise ValueError("WEB_NOTIFICATIONS_HUB_PATH must start with '/'")
        _validate_text(self.broadcast_method, key="WEB_NOTIFICATIONS_BROADCAST_METHOD", max_length=100)
        _validate_text(self.user_group_prefix, key="WEB_NOTIFICATIONS_USER_GROUP_PREFIX", max_length=100)
        _validate_text(self.channel_tag, key="WEB_NOTIFICATIONS_CHANNEL_TAG", max_length=50, required=False)
        if not 1 <= self.max_batch_size <= 500:
            raise ValueError("WEB_NOTIFICATIONS_MAX_BATCH_SIZE must be between 1 and 500")


# ------------------------------------------------------------------------------
# Settings dataclass (immutable)
# ------------------------------------------------------------------------------
@dataclass(frozen=True)
class Settings:
    # Environment
    environment: EnvName = "local"
    debug: bool = False

    # Core services
    database_url: str = field(default="")
    database_pool_size: int = 5
    database_max_overflow: int = 10
    redis_url: Optional[str] = None

    # Hub authentication
    jwt_secret: str = field(default="")
    jwt_algorithm: JwtAlg = "HS256"
    jwt_public_key: Optional[str] = None

    # Observability
    log_level: str = "INFO"
    log_format: Optional[LogFormat] = None

    # Sections
    outbox: OutboxWorkerSettings = field(default_factory=OutboxWorkerSettings)
    broker: BrokerSettings = field(default_factory=BrokerSettings)
    web: WebNotificationSettings = field(default_factory=WebNotificationSettings)

    # Derived/computed flags (filled in __post_init__)
    is_prod: bool = field(init=False)
    is_staging: bool = field(init=False)
    is_dev: bool = field(init=False)
    is_local: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "environment",
            _validate_choice(self.environment, choices=("local", "dev", "staging", "prod"), key="ENVIRONMENT"),
        )
        object.__setattr__(
            self, "jwt_algorithm",
            _validate_choice(self.jwt_algorithm, choices=("HS256", "RS256"), key="JWT_ALGORITHM"),
        )
        if self.log_format is not None:
            _validate_choice(self.log_format, choices=("json", "console"), key="LOG_FORMAT")

        if self.database_url:
            _validate_postgres_dsn(self.database_url, key="DATABASE_URL")
        if self.redis_url:
            _validate_url(self.redis_url, key="REDIS_URL", allowed_schemes=("redis", "rediss"))

        # The hub can only authenticate callers with a verification key
        if self.web.enabled:
            if self.jwt_algorithm == "HS256" and not self.jwt_secret.strip():
                raise ValueError("JWT_SECRET must be set when WEB_NOTIFICATIONS_ENABLED is on")
            if self.jwt_algorithm == "RS256" and not (self.jwt_public_key and self.jwt_public_key.strip()):
                raise ValueError("JWT_PUBLIC_KEY must be set for RS256 when WEB_NOTIFICATIONS_ENABLED is on")

        if not re.fullmatch(r"(?i)DEBUG|INFO|WARNING|ERROR|CRITICAL", self.log_level.strip()):
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")

        env = self.environment
        object.__setattr__(self, "is_prod", env == "prod")
        object.__setattr__(self, "is_staging", env == "staging")
        object.__setattr__(self, "is_dev", env == "dev")
        object.__setattr__(self, "is_local", env == "local")

    @property
    def has_delivery_channel(self) -> bool:
        return self.broker.is_enabled or self.web.enabled

    # Safe dict (for debug prints without secrets)
    def safe_dict(self) -> dict:
        return {
            "environment": self.environment,
            "debug": self.debug,
            "database_url": "<masked>" if self.database_url else "<unset>",
            "redis_url": "<masked>" if self.redis_url else "<unset>",
            "jwt_secret": _mask_secret(self.jwt_secret),
            "jwt_algorithm": self.jwt_algorithm,
            "jwt_public_key": "<masked>" if self.jwt_public_key else "<unset>",
            "log_level": self.log_level,
            "log_format": self.log_format or "<auto>",
            "outbox": {
                "batch_size": self.outbox.batch_size,
                "poll_interval_ms": self.outbox.poll_interval_ms,
                "max_retry_attempts": self.outbox.max_retry_attempts,
                "base_retry_seconds": self.outbox.base_retry_seconds,
                "max_backoff_seconds": self.outbox.max_backoff_seconds,
                "enabled": self.outbox.enabled,
            },
            "broker": {
                "topic_arn": self.broker.topic_arn or "<unset>",
                "fifo": self.broker.fifo,
                "region": self.broker.region or "<default>",
            },
            "web": {
                "enabled": self.web.enabled,
                "hub_path": self.web.hub_path,
                "broadcast_method": self.web.broadcast_method,
                "user_group_prefix": self.web.user_group_prefix,
                "require_channel_tag": self.web.require_channel_tag,
                "channel_tag": self.web.channel_tag,
                "max_batch_size": self.web.max_batch_size,
            },
        }


# ------------------------------------------------------------------------------
# Loader (singleton)
# ------------------------------------------------------------------------------
_logger = logging.getLogger(__name__)


def load_settings() -> Settings:
    """Build Settings from the process environment."""
    return Settings(
        environment=cast(EnvName, _get_env_str("ENVIRONMENT", "local") or "local"),
        debug=_get_env_bool("DEBUG", False),
        database_url=_get_env_str("DATABASE_URL", required=True) or "",
        database_pool_size=_get_env_int("DATABASE_POOL_SIZE", 5),
        database_max_overflow=_get_env_int("DATABASE_MAX_OVERFLOW", 10),
        redis_url=_get_env_str("REDIS_URL", None) or None,
        jwt_secret=_get_env_str("JWT_SECRET", "") or "",
        jwt_algorithm=cast(JwtAlg, _get_env_str("JWT_ALGORITHM", "HS256") or "HS256"),
        jwt_public_key=_get_env_str("JWT_PUBLIC_KEY", None),
        log_level=_get_env_str("LOG_LEVEL", "INFO") or "INFO",
        log_format=cast(Optional[LogFormat], _get_env_str("LOG_FORMAT", None) or None),
        outbox=OutboxWorkerSettings(
            batch_size=_get_env_int("OUTBOX_BATCH_SIZE", 100),
            poll_interval_ms=_get_env_int("OUTBOX_POLL_INTERVAL_MS", 800),
            max_retry_attempts=_get_env_int("OUTBOX_MAX_RETRY_ATTEMPTS", 10),
            base_retry_seconds=_get_env_int("OUTBOX_BASE_RETRY_SECONDS", 5),
            max_backoff_seconds=_get_env_int("OUTBOX_MAX_BACKOFF_SECONDS", 300),
            enabled=_get_env_bool("OUTBOX_WORKER_ENABLED", True),
        ),
        broker=BrokerSettings(
            topic_arn=_get_env_str("AWS_SNS_TOPIC_ARN", "") or "",
            fifo=_get_env_bool("AWS_SNS_FIFO", False),
            region=_get_env_str("AWS_REGION", None) or None,
        ),
        web=WebNotificationSettings(
            enabled=_get_env_bool("WEB_NOTIFICATIONS_ENABLED", False),
            hub_path=_get_env_str("WEB_NOTIFICATIONS_HUB_PATH", "/hubs/notifications") or "/hubs/notifications",
            broadcast_method=_get_env_str("WEB_NOTIFICATIONS_BROADCAST_METHOD", "notificationReceived") or "notificationReceived",
            user_group_prefix=_get_env_str("WEB_NOTIFICATIONS_USER_GROUP_PREFIX", "user-") or "user-",
            require_channel_tag=_get_env_bool("WEB_NOTIFICATIONS_REQUIRE_CHANNEL_TAG", True),
            channel_tag=_get_env_str("WEB_NOTIFICATIONS_CHANNEL_TAG", "web") or "web",
            max_batch_size=_get_env_int("WEB_NOTIFICATIONS_MAX_BATCH_SIZE", 100),
            redis_channel_prefix=_get_env_str("WEB_NOTIFICATIONS_REDIS_CHANNEL_PREFIX", "notifications:group:") or "notifications:group:",
        ),
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    # Attempt to load .env from repo root (../../.env relative to src/shared/)
    env_file = Path(__file__).resolve().parent.parent.parent / ".env"
    if env_file.exists():
        load_dotenv(dotenv_path=str(env_file), override=False)

    settings = load_settings()

    _logger.info(
        "Settings loaded",
        extra={"settings": settings.safe_dict()}
    )
    return settings
