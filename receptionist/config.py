"""
Centralized configuration with environment variable overrides.

Realtime connection settings, credential pool, session persistence and tool
policy knobs all live here. Core components receive these values through
their constructors; only entry points read the ``settings`` instance.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from receptionist.logging_context import CallIdFilter

load_dotenv()

logger = logging.getLogger(__name__)

TOOL_POLICIES = ("request", "stage")


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _split_keys(raw: str) -> tuple[str, ...]:
    return tuple(key.strip() for key in raw.split(",") if key.strip())


@dataclass(frozen=True)
class RealtimeConfig:
    """Upstream realtime model connection settings."""

    url: str = os.getenv("REALTIME_URL", "wss://api.openai.com/v1/realtime")
    model: str = os.getenv("REALTIME_MODEL", "gpt-4o-realtime-preview")
    voice: str = os.getenv("REALTIME_VOICE", "alloy")
    connect_timeout_sec: float = _safe_float("REALTIME_CONNECT_TIMEOUT", "10.0")
    input_audio_format: str = os.getenv("REALTIME_INPUT_AUDIO_FORMAT", "pcm16")
    output_audio_format: str = os.getenv("REALTIME_OUTPUT_AUDIO_FORMAT", "pcm16")
    transcription_model: str = os.getenv("REALTIME_TRANSCRIPTION_MODEL", "whisper-1")


@dataclass(frozen=True)
class PoolConfig:
    """Upstream credentials shared across concurrent calls."""

    api_keys: tuple[str, ...] = _split_keys(os.getenv("OPENAI_API_KEYS", ""))


@dataclass(frozen=True)
class SessionConfig:
    """Session lifecycle and durable store settings."""

    cleanup_delay_sec: float = _safe_float("SESSION_CLEANUP_DELAY", "120")
    ttl_seconds: int = _safe_int("SESSION_TTL_SECONDS", "3600")
    sync_retries: int = _safe_int("SESSION_SYNC_RETRIES", "3")
    sync_retry_delay_sec: float = _safe_float("SESSION_SYNC_RETRY_DELAY", "1.0")
    redis_url: str = os.getenv("REDIS_URL", "")
    key_prefix: str = os.getenv("SESSION_KEY_PREFIX", "agent2")


@dataclass(frozen=True)
class ToolConfig:
    """Tool exposure policy and matching thresholds."""

    fuzzy_threshold: float = _safe_float("FUZZY_MATCH_THRESHOLD", "0.4")
    policy: str = os.getenv("TOOL_POLICY", "request")
    default_timezone: str = os.getenv("BUSINESS_TIMEZONE", "Australia/Melbourne")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    pool: PoolConfig = field(default_factory=PoolConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    tools: ToolConfig = field(default_factory=ToolConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    agent_name: str = os.getenv("AGENT_NAME", "ai-receptionist")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.realtime.connect_timeout_sec <= 0:
        raise ValueError(
            "REALTIME_CONNECT_TIMEOUT must be > 0, "
            f"got {config.realtime.connect_timeout_sec}"
        )
    if config.session.cleanup_delay_sec < 0:
        raise ValueError(
            f"SESSION_CLEANUP_DELAY must be >= 0, got {config.session.cleanup_delay_sec}"
        )
    if config.session.ttl_seconds < 1:
        raise ValueError(
            f"SESSION_TTL_SECONDS must be >= 1, got {config.session.ttl_seconds}"
        )
    if config.session.sync_retries < 1:
        raise ValueError(
            f"SESSION_SYNC_RETRIES must be >= 1, got {config.session.sync_retries}"
        )
    if config.session.sync_retry_delay_sec < 0:
        raise ValueError(
            "SESSION_SYNC_RETRY_DELAY must be >= 0, "
            f"got {config.session.sync_retry_delay_sec}"
        )
    if not 0.0 <= config.tools.fuzzy_threshold <= 1.0:
        raise ValueError(
            f"FUZZY_MATCH_THRESHOLD must be between 0.0 and 1.0, got {config.tools.fuzzy_threshold}"
        )
    if config.tools.policy not in TOOL_POLICIES:
        raise ValueError(
            f"TOOL_POLICY must be one of {TOOL_POLICIES}, got {config.tools.policy!r}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s [%(call_id)s]: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, CallIdFilter) for f in handler.filters):
            handler.addFilter(CallIdFilter())
    logger.info(
        "Configuration loaded for '%s' (%d upstream keys, tool policy=%s)",
        config.agent_name,
        len(config.pool.api_keys),
        config.tools.policy,
    )
    return config


# Singleton instance
settings = load_config()
