from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from shared.errors import ConfigError
from shared.logging.logger import get_logger

log = get_logger("shared.config.system")


@dataclass
class TimingConfig:
    poll_interval_seconds: float = 60.0
    refresh_interval_seconds: float = 15 * 60.0
    # 0 disables the scheduled restart
    restart_after_seconds: float = 12 * 60 * 60.0
    restart_log_interval_seconds: float = 60.0


@dataclass
class ThumbnailConfig:
    width: int = 400
    height: int = 225


@dataclass
class Credentials:
    discord_token: str
    twitch_client_id: str
    twitch_client_secret: str


@dataclass
class SystemConfig:
    credentials: Credentials
    timing: TimingConfig = field(default_factory=TimingConfig)
    thumbnail: ThumbnailConfig = field(default_factory=ThumbnailConfig)


def _read_number(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default

    try:
        value = float(raw)
    except ValueError:
        log.warning(f"{key} must be numeric (got {raw!r}); defaulting to {default}")
        return default

    if value < 0:
        log.warning(f"{key} must not be negative (got {raw!r}); defaulting to {default}")
        return default

    return value


def _require(env: Mapping[str, str], key: str) -> str:
    value = (env.get(key) or "").strip()
    if not value:
        raise ConfigError(f"{key} not found in environment")
    return value


def load_timing_config(env: Optional[Mapping[str, str]] = None) -> TimingConfig:
    env = os.environ if env is None else env
    defaults = TimingConfig()

    return TimingConfig(
        poll_interval_seconds=_read_number(
            env, "POLL_INTERVAL_SECONDS", defaults.poll_interval_seconds
        ) or defaults.poll_interval_seconds,
        refresh_interval_seconds=_read_number(
            env, "REFRESH_INTERVAL_SECONDS", defaults.refresh_interval_seconds
        ) or defaults.refresh_interval_seconds,
        restart_after_seconds=_read_number(
            env, "RESTART_AFTER_HOURS", defaults.restart_after_seconds / 3600
        ) * 3600,
        restart_log_interval_seconds=defaults.restart_log_interval_seconds,
    )


def load_thumbnail_config(env: Optional[Mapping[str, str]] = None) -> ThumbnailConfig:
    env = os.environ if env is None else env
    defaults = ThumbnailConfig()

    return ThumbnailConfig(
        width=int(_read_number(env, "THUMBNAIL_WIDTH", defaults.width)) or defaults.width,
        height=int(_read_number(env, "THUMBNAIL_HEIGHT", defaults.height)) or defaults.height,
    )


def load_system_config(env: Optional[Mapping[str, str]] = None) -> SystemConfig:
    env = os.environ if env is None else env

    credentials = Credentials(
        discord_token=_require(env, "DISCORD_TOKEN"),
        twitch_client_id=_require(env, "TWITCH_CLIENT_ID"),
        twitch_client_secret=_require(env, "TWITCH_CLIENT_SECRET"),
    )

    return SystemConfig(
        credentials=credentials,
        timing=load_timing_config(env),
        thumbnail=load_thumbnail_config(env),
    )
