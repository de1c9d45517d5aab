"""
Tenant configuration parser.

Reads the SERVER_CONFIGS environment value, a delimiter-encoded list of
destination groups:

    <server_id>:<channel_id>:<login>,<login>,...|<server_id>:<channel_id>:...

Design rules:
- Import-safe (no side effects)
- Malformed groups are skipped with a warning, never fatal
- A missing SERVER_CONFIGS value is fatal (ConfigError)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

from shared.errors import ConfigError
from shared.logging.logger import get_logger

log = get_logger("shared.config.tenants")


ENV_KEY = "SERVER_CONFIGS"

GROUP_DELIMITER = "|"
FIELD_DELIMITER = ":"
BROADCASTER_DELIMITER = ","


@dataclass(frozen=True)
class TenantConfig:
    server_id: str
    channel_id: str
    broadcasters: Tuple[str, ...]

    @property
    def key(self) -> str:
        return f"{self.server_id}_{self.channel_id}"


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------

def _split_broadcasters(raw: str) -> Tuple[str, ...]:
    seen = set()
    ordered: List[str] = []
    for part in raw.split(BROADCASTER_DELIMITER):
        login = part.strip()
        if not login or login in seen:
            continue
        seen.add(login)
        ordered.append(login)
    return tuple(ordered)


def _parse_group(group: str) -> Optional[TenantConfig]:
    fields = group.split(FIELD_DELIMITER)
    if len(fields) != 3:
        log.warning(f"Invalid tenant group (expected 3 fields): {group!r}")
        return None

    server_id, channel_id, users = (f.strip() for f in fields)
    if not server_id or not channel_id or not users:
        log.warning(f"Invalid tenant group (empty field): {group!r}")
        return None

    broadcasters = _split_broadcasters(users)
    if not broadcasters:
        log.warning(f"Invalid tenant group (no broadcasters): {group!r}")
        return None

    return TenantConfig(
        server_id=server_id,
        channel_id=channel_id,
        broadcasters=broadcasters,
    )


# ------------------------------------------------------------
# Public API
# ------------------------------------------------------------

def parse_tenant_groups(raw: str) -> List[TenantConfig]:
    """
    Parse a SERVER_CONFIGS value into tenant configs, in input order.

    A later group with an already seen (server, channel) key replaces the
    earlier one at the earlier group's position.
    """
    by_key: Dict[str, TenantConfig] = {}

    for group in raw.split(GROUP_DELIMITER):
        if not group.strip():
            continue

        cfg = _parse_group(group)
        if cfg is None:
            continue

        if cfg.key in by_key:
            log.warning(f"[{cfg.key}] Duplicate tenant group; later definition wins")
        by_key[cfg.key] = cfg

    return list(by_key.values())


def load_tenant_groups(env: Optional[Mapping[str, str]] = None) -> List[TenantConfig]:
    env = os.environ if env is None else env

    raw = env.get(ENV_KEY)
    if raw is None or not raw.strip():
        raise ConfigError(f"{ENV_KEY} not found in environment")

    tenants = parse_tenant_groups(raw)
    if not tenants:
        raise ConfigError(f"{ENV_KEY} contains no valid tenant group")

    log.info(f"Tenant configuration loaded for {len(tenants)} destination(s)")
    return tenants
