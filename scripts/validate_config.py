"""
Configuration validation script.

Validates the LiveRelay environment (.env + process environment) without
connecting to Discord or Twitch.

Design rules:
- No side effects on import
- No runtime startup
- Validation only (no mutation)
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Mapping

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv  # noqa: E402

from shared.config.system import load_system_config  # noqa: E402
from shared.config.tenants import load_tenant_groups  # noqa: E402
from shared.errors import ConfigError  # noqa: E402


def _error(msg: str):
    print(f"[CONFIG ERROR] {msg}", file=sys.stderr)


# ------------------------------------------------------------
# Validators
# ------------------------------------------------------------

def validate_environment(env: Mapping[str, str]) -> bool:
    ok = True

    try:
        config = load_system_config(env)
        timing = config.timing
        print(
            f"Timing: poll={timing.poll_interval_seconds:g}s "
            f"refresh={timing.refresh_interval_seconds:g}s "
            f"restart={timing.restart_after_seconds:g}s"
        )
    except ConfigError as e:
        _error(str(e))
        ok = False

    try:
        tenants = load_tenant_groups(env)
    except ConfigError as e:
        _error(str(e))
        return False

    for cfg in tenants:
        print(f"Tenant {cfg.key}: {', '.join(cfg.broadcasters)}")

    return ok


# ------------------------------------------------------------
# Entry point
# ------------------------------------------------------------

def main() -> int:
    load_dotenv()

    if not validate_environment(os.environ):
        print("Configuration validation failed.", file=sys.stderr)
        return 1

    print("Configuration validation passed.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
