from typing import Any, Dict, Iterator, List, Mapping, Optional

from core.context import TenantContext
from shared.config.tenants import TenantConfig, load_tenant_groups
from shared.logging.logger import get_logger

log = get_logger("core.registry")


class TenantRegistry:
    """
    Set of configured destinations, built once at startup.

    Membership is read-only after construction; per-tenant live state is
    mutated only by the reconciler and presence rotator.
    """

    def __init__(self, configs: List[TenantConfig]):
        self._tenants: Dict[str, TenantContext] = {}

        for cfg in configs:
            ctx = TenantContext.from_config(cfg)
            self._tenants[ctx.key] = ctx
            log.info(
                f"[{ctx.key}] Tenant registered "
                f"({len(ctx.broadcasters)} broadcaster(s): {', '.join(ctx.broadcasters)})"
            )

    # ------------------------------------------------------------------

    @classmethod
    def load(cls, env: Optional[Mapping[str, str]] = None) -> "TenantRegistry":
        """
        Build the registry from SERVER_CONFIGS. Raises ConfigError when absent.
        """
        registry = cls(load_tenant_groups(env))
        log.info(f"Configurations loaded for {len(registry)} tenant(s)")
        return registry

    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[TenantContext]:
        return iter(list(self._tenants.values()))

    def __len__(self) -> int:
        return len(self._tenants)

    def get(self, key: str) -> Optional[TenantContext]:
        return self._tenants.get(key)

    def any_live(self) -> bool:
        """
        Whether any tenant currently has a non-empty roster.

        Computed on demand from the rosters; nothing is cached.
        """
        return any(ctx.roster for ctx in self._tenants.values())

    def snapshot(self) -> Dict[str, Any]:
        return {key: ctx.snapshot() for key, ctx in self._tenants.items()}
