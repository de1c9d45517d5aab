"""
LiveRelay error taxonomy.

- ConfigError    : fatal, aborts startup
- ProbeError     : status lookup failed, treated as "no data this cycle"
- TransportError : Discord post / edit / delete / presence failed
- TenantFault    : unexpected failure isolated to a single tenant
"""

from __future__ import annotations


class LiveRelayError(Exception):
    """Base class for all LiveRelay errors."""


class ConfigError(LiveRelayError):
    pass


class ProbeError(LiveRelayError):
    def __init__(self, broadcaster_id: str, message: str):
        super().__init__(f"{broadcaster_id}: {message}")
        self.broadcaster_id = broadcaster_id


class TransportError(LiveRelayError):
    pass


class TenantFault(LiveRelayError):
    """
    Wraps an unexpected exception raised while processing one tenant.

    The original exception is kept as __cause__ and on `.error`.
    """

    def __init__(self, tenant_key: str, operation: str, error: BaseException):
        super().__init__(f"[{tenant_key}] {operation} failed: {error!r}")
        self.tenant_key = tenant_key
        self.operation = operation
        self.error = error
