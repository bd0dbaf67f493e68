# Core module - Hybrid routing engine
# Routers and the orchestrator are imported from their own modules;
# tools.registry depends on core.errors, so this package stays light.

from .errors import (
    ErrorHandler, ErrorCategory, RoutingError,
    SentinelError, CapabilityError, CloudCredentialMissing, ModuleCollisionError,
)
from .heuristic import local_route

__all__ = [
    "ErrorHandler", "ErrorCategory", "RoutingError",
    "SentinelError", "CapabilityError", "CloudCredentialMissing", "ModuleCollisionError",
    "local_route",
]
