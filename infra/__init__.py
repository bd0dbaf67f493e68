# Infrastructure module - Logging, configuration and the internal service bus
# The service bus pulls in FastAPI; import it from infra.service_bus directly.

from .config import ConfigManager
from .logging import (
    get_logger, configure_logging, RequestContext,
    get_request_id, generate_request_id
)

__all__ = [
    "ConfigManager",
    "get_logger",
    "configure_logging",
    "RequestContext",
    "get_request_id",
    "generate_request_id",
]
