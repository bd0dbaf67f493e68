"""
Error Handling Module
---------------------
Typed routing errors with classification.

Every routing stage resolves to "result" or "no result". The exceptions
below only travel between a capability and the stage that drives it; none
of them propagates past the orchestrator.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any, Dict, List, Optional
import logging
import traceback

from infra.logging import get_logger


class ErrorCategory(Enum):
    """Categories of routing errors."""
    CAPABILITY_FAILURE = auto()     # Backend unreachable or malformed reply
    VALIDATION_REJECTED = auto()    # Proposed call failed validation
    REGISTRATION_CONFLICT = auto()  # Tool name collision at startup
    UNKNOWN_TOOL = auto()           # Execute called with unregistered name
    CLOUD_UNCONFIGURED = auto()     # No cloud credential configured
    TOOL_FAILURE = auto()           # Module raised instead of returning a result


class SentinelError(Exception):
    """Base class for Sentinel exceptions."""

    category: ErrorCategory = ErrorCategory.CAPABILITY_FAILURE


class CapabilityError(SentinelError):
    """An inference capability failed for one attempt (transient)."""

    def __init__(self, capability: str, message: str):
        self.capability = capability
        super().__init__(f"{capability}: {message}")


class CloudCredentialMissing(SentinelError):
    """Raised when the cloud capability has no credential configured."""

    category = ErrorCategory.CLOUD_UNCONFIGURED

    def __init__(self, env_var: str):
        self.env_var = env_var
        super().__init__(f"Cloud credential not configured: {env_var}")


class ModuleCollisionError(SentinelError):
    """Raised when a module declares a tool name that is already owned."""

    category = ErrorCategory.REGISTRATION_CONFLICT

    def __init__(self, tool_name: str, existing_module: str, attempted_module: str):
        self.tool_name = tool_name
        self.existing_module = existing_module
        self.attempted_module = attempted_module
        super().__init__(
            f"Tool '{tool_name}' from module '{attempted_module}' "
            f"collides with module '{existing_module}'"
        )


@dataclass
class RoutingError:
    """
    Structured record of a soft routing failure.

    Recorded by the orchestrator for every failure it absorbs so that
    callers can inspect what was skipped without seeing an exception.
    """
    category: ErrorCategory
    message: str
    stage: str = ""
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=datetime.now)
    stack_trace: Optional[str] = None

    @classmethod
    def from_exception(
        cls,
        exception: Exception,
        stage: str = "",
        details: Optional[Dict] = None
    ) -> "RoutingError":
        """Create a record from an exception."""
        category = getattr(exception, "category", ErrorCategory.TOOL_FAILURE)
        return cls(
            category=category,
            message=str(exception),
            stage=stage,
            details=details,
            stack_trace=traceback.format_exc(),
        )

    def __repr__(self) -> str:
        return f"RoutingError({self.category.name}@{self.stage}: {self.message})"


class ErrorHandler:
    """
    Central sink for absorbed routing errors.

    Logs each error at a category-appropriate level and keeps a bounded
    history for status reporting.
    """

    LEVELS: Dict[ErrorCategory, int] = {
        ErrorCategory.VALIDATION_REJECTED: logging.INFO,
        ErrorCategory.CLOUD_UNCONFIGURED: logging.INFO,
        ErrorCategory.CAPABILITY_FAILURE: logging.WARNING,
        ErrorCategory.UNKNOWN_TOOL: logging.WARNING,
        ErrorCategory.TOOL_FAILURE: logging.ERROR,
        ErrorCategory.REGISTRATION_CONFLICT: logging.CRITICAL,
    }

    def __init__(self, max_history: int = 100):
        self._logger = get_logger("errors")
        self._error_history: List[RoutingError] = []
        self._max_history = max_history

    def record(self, error: RoutingError) -> None:
        """Log an error and store it in the history."""
        level = self.LEVELS.get(error.category, logging.ERROR)
        self._logger.log(
            level,
            f"{error.category.name} [{error.stage or '-'}]: {error.message}",
            extra={"details": error.details},
        )
        if error.stack_trace and level >= logging.ERROR:
            self._logger.debug(f"Stack trace:\n{error.stack_trace}")

        self._error_history.append(error)
        if len(self._error_history) > self._max_history:
            self._error_history.pop(0)

    def get_error_stats(self) -> Dict[str, int]:
        """Count recorded errors by category name."""
        stats: Dict[str, int] = {}
        for error in self._error_history:
            key = error.category.name
            stats[key] = stats.get(key, 0) + 1
        return stats

    @property
    def history(self) -> List[RoutingError]:
        return list(self._error_history)

    def clear_history(self) -> None:
        self._error_history.clear()
