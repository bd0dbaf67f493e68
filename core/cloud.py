"""
Cloud Fallback Router
---------------------
Drives a remote function-calling capability with bounded retries.

- No credential configured: abort at once, no retry
- Transient failure: retry, attempt k first waits k * backoff_seconds
- First structurally valid result is accepted as-is (no validator pass;
  the registry allow-list is the final defense)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
import asyncio

from infra.logging import get_logger
from tools.registry import ToolDefinition

from .errors import CapabilityError, CloudCredentialMissing, RoutingError
from .retry import AbortLadder, try_candidates
from .validator import FunctionCall


@dataclass
class CloudConfig:
    """Configuration for the cloud router."""
    max_attempts: int = 3
    backoff_seconds: float = 1.0


@dataclass
class CloudResult:
    """Function calls returned by the cloud capability."""
    function_calls: List[FunctionCall] = field(default_factory=list)
    total_time_ms: float = 0.0


class CloudCapability(ABC):
    """
    Remote inference capability.

    generate() raises CloudCredentialMissing when no credential is set and
    CapabilityError on transient failures. Returned values are already
    normalised (integral floats as ints, trailing punctuation stripped).
    """

    name = "cloud"

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    async def generate(self, text: str, tools: Sequence[ToolDefinition]) -> CloudResult:
        ...


class CloudRouter:
    """Backoff-retry router over a CloudCapability."""

    def __init__(self, capability: CloudCapability, config: Optional[CloudConfig] = None, sleep=None):
        self.capability = capability
        self.config = config or CloudConfig()
        self._sleep = sleep or asyncio.sleep
        self._logger = get_logger("router.cloud")

    @property
    def is_configured(self) -> bool:
        return self.capability.is_configured

    async def route(
        self,
        text: str,
        tools: Sequence[ToolDefinition],
        max_attempts: Optional[int] = None,
        failures: Optional[List[RoutingError]] = None,
    ) -> Optional[CloudResult]:
        """Return the first result the capability produces, or None."""
        attempts = max_attempts if max_attempts is not None else self.config.max_attempts
        tools = list(tools)

        async def run(attempt: int) -> Optional[CloudResult]:
            if attempt > 0:
                await self._sleep(attempt * self.config.backoff_seconds)
            try:
                return await self.capability.generate(text, tools)
            except CloudCredentialMissing as e:
                raise AbortLadder(e) from e
            except CapabilityError:
                raise
            except Exception as e:
                raise CapabilityError(self.capability.name, str(e)) from e

        result = await try_candidates(
            range(max(attempts, 0)),
            run,
            accept=lambda r: True,
            label="cloud",
            failures=failures,
        )
        if result is not None:
            self._logger.info(
                f"Cloud returned {len(result.function_calls)} call(s) "
                f"in {result.total_time_ms:.0f}ms"
            )
        return result
