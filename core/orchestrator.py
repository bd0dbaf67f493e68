"""
Hybrid Orchestrator
-------------------
Single entry point that turns a request into exactly one tool decision.

Fallback chain, strict priority order:
1. On-device model (temperature ladder + validator)
2. Keyword heuristic (accepted above a confidence threshold)
3. Cloud model (bounded retries, accepted as-is)
4. Give up: return the heuristic guess without executing it

No stage propagates an exception past this module. Every absorbed
failure is recorded with the ErrorHandler and surfaced via get_status().
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
import asyncio
import time

from infra.logging import RequestContext, get_logger
from tools.registry import ModuleInfo, ModuleRegistry, ToolDefinition, ToolResult

from .cloud import CloudRouter
from .errors import ErrorCategory, ErrorHandler, RoutingError
from .heuristic import local_route
from .on_device import OnDeviceRouter


class DecisionSource(str, Enum):
    """Which side of the chain produced a decision."""
    ON_DEVICE = "on-device"
    CLOUD_FALLBACK = "cloud-fallback"


@dataclass
class OrchestratorConfig:
    """Configuration for the orchestrator."""
    heuristic_threshold: float = 0.50
    cloud_max_attempts: int = 3
    max_error_history: int = 100


@dataclass
class Decision:
    """Terminal outcome of one routed request."""
    tool_name: str
    arguments: Dict[str, Any]
    source: DecisionSource
    confidence: float
    latency_ms: float = 0.0
    tool_result: Optional[ToolResult] = None
    no_api_key: bool = False
    request_id: Optional[str] = None
    errors: List[RoutingError] = field(default_factory=list)

    @property
    def executed(self) -> bool:
        return self.tool_result is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "arguments": dict(self.arguments),
            "source": self.source.value,
            "confidence": self.confidence,
            "latency_ms": round(self.latency_ms, 2),
            "tool_result": self.tool_result.to_dict() if self.tool_result else None,
            "no_api_key": self.no_api_key,
            "request_id": self.request_id,
        }

    def __repr__(self) -> str:
        return (
            f"Decision({self.tool_name}, source={self.source.value}, "
            f"confidence={self.confidence:.2f}, {self.latency_ms:.0f}ms)"
        )


class HybridOrchestrator:
    """
    Routes natural-language requests to registered tools.

    Capabilities are injected; either may be None, in which case its stage
    is skipped. A None cloud router still lets stage 4 report no_api_key.
    """

    def __init__(
        self,
        registry: ModuleRegistry,
        on_device: Optional[OnDeviceRouter] = None,
        cloud: Optional[CloudRouter] = None,
        config: Optional[OrchestratorConfig] = None,
    ):
        self.registry = registry
        self.on_device = on_device
        self.cloud = cloud
        self.config = config or OrchestratorConfig()
        self.error_handler = ErrorHandler(max_history=self.config.max_error_history)
        self._logger = get_logger("orchestrator")

        self._requests = 0
        self._source_counts = {source.value: 0 for source in DecisionSource}

    # --- scope -------------------------------------------------------------

    def _tool_universe(self, module: Optional[str]) -> List[ToolDefinition]:
        if module:
            return self.registry.module_tools(module)
        return self.registry.all_tools()

    def _allowed(self, tool_name: str, module: Optional[str]) -> bool:
        if module:
            return self.registry.tool_belongs_to_module(tool_name, module)
        return self.registry.has_tool(tool_name)

    def _absorb(self, errors: List[RoutingError], failures: List[RoutingError]) -> None:
        for error in failures:
            self.error_handler.record(error)
        errors.extend(failures)

    async def _execute(self, tool_name: str, args: Mapping[str, Any]) -> ToolResult:
        # Tools shell out; keep them off the event loop
        return await asyncio.to_thread(self.registry.execute, tool_name, args)

    # --- routing -----------------------------------------------------------

    async def route(self, text: str, module: Optional[str] = None) -> Decision:
        """Run the fallback chain for one request and return its Decision."""
        with RequestContext() as request_id:
            start = time.perf_counter()
            decision = await self._route(text, module)
            decision.latency_ms = (time.perf_counter() - start) * 1000
            decision.request_id = request_id

            self._requests += 1
            self._source_counts[decision.source.value] += 1
            self._logger.info(
                f"Decision: {decision.tool_name} via {decision.source.value} "
                f"(confidence={decision.confidence:.2f}, {decision.latency_ms:.1f}ms)"
            )
            return decision

    async def _route(self, text: str, module: Optional[str]) -> Decision:
        tools = self._tool_universe(module)
        errors: List[RoutingError] = []
        scope = module or "all"
        self._logger.info(f"Routing request (scope={scope}, {len(tools)} tools)")

        # Stage 1: on-device model
        if self.on_device is not None and tools:
            failures: List[RoutingError] = []
            routed = await self.on_device.route(text, tools, failures=failures)
            self._absorb(errors, failures)
            if routed is not None:
                call = routed.calls[0]
                if self._allowed(call.name, module):
                    result = await self._execute(call.name, call.arguments)
                    if not result.escalate_to_cloud:
                        return Decision(
                            tool_name=call.name,
                            arguments=dict(call.arguments),
                            source=DecisionSource.ON_DEVICE,
                            confidence=routed.confidence,
                            tool_result=result,
                            errors=errors,
                        )
                    self._logger.info(f"Stage 1: {call.name} escalated to cloud")
                else:
                    self._reject_scope(errors, call.name, scope, "on_device")

        # Stage 2: keyword heuristic
        guess_name, guess_args, guess_confidence = local_route(text)
        if guess_confidence > self.config.heuristic_threshold:
            if self._allowed(guess_name, module):
                self._logger.info(f"Stage 2: heuristic matched {guess_name} ({guess_confidence:.2f})")
                return Decision(
                    tool_name=guess_name,
                    arguments=dict(guess_args),
                    source=DecisionSource.ON_DEVICE,
                    confidence=guess_confidence,
                    tool_result=await self._execute(guess_name, guess_args),
                    errors=errors,
                )
            self._reject_scope(errors, guess_name, scope, "heuristic")
        else:
            self._logger.info(f"Stage 2: heuristic guess {guess_name} below threshold")

        # Stage 3: cloud model
        if self.cloud is not None and tools:
            failures = []
            cloud_result = await self.cloud.route(
                text, tools, max_attempts=self.config.cloud_max_attempts, failures=failures
            )
            self._absorb(errors, failures)
            if cloud_result is not None:
                for call in cloud_result.function_calls:
                    if self._allowed(call.name, module):
                        return Decision(
                            tool_name=call.name,
                            arguments=dict(call.arguments),
                            source=DecisionSource.CLOUD_FALLBACK,
                            confidence=1.0,
                            tool_result=await self._execute(call.name, call.arguments),
                            errors=errors,
                        )
                    self._reject_scope(errors, call.name, scope, "cloud")

        # Stage 4: exhausted, hand back the heuristic guess unexecuted
        no_api_key = self.cloud is None or not self.cloud.is_configured
        arguments = dict(guess_args)
        if no_api_key:
            arguments["no_api_key"] = True
        self._logger.warning(
            f"Fallback chain exhausted, returning unexecuted guess {guess_name}"
            + (" (no cloud credential)" if no_api_key else "")
        )
        return Decision(
            tool_name=guess_name,
            arguments=arguments,
            source=DecisionSource.CLOUD_FALLBACK,
            confidence=guess_confidence,
            no_api_key=no_api_key,
            errors=errors,
        )

    def _reject_scope(self, errors: List[RoutingError], tool_name: str, scope: str, stage: str) -> None:
        self._absorb(errors, [RoutingError(
            category=ErrorCategory.UNKNOWN_TOOL,
            message=f"{tool_name} not available in scope {scope}",
            stage=stage,
        )])

    # --- introspection -----------------------------------------------------

    def list_tools(self, module: Optional[str] = None) -> List[ToolDefinition]:
        return self._tool_universe(module)

    def list_modules(self) -> List[ModuleInfo]:
        return self.registry.modules_info()

    def execute_tool(self, name: str, args: Optional[Mapping[str, Any]] = None) -> ToolResult:
        """Execute a tool directly, bypassing routing."""
        return self.registry.execute(name, args or {})

    def get_status(self) -> Dict[str, Any]:
        """Get orchestrator status."""
        return {
            "on_device": self.on_device is not None,
            "cloud_configured": self.cloud is not None and self.cloud.is_configured,
            "modules": self.registry.module_names(),
            "tool_count": len(self.registry),
            "requests": self._requests,
            "sources": dict(self._source_counts),
            "errors": self.error_handler.get_error_stats(),
        }

    def shutdown(self) -> None:
        """Release the on-device model, if one is loaded."""
        if self.on_device is None:
            return
        unload = getattr(self.on_device.backend, "unload", None)
        if unload is not None:
            unload()
        self._logger.info("Orchestrator shut down")
