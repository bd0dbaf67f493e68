"""
On-Device Inference Router
--------------------------
Drives a local function-calling model across a temperature ladder.

Each rung resets the model, asks it once for a forced tool call, and hands
the parsed reply to the validator. The first accepted reply wins. Transport
errors and malformed replies are a non-match for that rung, never fatal.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import asyncio
import threading

from pydantic import BaseModel, Field, ValidationError

from infra.logging import get_logger
from tools.registry import ToolDefinition

from .errors import CapabilityError, RoutingError
from .retry import try_candidates
from .validator import FunctionCall, validate

SYSTEM_PROMPT = (
    "You are a function calling AI assistant. Analyze the user request and "
    "call the appropriate function with the correct arguments. Always respond "
    "with a function call."
)

STOP_SEQUENCES = ["<|im_end|>", "<end_of_turn>"]


@dataclass
class OnDeviceConfig:
    """Configuration for the on-device router."""
    temperatures: Tuple[float, ...] = (0.0, 0.3, 0.7)
    max_tokens: int = 256
    tool_rag_top_k: int = 2
    system_prompt: str = SYSTEM_PROMPT


@dataclass
class CompletionOptions:
    """Sampling options sent with each completion."""
    temperature: float = 0.0
    force_tools: bool = True
    max_tokens: int = 256
    stop_sequences: List[str] = field(default_factory=lambda: list(STOP_SEQUENCES))
    tool_rag_top_k: int = 2

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class InferenceBackend(ABC):
    """
    Stateful local inference capability.

    Subclasses implement reset() and complete(). Callers use generate(),
    which holds the backend lock across reset + complete so each call sees
    a freshly reset conversation even under concurrent requests.
    """

    name = "on-device"

    def __init__(self):
        self._lock = threading.Lock()

    @abstractmethod
    def reset(self) -> None:
        ...

    @abstractmethod
    def complete(
        self,
        messages: List[Dict[str, str]],
        options: Dict[str, Any],
        tools: List[Dict[str, Any]],
    ) -> str:
        ...

    def generate(
        self,
        messages: List[Dict[str, str]],
        options: Dict[str, Any],
        tools: List[Dict[str, Any]],
    ) -> str:
        with self._lock:
            self.reset()
            return self.complete(messages, options, tools)


class ReplyCall(BaseModel):
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class CompletionReply(BaseModel):
    """Structured completion: {confidence, function_calls}."""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    function_calls: List[ReplyCall]


@dataclass
class RoutedCalls:
    """Calls proposed by one model attempt."""
    calls: List[FunctionCall]
    confidence: float
    temperature: float = 0.0


def parse_reply(raw: Any, temperature: float = 0.0, capability: str = "on-device") -> Optional[RoutedCalls]:
    """
    Parse a raw completion into RoutedCalls.

    Returns None for a well-formed reply without calls; raises
    CapabilityError for anything that is not a well-formed reply.
    """
    if not isinstance(raw, (str, bytes)):
        raise CapabilityError(capability, f"expected JSON text, got {type(raw).__name__}")
    try:
        reply = CompletionReply.model_validate_json(raw)
    except ValidationError as e:
        raise CapabilityError(capability, f"malformed reply: {e.error_count()} error(s)") from e

    if not reply.function_calls:
        return None

    return RoutedCalls(
        calls=[FunctionCall(name=c.name, arguments=dict(c.arguments)) for c in reply.function_calls],
        confidence=reply.confidence,
        temperature=temperature,
    )


class OnDeviceRouter:
    """Temperature-ladder router over an InferenceBackend."""

    def __init__(self, backend: InferenceBackend, config: Optional[OnDeviceConfig] = None):
        self.backend = backend
        self.config = config or OnDeviceConfig()
        self._logger = get_logger("router.on_device")

    def _messages(self, text: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self.config.system_prompt},
            {"role": "user", "content": text},
        ]

    def attempt(self, text: str, schemas: List[Dict], temperature: float) -> Optional[RoutedCalls]:
        """One blocking completion at one temperature."""
        options = CompletionOptions(
            temperature=temperature,
            max_tokens=self.config.max_tokens,
            tool_rag_top_k=self.config.tool_rag_top_k,
        )
        try:
            raw = self.backend.generate(self._messages(text), options.to_dict(), schemas)
        except CapabilityError:
            raise
        except Exception as e:
            raise CapabilityError(self.backend.name, str(e)) from e

        return parse_reply(raw, temperature, self.backend.name)

    async def route(
        self,
        text: str,
        tools: Sequence[ToolDefinition],
        failures: Optional[List[RoutingError]] = None,
    ) -> Optional[RoutedCalls]:
        """Return the first validator-accepted attempt, or None."""
        tools = list(tools)
        schemas = [tool.to_openai_function() for tool in tools]

        async def run(temperature: float) -> Optional[RoutedCalls]:
            return await asyncio.to_thread(self.attempt, text, schemas, temperature)

        def accept(routed: RoutedCalls) -> bool:
            return validate(routed.calls, routed.confidence, tools, text)

        routed = await try_candidates(
            self.config.temperatures, run, accept, label="on_device", failures=failures
        )
        if routed is None:
            self._logger.info("On-device ladder exhausted without an accepted call")
        else:
            self._logger.info(
                f"On-device accepted {routed.calls[0].name} "
                f"(confidence={routed.confidence:.2f}, temperature={routed.temperature})"
            )
        return routed
