"""
Call Validator
--------------
Pure predicate over model-proposed tool calls.

Small on-device models hallucinate tool names, drop required arguments and
invent argument values. A proposed call set is accepted only if every call
is well-formed against its schema and every string value is lexically
anchored in the user's own words.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Sequence, Set
import re

from tools.registry import ToolDefinition

CONFIDENCE_GATE = 0.90
CONFIDENCE_GATE_MIN_TOOLS = 3

_WORD = re.compile(r"[^\W_]+")


@dataclass
class FunctionCall:
    """A proposed tool invocation."""
    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "arguments": dict(self.arguments)}


def extract_words(text: str) -> List[str]:
    """Lower-case and split on non-alphanumeric characters, dropping empties."""
    return _WORD.findall(text.lower())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_call(call: FunctionCall, tool: ToolDefinition, message_words: Set[str]) -> bool:
    args = call.arguments
    if not isinstance(args, dict):
        return False

    for key in tool.required:
        if key not in args:
            return False

    properties = tool.properties
    for key, value in args.items():
        prop = properties.get(key)
        if prop is None:
            continue
        prop_type = prop.get("type")

        if prop_type == "string":
            if not isinstance(value, str) or not value.strip():
                return False
            # Grounding: every word of the value must come from the user
            value_words = extract_words(value)
            if not value_words:
                return False
            if any(word not in message_words for word in value_words):
                return False

        elif prop_type == "integer":
            if not _is_number(value) or value < 0:
                return False

    return True


def validate(
    calls: Sequence[FunctionCall],
    confidence: float,
    tools: Iterable[ToolDefinition],
    user_text: str,
) -> bool:
    """
    Decide whether a proposed call set may be executed.

    Rejects empty call lists, unknown tool names, missing required
    arguments, empty or ungrounded strings, negative or non-numeric
    integers, and, when the candidate universe has three or more tools,
    any confidence below 0.90.
    """
    if not calls:
        return False

    tools = list(tools)
    by_name = {tool.name: tool for tool in tools}
    message_words = set(extract_words(user_text))

    for call in calls:
        tool = by_name.get(call.name)
        if tool is None:
            return False
        if not _check_call(call, tool, message_words):
            return False

    if len(tools) >= CONFIDENCE_GATE_MIN_TOOLS and confidence < CONFIDENCE_GATE:
        return False

    return True
