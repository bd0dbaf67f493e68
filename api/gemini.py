"""
Gemini Cloud Capability
-----------------------
Function calling through the Gemini generateContent REST endpoint.

Gemini returns integers as floats (10.0) and sometimes appends
punctuation to string values; both are normalised before the calls
leave this module.
"""

from typing import Any, Dict, List, Optional, Sequence
import time

from core.cloud import CloudCapability, CloudResult
from core.errors import CapabilityError, CloudCredentialMissing
from core.validator import FunctionCall
from tools.registry import ToolDefinition

from .client import APIClient, APIConfig

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_MODEL = "gemini-2.5-flash"
GEMINI_KEY_ENV = "GEMINI_API_KEY"

TRAILING_PUNCTUATION = ".,!?;:"

_GEMINI_TYPES = {
    "string": "STRING",
    "integer": "INTEGER",
    "number": "NUMBER",
    "boolean": "BOOLEAN",
    "array": "ARRAY",
}


def gemini_type(schema_type: str) -> str:
    """Map a JSON schema type to Gemini's upper-case form."""
    return _GEMINI_TYPES.get(schema_type, "OBJECT")


def build_function_declarations(tools: Sequence[ToolDefinition]) -> List[Dict[str, Any]]:
    """Render tool definitions as Gemini functionDeclarations."""
    declarations = []
    for tool in tools:
        properties = {
            name: {
                "type": gemini_type(prop.get("type", "string")),
                "description": prop.get("description", ""),
            }
            for name, prop in tool.properties.items()
        }
        declarations.append({
            "name": tool.name,
            "description": tool.description,
            "parameters": {
                "type": "OBJECT",
                "properties": properties,
                "required": list(tool.required),
            },
        })
    return declarations


def clean_args(raw_args: Any) -> Dict[str, Any]:
    """Integral floats become ints, strings lose trailing punctuation."""
    if not isinstance(raw_args, dict):
        return {}

    cleaned = {}
    for key, value in raw_args.items():
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        elif isinstance(value, str):
            value = value.rstrip(TRAILING_PUNCTUATION)
        cleaned[key] = value
    return cleaned


def parse_function_calls(payload: Any) -> List[FunctionCall]:
    """Collect candidates[].content.parts[].functionCall entries."""
    calls: List[FunctionCall] = []
    if not isinstance(payload, dict):
        return calls

    for candidate in payload.get("candidates") or []:
        parts = (candidate.get("content") or {}).get("parts") or []
        for part in parts:
            fc = part.get("functionCall")
            if not fc or not fc.get("name"):
                continue
            calls.append(FunctionCall(name=fc["name"], arguments=clean_args(fc.get("args") or {})))
    return calls


def create_gemini_client(transport=None) -> APIClient:
    """Create Gemini API client."""
    return APIClient(APIConfig(
        name="gemini",
        base_url=GEMINI_BASE_URL,
        api_key_env=GEMINI_KEY_ENV,
        api_key_header="x-goog-api-key",
    ), transport=transport)


class GeminiCloud(CloudCapability):
    """CloudCapability backed by Gemini function calling."""

    name = "gemini"

    def __init__(self, client: Optional[APIClient] = None, model: str = GEMINI_MODEL):
        self.client = client or create_gemini_client()
        self.model = model

    @property
    def is_configured(self) -> bool:
        return self.client.is_configured

    def build_request(self, text: str, tools: Sequence[ToolDefinition]) -> Dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": text}]}],
            "tools": [{"functionDeclarations": build_function_declarations(tools)}],
            "generationConfig": {"temperature": 0.0},
        }

    async def generate(self, text: str, tools: Sequence[ToolDefinition]) -> CloudResult:
        if not self.is_configured:
            raise CloudCredentialMissing(self.client.config.api_key_env)

        start = time.perf_counter()
        response = await self.client.post(
            f"models/{self.model}:generateContent", self.build_request(text, tools)
        )
        if not response.success:
            raise CapabilityError(self.name, response.error or f"HTTP {response.status_code}")

        return CloudResult(
            function_calls=parse_function_calls(response.data),
            total_time_ms=(time.perf_counter() - start) * 1000,
        )
