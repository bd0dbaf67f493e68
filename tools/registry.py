"""
Tool Registry
-------------
Schema-described tool definitions grouped into modules.

The registry owns an ordered list of modules and an index from tool name to
owning module. It is built once at startup and read-only afterwards, so it
can be shared across concurrent requests without locking.

This registry is the final allow-list between model output and the system:
nothing executes unless its name resolves here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from core.errors import ModuleCollisionError
from infra.logging import get_logger


class ParameterType(str, Enum):
    """Supported parameter types."""
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


@dataclass(frozen=True)
class ToolParameter:
    """Definition of a tool parameter."""
    name: str
    type: ParameterType
    description: str
    required: bool = True

    def to_json_schema(self) -> Dict:
        return {
            "type": self.type.value,
            "description": self.description,
        }


@dataclass(frozen=True)
class ToolDefinition:
    """
    A single callable tool exposed by a module.

    The required list of the JSON schema is derived from the parameters,
    so it is always a subset of the declared properties.
    """
    name: str
    description: str
    params: Tuple[ToolParameter, ...] = ()

    @property
    def properties(self) -> Dict[str, Dict]:
        return {p.name: p.to_json_schema() for p in self.params}

    @property
    def required(self) -> List[str]:
        return [p.name for p in self.params if p.required]

    @property
    def parameters(self) -> Dict:
        """Full JSON Schema for the tool's arguments."""
        return {
            "type": "object",
            "properties": self.properties,
            "required": self.required,
        }

    def to_schema(self) -> Dict:
        """Plain {name, description, parameters} form."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def to_openai_function(self) -> Dict:
        """Convert to OpenAI function calling format (also used by Cactus)."""
        return {
            "type": "function",
            "function": self.to_schema(),
        }

    def __repr__(self) -> str:
        return f"ToolDefinition(name={self.name}, params={[p.name for p in self.params]})"


@dataclass(frozen=True)
class ToolResult:
    """
    Result of executing a tool. Always returned, never raised.

    escalate_to_cloud marks results whose tool could not answer locally and
    asks the router to try the cloud stage instead.
    """
    success: bool
    data: Any = None
    error: Optional[str] = None
    escalate_to_cloud: bool = False

    @classmethod
    def ok(cls, data: Any = None, escalate_to_cloud: bool = False) -> "ToolResult":
        return cls(success=True, data=data, escalate_to_cloud=escalate_to_cloud)

    @classmethod
    def fail(cls, error: str, data: Any = None) -> "ToolResult":
        return cls(success=False, data=data, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "escalate_to_cloud": self.escalate_to_cloud,
        }

    def __repr__(self) -> str:
        status = "✓" if self.success else "✗"
        return f"ToolResult({status} {self.error or ''})".rstrip()


@runtime_checkable
class ToolModule(Protocol):
    """A pluggable bundle of related tools sharing a domain name."""

    name: str
    description: str

    def tools(self) -> List[ToolDefinition]:
        ...

    def execute(self, tool_name: str, args: Mapping[str, Any]) -> ToolResult:
        ...


@dataclass
class ModuleInfo:
    """Summary of a registered module for status and UI listings."""
    name: str
    description: str
    tool_count: int
    tool_names: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "tool_count": self.tool_count,
            "tool_names": list(self.tool_names),
        }


class ModuleRegistry:
    """
    Registry that holds tool modules and dispatches by tool name.

    Invariant: every registered tool name maps to exactly one module.
    """

    def __init__(self):
        self._modules: List[ToolModule] = []
        self._tool_index: Dict[str, int] = {}  # tool name -> index into _modules
        self._logger = get_logger("tools.registry")

    def register(self, module: ToolModule) -> None:
        """
        Register a module and index its tools.

        Raises ModuleCollisionError if any tool name is already owned; the
        registry is left untouched in that case.
        """
        names = [tool.name for tool in module.tools()]

        seen: Dict[str, str] = {}
        for name in names:
            if name in self._tool_index:
                existing = self._modules[self._tool_index[name]]
                raise ModuleCollisionError(name, existing.name, module.name)
            if name in seen:
                raise ModuleCollisionError(name, module.name, module.name)
            seen[name] = module.name

        idx = len(self._modules)
        self._modules.append(module)
        for name in names:
            self._tool_index[name] = idx

        self._logger.info(f"Registered module: {module.name} ({len(names)} tools)")

    def execute(self, tool_name: str, args: Optional[Mapping[str, Any]] = None) -> ToolResult:
        """Execute a tool by name, dispatching to the owning module."""
        idx = self._tool_index.get(tool_name)
        if idx is None:
            self._logger.warning(f"Unknown tool: {tool_name}")
            return ToolResult.fail(f"Unknown tool: {tool_name}")

        module = self._modules[idx]
        try:
            result = module.execute(tool_name, dict(args or {}))
        except Exception as e:
            # Modules must not raise; contain the ones that do.
            self._logger.exception(f"Module {module.name} raised while executing {tool_name}")
            return ToolResult.fail(f"Tool {tool_name} failed: {e}")

        if not result.success:
            self._logger.warning(f"Tool {tool_name} failed: {result.error}")
        return result

    def has_tool(self, tool_name: str) -> bool:
        return tool_name in self._tool_index

    def get(self, tool_name: str) -> Optional[ToolDefinition]:
        """Get a tool definition by name."""
        idx = self._tool_index.get(tool_name)
        if idx is None:
            return None
        for tool in self._modules[idx].tools():
            if tool.name == tool_name:
                return tool
        return None

    def all_tools(self) -> List[ToolDefinition]:
        """All tool definitions across all modules, in registration order."""
        return [tool for module in self._modules for tool in module.tools()]

    def module_tools(self, module_name: str) -> List[ToolDefinition]:
        """Tool definitions for a single module (empty if unknown)."""
        return [
            tool
            for module in self._modules if module.name == module_name
            for tool in module.tools()
        ]

    def tool_belongs_to_module(self, tool_name: str, module_name: str) -> bool:
        idx = self._tool_index.get(tool_name)
        if idx is None:
            return False
        return self._modules[idx].name == module_name

    def module_names(self) -> List[str]:
        return [module.name for module in self._modules]

    def modules_info(self) -> List[ModuleInfo]:
        infos = []
        for module in self._modules:
            tools = module.tools()
            infos.append(ModuleInfo(
                name=module.name,
                description=module.description,
                tool_count=len(tools),
                tool_names=[t.name for t in tools],
            ))
        return infos

    def get_schemas_for_llm(self, module_name: Optional[str] = None) -> List[Dict]:
        """Tool schemas in OpenAI function format, optionally scoped to a module."""
        tools = self.module_tools(module_name) if module_name else self.all_tools()
        return [tool.to_openai_function() for tool in tools]

    def __len__(self) -> int:
        return len(self._tool_index)

    def __contains__(self, name: str) -> bool:
        return name in self._tool_index
