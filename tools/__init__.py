# Tools module - Module registry and tool modules
# Each module: name, description, tool definitions, never-raising execute
# This registry is the final allow-list between model output and the system

from .registry import (
    ModuleRegistry, ModuleInfo, ToolModule, ToolDefinition,
    ToolParameter, ParameterType, ToolResult
)
from .mac_troubleshoot import MacTroubleshootModule
from .auto_mechanic import AutoMechanicModule

__all__ = [
    "ModuleRegistry",
    "ModuleInfo",
    "ToolModule",
    "ToolDefinition",
    "ToolParameter",
    "ParameterType",
    "ToolResult",
    "MacTroubleshootModule",
    "AutoMechanicModule",
]
