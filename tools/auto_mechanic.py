"""
Auto Mechanic Module
--------------------
Demo vehicle diagnostics module with canned OBD-II style data.
"""

from typing import Any, Dict, List, Mapping
import copy

from .registry import ToolDefinition, ToolResult


ENGINE = {
    "rpm": 850,
    "temp_f": 195,
    "oil_pressure_psi": 42,
    "status": "running",
    "codes": [
        {"code": "P0171", "description": "System Too Lean (Bank 1)", "severity": "moderate"},
        {"code": "P0420", "description": "Catalyst Efficiency Below Threshold", "severity": "low"},
    ],
}

TIRES = {
    "tires": [
        {"position": "Front Left", "pressure_psi": 28, "recommended_psi": 35, "tread_mm": 5.2},
        {"position": "Front Right", "pressure_psi": 34, "recommended_psi": 35, "tread_mm": 5.0},
        {"position": "Rear Left", "pressure_psi": 33, "recommended_psi": 35, "tread_mm": 4.8},
        {"position": "Rear Right", "pressure_psi": 34, "recommended_psi": 35, "tread_mm": 4.6},
    ]
}

BATTERY = {"voltage": 12.4, "cca": 650, "health_pct": 87, "age_months": 18, "status": "good"}

FLUIDS = {"oil": "ok", "coolant": "low", "brake_fluid": "ok", "transmission": "ok", "washer": "low"}


class AutoMechanicModule:
    """Vehicle diagnostics, engine health, and maintenance tools."""

    name = "auto_mechanic"
    description = "Vehicle diagnostics, engine health, and maintenance tools"

    _DEFINITIONS = [
        ToolDefinition(
            name="check_engine",
            description="Check engine health, RPM, temperature, and OBD-II diagnostic codes",
        ),
        ToolDefinition(
            name="check_tires",
            description="Check tire pressure and tread depth for all four tires",
        ),
        ToolDefinition(
            name="check_battery_vehicle",
            description="Check vehicle battery voltage, CCA, and overall health",
        ),
        ToolDefinition(
            name="check_fluids",
            description="Check all vehicle fluid levels (oil, coolant, brake, transmission, washer)",
        ),
        ToolDefinition(
            name="run_vehicle_checkup",
            description="Run a full vehicle diagnostic scan covering engine, tires, battery, and fluids",
        ),
    ]

    def tools(self) -> List[ToolDefinition]:
        return list(self._DEFINITIONS)

    def execute(self, tool_name: str, args: Mapping[str, Any]) -> ToolResult:
        readings: Dict[str, Dict] = {
            "check_engine": ENGINE,
            "check_tires": TIRES,
            "check_battery_vehicle": BATTERY,
            "check_fluids": FLUIDS,
        }
        if tool_name in readings:
            return ToolResult.ok(copy.deepcopy(readings[tool_name]))
        if tool_name == "run_vehicle_checkup":
            return ToolResult.ok(copy.deepcopy({
                "engine": ENGINE,
                "tires": TIRES,
                "battery": BATTERY,
                "fluids": FLUIDS,
            }))
        return ToolResult.fail(f"Unknown tool: {tool_name}")
