"""
Startup Wiring
--------------
Builds the registry, the inference capabilities and the orchestrator once
at startup. Nothing here is a lazy global: the returned orchestrator owns
everything it routes through.
"""

from typing import Optional
import os

from infra.config import ConfigManager
from infra.logging import get_logger
from tools.auto_mechanic import AutoMechanicModule
from tools.mac_troubleshoot import MacTroubleshootModule
from tools.registry import ModuleRegistry

from .cloud import CloudConfig, CloudRouter
from .errors import CapabilityError
from .on_device import OnDeviceConfig, OnDeviceRouter
from .orchestrator import HybridOrchestrator, OrchestratorConfig

logger = get_logger("bootstrap")


def build_registry() -> ModuleRegistry:
    """Registry with every shipped tool module."""
    registry = ModuleRegistry()
    registry.register(MacTroubleshootModule())
    registry.register(AutoMechanicModule())
    return registry


def build_on_device(config: ConfigManager) -> Optional[OnDeviceRouter]:
    """Load the Cactus model, or return None to run with keyword routing only."""
    if not config.get("on_device.enabled", True):
        logger.info("On-device inference disabled by config")
        return None

    from inference.cactus_engine import DEFAULT_MODEL_PATH, CactusEngine, CactusEngineConfig

    model_path = os.getenv("CACTUS_MODEL_PATH") or config.get("on_device.model_path", DEFAULT_MODEL_PATH)
    engine = CactusEngine(CactusEngineConfig(model_path=model_path))
    try:
        engine.load()
    except CapabilityError as e:
        logger.warning(f"On-device model unavailable, using keyword routing only: {e}")
        return None

    temperatures = config.get("on_device.temperatures", [0.0, 0.3, 0.7])
    return OnDeviceRouter(engine, OnDeviceConfig(
        temperatures=tuple(float(t) for t in temperatures),
        max_tokens=int(config.get("on_device.max_tokens", 256)),
        tool_rag_top_k=int(config.get("on_device.tool_rag_top_k", 2)),
    ))


def build_cloud(config: ConfigManager) -> Optional[CloudRouter]:
    """Gemini fallback; present even without a key so status can report it."""
    if not config.get("cloud.enabled", True):
        logger.info("Cloud fallback disabled by config")
        return None

    from api.gemini import GEMINI_MODEL, GeminiCloud

    capability = GeminiCloud(model=config.get("cloud.model", GEMINI_MODEL))
    if not capability.is_configured:
        logger.info("GEMINI_API_KEY not set, cloud fallback will be skipped")

    return CloudRouter(capability, CloudConfig(
        max_attempts=int(config.get("cloud.max_attempts", 3)),
        backoff_seconds=float(config.get("cloud.backoff_seconds", 1.0)),
    ))


def build_orchestrator(config: Optional[ConfigManager] = None) -> HybridOrchestrator:
    """Wire registry, capabilities and orchestrator from configuration."""
    config = config or ConfigManager()

    registry = build_registry()
    orchestrator = HybridOrchestrator(
        registry,
        on_device=build_on_device(config),
        cloud=build_cloud(config),
        config=OrchestratorConfig(
            heuristic_threshold=float(config.get("routing.heuristic_threshold", 0.50)),
            cloud_max_attempts=int(config.get("cloud.max_attempts", 3)),
        ),
    )
    logger.info(
        f"Orchestrator ready: {len(registry)} tools in {len(registry.module_names())} modules"
    )
    return orchestrator
