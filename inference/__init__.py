# Inference module - On-device model backends
# Backends are loaded once at startup and injected into the routers

from .cactus_engine import CactusEngine, CactusEngineConfig

__all__ = ["CactusEngine", "CactusEngineConfig"]
