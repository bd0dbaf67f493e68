"""
Cactus Inference Engine
-----------------------
On-device FunctionGemma backend over the Cactus Python bindings.

The native SDK is imported on load(), not at module import, so the rest
of the system imports and runs without it (keyword routing only).
The model handle is stateful: every completion is preceded by a reset,
and InferenceBackend.generate() serializes the pair.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.errors import CapabilityError
from core.on_device import InferenceBackend
from infra.logging import get_logger

DEFAULT_MODEL_PATH = "cactus/weights/functiongemma-270m-it"


@dataclass
class CactusEngineConfig:
    """Configuration for the Cactus engine."""
    model_path: str = DEFAULT_MODEL_PATH
    corpus_dir: Optional[str] = None


class CactusEngine(InferenceBackend):
    """
    InferenceBackend implemented with cactus_init / cactus_complete.

    Usage:
        engine = CactusEngine(CactusEngineConfig(model_path="..."))
        engine.load()
        ...
        engine.unload()

    `bindings` replaces the imported `cactus` package (tests, alternate builds).
    """

    name = "cactus"

    def __init__(self, config: Optional[CactusEngineConfig] = None, bindings: Any = None):
        super().__init__()
        self.config = config or CactusEngineConfig()
        self._logger = get_logger("inference.cactus")
        self._cactus = bindings
        self._model = None

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def _bindings(self) -> Any:
        if self._cactus is not None:
            return self._cactus
        try:
            import cactus
        except ImportError as e:
            raise CapabilityError(self.name, f"cactus bindings not installed: {e}") from e
        return cactus

    def load(self) -> None:
        """
        Load the model weights.

        Raises CapabilityError if the bindings are missing or the weights
        cannot be initialised.
        """
        if self.is_loaded:
            return

        if not Path(self.config.model_path).exists():
            raise CapabilityError(self.name, f"model not found at {self.config.model_path}")

        cactus = self._bindings()

        self._logger.info(f"Loading model from {self.config.model_path}")
        if self.config.corpus_dir:
            model = cactus.cactus_init(self.config.model_path, self.config.corpus_dir)
        else:
            model = cactus.cactus_init(self.config.model_path)
        if not model:
            raise CapabilityError(self.name, f"cactus_init failed for {self.config.model_path}")

        self._cactus = cactus
        self._model = model
        self._logger.info("Model loaded")

    def unload(self) -> None:
        """Release the native model handle."""
        with self._lock:
            if self._model is not None:
                self._cactus.cactus_destroy(self._model)
                self._model = None
                self._logger.info("Model unloaded")

    def reset(self) -> None:
        if self._model is None:
            raise CapabilityError(self.name, "model not loaded")
        self._cactus.cactus_reset(self._model)

    def complete(
        self,
        messages: List[Dict[str, str]],
        options: Dict[str, Any],
        tools: List[Dict[str, Any]],
    ) -> str:
        if self._model is None:
            raise CapabilityError(self.name, "model not loaded")
        return self._cactus.cactus_complete(self._model, messages, tools=tools, **options)
