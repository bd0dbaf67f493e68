"""
Cactus Engine Tests
-------------------
Model lifecycle over fake bindings.
"""

import asyncio
import json
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import CapabilityError
from core.on_device import OnDeviceRouter
from inference.cactus_engine import CactusEngine, CactusEngineConfig


class FakeBindings:
    """Records calls made against the cactus_* functions."""

    def __init__(self, completion="{}", init_result="handle"):
        self.completion = completion
        self.init_result = init_result
        self.calls = []

    def cactus_init(self, model_path, *extra):
        self.calls.append(("init", model_path) + extra)
        return self.init_result

    def cactus_reset(self, model):
        self.calls.append(("reset", model))

    def cactus_complete(self, model, messages, **kwargs):
        self.calls.append(("complete", model, kwargs))
        return self.completion

    def cactus_destroy(self, model):
        self.calls.append(("destroy", model))


@pytest.fixture
def weights(tmp_path):
    path = tmp_path / "functiongemma"
    path.mkdir()
    return path


class TestLifecycle:
    """load / unload."""

    def test_missing_weights(self, tmp_path):
        engine = CactusEngine(CactusEngineConfig(model_path=str(tmp_path / "nope")), FakeBindings())
        with pytest.raises(CapabilityError):
            engine.load()
        assert not engine.is_loaded

    def test_failed_init(self, weights):
        engine = CactusEngine(CactusEngineConfig(model_path=str(weights)), FakeBindings(init_result=None))
        with pytest.raises(CapabilityError):
            engine.load()

    def test_load_and_unload(self, weights):
        bindings = FakeBindings()
        engine = CactusEngine(CactusEngineConfig(model_path=str(weights)), bindings)

        engine.load()
        engine.load()
        assert engine.is_loaded
        engine.unload()

        assert bindings.calls == [("init", str(weights)), ("destroy", "handle")]
        assert not engine.is_loaded

    def test_corpus_dir_passed(self, weights):
        bindings = FakeBindings()
        engine = CactusEngine(CactusEngineConfig(model_path=str(weights), corpus_dir="docs"), bindings)
        engine.load()
        assert bindings.calls[0] == ("init", str(weights), "docs")

    def test_complete_before_load(self):
        engine = CactusEngine(bindings=FakeBindings())
        with pytest.raises(CapabilityError):
            engine.generate([], {}, [])


class TestCompletion:
    """generate() through the router."""

    def test_reset_then_complete_with_options(self, weights, weather_tools):
        completion = json.dumps({
            "confidence": 1.0,
            "function_calls": [{"name": "get_weather", "arguments": {"location": "Oslo"}}],
        })
        bindings = FakeBindings(completion=completion)
        engine = CactusEngine(CactusEngineConfig(model_path=str(weights)), bindings)
        engine.load()

        routed = asyncio.run(OnDeviceRouter(engine).route("weather in Oslo", weather_tools))

        assert routed.calls[0].arguments == {"location": "Oslo"}
        kinds = [c[0] for c in bindings.calls]
        assert kinds == ["init", "reset", "complete"]
        kwargs = bindings.calls[2][2]
        assert kwargs["force_tools"] is True
        assert kwargs["temperature"] == 0.0
        assert kwargs["stop_sequences"] == ["<|im_end|>", "<end_of_turn>"]
        assert kwargs["tools"][0]["type"] == "function"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
