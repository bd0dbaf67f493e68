"""
Orchestrator Tests
------------------
The four-stage fallback chain end to end, with stubbed capabilities.
"""

import asyncio
import time
import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.cloud import CloudResult, CloudRouter
from core.errors import CapabilityError
from core.on_device import OnDeviceRouter
from core.orchestrator import DecisionSource, HybridOrchestrator, OrchestratorConfig
from core.validator import FunctionCall
from infra.logging import get_request_id
from tools.registry import ModuleRegistry, ToolResult
from conftest import StubBackend, StubCloud, StubModule, reply, tool


def make_orchestrator(registry, backend=None, cloud=None, sleeps=None):
    return HybridOrchestrator(
        registry,
        on_device=OnDeviceRouter(backend) if backend is not None else None,
        cloud=CloudRouter(cloud, sleep=sleeps) if cloud is not None else None,
    )


def route(orchestrator, text, module=None):
    return asyncio.run(orchestrator.route(text, module))


@pytest.fixture
def stub_registry():
    """Two small modules: 'weather' and 'mac' (with an escalating troubleshoot)."""
    weather = StubModule("weather", [tool("get_weather", ("location", "string"))])
    mac = StubModule(
        "mac",
        [
            tool("monitor_cpu"),
            tool("troubleshoot", ("problem", "string")),
        ],
        results={"troubleshoot": ToolResult.ok({"requires_cloud": True}, escalate_to_cloud=True)},
    )
    reg = ModuleRegistry()
    reg.register(weather)
    reg.register(mac)
    return reg, weather, mac


class TestStageOne:
    """On-device model."""

    def test_accepted_call_short_circuits(self, stub_registry, sleeps):
        reg, weather, _ = stub_registry
        cloud = StubCloud([])
        orch = make_orchestrator(
            reg, StubBackend([reply(("get_weather", {"location": "London"}), confidence=0.95)]),
            cloud, sleeps,
        )

        decision = route(orch, "weather in London")

        assert decision.source == DecisionSource.ON_DEVICE
        assert decision.tool_name == "get_weather"
        assert decision.confidence == 0.95
        assert decision.tool_result.success
        assert weather.executed == [("get_weather", {"location": "London"})]
        assert cloud.calls == 0

    def test_escalation_falls_through_to_cloud(self, stub_registry, sleeps):
        reg, weather, mac = stub_registry
        cloud = StubCloud([CloudResult([FunctionCall("get_weather", {"location": "Oslo"})])])
        orch = make_orchestrator(
            reg, StubBackend([reply(("troubleshoot", {"problem": "flicker"}), confidence=0.95)]),
            cloud, sleeps,
        )

        decision = route(orch, "screen flicker")

        assert mac.executed == [("troubleshoot", {"problem": "flicker"})]
        assert decision.source == DecisionSource.CLOUD_FALLBACK
        assert decision.tool_name == "get_weather"
        assert decision.confidence == 1.0
        assert cloud.calls == 1

    def test_backend_failures_fall_through_to_heuristic(self, stub_registry):
        reg, _, mac = stub_registry
        backend = StubBackend([CapabilityError("stub", "down")] * 3)
        orch = make_orchestrator(reg, backend)

        decision = route(orch, "show cpu usage")

        assert decision.tool_name == "monitor_cpu"
        assert decision.source == DecisionSource.ON_DEVICE
        assert decision.confidence == 0.9
        assert orch.get_status()["errors"]["CAPABILITY_FAILURE"] == 3


class TestStageTwo:
    """Keyword heuristic."""

    def test_heuristic_match_executes(self, stub_registry):
        reg, _, mac = stub_registry
        decision = route(make_orchestrator(reg), "show cpu usage")
        assert decision.tool_name == "monitor_cpu"
        assert decision.source == DecisionSource.ON_DEVICE
        assert mac.executed == [("monitor_cpu", {})]

    def test_heuristic_guess_for_unregistered_tool_skipped(self, stub_registry, sleeps):
        reg, _, _ = stub_registry
        cloud = StubCloud([CloudResult([FunctionCall("monitor_cpu", {})])])
        decision = route(make_orchestrator(reg, cloud=cloud, sleeps=sleeps), "check tire pressure")
        assert decision.source == DecisionSource.CLOUD_FALLBACK
        assert decision.tool_name == "monitor_cpu"

    def test_threshold_is_exclusive(self, stub_registry, sleeps):
        reg, _, mac = stub_registry
        orch = HybridOrchestrator(reg, config=OrchestratorConfig(heuristic_threshold=0.9))
        decision = route(orch, "show cpu usage")
        assert decision.tool_result is None
        assert mac.executed == []


class TestStageThree:
    """Cloud fallback."""

    def test_first_allowed_call_wins(self, stub_registry, sleeps):
        reg, weather, _ = stub_registry
        cloud = StubCloud([CloudResult([
            FunctionCall("launch_rocket", {}),
            FunctionCall("get_weather", {"location": "Oslo"}),
        ])])
        decision = route(make_orchestrator(reg, cloud=cloud, sleeps=sleeps), "something odd")
        assert decision.tool_name == "get_weather"
        assert weather.executed == [("get_weather", {"location": "Oslo"})]

    def test_cloud_result_without_allowed_call_exhausts(self, stub_registry, sleeps):
        reg, _, _ = stub_registry
        cloud = StubCloud([CloudResult([FunctionCall("launch_rocket", {})])])
        decision = route(make_orchestrator(reg, cloud=cloud, sleeps=sleeps), "something odd")
        assert decision.tool_result is None
        assert not decision.no_api_key


class TestStageFour:
    """Exhausted chain."""

    def test_no_cloud_reports_missing_key(self, stub_registry):
        reg, _, mac = stub_registry
        decision = route(make_orchestrator(reg), "my screen flickers")

        assert decision.source == DecisionSource.CLOUD_FALLBACK
        assert decision.tool_name == "troubleshoot"
        assert decision.confidence == 0.3
        assert decision.tool_result is None
        assert decision.no_api_key
        assert decision.arguments == {"problem": "my screen flickers", "no_api_key": True}
        assert mac.executed == []

    def test_unconfigured_cloud_reports_missing_key(self, stub_registry, sleeps):
        reg, _, _ = stub_registry
        from core.errors import CloudCredentialMissing
        cloud = StubCloud([CloudCredentialMissing("GEMINI_API_KEY")], configured=False)
        decision = route(make_orchestrator(reg, cloud=cloud, sleeps=sleeps), "my screen flickers")
        assert decision.no_api_key
        assert cloud.calls == 1
        assert sleeps.delays == []

    def test_configured_but_failing_cloud(self, stub_registry, sleeps):
        reg, _, _ = stub_registry
        cloud = StubCloud([CapabilityError("x", "down")] * 3)
        decision = route(make_orchestrator(reg, cloud=cloud, sleeps=sleeps), "my screen flickers")
        assert not decision.no_api_key
        assert "no_api_key" not in decision.arguments
        assert sleeps.delays == [1.0, 2.0]


class TestScope:
    """Module-scoped routing."""

    def test_on_device_call_outside_scope_rejected(self, stub_registry):
        reg, weather, mac = stub_registry
        # validator sees only the mac tools, so a weather call is rejected there
        backend = StubBackend([reply(("get_weather", {"location": "london"}))] * 3)
        decision = route(make_orchestrator(reg, backend), "weather london", module="mac")
        assert weather.executed == []
        assert decision.tool_result is None

    def test_heuristic_respects_scope(self, stub_registry):
        reg, _, mac = stub_registry
        decision = route(make_orchestrator(reg), "show cpu usage", module="weather")
        assert decision.tool_result is None
        assert mac.executed == []

    def test_cloud_call_outside_scope_skipped(self, stub_registry, sleeps):
        reg, weather, _ = stub_registry
        cloud = StubCloud([CloudResult([FunctionCall("get_weather", {"location": "Oslo"})])])
        decision = route(
            make_orchestrator(reg, cloud=cloud, sleeps=sleeps), "odd request", module="mac"
        )
        assert weather.executed == []
        assert decision.tool_result is None

    def test_list_tools_scoped(self, stub_registry):
        reg, _, _ = stub_registry
        orch = make_orchestrator(reg)
        assert [t.name for t in orch.list_tools("weather")] == ["get_weather"]
        assert len(orch.list_tools()) == 3


class TestEndToEnd:
    """Registry with one stub module, no model, no cloud."""

    def test_show_cpu_usage(self):
        module = StubModule("mac", [tool("monitor_cpu")],
                            results={"monitor_cpu": ToolResult.ok({"cpu": "12%"})})
        reg = ModuleRegistry()
        reg.register(module)
        orch = HybridOrchestrator(reg)

        decision = route(orch, "show cpu usage")

        assert decision.source == DecisionSource.ON_DEVICE
        assert decision.tool_name == "monitor_cpu"
        assert decision.tool_result.success
        assert decision.latency_ms > 0
        assert decision.request_id.startswith("req_")

    def test_to_dict(self, stub_registry):
        reg, _, _ = stub_registry
        data = route(make_orchestrator(reg), "show cpu usage").to_dict()
        assert data["source"] == "on-device"
        assert data["tool_result"]["success"] is True
        assert set(data) >= {"tool_name", "arguments", "confidence", "latency_ms", "no_api_key"}


class TestToolExecution:
    """Tools run in worker threads, off the event loop."""

    class BlockingModule(StubModule):
        def __init__(self, delay):
            super().__init__("mac", [tool("monitor_cpu")])
            self.delay = delay
            self.request_ids = []

        def execute(self, tool_name, args):
            self.request_ids.append(get_request_id())
            time.sleep(self.delay)
            return super().execute(tool_name, args)

    def test_concurrent_routes_do_not_block_loop(self):
        module = self.BlockingModule(0.4)
        reg = ModuleRegistry()
        reg.register(module)
        orch = HybridOrchestrator(reg)

        async def scenario():
            gaps = []
            done = asyncio.Event()

            async def ticker():
                last = time.perf_counter()
                while not done.is_set():
                    await asyncio.sleep(0.02)
                    now = time.perf_counter()
                    gaps.append(now - last)
                    last = now

            tick = asyncio.create_task(ticker())
            start = time.perf_counter()
            decisions = await asyncio.gather(
                orch.route("show cpu usage"), orch.route("show cpu usage")
            )
            elapsed = time.perf_counter() - start
            done.set()
            await tick
            return decisions, elapsed, max(gaps)

        decisions, elapsed, max_gap = asyncio.run(scenario())

        assert [d.tool_name for d in decisions] == ["monitor_cpu", "monitor_cpu"]
        assert elapsed < 0.75
        assert max_gap < 0.25

    def test_request_id_visible_to_tool(self):
        module = self.BlockingModule(0)
        reg = ModuleRegistry()
        reg.register(module)

        decision = route(HybridOrchestrator(reg), "show cpu usage")

        assert module.request_ids == [decision.request_id]


class TestIntrospection:
    """Synchronous helpers."""

    def test_execute_tool_bypasses_routing(self, stub_registry):
        reg, weather, _ = stub_registry
        orch = make_orchestrator(reg)
        assert orch.execute_tool("get_weather", {"location": "x"}).success
        assert not orch.execute_tool("nope").success

    def test_status_counts_sources(self, stub_registry):
        reg, _, _ = stub_registry
        orch = make_orchestrator(reg)
        route(orch, "show cpu usage")
        route(orch, "my screen flickers")
        status = orch.get_status()
        assert status["requests"] == 2
        assert status["sources"] == {"on-device": 1, "cloud-fallback": 1}
        assert status["on_device"] is False
        assert status["cloud_configured"] is False

    def test_list_modules(self, stub_registry):
        reg, _, _ = stub_registry
        names = [m.name for m in make_orchestrator(reg).list_modules()]
        assert names == ["weather", "mac"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
