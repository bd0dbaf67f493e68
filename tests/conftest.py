"""
Sentinel Test Configuration
---------------------------
Shared fixtures and stubs for all tests.

Subprocess calls are blocked for every test: macOS diagnostic commands and
pkill/purge never reach the real system.
"""

import json
import subprocess
import sys
from pathlib import Path
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.cloud import CloudCapability, CloudResult
from core.on_device import InferenceBackend
from tools.auto_mechanic import AutoMechanicModule
from tools.mac_troubleshoot import MacTroubleshootModule
from tools.registry import ModuleRegistry, ParameterType, ToolDefinition, ToolParameter, ToolResult


# =============================================================================
# Test Isolation: Block Side Effects
# =============================================================================

class FakeSubprocess:
    """Records subprocess.run calls and answers with a canned result."""

    def __init__(self):
        self.calls = []
        self.returncode = 0
        self.stdout = ""
        self.stderr = ""

    def run(self, args, *a, **kwargs):
        self.calls.append(list(args))
        return subprocess.CompletedProcess(args, self.returncode, self.stdout, self.stderr)


@pytest.fixture(autouse=True)
def fake_subprocess(monkeypatch):
    """Replace subprocess.run for the duration of each test."""
    fake = FakeSubprocess()
    monkeypatch.setattr(subprocess, "run", fake.run)
    return fake


@pytest.fixture(autouse=True)
def no_cloud_key(monkeypatch):
    """Tests never see a real Gemini key unless they set one."""
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)


# =============================================================================
# Stubs
# =============================================================================

def reply(*calls, confidence=1.0) -> str:
    """Build a raw on-device completion: reply(("tool", {"arg": 1}), confidence=0.9)."""
    return json.dumps({
        "confidence": confidence,
        "function_calls": [{"name": name, "arguments": args} for name, args in calls],
    })


class StubBackend(InferenceBackend):
    """InferenceBackend that replays scripted replies (or raises scripted errors)."""

    name = "stub"

    def __init__(self, replies):
        super().__init__()
        self.replies = list(replies)
        self.resets = 0
        self.requests = []

    def reset(self) -> None:
        self.resets += 1

    def complete(self, messages, options, tools) -> str:
        self.requests.append({"messages": messages, "options": options, "tools": tools})
        if not self.replies:
            raise RuntimeError("no scripted reply left")
        item = self.replies.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class StubCloud(CloudCapability):
    """CloudCapability that replays scripted results (or raises scripted errors)."""

    name = "stub-cloud"

    def __init__(self, results=(), configured=True):
        self.results = list(results)
        self.configured = configured
        self.calls = 0

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def generate(self, text, tools) -> CloudResult:
        self.calls += 1
        if not self.results:
            raise RuntimeError("no scripted result left")
        item = self.results.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class StubModule:
    """ToolModule with fixed definitions that records every execution."""

    def __init__(self, name, definitions, results=None, description="stub module"):
        self.name = name
        self.description = description
        self._definitions = list(definitions)
        self.results = dict(results or {})
        self.executed = []

    def tools(self):
        return list(self._definitions)

    def execute(self, tool_name, args):
        self.executed.append((tool_name, dict(args)))
        return self.results.get(tool_name, ToolResult.ok({"tool": tool_name}))


class Sleeps:
    """Injectable async sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def tool(name, *params, description=""):
    """Shorthand: tool("set_alarm", ("hour", "integer"), ("label", "string", False))."""
    built = []
    for spec in params:
        pname, ptype = spec[0], spec[1]
        required = spec[2] if len(spec) > 2 else True
        built.append(ToolParameter(pname, ParameterType(ptype), f"{pname} value", required))
    return ToolDefinition(name=name, description=description or name, params=tuple(built))


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def project_root():
    """Return the project root path."""
    return PROJECT_ROOT


@pytest.fixture
def sleeps():
    return Sleeps()


@pytest.fixture
def mac_module(tmp_path):
    """Real mac module, pointed at a scratch home directory."""
    return MacTroubleshootModule(home=tmp_path)


@pytest.fixture
def registry(mac_module):
    """Registry with both shipped modules."""
    reg = ModuleRegistry()
    reg.register(mac_module)
    reg.register(AutoMechanicModule())
    return reg


@pytest.fixture
def weather_tools():
    """Small tool universe used by validator and router tests."""
    return [
        tool("get_weather", ("location", "string")),
        tool("set_alarm", ("hour", "integer"), ("minute", "integer", False)),
    ]
