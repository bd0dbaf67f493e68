"""
Heuristic Router Tests
----------------------
Keyword cascade ordering and argument extraction.
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.heuristic import FALLBACK_CONFIDENCE, FALLBACK_TOOL, local_route


class TestKillProcess:
    """kill / quit / force branch."""

    def test_last_word_is_process_name(self):
        assert local_route("kill Safari") == ("kill_process", {"process_name": "safari"}, 0.85)

    def test_noise_word_becomes_unknown(self):
        name, args, _ = local_route("please force quit the app")
        assert name == "kill_process"
        assert args == {"process_name": "unknown"}

    def test_kill_wins_over_later_branches(self):
        name, _, _ = local_route("kill the process eating my cpu")
        assert name == "kill_process"


class TestCaches:
    """clear_caches target selection."""

    @pytest.mark.parametrize("text,target", [
        ("clear my ram", "memory"),
        ("free up disk storage", "disk"),
        ("clear the cache", "both"),
    ])
    def test_targets(self, text, target):
        assert local_route(text) == ("clear_caches", {"target": target}, 0.85)

    def test_clear_disk_cache(self):
        assert local_route("clear disk cache") == ("clear_caches", {"target": "disk"}, 0.85)


class TestMacBranches:
    """Diagnostic branches in priority order."""

    @pytest.mark.parametrize("text,tool,confidence", [
        ("run a full checkup", "run_full_checkup", 0.9),
        ("how is my battery doing", "diagnose_battery", 0.9),
        ("my wifi is broken", "diagnose_network", 0.9),
        ("show network connections", "monitor_network", 0.85),
        ("what runs at startup", "check_startup_items", 0.85),
        ("is my firewall on", "check_security", 0.85),
        ("show cpu usage", "monitor_cpu", 0.9),
        ("my mac is slow", "monitor_cpu", 0.8),
        ("how much memory am I using", "monitor_memory", 0.9),
        ("how much disk space is left", "monitor_disk", 0.9),
    ])
    def test_branch(self, text, tool, confidence):
        name, args, conf = local_route(text)
        assert (name, args, conf) == (tool, {}, confidence)

    def test_cpu_on_fire(self):
        name, args, confidence = local_route("my cpu is on fire")
        assert (name, args) == ("monitor_cpu", {})
        assert confidence > 0.8

    def test_slow_network_is_diagnosis(self):
        assert local_route("internet is slow")[0] == "diagnose_network"

    def test_car_battery_hits_mac_battery_first(self):
        # battery branch is earlier in the cascade than the vehicle branches
        assert local_route("check my car battery")[0] == "diagnose_battery"


class TestVehicleBranches:
    """Vehicle keywords."""

    @pytest.mark.parametrize("text,tool", [
        ("run a car diagnostic", "run_vehicle_checkup"),
        ("any engine codes", "check_engine"),
        ("check tire pressure", "check_tires"),
        ("alternator voltage", "check_battery_vehicle"),
        ("is the coolant low", "check_fluids"),
    ])
    def test_branch(self, text, tool):
        name, _, conf = local_route(text)
        assert name == tool
        assert conf >= 0.85


class TestFallback:
    """Unmatched text."""

    def test_unmatched_falls_back_to_troubleshoot(self):
        text = "my screen flickers sometimes"
        assert local_route(text) == (FALLBACK_TOOL, {"problem": text}, FALLBACK_CONFIDENCE)

    def test_fallback_is_below_acceptance(self):
        assert FALLBACK_CONFIDENCE <= 0.5

    def test_unrelated_question_keeps_original_text(self):
        text = "why is my screen purple?"
        name, args, confidence = local_route(text)
        assert name == "troubleshoot"
        assert args == {"problem": "why is my screen purple?"}
        assert confidence < 0.5

    def test_empty_text(self):
        assert local_route("") == ("troubleshoot", {"problem": ""}, 0.3)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
