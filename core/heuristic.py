"""
Local Heuristic Router
----------------------
Deterministic keyword matching from user text to a tool guess.
No LLM logic. No I/O. Only substring tests.

Branches are ordered from most to least specific; the first one that
matches wins. Anything unmatched becomes a low-confidence `troubleshoot`
guess that signals the query needs deeper resolution.
"""

from typing import Any, Dict, Iterable, Tuple

HeuristicGuess = Tuple[str, Dict[str, Any], float]

FALLBACK_TOOL = "troubleshoot"
FALLBACK_CONFIDENCE = 0.3

# Words that trigger kill_process and so can't be the process name
_KILL_NOISE = {"kill", "quit", "force", "process", "the", "app", "please"}


def _has(text: str, keywords: Iterable[str]) -> bool:
    return any(kw in text for kw in keywords)


def local_route(text: str) -> HeuristicGuess:
    """
    Route text to (tool_name, arguments, confidence) by keyword cascade.

    >>> local_route("kill Safari")
    ('kill_process', {'process_name': 'safari'}, 0.85)
    """
    lower = text.lower()
    words = lower.split()

    if _has(lower, ("kill", "quit", "force")):
        last = words[-1] if words else "unknown"
        process_name = "unknown" if last in _KILL_NOISE else last
        return "kill_process", {"process_name": process_name}, 0.85

    if _has(lower, ("cache", "clear", "free")):
        if _has(lower, ("memory", "ram")):
            target = "memory"
        elif _has(lower, ("disk", "storage")):
            target = "disk"
        else:
            target = "both"
        return "clear_caches", {"target": target}, 0.85

    if _has(lower, ("checkup", "health", "everything", "full")):
        return "run_full_checkup", {}, 0.9

    if _has(lower, ("battery", "power", "charging")):
        return "diagnose_battery", {}, 0.9

    if _has(lower, ("network", "connection", "wifi", "internet")):
        if _has(lower, ("broken", "fix", "diagnose", "slow", "issue", "problem")):
            return "diagnose_network", {}, 0.9
        return "monitor_network", {}, 0.85

    if _has(lower, ("startup", "boot", "login")):
        return "check_startup_items", {}, 0.85

    if _has(lower, ("security", "secure", "firewall", "update")):
        return "check_security", {}, 0.85

    if _has(lower, ("cpu", "processor")):
        return "monitor_cpu", {}, 0.9

    # "slow" on its own: CPU is the usual culprit
    if _has(lower, ("slow",)):
        return "monitor_cpu", {}, 0.8

    if _has(lower, ("memory", "ram")):
        return "monitor_memory", {}, 0.9

    if _has(lower, ("disk", "storage", "space")):
        return "monitor_disk", {}, 0.9

    # Vehicle tools
    if _has(lower, ("vehicle checkup", "car diagnostic", "car checkup")):
        return "run_vehicle_checkup", {}, 0.9

    if _has(lower, ("engine", "obd", "dtc", "rpm")):
        return "check_engine", {}, 0.85

    if _has(lower, ("tire", "tyre", "tread", "psi")):
        return "check_tires", {}, 0.85

    if _has(lower, ("voltage", "cca", "alternator", "car battery")):
        return "check_battery_vehicle", {}, 0.85

    if _has(lower, ("fluid", "oil level", "coolant", "brake fluid", "transmission fluid")):
        return "check_fluids", {}, 0.85

    return FALLBACK_TOOL, {"problem": text}, FALLBACK_CONFIDENCE
