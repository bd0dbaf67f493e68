"""
macOS Troubleshooting Module
----------------------------
Diagnostic and troubleshooting tools backed by real shell commands.

Rules:
- No shell=True; every command is an argument list
- Output is parsed into structured data, raw text kept where parsing is lossy
- A tool never raises; failures surface through ToolResult
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence
import shutil
import subprocess

from infra.logging import get_logger

from .registry import ParameterType, ToolDefinition, ToolParameter, ToolResult

CommandRunner = Callable[[Sequence[str]], str]

# Never pkill these, whatever the model asks for.
FORBIDDEN_PROCESSES = ("kernel_task", "launchd", "WindowServer", "loginwindow")

USER_DIRECTORIES = ("Desktop", "Downloads", "Documents", "Library/Caches", ".Trash")


def run_command(args: Sequence[str], timeout: float = 15.0) -> str:
    """Run a command and return stripped stdout ("" on any failure)."""
    try:
        completed = subprocess.run(
            list(args),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.SubprocessError):
        return ""
    return (completed.stdout or "").strip()


# =============================================================================
# Parsers
# =============================================================================

def parse_vm_stat(raw: str) -> Dict[str, Any]:
    """Parse `vm_stat` output into {key: page_count}."""
    stats: Dict[str, Any] = {}
    for line in raw.splitlines():
        key, sep, val = line.partition(":")
        if not sep:
            continue
        key = key.strip().replace(" ", "_").lower()
        val = val.strip().rstrip(".").strip()
        stats[key] = int(val) if val.isdigit() else val
    return stats


def parse_df(raw: str) -> Dict[str, Any]:
    """Parse `df -h /` into a dict describing the root volume."""
    lines = raw.splitlines()
    if len(lines) < 2:
        return {"raw": raw}
    parts = lines[1].split()
    if len(parts) >= 9:
        keys = ("filesystem", "size", "used", "available", "capacity",
                "iused", "ifree", "iused_pct", "mounted_on")
        return dict(zip(keys, parts))
    if len(parts) >= 5:
        keys = ("filesystem", "size", "used", "available", "capacity")
        return dict(zip(keys, parts))
    return {"raw": raw}


def parse_du(raw: str) -> Dict[str, str]:
    """Parse `du -sh` lines into {path: size}."""
    sizes = {}
    for line in raw.splitlines():
        parts = line.split(None, 1)
        if len(parts) == 2:
            sizes[parts[1].strip()] = parts[0]
    return sizes


def parse_process_list(raw: str) -> List[Dict[str, str]]:
    """Parse `top -stats pid,command,cpu` rows (header skipped)."""
    procs = []
    rows = [line for line in raw.splitlines() if line.strip()]
    header_seen = False
    for line in rows:
        parts = line.split()
        if not header_seen:
            header_seen = parts[:1] == ["PID"]
            continue
        if len(parts) >= 3:
            procs.append({"pid": parts[0], "command": parts[1], "cpu_pct": parts[2]})
    return procs


def parse_ps_mem(raw: str, limit: int = 10) -> List[Dict[str, str]]:
    """Parse `ps aux` output, sorted by memory, into the top consumers."""
    procs = []
    for line in raw.splitlines()[1:]:
        parts = line.split()
        if len(parts) >= 11:
            procs.append({
                "user": parts[0],
                "pid": parts[1],
                "cpu_pct": parts[2],
                "mem_pct": parts[3],
                "vsz": parts[4],
                "rss": parts[5],
                "command": " ".join(parts[10:]),
            })

    def mem(proc: Dict[str, str]) -> float:
        try:
            return float(proc["mem_pct"])
        except ValueError:
            return 0.0

    procs.sort(key=mem, reverse=True)
    return procs[:limit]


def parse_key_values(raw: str) -> Dict[str, str]:
    """Parse 'Key Name: value' lines into snake_case keys."""
    result = {}
    for line in raw.splitlines():
        key, sep, val = line.partition(":")
        if sep:
            result[key.strip().replace(" ", "_").lower()] = val.strip()
    return result


def parse_battery(raw: str) -> Dict[str, Any]:
    """Extract percentage and charging state from `pmset -g batt`."""
    percentage: Optional[int] = None
    status = "unknown"
    for line in raw.splitlines():
        if "%" not in line:
            continue
        head = line[:line.index("%")]
        digits = ""
        for ch in reversed(head):
            if not ch.isdigit():
                break
            digits = ch + digits
        if digits:
            percentage = int(digits)
        # "discharging" contains "charging", so test it first
        if "discharging" in line:
            status = "discharging"
        elif "charging" in line:
            status = "charging"
        elif "charged" in line:
            status = "charged"
        elif "AC attached" in line:
            status = "ac_attached"
    return {"percentage": percentage, "status": status}


# =============================================================================
# Module
# =============================================================================

def _no_params(name: str, description: str) -> ToolDefinition:
    return ToolDefinition(name=name, description=description)


class MacTroubleshootModule:
    """macOS system diagnostics, monitoring, and troubleshooting tools."""

    name = "mac_troubleshoot"
    description = "macOS system diagnostics, monitoring, and troubleshooting tools"

    def __init__(self, runner: Optional[CommandRunner] = None, home: Optional[Path] = None):
        self._run = runner or run_command
        self._home = home or Path.home()
        self._logger = get_logger("tools.mac_troubleshoot")
        self._definitions = self._build_definitions()
        self._handlers: Dict[str, Callable[[Mapping[str, Any]], ToolResult]] = {
            "monitor_cpu": lambda args: self.monitor_cpu(),
            "monitor_memory": lambda args: self.monitor_memory(),
            "monitor_disk": lambda args: self.monitor_disk(),
            "monitor_network": lambda args: self.monitor_network(),
            "diagnose_network": lambda args: self.diagnose_network(),
            "diagnose_battery": lambda args: self.diagnose_battery(),
            "kill_process": self.kill_process,
            "clear_caches": self.clear_caches,
            "check_startup_items": lambda args: self.check_startup_items(),
            "check_security": lambda args: self.check_security(),
            "run_full_checkup": lambda args: self.run_full_checkup(),
            "troubleshoot": self.troubleshoot,
        }

    @staticmethod
    def _build_definitions() -> List[ToolDefinition]:
        return [
            _no_params("monitor_cpu", "Monitor CPU usage, top processes, core count, and CPU model"),
            _no_params("monitor_memory", "Monitor memory usage via vm_stat and top memory consumers"),
            _no_params("monitor_disk", "Check disk usage for root volume and common user directories"),
            _no_params("monitor_network", "List established network connections and ARP table"),
            _no_params("diagnose_network", "Diagnose network: Wi-Fi info, ping, DNS lookup"),
            _no_params("diagnose_battery", "Check battery status and power information"),
            ToolDefinition(
                name="kill_process",
                description="Force-kill a process by name",
                params=(ToolParameter(
                    name="process_name",
                    type=ParameterType.STRING,
                    description="Name (or pattern) of the process to kill",
                ),),
            ),
            ToolDefinition(
                name="clear_caches",
                description="Clear disk caches, memory caches, or both",
                params=(ToolParameter(
                    name="target",
                    type=ParameterType.STRING,
                    description="What to clear: memory, disk, or both",
                ),),
            ),
            _no_params("check_startup_items", "List login items and LaunchAgents"),
            _no_params("check_security", "Check FileVault, SIP, and firewall status"),
            _no_params(
                "run_full_checkup",
                "Run a comprehensive system health check (CPU + memory + disk + network + security)",
            ),
            ToolDefinition(
                name="troubleshoot",
                description="Cloud-assisted troubleshooting for complex problems",
                params=(ToolParameter(
                    name="problem",
                    type=ParameterType.STRING,
                    description="Description of the problem to troubleshoot",
                ),),
            ),
        ]

    def tools(self) -> List[ToolDefinition]:
        return list(self._definitions)

    def execute(self, tool_name: str, args: Mapping[str, Any]) -> ToolResult:
        handler = self._handlers.get(tool_name)
        if handler is None:
            return ToolResult.fail(f"Unknown tool: {tool_name}")
        self._logger.info(f"Executing {tool_name}")
        return handler(args)

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    def monitor_cpu(self) -> ToolResult:
        top = self._run(["top", "-l", "1", "-n", "10", "-stats", "pid,command,cpu"])
        ncpu = self._run(["sysctl", "-n", "hw.ncpu"])
        brand = self._run(["sysctl", "-n", "machdep.cpu.brand_string"])

        return ToolResult.ok({
            "cpu_brand": brand,
            "core_count": int(ncpu) if ncpu.isdigit() else 0,
            "top_processes": parse_process_list(top),
        })

    def monitor_memory(self) -> ToolResult:
        vm_raw = self._run(["vm_stat"])
        memsize = self._run(["sysctl", "-n", "hw.memsize"])
        ps_raw = self._run(["ps", "aux"])

        total_bytes = int(memsize) if memsize.isdigit() else 0
        total_gb = total_bytes / (1024 ** 3)

        return ToolResult.ok({
            "total_memory_gb": round(total_gb, 2),
            "vm_stat": parse_vm_stat(vm_raw),
            "top_memory_consumers": parse_ps_mem(ps_raw),
        })

    def monitor_disk(self) -> ToolResult:
        df_raw = self._run(["df", "-h", "/"])
        existing = [str(self._home / d) for d in USER_DIRECTORIES if (self._home / d).exists()]
        du_raw = self._run(["du", "-sh", *existing]) if existing else ""

        return ToolResult.ok({
            "root_volume": parse_df(df_raw),
            "directory_sizes": parse_du(du_raw),
        })

    def monitor_network(self) -> ToolResult:
        lsof = self._run(["lsof", "-i", "-nP"])
        arp = self._run(["arp", "-a"])

        connections = []
        for line in [l for l in lsof.splitlines() if "ESTABLISHED" in l][:20]:
            parts = line.split()
            if len(parts) >= 9:
                connections.append({
                    "command": parts[0],
                    "pid": parts[1],
                    "user": parts[2],
                    "name": parts[8],
                })
            else:
                connections.append({"raw": line})

        return ToolResult.ok({
            "established_connections": connections,
            "arp_table": [line.strip() for line in arp.splitlines()],
        })

    # -------------------------------------------------------------------------
    # Diagnosis
    # -------------------------------------------------------------------------

    def diagnose_network(self) -> ToolResult:
        wifi = self._run(["networksetup", "-getinfo", "Wi-Fi"])
        ping = self._run(["ping", "-c", "3", "-t", "5", "8.8.8.8"])
        dns = self._run(["nslookup", "google.com"])

        ping_data: Dict[str, Any] = {
            "reachable": "0.0% packet loss" in ping or " 0% packet loss" in ping,
        }
        for line in ping.splitlines():
            if "round-trip" in line or "rtt" in line:
                ping_data["summary"] = line.strip()
            if "packet loss" in line:
                ping_data["packet_loss_line"] = line.strip()

        return ToolResult.ok({
            "wifi": parse_key_values(wifi),
            "ping": ping_data,
            "dns": {
                "resolves": "Address" in dns and "server can't find" not in dns,
                "raw": dns,
            },
        })

    def diagnose_battery(self) -> ToolResult:
        batt = self._run(["pmset", "-g", "batt"])
        profile = self._run(["system_profiler", "SPPowerDataType"])

        data = parse_battery(batt)
        data["pmset_raw"] = batt
        data["power_profile"] = profile
        return ToolResult.ok(data)

    def check_startup_items(self) -> ToolResult:
        login_items = self._run([
            "osascript", "-e",
            'tell application "System Events" to get the name of every login item',
        ])
        agents_dir = self._home / "Library" / "LaunchAgents"
        agents = sorted(p.name for p in agents_dir.iterdir()) if agents_dir.is_dir() else []

        return ToolResult.ok({
            "login_items": [s.strip() for s in login_items.split(", ")] if login_items else [],
            "launch_agents": agents,
        })

    def check_security(self) -> ToolResult:
        filevault = self._run(["fdesetup", "status"])
        sip = self._run(["csrutil", "status"])
        firewall = self._run(["/usr/libexec/ApplicationFirewall/socketfilterfw", "--getglobalstate"])

        return ToolResult.ok({
            "filevault": {"enabled": "On" in filevault, "raw": filevault},
            "sip": {"enabled": "enabled" in sip, "raw": sip},
            "firewall": {"enabled": "enabled" in firewall, "raw": firewall},
        })

    def run_full_checkup(self) -> ToolResult:
        return ToolResult.ok({
            "cpu": self.monitor_cpu().data,
            "memory": self.monitor_memory().data,
            "disk": self.monitor_disk().data,
            "network": self.monitor_network().data,
            "security": self.check_security().data,
        })

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def kill_process(self, args: Mapping[str, Any]) -> ToolResult:
        process_name = args.get("process_name")
        if not isinstance(process_name, str) or not process_name.strip():
            return ToolResult.fail("Missing required parameter: process_name")

        if any(f in process_name for f in FORBIDDEN_PROCESSES):
            return ToolResult.fail(
                f"Refusing to kill system-critical process: {process_name}",
                data={"process_name": process_name},
            )

        try:
            completed = subprocess.run(
                ["pkill", "-f", process_name],
                capture_output=True,
                text=True,
                timeout=10,
            )
        except (OSError, subprocess.SubprocessError) as e:
            return ToolResult.fail(f"Failed to run pkill: {e}", data={"process_name": process_name})

        killed = completed.returncode == 0
        data = {
            "process_name": process_name,
            "killed": killed,
            "stderr": (completed.stderr or "").strip(),
        }
        if not killed:
            return ToolResult.fail("Process not found or could not be killed", data=data)
        self._logger.warning(f"Killed processes matching: {process_name}")
        return ToolResult.ok(data)

    def clear_caches(self, args: Mapping[str, Any]) -> ToolResult:
        target = args.get("target") or "both"
        results: Dict[str, Any] = {"target": target}

        if target in ("disk", "both"):
            removed, failed = self._clear_user_caches()
            results["disk_caches_cleared"] = True
            results["disk_entries_removed"] = removed
            if failed:
                results["disk_entries_failed"] = failed

        if target in ("memory", "both"):
            purged, output = self._purge_memory()
            results["memory_purged"] = purged
            if output:
                results["memory_output"] = output

        return ToolResult.ok(results)

    def _purge_memory(self) -> tuple:
        # purge needs root; -n keeps sudo from prompting
        try:
            completed = subprocess.run(
                ["sudo", "-n", "purge"],
                capture_output=True,
                text=True,
                timeout=30,
            )
        except (OSError, subprocess.SubprocessError) as e:
            return False, str(e)
        output = ((completed.stdout or "") + (completed.stderr or "")).strip()
        return completed.returncode == 0, output

    def _clear_user_caches(self) -> tuple:
        caches = self._home / "Library" / "Caches"
        removed, failed = 0, 0
        if not caches.is_dir():
            return removed, failed
        for entry in caches.iterdir():
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
            except OSError:
                failed += 1
        return removed, failed

    def troubleshoot(self, args: Mapping[str, Any]) -> ToolResult:
        problem = args.get("problem") or "unspecified"
        return ToolResult.ok(
            {"requires_cloud": True, "problem": problem},
            escalate_to_cloud=True,
        )
