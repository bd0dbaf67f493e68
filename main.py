#!/usr/bin/env python3
"""
Sentinel - Hybrid On-Device / Cloud Tool Router
===============================================

Main entry point for the Sentinel assistant.

Usage:
    python main.py                          # Interactive text mode
    python main.py --query "kill Safari"    # Route one request and exit
    python main.py --module auto_mechanic   # Restrict routing to one module
    python main.py --serve                  # Run the internal service bus
    python main.py --help                   # Show help
"""

from typing import Optional
import argparse
import asyncio
import json
import logging
import sys

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.bootstrap import build_orchestrator
from core.orchestrator import Decision, DecisionSource, HybridOrchestrator
from infra.config import ConfigManager
from infra.logging import configure_logging, get_logger
from tools.registry import ToolResult


# Setup rich console
console = Console()

HELP_TEXT = """
[bold]Examples:[/bold]
  - why is my mac slow
  - kill Safari
  - clear memory caches
  - check my tire pressure

[bold]System commands:[/bold]
  - help                 (show this)
  - status               (show system status)
  - tools                (list tools in the current scope)
  - modules              (list registered modules)
  - module <name|all>    (restrict routing to one module)
  - run <tool> [json]    (execute a tool directly)
  - quit                 (exit)
"""


def print_banner(orchestrator: HybridOrchestrator) -> None:
    """Print the Sentinel banner."""
    status = orchestrator.get_status()
    banner = Text()
    banner.append("Sentinel", style="bold cyan")
    banner.append(" - Hybrid Tool Router\n", style="dim")
    banner.append(
        f"On-device: {'FunctionGemma' if status['on_device'] else 'keyword only'} | "
        f"Cloud: {'Gemini' if status['cloud_configured'] else 'not configured'}\n",
        style="green" if status["on_device"] else "yellow",
    )
    banner.append("Type ", style="dim")
    banner.append("help", style="bold green")
    banner.append(" for commands, ", style="dim")
    banner.append("quit", style="bold red")
    banner.append(" to exit", style="dim")

    console.print(Panel(banner, title="Welcome", border_style="blue"))


def print_status(orchestrator: HybridOrchestrator) -> None:
    """Print current system status."""
    status = orchestrator.get_status()
    sources = ", ".join(f"{k}: {v}" for k, v in status["sources"].items())
    errors = ", ".join(f"{k}: {v}" for k, v in status["errors"].items()) or "none"
    console.print(
        f"[dim]Modules: {', '.join(status['modules'])} | Tools: {status['tool_count']} | "
        f"On-device: {'✓' if status['on_device'] else '○'} | "
        f"Cloud: {'✓' if status['cloud_configured'] else '○'}[/dim]"
    )
    console.print(f"[dim]Requests: {status['requests']} ({sources}) | Errors: {errors}[/dim]")


def print_tools(orchestrator: HybridOrchestrator, module: Optional[str]) -> None:
    table = Table(title=f"Tools ({module or 'all modules'})")
    table.add_column("Tool", style="cyan")
    table.add_column("Description")
    table.add_column("Required", style="dim")
    for tool in orchestrator.list_tools(module):
        table.add_row(tool.name, tool.description, ", ".join(tool.required))
    console.print(table)


def print_modules(orchestrator: HybridOrchestrator) -> None:
    table = Table(title="Modules")
    table.add_column("Module", style="cyan")
    table.add_column("Description")
    table.add_column("Tools", justify="right")
    for info in orchestrator.list_modules():
        table.add_row(info.name, info.description, str(info.tool_count))
    console.print(table)


def print_result(result: ToolResult) -> None:
    """Render a tool result."""
    if result.success:
        body = json.dumps(result.data, indent=2, default=str) if result.data is not None else "ok"
        console.print(Panel(body, title="[bold green]Result[/bold green]", border_style="green"))
    else:
        console.print(f"[bold red]Error:[/bold red] {result.error}")


def print_decision(decision: Decision) -> None:
    """Render a routing decision."""
    style = "green" if decision.source == DecisionSource.ON_DEVICE else "magenta"
    console.print(
        f"[bold {style}]{decision.source.value}[/bold {style}] → "
        f"[bold]{decision.tool_name}[/bold] "
        f"[dim](confidence {decision.confidence:.0%}, {decision.latency_ms:.0f}ms)[/dim]"
    )
    if decision.arguments:
        console.print(f"[dim]Arguments: {decision.arguments}[/dim]")

    if decision.executed:
        print_result(decision.tool_result)
    elif decision.no_api_key:
        console.print(
            "[yellow]Could not resolve this locally and GEMINI_API_KEY is not set. "
            "Best local guess shown above, not executed.[/yellow]"
        )
    else:
        console.print("[yellow]No route found. Best local guess shown above, not executed.[/yellow]")


def run_tool_command(orchestrator: HybridOrchestrator, rest: str) -> None:
    """Handle 'run <tool> [json]'."""
    name, _, raw_args = rest.strip().partition(" ")
    if not name:
        console.print("[yellow]Usage: run <tool> [json arguments][/yellow]")
        return
    try:
        args = json.loads(raw_args) if raw_args.strip() else {}
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON arguments: {e}[/red]")
        return
    if not isinstance(args, dict):
        console.print("[red]Arguments must be a JSON object[/red]")
        return
    print_result(orchestrator.execute_tool(name, args))


def run_text_mode(orchestrator: HybridOrchestrator, module: Optional[str] = None) -> None:
    """Run in interactive text mode."""
    print_banner(orchestrator)
    print_status(orchestrator)

    while True:
        try:
            text = console.input(f"\n[bold cyan]{module or 'all'} >[/bold cyan] ").strip()

            if not text:
                continue

            command, _, rest = text.partition(" ")
            command = command.lower()

            if text.lower() in ("quit", "exit", "q"):
                break

            if text.lower() == "help":
                console.print(HELP_TEXT)
                continue

            if text.lower() == "status":
                print_status(orchestrator)
                continue

            if text.lower() == "tools":
                print_tools(orchestrator, module)
                continue

            if text.lower() == "modules":
                print_modules(orchestrator)
                continue

            if command == "module" and rest.strip():
                target = rest.strip()
                if target == "all":
                    module = None
                elif target in orchestrator.registry.module_names():
                    module = target
                else:
                    console.print(f"[red]Unknown module: {target}[/red]")
                    continue
                console.print(f"[green]Scope: {module or 'all modules'}[/green]")
                continue

            if command == "run":
                run_tool_command(orchestrator, rest)
                continue

            # Route the request
            with console.status("[dim]Routing...[/dim]"):
                decision = asyncio.run(orchestrator.route(text, module))
            print_decision(decision)

        except KeyboardInterrupt:
            break
        except EOFError:
            break

    console.print("\n[yellow]Shutting down...[/yellow]")
    orchestrator.shutdown()


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Sentinel - Hybrid On-Device / Cloud Tool Router"
    )
    parser.add_argument(
        "--query", "-q",
        help="Route a single request and exit"
    )
    parser.add_argument(
        "--module", "-m",
        default=None,
        help="Restrict routing to one tool module"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the decision as JSON (with --query)"
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the internal service bus"
    )
    parser.add_argument(
        "--config", "-c",
        default="config.yaml",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--log-level", "-l",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level"
    )

    args = parser.parse_args(argv)

    config = ConfigManager(args.config)
    level = args.log_level or str(config.get("logging.level", "INFO")).upper()
    configure_logging(
        level=getattr(logging, level, logging.INFO),
        log_dir=config.get("logging.dir", "logs"),
        file=bool(config.get("logging.file", True)),
        rich_console=console,
    )
    logger = get_logger("main")

    try:
        console.print("[dim]Initializing Sentinel...[/dim]")
        orchestrator = build_orchestrator(config)

        if args.module and args.module not in orchestrator.registry.module_names():
            console.print(f"[bold red]Unknown module:[/bold red] {args.module}")
            return 2

        if args.serve:
            from infra.server import run_server
            run_server(
                orchestrator,
                host=config.get("server.host", "127.0.0.1"),
                port=int(config.get("server.port", 8000)),
                log_level=level,
            )
            return 0

        if args.query:
            decision = asyncio.run(orchestrator.route(args.query, args.module))
            if args.json:
                console.print_json(json.dumps(decision.to_dict(), default=str))
            else:
                print_decision(decision)
            orchestrator.shutdown()
            return 0

        run_text_mode(orchestrator, args.module)
        return 0

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except Exception as e:
        logger.exception("Fatal error")
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
