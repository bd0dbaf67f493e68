#!/usr/bin/env python3
"""
Sentinel Service Bus Server
---------------------------
Runs the FastAPI service bus with an orchestrator.

Usage:
    python -m infra.server --port 8000
"""

from typing import Optional
import argparse
import logging

import uvicorn
from rich.console import Console

from infra.config import ConfigManager
from infra.logging import configure_logging
from infra.service_bus import ServiceBus

console = Console()


def run_server(orchestrator, host: str = "127.0.0.1", port: int = 8000, log_level: str = "info") -> None:
    """Serve the bus for an already-built orchestrator until interrupted."""
    app = ServiceBus(orchestrator).create_app()

    console.print("\n[bold green]Sentinel Service Bus[/bold green]")
    console.print(f"Running on http://{host}:{port}")
    console.print(f"API docs: http://{host}:{port}/docs")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    try:
        uvicorn.run(app, host=host, port=port, log_level=log_level.lower())
    finally:
        orchestrator.shutdown()


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(description="Sentinel Service Bus Server")
    parser.add_argument("--config", "-c", default="config.yaml", help="Path to configuration file")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    args = parser.parse_args(argv)

    config = ConfigManager(args.config)
    configure_logging(
        level=getattr(logging, args.log_level),
        log_dir=config.get("logging.dir", "logs"),
        file=bool(config.get("logging.file", True)),
        rich_console=console,
    )

    from core.bootstrap import build_orchestrator

    console.print("[dim]Creating orchestrator...[/dim]")
    orchestrator = build_orchestrator(config)

    run_server(
        orchestrator,
        host=args.host or config.get("server.host", "127.0.0.1"),
        port=args.port or int(config.get("server.port", 8000)),
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
