"""Entry point for the switchboard health service."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from switchboard.config import settings
from switchboard.health.models import HealthReport, Status

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

_STATUS_STYLE = {
    Status.HEALTHY: "green",
    Status.WARNING: "yellow",
    Status.UNHEALTHY: "red",
    Status.CRITICAL: "bold red",
    Status.TIMEOUT: "magenta",
}


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(Panel("Starting Switchboard Health API", style="bold green"))
    uvicorn.run(
        "switchboard.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


def render_report(report: HealthReport) -> None:
    """Print a report as a rich table."""
    table = Table(title=f"System health — {settings.app_environment} v{report.version}")
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Error")
    for name, result in report.services.items():
        style = _STATUS_STYLE[result.status]
        table.add_row(name, f"[{style}]{result.status.value}[/{style}]", str(result.response_time_ms), result.error)
    console.print(table)

    m = report.system_metrics
    console.print(
        f"CPU {m.cpu.usage_percent:.1f}% ({m.cpu.core_count} cores) | "
        f"Memory {m.memory.usage_percent:.1f}% | Disk {m.disk.usage_percent:.1f}% | "
        f"Live clients {m.network.active_realtime_clients}"
    )
    counts = ", ".join(f"{k}={v}" for k, v in report.database_health.record_counts.items())
    console.print(f"Database {report.database_health.status.value}: {counts} ({report.database_health.storage_size or 'size n/a'})")
    console.print(f"Uptime: {report.uptime}")

    style = _STATUS_STYLE[report.status]
    console.print(Panel(f"[{style}]{report.status.value.upper()}[/{style}] in {report.elapsed_ms}ms", title="Overall"))


def run_check(fast: bool) -> int:
    """Run one health check in-process against the configured collaborators."""
    from switchboard.api.server import build_aggregator
    from switchboard.db.sqlite import SQLiteDatabase
    from switchboard.gateway.ami import AMIClient, AMIError
    from switchboard.realtime.hub import ClientHub

    db: SQLiteDatabase | None
    try:
        db = SQLiteDatabase(Path(settings.db_path))
    except Exception:
        logging.getLogger(__name__).exception("Record store unavailable")
        db = None

    gateway: AMIClient | None = None
    if settings.ami_username:
        gateway = AMIClient(
            settings.ami_host, settings.ami_port,
            settings.ami_username, settings.ami_secret,
            timeout=settings.ami_timeout,
        )
        try:
            gateway.connect()
        except AMIError as e:
            console.print(f"[yellow]Gateway connect failed: {e}[/yellow]")

    # No live hub outside the server process: report zero clients
    aggregator = build_aggregator(db, ClientHub(), gateway)
    try:
        with console.status("[bold green]Checking subsystems..."):
            report = aggregator.check_fast() if fast else asyncio.run(aggregator.check_full())
    finally:
        aggregator.close()
        if gateway is not None:
            gateway.close()
        if db is not None:
            db.close()

    render_report(report)
    return 0 if report.status in (Status.HEALTHY, Status.WARNING) else 2


def main() -> None:
    parser = argparse.ArgumentParser(description="Switchboard system health")
    sub = parser.add_subparsers(dest="command")

    # Server mode
    sub.add_parser("serve", help="Start the API server")

    # One-shot check
    check_parser = sub.add_parser("check", help="Run a health check and print the report")
    check_parser.add_argument("--fast", action="store_true", help="Sequential fast check")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "check":
        sys.exit(run_check(args.fast))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
