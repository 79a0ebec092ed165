"""CLI entry point — python -m usage_monitor.

Usage:
    python -m usage_monitor                      # build report, print table
    python -m usage_monitor --json
    python -m usage_monitor --add fk-XXXX --add fk-YYYY
    python -m usage_monitor --delete key-1700000000000-abc1234
    python -m usage_monitor --refresh key-1700000000000-abc1234
    python -m usage_monitor --serve --port 8460
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from usage_monitor.errors import UsageMonitorError


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="usage_monitor",
        description="Aggregate API usage across many keys into a single report.",
    )
    p.add_argument("--env", type=Path, help="Path to .env file with USAGE_MONITOR_* settings")
    p.add_argument("--store", type=Path, help="Key store JSON file (overrides USAGE_MONITOR_STORE)")
    p.add_argument("--json", action="store_true", help="Print report JSON to stdout")
    p.add_argument("--output", type=Path, help="Write report JSON to file")
    p.add_argument("--quiet", "-q", action="store_true", help="Suppress table output, only exit code")
    p.add_argument("--list-keys", action="store_true", help="List stored key ids (masked) and exit")
    p.add_argument("--add", action="append", metavar="KEY", help="Add a key (repeatable)")
    p.add_argument("--delete", action="append", metavar="ID", help="Delete a key by id (repeatable)")
    p.add_argument("--refresh", metavar="ID", help="Fetch a single key, bypassing the cache")
    p.add_argument("--serve", action="store_true", help="Run the JSON HTTP API")
    p.add_argument("--port", type=int, help="HTTP port for --serve (default: 8460)")
    p.add_argument("--force-insecure-output", action="store_true", help="Skip file permission check")
    p.add_argument("--version", action="store_true", help="Show version and exit")
    return p


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    console = Console(quiet=args.quiet)
    err_console = Console(stderr=True)

    if args.version:
        from usage_monitor import __version__
        console.print(f"usage_monitor {__version__}")
        return 0

    from usage_monitor.config import Settings
    from usage_monitor.orchestrator import UsageMonitor
    from usage_monitor.store import JsonKeyStore

    try:
        settings = Settings.load(args.env)
        store = JsonKeyStore(args.store or settings.store_path)
        monitor = UsageMonitor(store, settings)

        if args.list_keys:
            keys = monitor.list_keys()
            t = Table(title=f"Stored Keys ({len(keys)})", show_lines=True)
            t.add_column("ID", style="cyan")
            t.add_column("Key")
            for k in keys:
                t.add_row(k["id"], k["key"])
            console.print(t)
            return 0

        if args.serve:
            from usage_monitor.server import run
            return run(monitor, port=args.port or settings.port, console=console)

        if args.add:
            added, skipped = asyncio.run(monitor.import_keys({"key": k} for k in args.add))
            console.print(f"[green]{added} added[/green], {skipped} skipped (already stored)")

        if args.delete:
            deleted = asyncio.run(monitor.delete_keys(args.delete))
            console.print(f"[green]{deleted} deleted[/green]")

        if args.refresh:
            result = asyncio.run(monitor.refresh_one(args.refresh))
            if args.json:
                print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
            else:
                console.print(result.to_dict())
            return 1 if result.kind == "failure" else 0

        report = asyncio.run(monitor.get_report())
    except UsageMonitorError as exc:
        err_console.print(f"[red]Error: {exc}[/red]")
        return 2

    from usage_monitor.output import render_table, write_json

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    elif not args.quiet:
        if report.key_count:
            render_table(report, console)
        else:
            console.print("[yellow]No keys stored. Add one with --add KEY.[/yellow]")

    if args.output:
        if not write_json(report, args.output, force_insecure=args.force_insecure_output, console=err_console):
            return 2

    return 1 if report.failures else 0


if __name__ == "__main__":
    sys.exit(main())
