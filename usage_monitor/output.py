"""Output formatting — JSON serialization + Rich table rendering."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from usage_monitor.models import Report, UsageSuccess
from usage_monitor.security import check_output_permissions


def _fmt_number(value: float) -> str:
    return f"{value:,.0f}" if float(value).is_integer() else f"{value:,.2f}"


def render_table(report: Report, console: Optional[Console] = None) -> None:
    """Print the report as a Rich table followed by the totals line."""
    console = console or Console()
    table = Table(title=f"API Usage — {report.generated_at}", show_lines=True)
    table.add_column("ID", style="cyan")
    table.add_column("Key")
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Allowance", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Used %", justify="right")

    for entry in report.entries:
        if isinstance(entry, UsageSuccess):
            color = "green" if entry.remaining else "yellow"
            table.add_row(
                entry.id, entry.masked_key, entry.start_date, entry.end_date,
                _fmt_number(entry.allowance), _fmt_number(entry.used),
                f"[{color}]{_fmt_number(entry.remaining)}[/{color}]",
                f"{entry.used_ratio * 100:.2f}%",
            )
        else:
            table.add_row(entry.id, entry.masked_key, f"[red]{entry.error}[/red]", "", "", "", "", "")

    console.print(table)
    t = report.totals
    console.print(
        f"  [bold]Totals:[/bold] {report.key_count} keys — "
        f"allowance {_fmt_number(t.total_allowance)}, used {_fmt_number(t.total_used)}, "
        f"[green]remaining {_fmt_number(t.total_remaining)}[/green]"
    )


def write_json(
    report: Report,
    path: Path,
    force_insecure: bool = False,
    console: Optional[Console] = None,
) -> bool:
    """Write the report JSON. Returns True on success."""
    console = console or Console(stderr=True)
    if not check_output_permissions(path, force=force_insecure):
        console.print(
            f"[red]Refusing to write to {path}: symlink or world-readable. "
            f"Use --force-insecure-output to override.[/red]"
        )
        return False
    path.write_text(json.dumps(report.to_dict(), indent=2, ensure_ascii=False) + "\n")
    console.print(f"[green]Report written to {path}[/green]")
    return True
