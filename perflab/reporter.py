from __future__ import annotations

from typing import Any, Dict, List, Optional

from rich import box
from rich.console import Console
from rich.table import Table

_MB = 1024 * 1024


def _fmt_memory(value: Optional[int]) -> str:
    if value is None:
        return "N/A"
    return f"{value / _MB:+.2f}"


def _fmt_efficiency(value: Optional[float]) -> str:
    return "N/A" if value is None else f"{value:.2f}%"


def print_results(results: List[Dict[str, Any]], console: Optional[Console] = None) -> None:
    """
    Render benchmark results as a rich table.

    Handles both single-run results and aggregated multi-run results. Memory is
    the signed before/after delta; a leading minus means memory was reclaimed
    during the read.
    """
    console = console or Console()

    if not results:
        console.print("[yellow]No results to display.[/yellow]")
        return

    is_aggregated = (
        "runs" in results[0] and isinstance(results[0]["runs"], int) and results[0]["runs"] > 1
    )

    table = Table(
        title="Mongo Read Strategy Results",
        box=box.ROUNDED,
        caption="Sorted by Throughput (descending)",
    )

    table.add_column("Strategy", style="cyan", no_wrap=True)
    table.add_column("Records", justify="right", style="magenta")
    if is_aggregated:
        table.add_column("Runs", justify="right", style="blue")
        table.add_column(
            "Duration (s)\n[dim](Median ± StdDev)[/dim]", justify="right", style="green"
        )
        table.add_column("Records/s\n[dim](Median)[/dim]", justify="right", style="bold green")
        table.add_column("Memory Δ (MB)\n[dim](Median)[/dim]", justify="right", style="yellow")
    else:
        table.add_column("Duration (s)", justify="right", style="green")
        table.add_column("Records/s", justify="right", style="bold green")
        table.add_column("Memory Δ (MB)", justify="right", style="yellow")
    table.add_column("Scan", justify="center")
    table.add_column("Efficiency", justify="right")
    table.add_column("Warnings", justify="right", style="red")

    def get_sort_key(r: Dict[str, Any]) -> float:
        throughput = r.get("throughput_records_per_sec")
        if isinstance(throughput, dict):
            return throughput["median"]
        return throughput or 0.0

    for res in sorted(results, key=get_sort_key, reverse=True):
        strategy = res.get("strategy", "Unknown")
        if res.get("error"):
            strategy = f"{strategy} [red](failed)[/red]"
        records = f"{res.get('records_read', 0):,}"
        scan = res.get("scan") or "N/A"
        efficiency = _fmt_efficiency(res.get("efficiency_pct"))

        if is_aggregated:
            runs = str(res.get("runs", 0))
            if "duration_seconds" not in res:
                table.add_row(strategy, records, runs, "N/A", "N/A", "N/A", scan, efficiency, "-")
                continue
            duration_str = (
                f"{res['duration_seconds']['median']:.3f} ± "
                f"{res['duration_seconds']['stddev']:.3f}"
            )
            throughput_str = f"{res['throughput_records_per_sec']['median']:,.2f}"
            mem_str = _fmt_memory(res["memory_used_bytes"]["median"])
            first_ok = next((run for run in res["individual_runs"] if not run.get("error")), {})
            warnings = len(first_ok.get("warnings") or [])
            table.add_row(
                strategy, records, runs, duration_str, throughput_str, mem_str,
                scan, efficiency, str(warnings),
            )
        else:
            duration_str = f"{res.get('duration_seconds', 0.0):.3f}"
            throughput_str = f"{res.get('throughput_records_per_sec', 0.0):,.2f}"
            mem_str = _fmt_memory(res.get("memory_used_bytes"))
            warnings = len(res.get("warnings") or [])
            table.add_row(
                strategy, records, duration_str, throughput_str, mem_str,
                scan, efficiency, str(warnings),
            )

    console.print(table)

    for res in results:
        notes = res.get("notes")
        if notes:
            console.print(f"[dim]{res.get('strategy')}: {notes}[/dim]")
