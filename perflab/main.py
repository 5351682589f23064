from __future__ import annotations

import json
import sys
from typing import Optional

import typer
from pymongo.errors import OperationFailure

from perflab.config import get_settings
from perflab.executor import available_strategies, create_strategy, resolve_kind
from perflab.infrastructure.store import StoreConnectionError, StoreContext
from perflab.orchestrator import RunConfig, run_strategies
from perflab.reporter import print_results
from perflab.utils.logging import configure_logging, results_log_path

app = typer.Typer(help="Mongo read-strategy performance lab CLI.")


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"MONGO={settings.mongo_uri}/{settings.mongo_db}.{settings.mongo_collection} | "
        f"batch={settings.benchmark_batch_size} status={settings.benchmark_filter_status} "
        f"workers={settings.parallel_workers} chunk={settings.parallel_chunk_size} "
        f"policy={settings.parallel_chunk_policy}"
    )


@app.command()
def run(
    strategy: str = typer.Option(
        "all",
        "--strategy",
        "--strategies",
        "-s",
        help=(
            "Strategy to run (full_materialize, cursor_stream, projected_stream, "
            "indexed_aggregation, parallel_aggregation, all, list)."
        ),
    ),
    runs: int = typer.Option(1, "--runs", "-n", min=1, help="Measurement runs per strategy."),
    warmup: bool = typer.Option(False, "--warmup", help="Run each strategy once before measuring."),
    filter_status: Optional[str] = typer.Option(
        None, "--filter-status", help="Filter every strategy on this status value."
    ),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", min=1),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", min=1),
    chunk_size: Optional[int] = typer.Option(None, "--chunk-size", min=1),
    chunk_policy: Optional[str] = typer.Option(
        None, "--chunk-policy", help="Parallel partitioning: fixed or cover."
    ),
    persist: bool = typer.Option(True, "--persist/--no-persist", help="Write results/*.json."),
    as_json: bool = typer.Option(False, "--json", help="Print raw JSON instead of a table."),
) -> None:
    """
    Run one or all strategies via orchestrator and persist results.
    """
    if strategy == "list":
        typer.echo("Available strategies: " + ", ".join(available_strategies()))
        return
    if chunk_policy not in (None, "fixed", "cover"):
        raise typer.BadParameter("chunk policy must be 'fixed' or 'cover'")
    if strategy != "all":
        try:
            resolve_kind(strategy)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--strategy") from exc

    settings = get_settings()
    label = "benchmark" if strategy == "all" else strategy
    configure_logging(
        level=settings.log_level,
        json_logs=settings.log_json,
        log_file=results_log_path(settings.log_dir, label),
    )

    config = RunConfig(
        strategy_names=["all"] if strategy == "all" else [strategy],
        filter={"status": filter_status} if filter_status else None,
        batch_size=batch_size,
        num_workers=workers,
        chunk_size=chunk_size,
        chunk_policy=chunk_policy,  # type: ignore[arg-type]
        persist=persist,
        warmup=warmup,
        runs=runs,
    )
    try:
        with StoreContext(settings) as store:
            results = run_strategies(store, config)
    except StoreConnectionError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    if as_json:
        typer.echo(json.dumps(results, indent=2, default=str))
    else:
        print_results(results)


@app.command()
def explain(
    strategy: str = typer.Option("cursor_stream", "--strategy", "-s"),
    filter_status: Optional[str] = typer.Option(None, "--filter-status"),
) -> None:
    """
    Run only the explain + plan analysis step for a strategy.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    impl = create_strategy(resolve_kind(strategy), settings=settings)
    query = impl.resolve_query(None)
    if filter_status:
        query = query.model_copy(update={"filter": {"status": filter_status}})
    try:
        with StoreContext(settings) as store:
            report = impl.explain(store, query)
    except StoreConnectionError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    if report is None:
        typer.echo("Explain failed; see warnings above.", err=True)
        raise typer.Exit(code=1)
    typer.echo(report.model_dump_json(indent=2))


@app.command("create-index")
def create_index(
    field: str = typer.Option("status", "--field", "-f", help="Field to index (ascending)."),
) -> None:
    """
    Create the single-field index used by the aggregation strategies.
    """
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    index_name = f"{field}_1"
    try:
        with StoreContext(settings) as store:
            typer.echo(f"Creating index {index_name}...")
            try:
                created = store.create_index([(field, 1)], name=index_name, background=True)
                typer.echo(f"Index ready: {created}")
            except OperationFailure as exc:
                typer.echo(f"Index {index_name} already exists with other options: {exc}")
            typer.echo("Existing indexes:")
            for name in store.index_names():
                typer.echo(f"  - {name}")
    except StoreConnectionError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    typer.echo("Note: unfiltered full reads still use COLLSCAN; the index helps filtered queries.")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
