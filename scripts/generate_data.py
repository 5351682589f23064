"""
Data generation and loading script for the Mongo Perf Lab.

Implements deterministic pseudo-random order documents and batched
``insert_many`` loading into the configured orders collection.
"""

from __future__ import annotations

import random
import sys
import time
from datetime import UTC, datetime, timedelta
from typing import Any, Dict, Iterator, List

import typer
from bson import ObjectId
from pymongo import MongoClient

from perflab.config import get_settings

app = typer.Typer(help="Generate synthetic order documents and load them into MongoDB.")

STATUSES = ["PAID", "CANCELLED", "PENDING"]
PROGRESS_EVERY = 100_000


def _build_order(rng: random.Random, now: datetime) -> Dict[str, Any]:
    return {
        "userId": ObjectId(rng.randbytes(12)),
        "status": rng.choice(STATUSES),
        "total": rng.randrange(5000),
        "items": [
            {
                "productId": ObjectId(rng.randbytes(12)),
                "price": rng.randrange(1000),
                "qty": rng.randint(1, 5),
            }
        ],
        "createdAt": now - timedelta(hours=rng.randrange(1000)),
    }


def _generate_batches(rows: int, batch_size: int, seed: int) -> Iterator[List[Dict[str, Any]]]:
    rng = random.Random(seed)
    # BSON dates carry millisecond precision.
    now = datetime.now(UTC).replace(microsecond=0)
    buffer: List[Dict[str, Any]] = []
    for _ in range(rows):
        buffer.append(_build_order(rng, now))
        if len(buffer) >= batch_size:
            yield buffer
            buffer = []
    if buffer:
        yield buffer


def _load_orders(collection, rows: int, batch_size: int, seed: int) -> int:
    start = time.perf_counter()
    inserted = 0
    next_progress = PROGRESS_EVERY
    for batch in _generate_batches(rows, batch_size, seed):
        collection.insert_many(batch, ordered=False)
        inserted += len(batch)
        if inserted >= next_progress and inserted < rows:
            elapsed = time.perf_counter() - start
            rate = inserted / elapsed if elapsed > 0 else 0.0
            eta = (rows - inserted) / rate if rate > 0 else 0.0
            typer.echo(f"  Progress: {inserted:,}/{rows:,} ({rate:,.0f} docs/s, ~{eta:.0f}s left)")
            next_progress += PROGRESS_EVERY
    return inserted


@app.command()
def main(
    rows: int = typer.Option(
        1_000_000,
        "--rows",
        "-r",
        help="Number of order documents to generate.",
    ),
    batch_size: int = typer.Option(
        1_000,
        "--batch-size",
        "-b",
        help="Documents per insert_many call.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed.",
    ),
    uri: str | None = typer.Option(
        None,
        "--uri",
        help="Optional MongoDB URI override.",
    ),
    drop: bool = typer.Option(
        False,
        "--drop",
        help="Drop the collection before loading.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Only generate documents; skip loading into MongoDB.",
    ),
) -> None:
    """
    Generate synthetic orders and load them into MongoDB in batches.
    """
    settings = get_settings()
    start = time.perf_counter()

    if dry_run:
        generated = sum(len(batch) for batch in _generate_batches(rows, batch_size, seed))
        duration = time.perf_counter() - start
        typer.echo(f"Generated {generated:,} documents in {duration:.2f}s (dry run, nothing loaded).")
        return

    client = MongoClient(uri or settings.mongo_uri)
    try:
        collection = client[settings.mongo_db][settings.mongo_collection]
        if drop:
            typer.echo(f"Dropping {settings.mongo_db}.{settings.mongo_collection}...")
            collection.drop()

        typer.echo(
            f"Generating {rows:,} orders -> {settings.mongo_db}.{settings.mongo_collection} "
            f"(batch={batch_size}, seed={seed})"
        )
        inserted = _load_orders(collection, rows=rows, batch_size=batch_size, seed=seed)
        duration = time.perf_counter() - start
        typer.echo(
            f"Load completed in {duration:.2f}s ({inserted / duration:,.0f} docs/s). "
            f"Collection now holds {collection.count_documents({}):,} documents."
        )

        typer.echo("Status distribution:")
        for status in STATUSES:
            count = collection.count_documents({"status": status})
            share = count / inserted * 100 if inserted else 0.0
            typer.echo(f"  {status}: {count:,} ({share:.1f}%)")
    finally:
        client.close()


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
