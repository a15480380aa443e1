"""
Batch import of provider JSON dumps into the provider tables.

Usage:
    trips-import data/12go.json --provider 12go
    trips-import data/bookaway.json --provider bookaway --batch-size 200

Invalid records (see `records.TripRecord`) are skipped and counted. Each batch
is inserted in its own transaction.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import ValidationError

from core import config, db
from trips.providers import TRIP_FIELDS, Provider, get_provider
from trips.query_builder import quote_ident

from .records import TripRecord

logger = logging.getLogger(__name__)

INSERT_FIELDS = tuple(name for name in TRIP_FIELDS if name != "id")


@dataclass(frozen=True)
class ImportStats:
    provider: str
    found: int
    valid: int
    skipped: int
    imported: int


def load_records(path: Path) -> list[dict[str, Any]]:
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON array of trip records.")
    return [item for item in data if isinstance(item, dict)]


def validate_records(raw: Iterable[dict[str, Any]]) -> tuple[list[TripRecord], int]:
    """
    Returns (valid records, skipped count).
    """
    valid: list[TripRecord] = []
    skipped = 0
    for item in raw:
        try:
            valid.append(TripRecord.model_validate(item))
        except ValidationError as exc:
            skipped += 1
            logger.debug("record_skipped route_url=%s errors=%s", item.get("route_url"), exc.error_count())
    return valid, skipped


def insert_sql(provider: Provider) -> str:
    columns = ", ".join(quote_ident(provider.column(name)) for name in INSERT_FIELDS)
    slots = ", ".join(f"${i}" for i in range(1, len(INSERT_FIELDS) + 1))
    return f"INSERT INTO {quote_ident(provider.table)} ({columns}) VALUES ({slots})"


def record_values(record: TripRecord, *, thb_to_inr: float) -> tuple[Any, ...]:
    values = record.model_dump()
    values["price_inr"] = record.inr_price(thb_to_inr)
    return tuple(values[name] for name in INSERT_FIELDS)


def batches(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def import_trips(
    path: Path,
    provider_name: str,
    *,
    batch_size: int | None = None,
    thb_to_inr: float | None = None,
) -> ImportStats:
    provider = get_provider(provider_name)
    size = batch_size if batch_size and batch_size > 0 else config.import_batch_size()
    rate = thb_to_inr if thb_to_inr is not None else config.thb_to_inr()

    raw = load_records(path)
    records, skipped = validate_records(raw)
    logger.info(
        "import_loaded provider=%s found=%s valid=%s skipped=%s",
        provider.name,
        len(raw),
        len(records),
        skipped,
    )

    sql = insert_sql(provider)
    imported = 0
    await db.init_pool()
    try:
        for batch in batches(records, size):
            rows = [record_values(r, thb_to_inr=rate) for r in batch]
            await db.execute_many(sql, rows)
            imported += len(rows)
            logger.info("import_progress provider=%s imported=%s total=%s", provider.name, imported, len(records))
    finally:
        await db.close_pool()

    return ImportStats(
        provider=provider.name,
        found=len(raw),
        valid=len(records),
        skipped=skipped,
        imported=imported,
    )


cli = typer.Typer(add_completion=False, help="Import provider trip dumps into the database.")


@cli.command()
def main(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="JSON dump file."),
    provider: str = typer.Option(..., "--provider", "-p", help="Provider name: 12go or bookaway."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1, help="Rows per insert batch."),
) -> None:
    logging.basicConfig(level=config.log_level(), format="%(asctime)s %(levelname)s %(name)s %(message)s")
    try:
        stats = asyncio.run(import_trips(path, provider, batch_size=batch_size))
    except (ValueError, RuntimeError) as exc:
        typer.echo(f"Import failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    except Exception:
        logger.exception("import_failed provider=%s path=%s", provider, path)
        raise typer.Exit(code=1)

    typer.echo(
        f"Imported {stats.imported} of {stats.found} records for {stats.provider} "
        f"({stats.skipped} skipped)."
    )


if __name__ == "__main__":
    cli()
