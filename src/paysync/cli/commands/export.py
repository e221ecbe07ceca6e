"""Ledger export command for paysync CLI."""

import logging
from pathlib import Path

import typer

from paysync.config import get_database_path
from paysync.ledger import DuckDBLedger
from paysync.schemas import ProviderId

logger = logging.getLogger(__name__)


def export(
    provider: ProviderId = typer.Option(
        ..., "--provider", "-P", help="Provider whose records to export"
    ),
    account: str = typer.Option(..., "--account", "-a", help="Account to export"),
    output: Path = typer.Option(
        ..., "--output", "-o", help="Destination file (.parquet or .csv)"
    ),
    items: bool = typer.Option(
        False, "--items", help="Export one row per line item instead of per record"
    ),
) -> None:
    """Export an account's collected records to Parquet or CSV."""
    if output.suffix not in (".parquet", ".csv"):
        logger.error(f"❌ Unsupported output format: {output.suffix or output}")
        raise typer.Exit(1)

    database = get_database_path()
    if not database.exists():
        logger.error(f"❌ Database file not found: {database}")
        raise typer.Exit(1)

    try:
        df = DuckDBLedger(database).list_records(provider, account, with_items=items)
        output.parent.mkdir(parents=True, exist_ok=True)
        if output.suffix == ".parquet":
            df.write_parquet(output)
        else:
            df.write_csv(output)
    except Exception as e:
        logger.error(f"❌ Export failed: {e}")
        raise typer.Exit(1) from e

    logger.info(f"✅ Exported {len(df)} rows to {output}")
