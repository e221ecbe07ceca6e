"""Ledger status command for paysync CLI."""

import logging

import typer

from paysync.config import get_database_path
from paysync.ledger import DuckDBLedger
from paysync.schemas import ProviderId

logger = logging.getLogger(__name__)


def status(
    provider: ProviderId = typer.Option(
        ..., "--provider", "-P", help="Provider whose records to inspect"
    ),
    account: str = typer.Option(..., "--account", "-a", help="Account to inspect"),
) -> None:
    """Show how much history is stored for an account and how fresh it is."""
    database = get_database_path()
    if not database.exists():
        logger.error(f"❌ Database file not found: {database}")
        logger.info("💡 Run 'paysync sync' to collect history first")
        raise typer.Exit(1)

    try:
        stats = DuckDBLedger(database).stats(provider, account)
    except Exception as e:
        logger.error(f"❌ Could not read ledger: {e}")
        raise typer.Exit(1) from e

    logger.info(f"📒 {provider.value} / {account}")
    logger.info(f"  Records: {stats['record_count']}")
    if stats["record_count"] == 0:
        logger.info("  Nothing collected yet")
        return

    logger.info(
        f"  Latest: {stats['last_external_id']} (paid {stats['last_paid_at']})"
    )
    days = stats["days_since_collected"]
    logger.info(f"  Last collected: {stats['last_collected_at']} ({days} days ago)")
