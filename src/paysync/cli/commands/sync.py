"""Collection commands for paysync CLI.

Each command runs one provider collection for one account in the
foreground. Ctrl+C requests a cooperative stop: the in-flight request
finishes, nothing further is fetched, and already saved records are kept.
"""

import logging

import typer

from paysync.config import get_current_profile, get_settings
from paysync.connectors import CurlFileHeaderSupplier, RequestsGateway
from paysync.ledger import DuckDBLedger
from paysync.providers import create_provider
from paysync.schemas import ProviderId, SyncMode
from paysync.sync import SyncController, SyncResult, SyncState

app = typer.Typer(help="Collect purchase history from providers")
logger = logging.getLogger(__name__)

_OUTCOMES = {
    SyncState.STOPPED_AT_CHECKPOINT: "✅ Up to date (reached last collected record)",
    SyncState.STOPPED_NO_MORE_DATA: "✅ Reached the end of the history",
    SyncState.STOPPED_BY_CANCELLATION: "⏹️  Stopped on request",
    SyncState.STOPPED_BY_ERROR: "❌ Sync failed",
}


def _wait(controller: SyncController) -> SyncResult:
    result = None
    while result is None:
        try:
            result = controller.join(timeout=0.5)
        except KeyboardInterrupt:
            logger.warning("⏹️  Stop requested, finishing the current request...")
            controller.request_stop()
            continue
        if result is None and not controller.is_collecting:
            raise RuntimeError("sync thread ended without a result")
    return result


def run_sync(provider_id: ProviderId, account: str, full: bool, yes: bool) -> None:
    """Collect one provider's history for one account.

    Args:
        provider_id: Provider to collect from
        account: Local account id (selects the saved session capture)
        full: Clear the account's records and collect everything again
        yes: Skip the confirmation prompt for a full resync
    """
    mode = SyncMode.FULL if full else SyncMode.INCREMENTAL
    if full and not yes:
        typer.confirm(
            f"Full resync deletes the stored {provider_id.value} records for "
            f"'{account}' once the first record is fetched. Continue?",
            abort=True,
        )

    profile = get_current_profile()
    logger.info(
        f"🔄 Starting {mode.value} {provider_id.value} sync for '{account}' "
        f"(Profile: {profile})"
    )

    try:
        settings = get_settings()
        headers = CurlFileHeaderSupplier(settings.credentials.directory).get_headers(
            account
        )
        ledger = DuckDBLedger(settings.database.path)
    except Exception as e:
        logger.error(f"❌ Could not prepare sync: {e}")
        raise typer.Exit(1) from e

    gateway = RequestsGateway(timeout=settings.sync.request_timeout)
    controller = SyncController(
        account,
        lambda: create_provider(provider_id, gateway, headers, settings.sync),
        ledger,
        settings.sync,
    )
    try:
        controller.start(mode)
        result = _wait(controller)
    except Exception as e:
        logger.error(f"❌ Sync failed: {e}")
        raise typer.Exit(1) from e
    finally:
        gateway.close()

    counters = result.counters
    logger.info(_OUTCOMES[result.state])
    logger.info(
        f"📊 {counters.success} saved, {counters.failed} failed, "
        f"{counters.current}/{counters.total} processed"
    )
    if result.error:
        logger.error(f"❌ {result.error}")
    if not result.ok:
        raise typer.Exit(1)


@app.command("naver")
def sync_naver(
    account: str = typer.Option(
        ..., "--account", "-a", help="Account whose saved session to use"
    ),
    full: bool = typer.Option(
        False, "--full", help="Clear stored records and collect all history"
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Do not ask before a full resync"
    ),
) -> None:
    """Collect Naver Pay payment history.

    By default only payments newer than the last collected one are fetched.
    """
    run_sync(ProviderId.NAVER, account, full, yes)


@app.command("coupang")
def sync_coupang(
    account: str = typer.Option(
        ..., "--account", "-a", help="Account whose saved session to use"
    ),
    full: bool = typer.Option(
        False, "--full", help="Clear stored records and collect all history"
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Do not ask before a full resync"
    ),
) -> None:
    """Collect Coupang order history, newest year first.

    By default only orders newer than the last collected one are fetched.
    """
    run_sync(ProviderId.COUPANG, account, full, yes)
