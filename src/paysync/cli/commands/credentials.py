"""Session capture commands for paysync CLI.

Provider sessions are not created by paysync. Log in with a browser, open
the developer tools network tab, use "Copy as cURL" on any request to the
provider, and save the command here.
"""

import logging
import sys
from pathlib import Path

import typer

from paysync.config import get_settings
from paysync.connectors import CurlFileHeaderSupplier, parse_curl_command

app = typer.Typer(help="Manage saved provider sessions")
logger = logging.getLogger(__name__)

_SENSITIVE_HEADERS = {"cookie", "authorization", "x-xsrf-token"}


def _mask(value: str) -> str:
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}…{value[-4:]} ({len(value)} chars)"


@app.command("set")
def set_credentials(
    account: str = typer.Argument(..., help="Account id to save the session for"),
    curl_file: Path | None = typer.Option(
        None,
        "--curl-file",
        "-f",
        help="File holding a 'Copy as cURL' command (default: read stdin)",
    ),
) -> None:
    """Save a browser session capture for an account."""
    try:
        if curl_file is not None:
            curl = curl_file.read_text(encoding="utf-8")
        else:
            curl = sys.stdin.read()
        path = CurlFileHeaderSupplier(get_settings().credentials.directory).save(
            account, curl
        )
    except Exception as e:
        logger.error(f"❌ Could not save session: {e}")
        raise typer.Exit(1) from e

    logger.info(f"✅ Session for '{account}' saved to {path}")


@app.command("show")
def show_credentials(
    account: str = typer.Argument(..., help="Account id to inspect"),
) -> None:
    """Show the saved headers for an account with secrets masked."""
    supplier = CurlFileHeaderSupplier(get_settings().credentials.directory)
    try:
        path = supplier.path_for(account)
        if not path.exists():
            raise FileNotFoundError(f"No session capture for '{account}' at {path}")
        command = parse_curl_command(path.read_text(encoding="utf-8"))
    except Exception as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(1) from e

    logger.info(f"🔐 Session for '{account}' ({path})")
    logger.info(f"  Captured from: {command.method} {command.url}")
    for name, value in command.headers.items():
        shown = _mask(value) if name.lower() in _SENSITIVE_HEADERS else value
        logger.info(f"  {name}: {shown}")
