"""Main CLI application for paysync.

This module provides the unified entry point for collecting purchase history,
inspecting the local ledger and managing saved provider sessions.
"""

import logging
from typing import Annotated

import typer

from ..config import set_current_profile
from ..logging import setup_logging
from .commands import credentials, export, status, sync

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="paysync",
    help="paysync: Local-first purchase history collector",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    profile: Annotated[
        str,
        typer.Option(
            "--profile",
            "-p",
            help="User profile to use (e.g., alice, household). Default: default",
            envvar="PAYSYNC_PROFILE",
        ),
    ] = "default",
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose debug logging",
        ),
    ] = False,
) -> None:
    """Global options for paysync.

    The profile selects which .env.{profile} file and ledger to use, so
    several people can collect into separate databases from one checkout.

    Examples:
      paysync --profile=alice sync naver --account main
      paysync status --provider coupang --account main
    """
    try:
        set_current_profile(profile)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--profile") from e

    # Logging settings come from the selected profile
    setup_logging(cli_mode=True, verbose=verbose)
    logger.debug(f"👤 Using profile: {profile}")


app.add_typer(sync.app, name="sync", help="Collect purchase history from a provider")
app.add_typer(
    credentials.app, name="credentials", help="Manage saved provider sessions"
)
app.command("status")(status.status)
app.command("export")(export.export)


def main() -> None:
    """Entry point for the paysync CLI application."""
    app()


if __name__ == "__main__":
    main()
