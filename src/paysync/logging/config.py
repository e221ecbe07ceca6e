"""Logging setup for paysync.

Handlers are configured once per process from the active profile's
``logging`` settings (``PAYSYNC_LOGGING__*``). Console output always goes to
stderr; sync progress and exported data never share a stream.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler

from ..config import LoggingConfig, get_settings

FILE_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CLI_FORMAT = "%(message)s"

# Third-party loggers that would otherwise echo every collector request
QUIET_LOGGERS = ("urllib3", "requests", "charset_normalizer")


def setup_logging(
    config: LoggingConfig | None = None,
    cli_mode: bool = False,
    verbose: bool = False,
    force: bool = False,
) -> None:
    """Configure root logging for the CLI or an embedding application.

    Args:
        config: Logging settings; defaults to the current profile's
        cli_mode: Print bare messages on the console instead of full records
        verbose: Log at DEBUG regardless of the configured level
        force: Replace handlers that are already installed on the root logger
    """
    if config is None:
        config = get_settings().logging

    level = logging.DEBUG if verbose else getattr(logging, config.level)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(
        logging.Formatter(CLI_FORMAT if cli_mode else CONSOLE_FORMAT)
    )
    handlers: list[logging.Handler] = [console_handler]

    if config.log_to_file:
        config.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.log_file_path,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        # Runs execute on worker threads; the thread name ties lines to a run
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=force)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
