"""Logging setup for paysync.

Configure once at startup, then use module loggers:
    ```python
    import logging
    from paysync.logging import setup_logging

    setup_logging(cli_mode=True)
    logger = logging.getLogger(__name__)
    ```
"""

from .config import setup_logging

__all__ = ["setup_logging"]
