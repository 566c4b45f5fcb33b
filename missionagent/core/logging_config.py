"""
Process-wide logging setup for the CLI and the API server.
"""

import logging
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Libraries that are chatty at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def configure_logging(level: Optional[Union[str, int]] = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Level name or number; defaults to the configured log_level
    """
    if level is None:
        from .config_manager import get_config
        level = get_config().log_level

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
