"""
Logging setup.

Console output goes through rich on stderr so stdout stays clean for the
CLI's JSON. A rotating file handler always captures DEBUG.

Environment:
    LOG_LEVEL: console level (default INFO)
    LOG_FILE: log file path (default logs/polymarket_trader.log, empty disables)
    LOG_MAX_BYTES / LOG_BACKUP_COUNT: rotation settings
"""

import os
import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_LOG_FILE = "logs/polymarket_trader.log"

NOISY_LOGGERS = ("httpx", "httpcore", "web3", "urllib3", "asyncio")


def setup_logging(verbose: bool = False, use_rich: bool = True) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        verbose: Force DEBUG on the console regardless of LOG_LEVEL
        use_rich: Use rich console formatting

    Returns:
        The package logger
    """
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_file = os.getenv("LOG_FILE", DEFAULT_LOG_FILE)
    max_bytes = int(os.getenv("LOG_MAX_BYTES", "10485760"))  # 10MB
    backup_count = int(os.getenv("LOG_BACKUP_COUNT", "5"))

    if verbose or log_level == "DEBUG":
        level = logging.DEBUG
    else:
        level = getattr(logging, log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | "
            "%(funcName)s:%(lineno)d | %(message)s"
        ))
        root_logger.addHandler(file_handler)

    if use_rich:
        console_handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)-8s | %(message)s"))
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    # Suppress noisy transport logs
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger("polymarket_trader")
