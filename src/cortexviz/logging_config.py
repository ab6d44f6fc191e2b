"""
Logging Configuration
Sets up the package logger, with optional per-module debug output.
"""
import logging
import sys
from typing import Iterable, Optional

PACKAGE = "cortexviz"


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    verbose: Iterable[str] = (),
) -> None:
    """
    Configures the logger of the 'cortexviz' namespace.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
        verbose: Sub-modules logged at DEBUG regardless of ``level``,
            relative to the package (e.g. "controller.fetch").
    """
    logger = logging.getLogger(PACKAGE)
    logger.setLevel(level)

    # Avoid duplicate handlers when the window is re-created
    if logger.hasHandlers():
        logger.handlers.clear()

    verbose = [name.strip() for name in verbose if name.strip()]
    for name in verbose:
        logging.getLogger(f"{PACKAGE}.{name}").setLevel(logging.DEBUG)
    handler_level = logging.DEBUG if verbose else level

    # Format: Time - Module - Level - Message
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(handler_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        file_handler.setLevel(handler_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if verbose:
        logger.info(f"Logging initialized; debug output for {', '.join(verbose)}.")
    else:
        logger.info("Logging initialized.")
