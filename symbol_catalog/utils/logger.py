"""
Centralized logging configuration for the symbol catalog.
"""
import logging
import sys
from typing import Optional


PACKAGE_LOGGER = "symbol_catalog"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(
    name: str,
    level: str = "INFO",
    log_format: Optional[str] = None
) -> logging.Logger:
    """
    Set up a logger with consistent formatting.

    Args:
        name: Logger name (usually __name__ or the package name)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string

    Returns:
        logging.Logger: Configured logger instance
    """
    logger = logging.getLogger(name)

    # Set level
    logger.setLevel(getattr(logging, level.upper()))

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(getattr(logging, level.upper()))
    handler.setFormatter(logging.Formatter(log_format or DEFAULT_FORMAT))
    logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance. Handlers are attached once by setup_logger on the
    package logger; module loggers propagate to it.

    Args:
        name: Logger name (usually __name__)

    Returns:
        logging.Logger: Logger instance
    """
    return logging.getLogger(name)


def configure_logging(logging_config) -> logging.Logger:
    """
    Attach the package handler from a LoggingConfig section.

    Module loggers under the package propagate to it; the level also gates
    the per-page DEBUG progress lines from the fetcher.
    """
    return setup_logger(PACKAGE_LOGGER, logging_config.level, logging_config.format)
