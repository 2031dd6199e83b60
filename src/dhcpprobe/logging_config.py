"""
Logging configuration for dhcpprobe.

The probe is run by health-check infrastructure that mostly looks at the
exit status, so everything goes to stderr and stays quiet by default.
"""

import logging
import sys


def setup_logging(level: str = "WARNING", stream=None) -> logging.Logger:
    """
    Set up the package logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        stream: Output stream, stderr by default

    Returns:
        Configured package logger
    """
    logger = logging.getLogger("dhcpprobe")
    logger.setLevel(getattr(logging, level.upper()))

    # Clear existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(fmt='%(name)s: %(message)s'))
    logger.addHandler(handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


def configure_logging(debug: bool = False) -> None:
    """Quick logging configuration."""
    setup_logging(level="DEBUG" if debug else "WARNING")
