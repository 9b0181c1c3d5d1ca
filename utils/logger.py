"""
utils/logger.py
Simple logging wrapper for PortDog
"""

import logging
import sys

ROOT_LOGGER = "portdog"


def get_logger(name: str = ROOT_LOGGER, level: int = logging.INFO) -> logging.Logger:
    """
    Get a configured logger instance.

    Child names ("scanner", "portdog.scanner") share the single handler
    attached to the ``portdog`` root logger.

    Args:
        name: Logger name (usually module name)
        level: Logging level applied when the root handler is first created

    Returns:
        Configured logger instance
    """
    root = logging.getLogger(ROOT_LOGGER)

    # Avoid duplicate handlers
    if not root.handlers:
        root.setLevel(level)

        # stderr keeps stdout clean for --json output
        handler = logging.StreamHandler(sys.stderr)

        # Format: [LEVEL] message
        formatter = logging.Formatter(
            '%(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
        root.propagate = False

    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def set_level(level: int) -> None:
    """Change verbosity of every PortDog logger at once."""
    get_logger().setLevel(level)


# Default logger instance
log = get_logger(ROOT_LOGGER)


__all__ = ["get_logger", "set_level", "log"]
