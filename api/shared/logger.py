"""
Centralized logging for the gfxs-studio render server and client.

Both halves of the project (the FastAPI render server and the ``studio``
orchestration client) log through Python's built-in logging module.

Usage:
    from api.shared.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Server starting on port %d", port)
    logger.warning("Render skipped, server busy")
    logger.error("Failed to store filter %s: %s", name, err)
"""

import logging
import sys

_configured = False


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging.

    Call once at startup (main.py or the watch command). Subsequent calls are no-ops.
    """
    global _configured
    if _configured:
        return

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger for the given module.

    Args:
        name: Module name (typically ``__name__``).
    """
    return logging.getLogger(name)
