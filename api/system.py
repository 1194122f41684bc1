"""
System API routes for gfxs-studio.

This module provides health and information endpoints, and the error log
fed by the application's exception handlers.
"""

import platform
import sys
import traceback
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, Optional

from fastapi import APIRouter, Depends

from .app_config import get_settings
from .shared.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

MAX_ERROR_ENTRIES = 200

_error_log: Deque[Dict[str, Any]] = deque(maxlen=MAX_ERROR_ENTRIES)


def log_error(
    endpoint: str,
    message: str,
    level: str = "error",
    details: Optional[str] = None,
    exc: Optional[BaseException] = None,
) -> Dict[str, Any]:
    """Record an error for ``/api/system/errors`` and write it to the log.

    Args:
        endpoint: Request path that produced the error
        message: Short error message
        level: "warning", "error" or "critical"
        details: Additional context
        exc: Exception, whose traceback is kept with the entry
    """
    entry = {
        "timestamp": datetime.now().isoformat(),
        "endpoint": endpoint,
        "message": message,
        "level": level,
        "details": details,
        "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)) if exc else None,
    }
    _error_log.append(entry)

    log_fn = logger.critical if level == "critical" else logger.warning if level == "warning" else logger.error
    log_fn("%s: %s (%s)", endpoint, message, details or "no details")
    return entry


def get_errors(limit: int = 50) -> list:
    """Most recent errors first."""
    return list(reversed(_error_log))[:limit]


def clear_errors() -> None:
    _error_log.clear()


def _get_package_versions() -> Dict[str, str]:
    """Get versions of key packages."""
    packages = {}
    for name in ("fastapi", "uvicorn", "pydantic", "httpx", "PIL", "numpy"):
        try:
            module = __import__(name)
            packages[name] = getattr(module, "__version__", "unknown")
        except ImportError:
            pass
    return packages


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "message": "gfxs-studio render server is running",
    }


@router.get("/system/info")
async def system_info(settings=Depends(get_settings)):
    """Get system, environment and configuration information."""
    return {
        "python": {
            "version": sys.version,
            "platform": sys.platform,
        },
        "system": {
            "os": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
        },
        "settings": settings.to_dict(),
        "packages": _get_package_versions(),
    }


@router.get("/system/errors")
async def system_errors(limit: int = 50):
    """Get the most recent server errors."""
    errors = get_errors(limit)
    return {"errors": errors, "total": len(errors)}
