"""
API package for the gfxs-studio render server.

This package provides the HTTP endpoints for:
- Named filter storage (filters.py)
- Upload, render, batch render and image download (render.py)
- Compositor engines (engine.py)
- System health and error log (system.py)
- Settings (app_config.py)
"""

from .app_config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
