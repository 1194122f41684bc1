"""
Configuration for the gfxs-studio render server and client.

Settings are read from environment variables, falling back to defaults:

- GFXS_DATA_DIR: root folder holding ``filters/`` and the ``workspace/``
  (current source image and last processed image). Defaults to the
  platform-specific user data dir (via platformdirs).
- GFXS_HOST / GFXS_PORT: bind address of the render server.
- GFXS_MAX_MEGAPIXELS: uploaded images are downscaled to fit this budget.
- GFXS_COMPOSITOR: external compositor command; unset uses the identity engine.
- GFXS_RENDER_TIMEOUT: seconds the compositor may run per document.
- GFXS_REQUEST_TIMEOUT: client-side timeout for calls to the render server.
- GFXS_AUTO_RENDER_DELAY: debounce delay (seconds) of the client auto-render.
- GFXS_SERVER_URL: base URL the client talks to.
- GFXS_LOG_LEVEL: logging level name.
"""

import os
from dataclasses import asdict, dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs

_APP_NAME = "gfxs-studio"
_APP_AUTHOR = "gfxs"

# 2048 x 1536 pixels
DEFAULT_MAX_PIXELS = 2048 * 1536


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class Settings:
    """Resolved runtime settings."""

    data_dir: Path
    host: str = "127.0.0.1"
    port: int = 8080
    max_pixels: int = DEFAULT_MAX_PIXELS
    compositor: Optional[str] = None
    render_timeout: float = 120.0
    request_timeout: float = 60.0
    auto_render_delay: float = 10.0
    server_url: str = "http://127.0.0.1:8080"
    log_level: str = "INFO"

    @property
    def filters_dir(self) -> Path:
        """Directory holding ``<name>.gfxs`` filter documents."""
        return self.data_dir / "filters"

    @property
    def workspace_dir(self) -> Path:
        """Directory holding the current source and processed images."""
        return self.data_dir / "workspace"

    def ensure_dirs(self) -> None:
        """Create the data folders if they are missing."""
        self.filters_dir.mkdir(parents=True, exist_ok=True)
        self.workspace_dir.mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["data_dir"] = str(self.data_dir)
        return data

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``GFXS_*`` environment variables."""
        data_dir = os.environ.get("GFXS_DATA_DIR")
        if data_dir:
            root = Path(data_dir)
        else:
            root = Path(platformdirs.user_data_dir(_APP_NAME, _APP_AUTHOR))

        port = _env_int("GFXS_PORT", 8080)
        host = os.environ.get("GFXS_HOST", "127.0.0.1")
        megapixels = _env_float("GFXS_MAX_MEGAPIXELS", 0.0)

        return cls(
            data_dir=root,
            host=host,
            port=port,
            max_pixels=int(megapixels * 1_000_000) if megapixels > 0 else DEFAULT_MAX_PIXELS,
            compositor=os.environ.get("GFXS_COMPOSITOR") or None,
            render_timeout=_env_float("GFXS_RENDER_TIMEOUT", 120.0),
            request_timeout=_env_float("GFXS_REQUEST_TIMEOUT", 60.0),
            auto_render_delay=_env_float("GFXS_AUTO_RENDER_DELAY", 10.0),
            server_url=os.environ.get("GFXS_SERVER_URL", f"http://{host}:{port}"),
            log_level=os.environ.get("GFXS_LOG_LEVEL", "INFO"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings (cached; call ``cache_clear`` to reload)."""
    return Settings.from_env()
