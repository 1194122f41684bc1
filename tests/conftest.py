"""
Root conftest.py for gfxs-studio tests.

Shared fixtures:
- PNG payload factory
- Fake timers for the debounce scheduler
- Fake render server client for the orchestration core
- Isolated settings/data directory for the FastAPI app
"""

import asyncio
import base64
import io
import sys
from pathlib import Path

import pytest
from PIL import Image

# Ensure the project root is in the path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from studio.client import RendererError, RenderResponse


# ============================================================================
# Pytest Hooks
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "websocket: mark test as involving WebSocket communication",
    )


def pytest_collection_modifyitems(config, items):
    """Mark WebSocket tests automatically."""
    for item in items:
        if "websocket" in item.name.lower():
            item.add_marker(pytest.mark.websocket)


# ============================================================================
# Image helpers
# ============================================================================


def make_png(width: int = 4, height: int = 4, color=(255, 0, 0, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_jpeg(width: int = 4, height: int = 4, color=(0, 0, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return make_png


# ============================================================================
# Fake timers
# ============================================================================


class FakeHandle:
    def __init__(self, when, fn):
        self.when = when
        self.fn = fn
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeTimers:
    """Manual clock plus ``call_later`` replacement."""

    def __init__(self):
        self.now = 0.0
        self.handles = []

    def clock(self):
        return self.now

    def call_later(self, delay, fn):
        handle = FakeHandle(self.now + delay, fn)
        self.handles.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds):
        """Move the clock forward and fire every timer that came due."""
        self.now += seconds
        due = sorted((h for h in self.pending if h.when <= self.now), key=lambda h: h.when)
        for handle in due:
            self.handles.remove(handle)
            handle.fn()


@pytest.fixture
def timers():
    return FakeTimers()


# ============================================================================
# Fake render server client
# ============================================================================


class FakeRenderer:
    """Stands in for ``RendererClient``; records every call."""

    def __init__(self):
        self.render_calls = []
        self.uploads = []
        self.batches = []
        self.filters = {}
        self.written = []
        self.response = RenderResponse(
            update=True,
            original=base64.b64encode(make_png(color=(0, 255, 0, 255))).decode("ascii"),
            processed=base64.b64encode(make_png(color=(255, 0, 0, 128))).decode("ascii"),
        )
        self.error = None
        self.upload_error = None
        self.batch_error = None
        self.archive = b"PK-archive"
        self.hold = None

    async def render(self, document):
        self.render_calls.append(document)
        if self.hold is not None:
            await self.hold.wait()
        if self.error is not None:
            raise self.error
        return self.response

    async def list_filters(self):
        return sorted(self.filters)

    async def read_filter(self, name):
        if name not in self.filters:
            raise RendererError("404: Filter not found", status_code=404)
        return self.filters[name]

    async def write_filter(self, name, document):
        self.written.append((name, document))
        self.filters[name] = document

    async def upload_image(self, file):
        self.uploads.append(file)
        if self.upload_error is not None:
            raise self.upload_error

    async def render_batch(self, document, files):
        self.batches.append((document, list(files)))
        if self.batch_error is not None:
            raise self.batch_error
        return self.archive


@pytest.fixture
def renderer():
    return FakeRenderer()


async def settle():
    """Let scheduled tasks run."""
    for _ in range(5):
        await asyncio.sleep(0)


# ============================================================================
# App fixtures
# ============================================================================


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Settings rooted in a temporary data directory."""
    from api.app_config import get_settings

    monkeypatch.setenv("GFXS_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("GFXS_COMPOSITOR", raising=False)
    get_settings.cache_clear()
    settings = get_settings()
    settings.ensure_dirs()
    yield settings
    get_settings.cache_clear()


@pytest.fixture
def client(settings):
    """TestClient bound to the isolated data directory."""
    from fastapi.testclient import TestClient

    from api.engine import IdentityEngine
    from api.render import RenderWorkspace, get_render_workspace
    from main import app

    workspace = RenderWorkspace(settings.workspace_dir, IdentityEngine(), settings.max_pixels)
    app.dependency_overrides[get_render_workspace] = lambda: workspace
    try:
        with TestClient(app) as c:
            c.workspace = workspace
            yield c
    finally:
        app.dependency_overrides.clear()
