"""
Render API routes for gfxs-studio.

This module provides the server side of the live preview:
- Single-image upload that replaces the current source image
- Document rendering against the current source image (original + processed, base64)
- Batch rendering of several dropped images into one zip archive
- Download of the current original / processed image
- Rendering a stored filter against an image fetched by URL

Only one render runs at a time. A ``/render`` call arriving while another
render is in progress answers ``{"update": false}`` so the client retries on
its next tick; batch renders wait for the workspace to become idle.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import tempfile
import time
from contextlib import asynccontextmanager
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import FileResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field

from .app_config import get_settings
from .engine import CompositionError, create_engine
from .filters import FilterNotFoundError, FilterStore, get_filter_store
from .shared.document import bind_image, inject_dimensions
from .shared.imaging import (
    InvalidImageError,
    build_archive,
    encode_base64,
    image_size,
    png_name,
    safe_stem,
    save_as_png,
)
from .shared.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["render"])

IDLE_POLL_SECONDS = 0.1


# ============= Pydantic Models =============


class RenderResult(BaseModel):
    """Response of ``POST /render``."""

    update: bool = Field(..., description="Whether new output is available")
    original: str = Field("", description="Base64-encoded source image")
    processed: str = Field("", description="Base64-encoded rendered image")


# ============= Workspace =============


class WorkspaceBusyError(Exception):
    """Raised when a render is requested while another one is running."""


class RenderWorkspace:
    """Current source image, last processed image and the render slot."""

    SOURCE_NAME = "image.png"
    PROCESSED_NAME = "processed.png"

    def __init__(self, root: Path, engine, max_pixels: int):
        self.root = Path(root)
        self.engine = engine
        self.max_pixels = max_pixels
        self._rendering = False

    @property
    def source_path(self) -> Path:
        return self.root / self.SOURCE_NAME

    @property
    def processed_path(self) -> Path:
        return self.root / self.PROCESSED_NAME

    @property
    def rendering(self) -> bool:
        return self._rendering

    def has_source(self) -> bool:
        return self.source_path.is_file()

    @asynccontextmanager
    async def slot(self, wait: bool = False):
        """Hold the render slot for the duration of the block.

        Args:
            wait: Wait for a running render to finish instead of raising
                ``WorkspaceBusyError``.
        """
        if self._rendering and not wait:
            raise WorkspaceBusyError()
        await self.wait_idle()
        self._rendering = True
        try:
            yield
        finally:
            self._rendering = False

    async def wait_idle(self) -> None:
        while self._rendering:
            await asyncio.sleep(IDLE_POLL_SECONDS)

    async def store_source(self, data: bytes) -> tuple[int, int]:
        """Normalize and store a new source image."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, save_as_png, data, self.source_path, self.max_pixels)

    async def render_document(self, document: str, source: Path) -> bytes:
        """Bind ``document`` to ``source`` and run it through the engine."""
        size = image_size(source)
        if size is not None:
            document = inject_dimensions(document, *size)
        document = bind_image(document, source)
        return await self.engine.render(document, source)


@lru_cache(maxsize=1)
def get_render_workspace() -> RenderWorkspace:
    """FastAPI dependency returning the process-wide render workspace."""
    settings = get_settings()
    settings.ensure_dirs()
    engine = create_engine(settings.compositor, timeout=settings.render_timeout)
    return RenderWorkspace(settings.workspace_dir, engine, settings.max_pixels)


async def _notify(event: str, data: dict) -> None:
    from websocket import notify_render_event

    await notify_render_event(event, data)


# ============= Routes =============


@router.post("/upload", response_class=PlainTextResponse)
async def upload_image(
    image: Optional[UploadFile] = File(None),
    workspace: RenderWorkspace = Depends(get_render_workspace),
):
    """Replace the current source image."""
    if image is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    data = await image.read()
    try:
        width, height = await workspace.store_source(data)
    except InvalidImageError as e:
        raise HTTPException(status_code=400, detail=f"Invalid image file: {e}")

    logger.info("Stored source image %s (%dx%d)", image.filename, width, height)
    await _notify("image_uploaded", {"filename": image.filename, "width": width, "height": height})
    return "OK"


@router.post("/render", response_model=RenderResult)
async def render_document(
    gfxs: str = Form(""),
    workspace: RenderWorkspace = Depends(get_render_workspace),
):
    """Render the document against the current source image."""
    if not gfxs:
        raise HTTPException(status_code=400, detail="GFXS script is required")
    if not workspace.has_source():
        raise HTTPException(status_code=404, detail="No image file found")

    try:
        async with workspace.slot():
            start_time = time.perf_counter()
            await _notify("render_started", {})
            try:
                processed = await workspace.render_document(gfxs, workspace.source_path)
            except CompositionError as e:
                await _notify("render_failed", {"error": str(e)})
                raise HTTPException(status_code=400, detail=f"GFXS script could not be rendered: {e}")

            workspace.processed_path.write_bytes(processed)
            original = workspace.source_path.read_bytes()
            duration_ms = (time.perf_counter() - start_time) * 1000
            await _notify("render_completed", {"duration_ms": duration_ms})
    except WorkspaceBusyError:
        logger.info("Render requested while another render is running")
        return RenderResult(update=False)

    logger.debug("Rendered document in %.1f ms", duration_ms)
    return RenderResult(
        update=True,
        original=encode_base64(original),
        processed=encode_base64(processed),
    )


@router.post("/renderBatch")
async def render_batch(
    gfxs: str = Form(""),
    images: Optional[List[UploadFile]] = File(None),
    workspace: RenderWorkspace = Depends(get_render_workspace),
):
    """Render the document against every uploaded image and return a zip archive."""
    if not gfxs:
        raise HTTPException(status_code=400, detail="GFXS script is required")
    if not images:
        raise HTTPException(status_code=400, detail="No images provided")

    entries: list[tuple[str, bytes]] = []
    async with workspace.slot(wait=True):
        with tempfile.TemporaryDirectory(prefix="gfxs-batch-") as tmp:
            for index, upload in enumerate(images):
                filename = upload.filename or f"image_{index}.png"
                data = await upload.read()
                source = Path(tmp) / f"{index:03d}_{safe_stem(filename)}.png"
                try:
                    await asyncio.get_running_loop().run_in_executor(
                        None, save_as_png, data, source, workspace.max_pixels
                    )
                except InvalidImageError as e:
                    raise HTTPException(status_code=400, detail=f"Failed to save image {filename}: {e}")

                try:
                    processed = await workspace.render_document(gfxs, source)
                except CompositionError as e:
                    logger.warning("Skipping %s in batch: %s", filename, e)
                    continue
                entries.append((png_name(filename), processed))

    archive = build_archive(entries)
    logger.info("Batch rendered %d of %d images", len(entries), len(images))
    await _notify("batch_completed", {"rendered": len(entries), "total": len(images)})
    return Response(
        content=archive,
        media_type="application/zip",
        headers={"Content-Disposition": "attachment; filename=batch.zip"},
    )


@router.get("/original")
async def get_original(workspace: RenderWorkspace = Depends(get_render_workspace)):
    """Serve the current source image."""
    if not workspace.has_source():
        raise HTTPException(status_code=404, detail="No image file found")
    return FileResponse(str(workspace.source_path), media_type="image/png")


@router.get("/processed")
async def get_processed(workspace: RenderWorkspace = Depends(get_render_workspace)):
    """Serve the last processed image, waiting for a running render to finish."""
    await workspace.wait_idle()
    if not workspace.processed_path.is_file():
        raise HTTPException(status_code=404, detail="No processed image available")
    return FileResponse(str(workspace.processed_path), media_type="image/png")


@router.get("/renderFilter")
async def render_filter(
    name: str = Query("", description="Stored filter name"),
    url: str = Query("", description="Base64url-encoded image URL"),
    store: FilterStore = Depends(get_filter_store),
    workspace: RenderWorkspace = Depends(get_render_workspace),
):
    """Render a stored filter against an image downloaded from a URL."""
    if not name:
        raise HTTPException(status_code=400, detail="Filter name required")
    try:
        document = await store.read(name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FilterNotFoundError:
        raise HTTPException(status_code=404, detail="Filter not found")

    if not url:
        raise HTTPException(status_code=400, detail="URL required")
    try:
        image_url = base64.urlsafe_b64decode(url.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        image_url = ""
    if not image_url:
        raise HTTPException(status_code=400, detail="Valid URL required")

    settings = get_settings()
    try:
        async with httpx.AsyncClient(follow_redirects=True, timeout=settings.request_timeout) as client:
            response = await client.get(image_url)
            response.raise_for_status()
    except httpx.HTTPError as e:
        raise HTTPException(status_code=400, detail=f"Failed to fetch image: {e}")

    with tempfile.TemporaryDirectory(prefix="gfxs-filter-") as tmp:
        source = Path(tmp) / "render.png"
        try:
            await asyncio.get_running_loop().run_in_executor(
                None, save_as_png, response.content, source, workspace.max_pixels
            )
        except InvalidImageError as e:
            raise HTTPException(status_code=400, detail=f"Invalid image file: {e}")
        try:
            processed = await workspace.render_document(document, source)
        except CompositionError as e:
            raise HTTPException(status_code=400, detail=f"GFXS filter could not be rendered: {e}")

    return Response(content=processed, media_type="image/png")
