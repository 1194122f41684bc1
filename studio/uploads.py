"""
Drop handling: single-image upload or multi-image batch.

One dropped image replaces the server's source image and re-renders the
session. Two or more files are rendered server-side against the current
document and come back as one zip archive.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

import aiofiles

from api.shared.logger import get_logger

from .client import DroppedFile, RendererClient, RendererError
from .dispatcher import RenderSession

logger = get_logger(__name__)

BATCH_ARCHIVE_NAME = "batch.zip"


class DropRoute(str, Enum):
    NONE = "none"
    SINGLE = "single"
    BATCH = "batch"


def classify_drop(files: Sequence[DroppedFile]) -> DropRoute:
    """Route by file count: nothing, single upload, or batch."""
    if not files:
        return DropRoute.NONE
    if len(files) == 1:
        return DropRoute.SINGLE
    return DropRoute.BATCH


def archive_writer(directory: Path) -> Callable[[str, bytes], Awaitable[Path]]:
    """Archive sink that saves into ``directory``."""

    async def save(filename: str, data: bytes) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / filename
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)
        logger.info("Saved %s (%d bytes)", path, len(data))
        return path

    return save


class UploadPipeline:
    """Handles drop events for a render session."""

    def __init__(
        self,
        session: RenderSession,
        client: RendererClient,
        on_overlay: Optional[Callable[[bool], None]] = None,
        save_archive: Optional[Callable[[str, bytes], Awaitable[object]]] = None,
        on_notice: Optional[Callable[[str], None]] = None,
    ):
        self.session = session
        self.client = client
        self._on_overlay = on_overlay
        self._save_archive = save_archive or archive_writer(Path.cwd())
        self._on_notice = on_notice

    def _overlay(self, visible: bool) -> None:
        if self._on_overlay:
            self._on_overlay(visible)

    def _notice(self, message: str) -> None:
        logger.warning("%s", message)
        if self._on_notice:
            self._on_notice(message)

    async def handle_drop(self, files: Sequence[DroppedFile]) -> DropRoute:
        """Process a drop event; returns the route that was taken."""
        route = classify_drop(files)
        if route is DropRoute.SINGLE:
            if not files[0].is_image:
                logger.debug("Ignoring non-image drop: %s", files[0].name)
                return DropRoute.NONE
            await self._upload_single(files[0])
        elif route is DropRoute.BATCH:
            await self._render_batch(files)
        return route

    async def _upload_single(self, file: DroppedFile) -> None:
        self._overlay(True)
        uploaded = False
        try:
            await self.client.upload_image(file)
            uploaded = True
        except RendererError as e:
            self._notice(f"Failed to upload image: {e}")
        finally:
            self._overlay(False)

        if uploaded:
            await self.session.force_render()

    async def _render_batch(self, files: Sequence[DroppedFile]) -> None:
        self._overlay(True)
        try:
            document = self.session.buffers.assemble()
            archive = await self.client.render_batch(document, files)
            await self._save_archive(BATCH_ARCHIVE_NAME, archive)
        except RendererError as e:
            self._notice(f"Batch render failed: {e}")
        except OSError as e:
            self._notice(f"Failed to save batch archive: {e}")
        finally:
            self._overlay(False)
            await self.session.force_render()
