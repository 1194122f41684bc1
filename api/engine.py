"""
Compositor engines for the render server.

The compositing algorithm itself lives outside this project. The server hands
a fully bound document (``$IMG`` replaced, dimensions injected) to an engine
and gets PNG bytes back:

- CommandEngine: runs an external compositor as ``<command> <doc> <out.png>``.
- IdentityEngine: returns the source image unchanged, for previewing the
  round trip without a compositor installed.
"""

from __future__ import annotations

import asyncio
import shlex
import tempfile
from pathlib import Path
from typing import Optional

from .shared.imaging import to_png_bytes
from .shared.logger import get_logger

logger = get_logger(__name__)


class CompositionError(Exception):
    """Raised when the compositor rejects or fails to render a document."""


class IdentityEngine:
    """Engine that renders every document as the untouched source image."""

    name = "identity"

    async def render(self, document: str, source: Path) -> bytes:
        from PIL import Image

        with Image.open(source) as image:
            image.load()
            return to_png_bytes(image)


class CommandEngine:
    """Engine backed by an external compositor executable."""

    name = "command"

    def __init__(self, command: str, timeout: float = 120.0):
        """
        Args:
            command: Compositor command line; the document and output paths are appended.
            timeout: Seconds before the compositor process is killed.
        """
        self.argv = shlex.split(command)
        self.timeout = timeout

    async def render(self, document: str, source: Path) -> bytes:
        with tempfile.TemporaryDirectory(prefix="gfxs-render-") as tmp:
            doc_path = Path(tmp) / "document.gfxs"
            out_path = Path(tmp) / "processed.png"
            doc_path.write_text(document, encoding="utf-8")

            try:
                process = await asyncio.create_subprocess_exec(
                    *self.argv,
                    str(doc_path),
                    str(out_path),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise CompositionError(f"Failed to start compositor: {e}") from e

            try:
                _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                raise CompositionError(f"Compositor timed out after {self.timeout:.0f}s")

            if process.returncode != 0:
                message = stderr.decode("utf-8", errors="replace").strip()
                raise CompositionError(message or f"Compositor exited with status {process.returncode}")
            if not out_path.exists():
                raise CompositionError("Compositor produced no output")

            return out_path.read_bytes()


def create_engine(command: Optional[str], timeout: float = 120.0):
    """Build the engine selected by configuration."""
    if command:
        logger.info("Using compositor command: %s", command)
        return CommandEngine(command, timeout=timeout)
    logger.info("No compositor configured, using identity engine")
    return IdentityEngine()
