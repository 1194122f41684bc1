"""
Headless live preview.

Watches four section files (``vars.gfxs``, ``filters.gfxs``,
``composition.gfxs``, ``layers.gfxs``) and drives a ``RenderSession`` from
their changes, writing ``original.png`` and ``processed.png`` after every
successful render.

Usage:
    python -m studio --sections ./doc --output ./preview
    python -m studio --sections ./doc --sample 10,20,320,240
    python -m studio --batch a.png b.jpg --output ./out
    python -m studio --upload photo.jpg
"""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import aiofiles

from api.app_config import get_settings
from api.shared.document import SECTION_ORDER, Section
from api.shared.logger import get_logger, setup_logging

from .buffers import SectionBuffers
from .client import DroppedFile, RendererClient
from .dispatcher import DEFAULT_FILTER, ImagePair, RenderSession
from .sampler import ORIGINAL_VIEW, PROCESSED_VIEW, PixelSampler
from .uploads import UploadPipeline, archive_writer

logger = get_logger(__name__)

SECTION_SUFFIX = ".gfxs"

SamplePoint = Tuple[float, float, float, float]


def section_files(directory: Path) -> Dict[Section, Path]:
    return {section: directory / f"{section.value.lower()}{SECTION_SUFFIX}" for section in SECTION_ORDER}


async def read_sections(files: Dict[Section, Path]) -> Dict[Section, str]:
    """Read the section files that exist."""
    texts = {}
    for section, path in files.items():
        if not path.is_file():
            continue
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            texts[section] = await f.read()
    return texts


class SectionFiles:
    """The section files of one document directory.

    Remembers the text last read from each file and only pushes files whose
    text changed on disk since then, so buffer content loaded from a stored
    filter is kept until the user actually edits the file.
    """

    def __init__(self, directory: Path):
        self.directory = directory
        self.paths = section_files(directory)
        self._seen: Dict[Section, str] = {}

    async def read(self) -> Dict[Section, str]:
        texts = await read_sections(self.paths)
        self._seen.update(texts)
        return texts

    async def push_changes(self, buffers: SectionBuffers) -> List[Section]:
        """Copy changed files into ``buffers``; returns the sections pushed."""
        changed = []
        for section, text in (await read_sections(self.paths)).items():
            if self._seen.get(section) == text:
                continue
            self._seen[section] = text
            buffers[section].set_text(text)
            changed.append(section)
        return changed

    def seed(self, buffers: SectionBuffers) -> None:
        """Create missing section files from the buffer content."""
        self.directory.mkdir(parents=True, exist_ok=True)
        for section, path in self.paths.items():
            if path.exists():
                continue
            text = buffers[section].get_text()
            path.write_text(text, encoding="utf-8")
            self._seen[section] = text


def dropped_file(path: Path) -> DroppedFile:
    content_type, _ = mimetypes.guess_type(path.name)
    return DroppedFile(
        name=path.name,
        data=path.read_bytes(),
        content_type=content_type or "application/octet-stream",
    )


def sample_point(text: str) -> SamplePoint:
    """Parse ``X,Y,W,H``: a position on a preview displayed at W x H."""
    try:
        x, y, width, height = (float(part) for part in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected X,Y,W,H, got {text!r}")
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError("display width and height must be positive")
    return x, y, width, height


def describe_point(sampler: PixelSampler, point: SamplePoint) -> Dict[str, str]:
    """Pixel readout of both previews at a display position."""
    readout = {}
    for view in (ORIGINAL_VIEW, PROCESSED_VIEW):
        sample = sampler.sample(view, *point)
        readout[view] = sample.describe() if sample else "outside image"
    return readout


def image_writer(output: Path, sampler: Optional[PixelSampler] = None, point: Optional[SamplePoint] = None):
    def write(pair: ImagePair) -> None:
        output.mkdir(parents=True, exist_ok=True)
        (output / "original.png").write_bytes(pair.original_bytes())
        (output / "processed.png").write_bytes(pair.processed_bytes())
        logger.info("Preview updated in %s", output)
        if sampler is not None and point is not None:
            for view, text in describe_point(sampler, point).items():
                logger.info("%s: %s", view, text)

    return write


async def watch(args: argparse.Namespace) -> int:
    files = SectionFiles(args.sections)
    buffers = SectionBuffers(await files.read())
    sampler = PixelSampler()

    async with RendererClient(args.server, timeout=args.timeout) as client:
        session = RenderSession(
            buffers,
            client,
            delay=args.delay,
            sampler=sampler,
            on_notice=lambda message: logger.warning("%s", message),
            on_images=image_writer(args.output, sampler, args.sample),
        )
        pipeline = UploadPipeline(session, client, save_archive=archive_writer(args.output))

        if args.batch or args.upload:
            drop = [dropped_file(p) for p in (args.batch or [args.upload])]
            route = await pipeline.handle_drop(drop)
            logger.info("Drop handled via %s route", route.value)
            session.close()
            return 0

        await session.start(args.filter)
        files.seed(buffers)

        last_remaining: Optional[int] = None
        try:
            while True:
                await asyncio.sleep(args.poll)
                await files.push_changes(buffers)
                remaining = session.remaining_seconds()
                if remaining is not None and remaining != last_remaining:
                    logger.debug("Auto render in %ss", remaining)
                last_remaining = remaining
        finally:
            session.close()


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="gfxs-studio live preview client")
    parser.add_argument("--server", default=settings.server_url, help="Render server URL")
    parser.add_argument("--sections", type=Path, default=Path("."), help="Directory with the section files")
    parser.add_argument("--output", type=Path, default=Path("preview"), help="Directory for rendered images")
    parser.add_argument("--delay", type=float, default=settings.auto_render_delay, help="Auto-render delay in seconds")
    parser.add_argument("--poll", type=float, default=0.5, help="Section file poll interval in seconds")
    parser.add_argument("--timeout", type=float, default=settings.request_timeout, help="Request timeout in seconds")
    parser.add_argument("--filter", default=DEFAULT_FILTER, help="Stored filter to load on start")
    parser.add_argument(
        "--sample",
        type=sample_point,
        metavar="X,Y,W,H",
        help="Log the pixel under X,Y of a preview displayed at W x H after each render",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--batch", type=Path, nargs="+", help="Render these images as a batch and exit")
    group.add_argument("--upload", type=Path, help="Upload this image as the source and exit")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(get_settings().log_level)
    try:
        return asyncio.run(watch(args))
    except KeyboardInterrupt:
        return 0
