"""
Image helpers for the render server.

Uploaded images are decoded with Pillow, restricted to PNG/JPEG, downscaled to
the configured pixel budget and stored as PNG. Batch outputs are packaged into
a zip archive.
"""

from __future__ import annotations

import base64
import io
import math
import zipfile
from pathlib import Path, PurePath

from PIL import Image, UnidentifiedImageError

SUPPORTED_FORMATS = ("PNG", "JPEG")


class InvalidImageError(ValueError):
    """Raised when uploaded bytes are not a supported image."""


def load_image(data: bytes) -> Image.Image:
    """Decode image bytes, accepting PNG and JPEG only."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImageError(f"invalid image file: {e}") from e

    if image.format not in SUPPORTED_FORMATS:
        raise InvalidImageError(f"unsupported image format: {image.format}")
    # PNG cannot hold CMYK/YCbCr JPEG data
    if image.mode not in ("1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"):
        image = image.convert("RGBA")
    return image


def fit_to_pixels(image: Image.Image, max_pixels: int) -> Image.Image:
    """Downscale ``image`` so width * height does not exceed ``max_pixels``."""
    width, height = image.size
    if max_pixels <= 0 or width * height <= max_pixels:
        return image
    scale = math.sqrt(max_pixels / float(width * height))
    size = (max(1, int(width * scale)), max(1, int(height * scale)))
    return image.resize(size, Image.Resampling.LANCZOS)


def to_png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def save_as_png(data: bytes, path: Path, max_pixels: int) -> tuple[int, int]:
    """Normalize uploaded bytes and write them to ``path`` as PNG.

    Returns:
        The (width, height) of the stored image.
    """
    image = fit_to_pixels(load_image(data), max_pixels)
    path.parent.mkdir(parents=True, exist_ok=True)
    image.save(path, format="PNG")
    return image.size


def image_size(path: Path) -> tuple[int, int] | None:
    """Size of the image at ``path``, or None if it cannot be read."""
    try:
        with Image.open(path) as image:
            return image.size
    except (UnidentifiedImageError, OSError):
        return None


def png_name(filename: str) -> str:
    """Output name for a batch item: the basename with a ``.png`` extension."""
    return PurePath(filename).stem + ".png"


def safe_stem(filename: str) -> str:
    """Filesystem-friendly stem for a temporary batch input."""
    return PurePath(filename).stem.replace(" ", "_") or "image"


def build_archive(entries: list[tuple[str, bytes]]) -> bytes:
    """Package ``(name, data)`` entries into an in-memory zip archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, data in entries:
            archive.writestr(name, data)
    return buffer.getvalue()


def encode_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
