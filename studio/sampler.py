"""
Pixel inspection of displayed preview images.

Each displayed image view keeps an RGBA copy of its pixels at natural
resolution, captured whenever the view loads a new image. Pointer positions
on the (possibly scaled) display are mapped back onto that grid.
"""

from __future__ import annotations

import io
import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from api.shared.logger import get_logger

logger = get_logger(__name__)

ORIGINAL_VIEW = "original"
PROCESSED_VIEW = "processed"


def _round_half_up(value: float) -> int:
    # round() would send .5 to the even neighbour
    return math.floor(value + 0.5)


def rgb_to_hsl(r: int, g: int, b: int) -> Tuple[int, int, int]:
    """Convert 8-bit RGB to (hue degrees, saturation %, lightness %), rounded."""
    r, g, b = r / 255.0, g / 255.0, b / 255.0
    high = max(r, g, b)
    low = min(r, g, b)
    lightness = (high + low) / 2

    if high == low:
        hue = saturation = 0.0  # achromatic
    else:
        d = high - low
        saturation = d / (2 - high - low) if lightness > 0.5 else d / (high + low)
        if high == r:
            hue = (g - b) / d + (6 if g < b else 0)
        elif high == g:
            hue = (b - r) / d + 2
        else:
            hue = (r - g) / d + 4
        hue *= 60

    return _round_half_up(hue) % 360, _round_half_up(saturation * 100), _round_half_up(lightness * 100)


@dataclass(frozen=True)
class PixelSample:
    """Colour of one native pixel."""

    x: int
    y: int
    r: int
    g: int
    b: int
    a: int

    @property
    def alpha(self) -> float:
        """Alpha as a 0-1 fraction, two decimals."""
        return round(self.a / 255, 2)

    @property
    def hsl(self) -> Tuple[int, int, int]:
        return rgb_to_hsl(self.r, self.g, self.b)

    def describe(self) -> str:
        h, s, l = self.hsl
        return f"x: {self.x}, y: {self.y} | H: {h}°, S: {s}%, L: {l}%, A: {self.alpha:.2f}"


class PixelSampler:
    """Per-view pixel buffers and display-to-native coordinate mapping."""

    def __init__(self) -> None:
        self._buffers: Dict[str, np.ndarray] = {}

    def capture(self, view: str, image_bytes: bytes) -> bool:
        """Store the pixels of a freshly loaded image for ``view``.

        Undecodable payloads keep the previous buffer.
        """
        try:
            with Image.open(io.BytesIO(image_bytes)) as image:
                pixels = np.asarray(image.convert("RGBA"), dtype=np.uint8)
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.warning("Could not decode image for view %s: %s", view, e)
            return False
        self._buffers[view] = pixels
        return True

    def capture_pair(self, pair) -> None:
        """Capture both images of a render result."""
        self.capture(ORIGINAL_VIEW, pair.original_bytes())
        self.capture(PROCESSED_VIEW, pair.processed_bytes())

    def natural_size(self, view: str) -> Optional[Tuple[int, int]]:
        pixels = self._buffers.get(view)
        if pixels is None:
            return None
        return pixels.shape[1], pixels.shape[0]

    def sample(
        self,
        view: str,
        display_x: float,
        display_y: float,
        display_width: float,
        display_height: float,
    ) -> Optional[PixelSample]:
        """Read the native pixel under a display-space position.

        Returns None when the view has no pixels, the display size is empty,
        or the mapped position falls outside the image.
        """
        pixels = self._buffers.get(view)
        if pixels is None or display_width <= 0 or display_height <= 0:
            return None

        height, width = pixels.shape[:2]
        x = math.floor(display_x * width / display_width)
        y = math.floor(display_y * height / display_height)
        if x < 0 or y < 0 or x >= width or y >= height:
            return None

        r, g, b, a = (int(v) for v in pixels[y, x])
        return PixelSample(x=x, y=y, r=r, g=g, b=b, a=a)
