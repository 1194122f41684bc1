"""
Render orchestration client for gfxs-studio.

Decides when the editor's document is sent to the render server: edits are
debounced, unchanged documents are suppressed, at most one request is in
flight, and dropped images are routed to single upload or batch rendering.
"""

from .buffers import SectionBuffers, TextBuffer
from .client import DroppedFile, RendererClient, RendererError, RenderResponse
from .dispatcher import ImagePair, RenderOutcome, RenderSession, RenderState
from .gate import SingleFlightGuard, should_render
from .sampler import PixelSample, PixelSampler, rgb_to_hsl
from .scheduler import DebounceScheduler
from .uploads import DropRoute, UploadPipeline, classify_drop

__all__ = [
    "SectionBuffers",
    "TextBuffer",
    "DroppedFile",
    "RendererClient",
    "RendererError",
    "RenderResponse",
    "ImagePair",
    "RenderOutcome",
    "RenderSession",
    "RenderState",
    "SingleFlightGuard",
    "should_render",
    "PixelSample",
    "PixelSampler",
    "rgb_to_hsl",
    "DebounceScheduler",
    "DropRoute",
    "UploadPipeline",
    "classify_drop",
]
