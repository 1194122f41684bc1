"""
Shared utilities for gfxs-studio.

The document helpers are used by both the render server and the ``studio``
client.
"""
from .document import (
    SECTION_ORDER,
    Section,
    assemble,
    bind_image,
    inject_dimensions,
    non_empty,
    split,
)

__all__ = [
    "Section",
    "SECTION_ORDER",
    "assemble",
    "split",
    "non_empty",
    "bind_image",
    "inject_dimensions",
]
