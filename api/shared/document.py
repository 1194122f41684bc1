"""
Composite document assembly and splitting.

A gfxs document is four named sections in a fixed order, each introduced by a
bracketed header line and separated by a blank line::

    [VARS]
    ...

    [FILTERS]
    ...

    [COMPOSITION]
    ...

    [LAYERS]
    ...

The order is part of the wire contract with the render server, and the text
produced by :func:`assemble` round-trips through :func:`split`.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path


class Section(str, Enum):
    """The closed set of document sections."""

    VARS = "VARS"
    FILTERS = "FILTERS"
    COMPOSITION = "COMPOSITION"
    LAYERS = "LAYERS"

    @property
    def header(self) -> str:
        return f"[{self.value}]"


SECTION_ORDER: tuple[Section, ...] = (
    Section.VARS,
    Section.FILTERS,
    Section.COMPOSITION,
    Section.LAYERS,
)

IMAGE_TOKEN = "$IMG"

_HEADERS = {section.header: section for section in SECTION_ORDER}
_WIDTH_LINE = re.compile(r"^\s*width\s*=")
_HEIGHT_LINE = re.compile(r"^\s*height\s*=")


def assemble(vars: str, filters: str, composition: str, layers: str) -> str:
    """Join the four section bodies into one document.

    No validation is performed; an empty body yields an empty section.
    """
    return (
        "[VARS]\n" + vars
        + "\n\n[FILTERS]\n" + filters
        + "\n\n[COMPOSITION]\n" + composition
        + "\n\n[LAYERS]\n" + layers
        + "\n"
    )


def _header_of(line: str) -> Section | None:
    return _HEADERS.get(line.strip())


def split(text: str) -> dict[Section, str]:
    """Split a document into its section bodies.

    Each known header line starts a section whose body runs up to the next
    known header line (or the end of the text). Bodies are whitespace-trimmed.
    Unknown headers are plain body text, and sections missing from the text
    are missing from the result.
    """
    sections: dict[Section, str] = {}
    current: Section | None = None
    body: list[str] = []

    for line in text.splitlines():
        section = _header_of(line)
        if section is None:
            if current is not None:
                body.append(line)
            continue
        if current is not None:
            sections[current] = "\n".join(body).strip()
        current = section
        body = []

    if current is not None:
        sections[current] = "\n".join(body).strip()

    return sections


def non_empty(sections: dict[Section, str]) -> dict[Section, str]:
    """Drop sections whose body is empty."""
    return {section: body for section, body in sections.items() if body}


def bind_image(text: str, image_path: str | Path) -> str:
    """Replace every ``$IMG`` token with the absolute path of the source image."""
    return text.replace(IMAGE_TOKEN, str(Path(image_path).resolve()))


def inject_dimensions(text: str, width: int, height: int) -> str:
    """Add ``width``/``height`` to the COMPOSITION section when it omits them.

    Missing lines are inserted directly below the ``[COMPOSITION]`` header.
    Documents without a COMPOSITION section are returned unchanged.
    """
    lines = text.split("\n")
    start = None
    for index, line in enumerate(lines):
        if _header_of(line) is Section.COMPOSITION:
            start = index
            break
    if start is None:
        return text

    end = len(lines)
    for index in range(start + 1, len(lines)):
        if _header_of(lines[index]) is not None:
            end = index
            break
    body = lines[start + 1:end]

    missing = []
    if not any(_WIDTH_LINE.match(line) for line in body):
        missing.append(f"width = {width}")
    if not any(_HEIGHT_LINE.match(line) for line in body):
        missing.append(f"height = {height}")
    if not missing:
        return text

    return "\n".join(lines[:start + 1] + missing + lines[start + 1:])
