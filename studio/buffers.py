"""
Editable section buffers.

The orchestration core consumes editor widgets only through three
operations: read the current text, replace it, and get notified on change or
cursor activity. ``TextBuffer`` is the in-memory implementation used by the
watch command and the tests.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Mapping

from api.shared.document import SECTION_ORDER, Section, assemble

Listener = Callable[[], None]


class TextBuffer:
    """Editor stand-in holding one section's text."""

    def __init__(self, text: str = ""):
        self._text = text
        self.cursor = 0
        self._listeners: List[Listener] = []

    def get_text(self) -> str:
        return self._text

    def set_text(self, text: str) -> None:
        """Replace the content; listeners fire only on an actual change."""
        if text == self._text:
            return
        self._text = text
        self.cursor = min(self.cursor, len(text))
        self._emit()

    def move_cursor(self, position: int) -> None:
        """Cursor activity also counts as editor activity."""
        self.cursor = max(0, min(position, len(self._text)))
        self._emit()

    def on_change(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener()


class SectionBuffers:
    """The four section buffers of one editing session."""

    def __init__(self, initial: Mapping[Section, str] | None = None):
        initial = initial or {}
        self.buffers: Dict[Section, TextBuffer] = {
            section: TextBuffer(initial.get(section, "")) for section in SECTION_ORDER
        }

    def __getitem__(self, section: Section) -> TextBuffer:
        return self.buffers[section]

    def assemble(self) -> str:
        """Current composite document."""
        return assemble(*(self.buffers[section].get_text() for section in SECTION_ORDER))

    def apply(self, sections: Mapping[Section, str]) -> List[Section]:
        """Load split sections, skipping empty ones so their buffers are kept.

        Returns:
            The sections that were applied.
        """
        applied = []
        for section in SECTION_ORDER:
            body = sections.get(section)
            if body:
                self.buffers[section].set_text(body)
                applied.append(section)
        return applied

    def subscribe(self, listener: Listener) -> None:
        """Attach one listener to every buffer."""
        for buffer in self.buffers.values():
            buffer.on_change(listener)
