"""
Render dispatch for one editing session.

``RenderSession`` owns the whole orchestration state of a session: the last
successfully rendered document, the single-flight guard, the debounce
scheduler and the displayed image pair. The network client and the clock
are injected.

State machine::

    IDLE --activity--> SCHEDULED --fire--> IN_FLIGHT --complete--> SCHEDULED

Completion always re-arms the scheduler. A tick on unchanged text is absorbed
by the change gate and does not re-arm, so the session goes idle until the
next activity.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from api.shared.document import non_empty, split
from api.shared.logger import get_logger

from .buffers import SectionBuffers
from .client import RendererClient, RendererError
from .gate import SingleFlightGuard, should_render
from .sampler import PixelSampler
from .scheduler import DEFAULT_DELAY, DebounceScheduler

logger = get_logger(__name__)

DEFAULT_FILTER = "default"


class RenderState(str, Enum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    IN_FLIGHT = "in_flight"


class RenderOutcome(str, Enum):
    """Result of one ``render`` call."""

    RENDERED = "rendered"
    NO_UPDATE = "no_update"
    FAILED = "failed"
    SUPPRESSED = "suppressed"
    BUSY = "busy"


@dataclass(frozen=True)
class ImagePair:
    """Original and processed image of one render, base64-encoded."""

    original: str
    processed: str

    def original_bytes(self) -> bytes:
        return base64.b64decode(self.original)

    def processed_bytes(self) -> bytes:
        return base64.b64decode(self.processed)


class RenderSession:
    """Orchestrates debounced, single-flight renders of the section buffers."""

    def __init__(
        self,
        buffers: SectionBuffers,
        client: RendererClient,
        delay: float = DEFAULT_DELAY,
        sampler: Optional[PixelSampler] = None,
        on_notice: Optional[Callable[[str], None]] = None,
        on_busy: Optional[Callable[[bool], None]] = None,
        on_images: Optional[Callable[[ImagePair], None]] = None,
        clock: Optional[Callable[[], float]] = None,
        call_later=None,
    ):
        """
        Args:
            buffers: The four section buffers being edited
            client: Render server client
            delay: Auto-render quiet period in seconds
            sampler: Pixel sampler refreshed with every new image pair
            on_notice: Receives user-facing messages (no update, errors)
            on_busy: Receives the render indicator state
            on_images: Receives every new image pair
            clock: Time source for the scheduler (seconds)
            call_later: Timer factory for the scheduler
        """
        self.buffers = buffers
        self.client = client
        self.sampler = sampler
        self.guard = SingleFlightGuard()
        self.scheduler = DebounceScheduler(delay, self.render, clock=clock, call_later=call_later)
        self.last_rendered_text = ""
        self.images: Optional[ImagePair] = None
        self.filter_names: List[str] = []
        self._on_notice = on_notice
        self._on_busy = on_busy
        self._on_images = on_images

        buffers.subscribe(self.notify_activity)

    # ============= State =============

    @property
    def state(self) -> RenderState:
        if self.guard.in_flight:
            return RenderState.IN_FLIGHT
        if self.scheduler.armed:
            return RenderState.SCHEDULED
        return RenderState.IDLE

    def remaining_seconds(self) -> Optional[int]:
        return self.scheduler.remaining_seconds()

    def notify_activity(self) -> None:
        """Edit or cursor activity in any buffer."""
        self.scheduler.on_activity()

    def _notice(self, message: str) -> None:
        logger.info("%s", message)
        if self._on_notice:
            self._on_notice(message)

    def _set_busy(self, busy: bool) -> None:
        if self._on_busy:
            self._on_busy(busy)

    # ============= Rendering =============

    async def render(self, force: bool = False) -> RenderOutcome:
        """Render the current document if it changed (or unconditionally when forced)."""
        document = self.buffers.assemble()
        if not should_render(document, self.last_rendered_text, force):
            return RenderOutcome.SUPPRESSED
        if not self.guard.try_enter(force):
            if force:
                logger.debug("Forced render deferred until the current render completes")
            return RenderOutcome.BUSY

        self._set_busy(True)
        try:
            outcome = await self._dispatch(document)
        finally:
            self._set_busy(False)
            self.guard.exit()
            self.scheduler.on_activity()
            # Forces recorded during this request are consumed on every exit path
            deferred = self.guard.take_deferred()

        if deferred:
            await self.render(force=True)
        return outcome

    async def _dispatch(self, document: str) -> RenderOutcome:
        try:
            response = await self.client.render(document)
        except RendererError as e:
            self._notice(f"Failed to render: {e}")
            return RenderOutcome.FAILED

        if not response.update:
            self._notice("No update from render.")
            return RenderOutcome.NO_UPDATE

        pair = ImagePair(original=response.original, processed=response.processed)
        self.images = pair
        self.last_rendered_text = document
        if self.sampler is not None:
            self.sampler.capture_pair(pair)
        if self._on_images:
            self._on_images(pair)
        return RenderOutcome.RENDERED

    async def force_render(self) -> RenderOutcome:
        """User-triggered render: drop the pending auto-render and bypass the change gate."""
        self.scheduler.cancel()
        return await self.render(force=True)

    # ============= Named filters =============

    async def refresh_filters(self) -> List[str]:
        try:
            self.filter_names = await self.client.list_filters()
        except RendererError as e:
            logger.error("Failed to load filter list: %s", e)
        return self.filter_names

    async def load_filter(self, name: str) -> bool:
        """Load a stored filter into the buffers and force a render.

        Sections the filter does not define (or leaves empty) keep their
        current buffer content.
        """
        try:
            document = await self.client.read_filter(name)
        except RendererError as e:
            self._notice(f"Error loading filter: {e}")
            return False

        applied = self.buffers.apply(non_empty(split(document)))
        logger.info("Loaded filter %s (%s)", name, ", ".join(s.value for s in applied) or "no sections")
        await self.force_render()
        return True

    async def save_filter(self, name: str) -> bool:
        """Store the current document under ``name`` and refresh the list."""
        if not name:
            return False
        try:
            await self.client.write_filter(name, self.buffers.assemble())
        except RendererError as e:
            self._notice(f"Failed to save filter: {e}")
            return False
        await self.refresh_filters()
        return True

    # ============= Lifecycle =============

    async def start(self, filter_name: str = DEFAULT_FILTER) -> RenderOutcome:
        """Initial load: filter list, the named filter when stored, then a render."""
        names = await self.refresh_filters()
        if filter_name in names:
            await self.load_filter(filter_name)
        return await self.render()

    def close(self) -> None:
        self.scheduler.cancel()
