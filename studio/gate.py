"""
Render admission: change suppression and single-flight.

Both are the concurrency-safety mechanism of the orchestration loop. Event
handlers never run concurrently, but a render suspends while its request is
on the wire, and other events (edits, a force click, a drop) are processed in
the meantime.
"""

from __future__ import annotations



def should_render(current: str, last_rendered: str, force: bool = False) -> bool:
    """True when a render is warranted: forced, or the document changed."""
    return force or current != last_rendered


class SingleFlightGuard:
    """Allows at most one render request in flight.

    A non-forced trigger arriving while a request is in flight is dropped. A
    forced trigger is deferred instead: the guard remembers it and the owner
    runs it once the in-flight request has exited, so requests never overlap.
    """

    def __init__(self) -> None:
        self.in_flight = False
        self._deferred_force = False

    def try_enter(self, force: bool = False) -> bool:
        """Claim the guard. Returns False if the caller must abandon this trigger."""
        if self.in_flight:
            if force:
                self._deferred_force = True
            return False
        self.in_flight = True
        return True

    def exit(self) -> None:
        """Release the guard. Call exactly once per successful ``try_enter``."""
        self.in_flight = False

    def take_deferred(self) -> bool:
        """Consume a forced render deferred while the guard was held."""
        deferred, self._deferred_force = self._deferred_force, False
        return deferred

    @property
    def has_deferred(self) -> bool:
        return self._deferred_force
