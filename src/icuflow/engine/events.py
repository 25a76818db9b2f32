"""Time-ordered event queue.

Events are ordered by time, then priority, then insertion order, so
simultaneous events of equal priority run first-in first-out.
"""

import itertools
from dataclasses import dataclass, field
from heapq import heappop, heappush
from typing import Callable, List, Optional

# Event priorities. LATE events run after every NORMAL event due at the
# same instant (renege timers use this so a grant wins a tie).
NORMAL = 0
LATE = 1


@dataclass(order=True)
class Event:
    """A scheduled callback.

    Attributes:
        time: Simulation time at which the action runs.
        priority: Tie-break between simultaneous events (lower first).
        sequence: Insertion counter, stable FIFO among equal keys.
        action: Zero-argument callable executed when the event fires.
        cancelled: Inert events are discarded when popped.
    """

    time: float
    priority: int
    sequence: int
    action: Callable[[], None] = field(compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        """Mark the event inert. It stays in the heap until popped."""
        self.cancelled = True


class EventQueue:
    """Binary heap of pending events."""

    def __init__(self) -> None:
        self._heap: List[Event] = []
        self._counter = itertools.count()

    def push(
        self, time: float, action: Callable[[], None], priority: int = NORMAL
    ) -> Event:
        """Insert a new event and return it (so it can be cancelled)."""
        event = Event(time, priority, next(self._counter), action)
        heappush(self._heap, event)
        return event

    def _discard_cancelled(self) -> None:
        while self._heap and self._heap[0].cancelled:
            heappop(self._heap)

    def pop(self) -> Event:
        """Remove and return the earliest live event.

        Raises:
            IndexError: If no live events remain.
        """
        self._discard_cancelled()
        if not self._heap:
            raise IndexError("pop from empty EventQueue")
        return heappop(self._heap)

    def peek(self) -> Optional[Event]:
        """Return the earliest live event without removing it."""
        self._discard_cancelled()
        return self._heap[0] if self._heap else None

    def peek_time(self) -> float:
        """Time of the next live event, or infinity when empty."""
        event = self.peek()
        return event.time if event is not None else float("inf")

    def __len__(self) -> int:
        return sum(1 for event in self._heap if not event.cancelled)

    def __bool__(self) -> bool:
        return self.peek() is not None
