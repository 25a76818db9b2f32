"""
Capacitated resource with a FIFO wait queue.

A resource is a pool of interchangeable units (beds, half-nurse units,
bank counters). Requests may ask for several units at once and are
granted all-or-nothing. Waiting requests are served strictly in arrival
order: a request that does not fit blocks the ones behind it, and a new
arrival never overtakes a non-empty queue.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Deque, Dict, Optional

from icuflow.engine.errors import CapacityExceededRequest, ReleaseError

if TYPE_CHECKING:
    from icuflow.engine.environment import Environment
    from icuflow.engine.trajectory import Entity

logger = logging.getLogger(__name__)


@dataclass
class Request:
    """A pending seize waiting in a resource queue."""
    entity: "Entity"
    units: int
    on_grant: Callable[[], None]


class Resource:
    """
    Named pool of units shared by the entities of one environment.

    Attributes:
        env: Owning environment (clock and monitor).
        name: Resource identifier, e.g. "beds" or "nurses".
        capacity: Total number of units.
        queue_size: Maximum number of waiting requests, None if unbounded.
        in_use: Units currently granted.
    """

    def __init__(
        self,
        env: "Environment",
        name: str,
        capacity: int = 1,
        queue_size: Optional[int] = None,
    ):
        if capacity < 0:
            raise ValueError(f"capacity of '{name}' must be non-negative")
        if queue_size is not None and queue_size < 0:
            raise ValueError(f"queue_size of '{name}' must be non-negative")
        self.env = env
        self.name = name
        self.capacity = capacity
        self.queue_size = queue_size
        self.in_use = 0
        self._waiting: Deque[Request] = deque()
        self._holders: Dict[int, int] = {}

    @property
    def available(self) -> int:
        """Units free right now."""
        return self.capacity - self.in_use

    @property
    def queue_length(self) -> int:
        """Number of requests waiting."""
        return len(self._waiting)

    @property
    def queue_full(self) -> bool:
        """True when a new request would be rejected rather than queued."""
        return self.queue_size is not None and len(self._waiting) >= self.queue_size

    def held_by(self, entity: "Entity") -> int:
        """Units currently held by an entity."""
        return self._holders.get(entity.id, 0)

    def is_waiting(self, entity: "Entity") -> bool:
        """True if the entity has a request in this queue."""
        return any(req.entity is entity for req in self._waiting)

    def request(
        self,
        entity: "Entity",
        units: int,
        on_grant: Callable[[], None],
        on_reject: Callable[[], None],
        wait: bool = True,
    ) -> None:
        """
        Ask for units on behalf of an entity.

        Grants synchronously when the units are free and nobody is
        waiting; otherwise queues the request, or calls on_reject when
        the queue is full or wait is False.

        Args:
            entity: Requesting entity.
            units: Number of units, all granted together.
            on_grant: Continuation run when the units are granted.
            on_reject: Continuation run when the request balks.
            wait: If False, reject instead of queueing.

        Raises:
            CapacityExceededRequest: If units exceeds the total capacity.
        """
        if units > self.capacity:
            raise CapacityExceededRequest(
                self.name, units, self.capacity, entity.name, self.env.now
            )
        if units < 0:
            raise ValueError(f"cannot request {units} unit(s) of '{self.name}'")

        if not self._waiting and self.in_use + units <= self.capacity:
            self._grant(entity, units)
            on_grant()
            return

        if not wait or self.queue_full:
            logger.debug(f"{self.env.now:.3f} | {entity.name} rejected by {self.name}")
            on_reject()
            return

        self._waiting.append(Request(entity, units, on_grant))
        entity.waiting_on = self
        self._log()

    def release(self, entity: "Entity", units: Optional[int] = None) -> int:
        """
        Return units held by an entity and serve the queue.

        Args:
            entity: Releasing entity.
            units: Units to release. None releases everything it holds.

        Returns:
            Number of units released.

        Raises:
            ReleaseError: If the entity holds fewer units than requested.
        """
        held = self.held_by(entity)
        if units is None:
            units = held
        if units > held:
            raise ReleaseError(
                f"{entity.name} released {units} unit(s) of '{self.name}' "
                f"but holds {held} at t={self.env.now}"
            )
        if units == 0:
            return 0

        self.in_use -= units
        if held == units:
            del self._holders[entity.id]
        else:
            self._holders[entity.id] = held - units
        self._log()
        self._serve_queue()
        return units

    def cancel(self, entity: "Entity") -> bool:
        """Withdraw an entity's pending request. Returns True if one existed."""
        for req in self._waiting:
            if req.entity is entity:
                self._waiting.remove(req)
                entity.waiting_on = None
                self._log()
                # The head may have changed; it might fit now.
                self._serve_queue()
                return True
        return False

    def _grant(self, entity: "Entity", units: int) -> None:
        self.in_use += units
        self._holders[entity.id] = self._holders.get(entity.id, 0) + units
        self._log()

    def _serve_queue(self) -> None:
        while self._waiting and self.in_use + self._waiting[0].units <= self.capacity:
            req = self._waiting.popleft()
            req.entity.waiting_on = None
            self._grant(req.entity, req.units)
            req.on_grant()

    def _log(self) -> None:
        self.env.monitor.log_resource(self, self.env.now)

    def __repr__(self) -> str:
        return (
            f"Resource({self.name!r}, in_use={self.in_use}/{self.capacity}, "
            f"queue={len(self._waiting)}/{self.queue_size})"
        )
