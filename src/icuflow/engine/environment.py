"""
Simulation environment.

Owns the clock, the event queue, the resources, the generators and the
monitor of one run. Independent runs use independent environments and
share nothing.
"""

import logging
import math
from typing import Any, Callable, Dict, Optional

import pandas as pd

from icuflow.engine.errors import InvalidTimeError
from icuflow.engine.events import NORMAL, Event, EventQueue
from icuflow.engine.generator import ArrivalSource, Generator
from icuflow.engine.monitor import Monitor
from icuflow.engine.resource import Resource
from icuflow.engine.trajectory import Entity, Outcome, Trajectory, start

logger = logging.getLogger(__name__)


class Environment:
    """
    Event loop plus the model components attached to it.

    Example:
        env = Environment()
        env.add_resource("beds", capacity=2)
        env.add_generator("patient", trajectory, FixedIntervals([1, 1, 1]))
        env.run(until=100)
        df = env.get_arrivals()
    """

    def __init__(self) -> None:
        self._now = 0.0
        self._queue = EventQueue()
        self.resources: Dict[str, Resource] = {}
        self.generators: Dict[str, Generator] = {}
        self.monitor = Monitor()
        self.active: Dict[int, Entity] = {}
        self._next_id = 0

    @property
    def now(self) -> float:
        """Current simulation time."""
        return self._now

    # ---------- scheduling ----------

    def schedule(
        self, time: float, action: Callable[[], None], priority: int = NORMAL
    ) -> Event:
        """Schedule an action at an absolute time.

        Raises:
            InvalidTimeError: If time is earlier than now.
        """
        if time < self._now or math.isnan(time):
            raise InvalidTimeError(time, self._now)
        return self._queue.push(time, action, priority)

    def peek(self) -> float:
        """Time of the next pending event, or infinity."""
        return self._queue.peek_time()

    def step(self) -> None:
        """Process exactly one event.

        Raises:
            IndexError: If nothing is scheduled.
        """
        event = self._queue.pop()
        self._now = event.time
        event.action()

    def run(self, until: Optional[float] = None) -> "Environment":
        """Process events until the queue empties or `until` is reached.

        Events due after `until` stay pending, so the run can be resumed
        with a later horizon.
        """
        if until is not None and until < self._now:
            raise InvalidTimeError(until, self._now, "run horizon is in the past")

        while self._queue:
            if until is not None and self._queue.peek_time() > until:
                break
            self.step()

        if until is not None and math.isfinite(until):
            self._now = until
        return self

    # ---------- components ----------

    def add_resource(
        self, name: str, capacity: int = 1, queue_size: Optional[int] = None
    ) -> Resource:
        """Create a named resource."""
        if name in self.resources:
            raise ValueError(f"resource '{name}' already exists")
        resource = Resource(self, name, capacity, queue_size)
        self.resources[name] = resource
        self.monitor.log_resource(resource, self._now)
        return resource

    def resource(self, name: str) -> Resource:
        """Look up a resource by name."""
        try:
            return self.resources[name]
        except KeyError:
            raise KeyError(f"unknown resource '{name}'") from None

    def add_generator(
        self,
        name: str,
        trajectory: Trajectory,
        source: ArrivalSource,
        attributes: Optional[Callable[["Environment"], Dict[str, Any]]] = None,
    ) -> Generator:
        """Attach a generator; its first arrival is scheduled immediately."""
        if name in self.generators:
            raise ValueError(f"generator '{name}' already exists")
        generator = Generator(self, name, trajectory, source, attributes)
        self.generators[name] = generator
        generator.start()
        return generator

    def halt_generator(self, name: str) -> None:
        """Stop a generator for the remainder of the run."""
        self.generators[name].halt()

    # ---------- entities ----------

    def spawn(
        self, name: str, trajectory: Trajectory, attributes: Optional[Dict[str, Any]] = None
    ) -> Entity:
        """Create an entity now and start it down a trajectory."""
        entity = Entity(
            id=self._next_id,
            name=name,
            created_at=self._now,
            attributes=dict(attributes or {}),
        )
        self._next_id += 1
        self.active[entity.id] = entity
        logger.debug(f"{self._now:.3f} | arrival {name}")
        start(self, entity, trajectory)
        return entity

    def finish(self, entity: Entity, outcome: Outcome) -> None:
        """Called by the interpreter when an entity leaves the system."""
        self.active.pop(entity.id, None)
        self.monitor.record(entity, outcome, self._now)
        if outcome is not Outcome.FINISHED:
            logger.debug(f"{self._now:.3f} | {entity.name} left: {outcome.name}")

    # ---------- results ----------

    def get_arrivals(self, attributes: bool = False) -> pd.DataFrame:
        """Arrival records as a DataFrame."""
        return self.monitor.arrivals_frame(attributes=attributes)

    def get_resources(self) -> pd.DataFrame:
        """Resource state log as a DataFrame."""
        return self.monitor.resources_frame()

    def __repr__(self) -> str:
        return f"Environment(now={self._now}, pending={len(self._queue)})"
