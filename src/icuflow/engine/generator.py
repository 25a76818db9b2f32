"""Time-driven entity generators."""

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Protocol, Union

from icuflow.engine.errors import GeneratorExhausted
from icuflow.engine.events import Event

if TYPE_CHECKING:
    from icuflow.engine.environment import Environment
    from icuflow.engine.trajectory import Trajectory

logger = logging.getLogger(__name__)


class _Stop:
    """Sentinel returned by an arrival source with no further arrivals."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "STOP"


STOP = _Stop()


class ArrivalSource(Protocol):
    """Anything that yields the time until the next arrival."""

    def next_interval(self, env: "Environment") -> Union[float, _Stop]:
        ...


class Generator:
    """
    Creates entities at times given by an arrival source.

    The source is asked for the next interval after every arrival. A STOP
    return (or GeneratorExhausted) ends the generator for the rest of
    the run, as does halt().

    Attributes:
        name: Prefix for entity names.
        trajectory: Trajectory every new entity follows.
        source: Inter-arrival policy owned by this generator.
        attributes: Optional fn(env) -> dict of initial attributes.
        count: Entities created so far.
        active: False once stopped.
    """

    def __init__(
        self,
        env: "Environment",
        name: str,
        trajectory: "Trajectory",
        source: ArrivalSource,
        attributes: Optional[Callable[["Environment"], Dict[str, Any]]] = None,
    ):
        self.env = env
        self.name = name
        self.trajectory = trajectory
        self.source = source
        self.attributes = attributes
        self.count = 0
        self.active = True
        self._pending: Optional[Event] = None

    def start(self) -> None:
        """Schedule the first arrival."""
        self._schedule_next()

    def halt(self) -> None:
        """Stop creating entities and drop the pending arrival."""
        if self.active:
            logger.debug(f"{self.env.now:.3f} | generator {self.name} stopped after {self.count}")
        self.active = False
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _schedule_next(self) -> None:
        try:
            interval = self.source.next_interval(self.env)
        except GeneratorExhausted:
            interval = STOP
        if interval is STOP:
            self.halt()
            return
        self._pending = self.env.schedule(self.env.now + float(interval), self._arrive)

    def _arrive(self) -> None:
        self._pending = None
        if not self.active:
            return
        name = f"{self.name}{self.count}"
        self.count += 1
        initial = self.attributes(self.env) if self.attributes is not None else {}
        self._schedule_next()
        self.env.spawn(name, self.trajectory, initial)
