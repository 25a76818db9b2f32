"""Engine error types.

Configuration and programmer errors abort the run. Balking and reneging
are expected outcomes and are recorded by the monitor instead of raised.
"""

from typing import Optional


class SimulationError(Exception):
    """Base class for all engine errors."""


class InvalidTimeError(SimulationError):
    """An event was scheduled before the current simulation time."""

    def __init__(self, time: float, now: float, context: str = "") -> None:
        self.time = time
        self.now = now
        message = f"cannot schedule at t={time} (now={now})"
        if context:
            message = f"{message}: {context}"
        super().__init__(message)


class CapacityExceededRequest(SimulationError):
    """A seize asked for more units than the resource will ever have."""

    def __init__(
        self,
        resource: str,
        units: int,
        capacity: int,
        entity: Optional[str] = None,
        time: Optional[float] = None,
    ) -> None:
        self.resource = resource
        self.units = units
        self.capacity = capacity
        self.entity = entity
        self.time = time
        super().__init__(
            f"{entity or 'request'} asked for {units} unit(s) of "
            f"'{resource}' (capacity {capacity}) at t={time}"
        )


class ReleaseError(SimulationError):
    """An entity released units it does not hold."""


class GeneratorExhausted(SimulationError):
    """Raised by an arrival source that has no further arrivals."""
