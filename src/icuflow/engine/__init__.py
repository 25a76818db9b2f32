"""Discrete-event engine: event queue, resources, trajectories, monitor."""

from icuflow.engine.environment import Environment
from icuflow.engine.errors import (
    CapacityExceededRequest,
    GeneratorExhausted,
    InvalidTimeError,
    ReleaseError,
    SimulationError,
)
from icuflow.engine.generator import STOP, Generator
from icuflow.engine.monitor import ArrivalRecord, Monitor, ResourceRecord
from icuflow.engine.resource import Resource
from icuflow.engine.trajectory import Constant, Dynamic, Entity, Outcome, Trajectory

__all__ = [
    "Environment",
    "Resource",
    "Generator",
    "STOP",
    "Trajectory",
    "Constant",
    "Dynamic",
    "Entity",
    "Outcome",
    "Monitor",
    "ArrivalRecord",
    "ResourceRecord",
    "SimulationError",
    "InvalidTimeError",
    "CapacityExceededRequest",
    "ReleaseError",
    "GeneratorExhausted",
]
