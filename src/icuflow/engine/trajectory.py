"""
Trajectories and the interpreter that drives entities through them.

A trajectory is an immutable sequence of steps. Each entity keeps a
stack of frames (trajectory, cursor); branches, joins and reject paths
push a nested frame and execution resumes after the opening step when
the nested frame runs out. Blocking steps (timeout, a queued seize)
return control to the event loop and the entity is re-entered later at
its saved cursor.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple, Union

from icuflow.engine.errors import InvalidTimeError
from icuflow.engine.events import LATE, Event

if TYPE_CHECKING:
    from icuflow.engine.environment import Environment

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """How an entity left the system."""

    FINISHED = auto()  # Ran off the end of its trajectory
    BALKED = auto()    # Rejected by a full (or no-wait) resource queue
    RENEGED = auto()   # Gave up waiting


# ============== Values ==============

class Value(ABC):
    """A step argument resolved when the step executes."""

    @abstractmethod
    def evaluate(self, env: "Environment", entity: "Entity") -> Any:
        ...


@dataclass(frozen=True)
class Constant(Value):
    """A literal value."""
    value: Any

    def evaluate(self, env: "Environment", entity: "Entity") -> Any:
        return self.value


@dataclass(frozen=True)
class Dynamic(Value):
    """A callable fn(env, entity) evaluated at step-execution time."""
    fn: Callable[["Environment", "Entity"], Any]

    def evaluate(self, env: "Environment", entity: "Entity") -> Any:
        return self.fn(env, entity)


def as_value(value: Union[Value, float, int, bool, None]) -> Value:
    """Wrap a literal as Constant. Callables must be wrapped in Dynamic."""
    if isinstance(value, Value):
        return value
    if callable(value):
        raise TypeError(
            f"callable step argument {value!r} must be wrapped in Dynamic(...)"
        )
    return Constant(value)


# ============== Entities ==============

@dataclass
class Frame:
    """Cursor position within one (possibly nested) trajectory."""
    trajectory: "Trajectory"
    index: int = 0
    is_reject: bool = False


@dataclass
class Entity:
    """
    A simulated actor (patient, bank customer).

    Attributes:
        id: Unique id within the environment (creation order).
        name: Generator name plus per-generator counter, e.g. "emergency3".
        created_at: Simulation time of arrival.
        attributes: Entity-private numeric attributes.
        activity_time: Total time spent in timeouts.
        outcome: Set when the entity balks or reneges.
        awaiting_grant: True between renege_in and the next granted seize.
        patience_expired: The renege timer fired before the entity reached
            a queue; it reneges at its next seize.
    """

    id: int
    name: str
    created_at: float
    attributes: Dict[str, Any] = field(default_factory=dict)
    activity_time: float = 0.0
    outcome: Optional[Outcome] = None
    frames: List[Frame] = field(default_factory=list, repr=False)
    waiting_on: Any = field(default=None, repr=False)
    renege_event: Optional[Event] = field(default=None, repr=False)
    rollback_counts: Dict[int, int] = field(default_factory=dict, repr=False)
    awaiting_grant: bool = field(default=False, repr=False)
    patience_expired: bool = field(default=False, repr=False)
    renege_out: Optional["Trajectory"] = field(default=None, repr=False)
    done: bool = False

    def get_attribute(self, key: str, default: Any = None) -> Any:
        """Read an attribute, or `default` if it has never been set."""
        return self.attributes.get(key, default)


# Status codes returned by Step.execute
_NEXT = "next"          # advance cursor, keep going
_SUSPEND = "suspend"    # advance cursor, yield to event loop
_ENTERED = "entered"    # a nested frame was pushed or cursor moved
_STOP = "stop"          # entity has terminated


# ============== Steps ==============

class Step(ABC):
    """Base class for trajectory steps."""

    @abstractmethod
    def execute(self, env: "Environment", entity: Entity) -> str:
        """Run the step and return a status code for the interpreter."""


@dataclass(frozen=True)
class Seize(Step):
    """Acquire units of a resource, queueing if necessary.

    If the request is rejected (queue full, or wait=False and no free
    units) the reject trajectory runs and the entity then leaves
    unfinished. Without a reject trajectory it leaves at once.
    """
    resource: str
    amount: Value = Constant(1)
    reject: Optional["Trajectory"] = None
    wait: bool = True

    def execute(self, env: "Environment", entity: Entity) -> str:
        if entity.patience_expired:
            _divert(env, entity, entity.renege_out)
            return _STOP

        resource = env.resource(self.resource)
        units = int(self.amount.evaluate(env, entity))
        state = {"pending": True, "granted": False, "rejected": False}

        def on_grant() -> None:
            entity.awaiting_grant = False
            if state["pending"]:
                state["granted"] = True
            else:
                _resume(env, entity)

        def on_reject() -> None:
            state["rejected"] = True

        resource.request(entity, units, on_grant, on_reject, wait=self.wait)
        state["pending"] = False

        if state["granted"]:
            return _NEXT
        if state["rejected"]:
            entity.outcome = Outcome.BALKED
            if self.reject is None or not len(self.reject):
                _terminate(env, entity)
                return _STOP
            entity.frames.append(Frame(self.reject, is_reject=True))
            return _ENTERED
        return _SUSPEND


@dataclass(frozen=True)
class Release(Step):
    """Return units of a resource. amount=None releases all held units."""
    resource: str
    amount: Optional[Value] = None

    def execute(self, env: "Environment", entity: Entity) -> str:
        units = None if self.amount is None else int(self.amount.evaluate(env, entity))
        env.resource(self.resource).release(entity, units)
        return _NEXT


@dataclass(frozen=True)
class Timeout(Step):
    """Suspend the entity for a duration (counted as activity time)."""
    duration: Value

    def execute(self, env: "Environment", entity: Entity) -> str:
        delay = float(self.duration.evaluate(env, entity))
        if delay < 0:
            raise InvalidTimeError(
                env.now + delay, env.now, f"negative timeout for {entity.name}"
            )
        entity.activity_time += delay
        env.schedule(env.now + delay, lambda: _resume(env, entity))
        return _SUSPEND


@dataclass(frozen=True)
class SetAttribute(Step):
    """Store an attribute value evaluated at execution time."""
    key: str
    value: Value

    def execute(self, env: "Environment", entity: Entity) -> str:
        entity.attributes[self.key] = self.value.evaluate(env, entity)
        return _NEXT


@dataclass(frozen=True)
class Branch(Step):
    """Run `then` if the condition holds, else `otherwise`, then continue."""
    condition: Value
    then: "Trajectory"
    otherwise: Optional["Trajectory"] = None

    def execute(self, env: "Environment", entity: Entity) -> str:
        arm = self.then if self.condition.evaluate(env, entity) else self.otherwise
        if arm is None or not len(arm):
            return _NEXT
        entity.frames.append(Frame(arm))
        return _ENTERED


@dataclass(frozen=True)
class Join(Step):
    """Run a shared sub-trajectory inline, attributes carried through."""
    trajectory: "Trajectory"

    def execute(self, env: "Environment", entity: Entity) -> str:
        if not len(self.trajectory):
            return _NEXT
        entity.frames.append(Frame(self.trajectory))
        return _ENTERED


@dataclass(frozen=True)
class Rollback(Step):
    """Move the cursor back `amount` steps, leaving nested frames as needed.

    The step that opened a nested frame counts as one step. With `times`
    set, the rollback is skipped once it has fired that many times for
    the same entity.
    """
    amount: int
    times: Optional[int] = None

    def execute(self, env: "Environment", entity: Entity) -> str:
        key = id(self)
        count = entity.rollback_counts.get(key, 0)
        if self.times is not None and count >= self.times:
            return _NEXT
        entity.rollback_counts[key] = count + 1

        start_depth = len(entity.frames)
        position = start = entity.frames[-1].index
        for _ in range(self.amount):
            if position > 0:
                position -= 1
            elif len(entity.frames) > 1:
                left = entity.frames.pop()
                if left.is_reject:
                    entity.outcome = None
                position = entity.frames[-1].index
            else:
                break
        if len(entity.frames) == start_depth and position == start:
            # Already at the very first step: nothing to go back to
            return _NEXT
        entity.frames[-1].index = position
        return _ENTERED


@dataclass(frozen=True)
class RenegeIn(Step):
    """Arm a patience timer covering the wait for the next seize.

    On expiry a queued entity leaves via `out`. If the timer fires before
    the entity has reached that seize, it leaves via `out` on arrival
    there instead of queueing.
    """
    duration: Value
    out: Optional["Trajectory"] = None

    def execute(self, env: "Environment", entity: Entity) -> str:
        delay = float(self.duration.evaluate(env, entity))
        if entity.renege_event is not None:
            entity.renege_event.cancel()
        entity.awaiting_grant = True
        entity.patience_expired = False
        entity.renege_event = env.schedule(
            env.now + delay, lambda: _renege(env, entity, self.out), priority=LATE
        )
        return _NEXT


@dataclass(frozen=True)
class RenegeAbort(Step):
    """Disarm the patience timer. No-op if none is armed."""

    def execute(self, env: "Environment", entity: Entity) -> str:
        if entity.renege_event is not None:
            entity.renege_event.cancel()
            entity.renege_event = None
        entity.awaiting_grant = False
        entity.patience_expired = False
        return _NEXT


# ============== Trajectory builder ==============

class Trajectory:
    """
    Immutable, ordered sequence of steps.

    Builder methods return a new trajectory, so a shared trajectory can
    be extended without affecting other users:

        stay = Trajectory("stay").timeout(2.0).release("beds")
        emergency = Trajectory("emergency").seize("beds").join(stay)
    """

    def __init__(self, name: str = "", steps: Tuple[Step, ...] = ()):
        self.name = name
        self.steps = tuple(steps)

    def _add(self, step: Step) -> "Trajectory":
        return Trajectory(self.name, self.steps + (step,))

    def seize(
        self,
        resource: str,
        amount: Union[Value, int] = 1,
        reject: Optional["Trajectory"] = None,
        wait: bool = True,
    ) -> "Trajectory":
        return self._add(Seize(resource, as_value(amount), reject, wait))

    def release(
        self, resource: str, amount: Union[Value, int, None] = None
    ) -> "Trajectory":
        return self._add(Release(resource, None if amount is None else as_value(amount)))

    def timeout(self, duration: Union[Value, float]) -> "Trajectory":
        return self._add(Timeout(as_value(duration)))

    def set_attribute(self, key: str, value: Union[Value, float]) -> "Trajectory":
        return self._add(SetAttribute(key, as_value(value)))

    def branch(
        self,
        condition: Union[Value, bool],
        then: "Trajectory",
        otherwise: Optional["Trajectory"] = None,
    ) -> "Trajectory":
        return self._add(Branch(as_value(condition), then, otherwise))

    def rollback(self, amount: int, times: Optional[int] = None) -> "Trajectory":
        if amount < 1:
            raise ValueError("rollback amount must be at least 1")
        return self._add(Rollback(amount, times))

    def renege_in(
        self, duration: Union[Value, float], out: Optional["Trajectory"] = None
    ) -> "Trajectory":
        return self._add(RenegeIn(as_value(duration), out))

    def renege_abort(self) -> "Trajectory":
        return self._add(RenegeAbort())

    def join(self, other: "Trajectory") -> "Trajectory":
        return self._add(Join(other))

    def __len__(self) -> int:
        return len(self.steps)

    def __getitem__(self, index: int) -> Step:
        return self.steps[index]

    def __iter__(self):
        return iter(self.steps)

    def __repr__(self) -> str:
        return f"Trajectory({self.name!r}, {len(self.steps)} steps)"


# ============== Interpreter ==============

def start(env: "Environment", entity: Entity, trajectory: Trajectory) -> None:
    """Begin executing a freshly created entity."""
    entity.frames = [Frame(trajectory)]
    _resume(env, entity)


def _resume(env: "Environment", entity: Entity) -> None:
    """Run an entity from its saved cursor until it blocks or ends."""
    while not entity.done:
        if not entity.frames:
            _terminate(env, entity)
            return

        frame = entity.frames[-1]
        if frame.index >= len(frame.trajectory):
            entity.frames.pop()
            if frame.is_reject:
                _terminate(env, entity)
                return
            if entity.frames:
                entity.frames[-1].index += 1
            continue

        status = frame.trajectory[frame.index].execute(env, entity)
        if status == _NEXT:
            frame.index += 1
        elif status == _SUSPEND:
            frame.index += 1
            return
        elif status == _STOP:
            return


def _renege(env: "Environment", entity: Entity, out: Optional[Trajectory]) -> None:
    entity.renege_event = None
    if entity.done:
        return

    if entity.waiting_on is not None:
        logger.debug(f"{env.now:.3f} | {entity.name} reneged from {entity.waiting_on.name}")
        entity.waiting_on.cancel(entity)
        _divert(env, entity, out)
    elif entity.awaiting_grant:
        logger.debug(f"{env.now:.3f} | {entity.name} patience expired before its seize")
        entity.patience_expired = True
        entity.renege_out = out
    else:
        logger.debug(f"{env.now:.3f} | {entity.name} patience expired after its seize")


def _divert(env: "Environment", entity: Entity, out: Optional[Trajectory]) -> None:
    """Send a reneging entity down its out path; it ends RENEGED."""
    entity.awaiting_grant = False
    entity.patience_expired = False
    entity.renege_out = None
    entity.outcome = Outcome.RENEGED
    entity.frames = [Frame(out)] if out is not None else []
    _resume(env, entity)


def _terminate(env: "Environment", entity: Entity) -> None:
    """Release leftovers, disarm timers and emit the arrival record."""
    entity.done = True
    entity.frames = []
    if entity.renege_event is not None:
        entity.renege_event.cancel()
        entity.renege_event = None
    if entity.waiting_on is not None:
        entity.waiting_on.cancel(entity)
    for resource in env.resources.values():
        if resource.held_by(entity):
            logger.debug(f"{env.now:.3f} | {entity.name} left holding {resource.name}")
            resource.release(entity)
    env.finish(entity, entity.outcome or Outcome.FINISHED)
