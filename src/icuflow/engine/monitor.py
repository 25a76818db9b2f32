"""Per-entity and per-resource monitoring."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Tuple

import pandas as pd

from icuflow.engine.trajectory import Outcome

if TYPE_CHECKING:
    from icuflow.engine.resource import Resource
    from icuflow.engine.trajectory import Entity


@dataclass(frozen=True)
class ArrivalRecord:
    """Outcome of one entity.

    Attributes:
        entity_id: Environment-wide entity id.
        name: Entity name, e.g. "elective12".
        start_time: Arrival time.
        end_time: Time the entity left.
        activity_time: Time spent in timeouts.
        finished: False if the entity balked or reneged.
        outcome: Outcome name (FINISHED, BALKED, RENEGED).
        attributes: Attribute values at departure.
    """
    entity_id: int
    name: str
    start_time: float
    end_time: float
    activity_time: float
    finished: bool
    outcome: str
    attributes: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def waiting_time(self) -> float:
        """Time in system not spent in activities."""
        return self.end_time - self.start_time - self.activity_time


@dataclass(frozen=True)
class ResourceRecord:
    """State of a resource immediately after a change."""
    time: float
    resource: str
    server: int
    queue: int
    capacity: int
    queue_size: float


class Monitor:
    """Collects arrival and resource records for one environment."""

    def __init__(self) -> None:
        self._arrivals: List[ArrivalRecord] = []
        self._resources: List[ResourceRecord] = []

    def record(self, entity: "Entity", outcome: Outcome, time: float) -> ArrivalRecord:
        """Append the record for an entity leaving the system."""
        record = ArrivalRecord(
            entity_id=entity.id,
            name=entity.name,
            start_time=entity.created_at,
            end_time=time,
            activity_time=entity.activity_time,
            finished=outcome is Outcome.FINISHED,
            outcome=outcome.name,
            attributes=dict(entity.attributes),
        )
        self._arrivals.append(record)
        return record

    def log_resource(self, resource: "Resource", time: float) -> None:
        """Append the current state of a resource."""
        self._resources.append(ResourceRecord(
            time=time,
            resource=resource.name,
            server=resource.in_use,
            queue=resource.queue_length,
            capacity=resource.capacity,
            queue_size=float("inf") if resource.queue_size is None else resource.queue_size,
        ))

    def snapshot(self) -> Tuple[ArrivalRecord, ...]:
        """Arrival records produced so far, in departure order."""
        return tuple(self._arrivals)

    def resource_snapshot(self) -> Tuple[ResourceRecord, ...]:
        """Resource state changes so far, in time order."""
        return tuple(self._resources)

    def arrivals_frame(self, attributes: bool = False) -> pd.DataFrame:
        """Arrival records as a DataFrame, one row per entity.

        Args:
            attributes: If True, add one column per entity attribute.
        """
        columns = [
            "entity_id", "name", "start_time", "end_time",
            "activity_time", "finished", "outcome",
        ]
        rows = []
        for rec in self._arrivals:
            row = {col: getattr(rec, col) for col in columns}
            if attributes:
                row.update(rec.attributes)
            rows.append(row)
        df = pd.DataFrame(rows, columns=None if attributes and rows else columns)
        df["waiting_time"] = df["end_time"] - df["start_time"] - df["activity_time"]
        return df

    def resources_frame(self) -> pd.DataFrame:
        """Resource records as a DataFrame."""
        columns = ["time", "resource", "server", "queue", "capacity", "queue_size"]
        return pd.DataFrame(
            [[getattr(rec, col) for col in columns] for rec in self._resources],
            columns=columns,
        )

    def __len__(self) -> int:
        return len(self._arrivals)
