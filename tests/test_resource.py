"""Tests for capacitated resources: granting, queueing, balking."""

import pytest

from icuflow.core.arrivals import FixedIntervals
from icuflow.engine import (
    CapacityExceededRequest,
    Entity,
    ReleaseError,
    Trajectory,
)


def _hold(resource: str, duration: float, units: int = 1) -> Trajectory:
    return Trajectory("hold").seize(resource, units).timeout(duration).release(resource, units)


class TestGrant:
    """Immediate grants and FIFO queueing."""

    def test_immediate_grant_when_free(self, env):
        """A free resource grants at once and the trajectory continues."""
        env.add_resource("bed", capacity=1)
        env.spawn("p", _hold("bed", 4.0))

        assert env.resource("bed").in_use == 1
        env.run()

        record, = env.monitor.snapshot()
        assert record.end_time == 4.0
        assert record.waiting_time == 0.0
        assert env.resource("bed").in_use == 0

    def test_queue_is_fifo(self, env):
        """Waiting entities are served in arrival order."""
        env.add_resource("bed", capacity=1)
        env.add_generator("p", _hold("bed", 1.0), FixedIntervals([0, 0, 0]))

        env.run()

        records = env.monitor.snapshot()
        assert [r.name for r in records] == ["p0", "p1", "p2"]
        assert [r.end_time for r in records] == [1.0, 2.0, 3.0]
        assert [r.waiting_time for r in records] == [0.0, 1.0, 2.0]

    def test_multi_unit_request_blocks_queue(self, env):
        """No overtaking: a 1-unit request waits behind a 2-unit head."""
        env.add_resource("nurses", capacity=2)
        env.spawn("a", _hold("nurses", 10.0, units=1))
        env.schedule(1.0, lambda: env.spawn("b", _hold("nurses", 5.0, units=2)))
        env.schedule(2.0, lambda: env.spawn("c", _hold("nurses", 1.0, units=1)))

        env.run()

        ends = {r.name: r.end_time for r in env.monitor.snapshot()}
        assert ends == {"a": 10.0, "b": 15.0, "c": 16.0}

    def test_release_grants_as_many_as_fit(self, env):
        """One release can serve several queued requests."""
        env.add_resource("nurses", capacity=2)
        env.spawn("big", _hold("nurses", 3.0, units=2))
        env.spawn("x", _hold("nurses", 1.0))
        env.spawn("y", _hold("nurses", 1.0))

        env.run()

        ends = {r.name: r.end_time for r in env.monitor.snapshot()}
        assert ends == {"big": 3.0, "x": 4.0, "y": 4.0}

    def test_partial_release(self, env):
        """Releasing part of a holding frees only those units."""
        env.add_resource("nurses", capacity=2)
        traj = (
            Trajectory()
            .seize("nurses", 2)
            .timeout(1.0)
            .release("nurses", 1)
            .timeout(1.0)
            .release("nurses")
        )
        env.spawn("p", traj)

        env.run(until=1.5)
        assert env.resource("nurses").in_use == 1

        env.run()
        assert env.resource("nurses").in_use == 0


class TestBalking:
    """Rejection when the wait queue is full."""

    def test_single_server_zero_queue_balks(self, env):
        """Second entity is rejected while the first holds the only unit."""
        env.add_resource("server", capacity=1, queue_size=0)
        env.add_generator("e", _hold("server", 5.0), FixedIntervals([0.0, 1.0]))

        env.run()

        first, second = sorted(env.monitor.snapshot(), key=lambda r: r.entity_id)
        assert first.finished
        assert first.end_time == 5.0
        assert not second.finished
        assert second.outcome == "BALKED"
        assert second.end_time == 1.0
        assert second.activity_time == 0.0

    def test_balk_when_queue_full(self, env):
        """queue_size bounds the number of waiting requests."""
        env.add_resource("bed", capacity=1, queue_size=1)
        env.add_generator("p", _hold("bed", 2.0), FixedIntervals([0, 0, 0]))

        env.run()

        outcomes = {r.name: r.outcome for r in env.monitor.snapshot()}
        assert outcomes == {"p0": "FINISHED", "p1": "FINISHED", "p2": "BALKED"}

    def test_no_wait_seize_rejects_when_busy(self, env):
        """wait=False balks even when the queue has room."""
        env.add_resource("bed", capacity=1)
        env.spawn("holder", _hold("bed", 5.0))
        env.spawn("elective", Trajectory().seize("bed", wait=False).timeout(1.0).release("bed"))

        env.run()

        outcomes = {r.name: r.outcome for r in env.monitor.snapshot()}
        assert outcomes["elective"] == "BALKED"

    def test_reject_trajectory_runs_before_leaving(self, env):
        """The reject path executes, then the entity leaves unfinished."""
        env.add_resource("bed", capacity=1, queue_size=0)
        env.spawn("holder", _hold("bed", 5.0))
        env.spawn(
            "late",
            Trajectory().seize("bed", reject=Trajectory().set_attribute("transferred", 1).timeout(0.5)),
        )

        env.run()

        late = next(r for r in env.monitor.snapshot() if r.name == "late")
        assert late.outcome == "BALKED"
        assert late.attributes["transferred"] == 1
        assert late.end_time == 0.5


class TestErrors:
    """Configuration errors surface with context."""

    def test_request_above_capacity(self, env):
        """Asking for more units than exist is fatal."""
        env.add_resource("nurses", capacity=2)

        with pytest.raises(CapacityExceededRequest) as excinfo:
            env.spawn("p7", Trajectory().seize("nurses", 3))

        assert excinfo.value.resource == "nurses"
        assert excinfo.value.entity == "p7"
        assert excinfo.value.time == 0.0
        assert "nurses" in str(excinfo.value)

    def test_release_more_than_held(self, env):
        """Releasing units not held is fatal."""
        env.add_resource("bed", capacity=2)

        with pytest.raises(ReleaseError, match="holds 1"):
            env.spawn("p", Trajectory().seize("bed", 1).release("bed", 2))

    def test_invalid_construction(self, env):
        with pytest.raises(ValueError):
            env.add_resource("bad", capacity=-1)
        with pytest.raises(ValueError):
            env.add_resource("bad2", capacity=1, queue_size=-1)


class TestDirectRequests:
    """Resource API used without trajectories."""

    def test_request_release_cycle(self, env):
        bed = env.add_resource("bed", capacity=1, queue_size=1)
        a = Entity(id=0, name="a", created_at=0.0)
        b = Entity(id=1, name="b", created_at=0.0)
        c = Entity(id=2, name="c", created_at=0.0)
        log = []

        bed.request(a, 1, lambda: log.append("a granted"), lambda: log.append("a rejected"))
        bed.request(b, 1, lambda: log.append("b granted"), lambda: log.append("b rejected"))
        bed.request(c, 1, lambda: log.append("c granted"), lambda: log.append("c rejected"))

        assert log == ["a granted", "c rejected"]
        assert bed.queue_length == 1
        assert bed.is_waiting(b)

        bed.release(a)

        assert log[-1] == "b granted"
        assert bed.held_by(b) == 1
        assert bed.queue_length == 0

    def test_cancel_withdraws_request(self, env):
        bed = env.add_resource("bed", capacity=1)
        a = Entity(id=0, name="a", created_at=0.0)
        b = Entity(id=1, name="b", created_at=0.0)
        bed.request(a, 1, lambda: None, lambda: None)
        bed.request(b, 1, lambda: None, lambda: None)

        assert bed.cancel(b) is True
        assert bed.cancel(b) is False
        assert bed.queue_length == 0
