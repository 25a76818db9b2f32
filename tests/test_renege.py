"""Tests for reneging: patience timers, abort, and the grant/renege race."""

from icuflow.engine import Trajectory


def _impatient(patience: float, service: float, out: Trajectory = None) -> Trajectory:
    return (
        Trajectory("impatient")
        .renege_in(patience, out=out)
        .seize("desk")
        .renege_abort()
        .timeout(service)
        .release("desk")
    )


def _holder(duration: float) -> Trajectory:
    return Trajectory("holder").seize("desk").timeout(duration).release("desk")


class TestRenege:
    """Leaving the queue when patience runs out."""

    def test_reneges_from_queue(self, env):
        desk = env.add_resource("desk", capacity=1)
        env.spawn("holder", _holder(10.0))
        env.schedule(1.0, lambda: env.spawn("customer", _impatient(2.0, 1.0)))

        env.run(until=5.0)

        customer, = env.monitor.snapshot()
        assert customer.outcome == "RENEGED"
        assert not customer.finished
        assert customer.end_time == 3.0
        assert customer.waiting_time == 2.0
        assert desk.queue_length == 0

    def test_out_trajectory_runs(self, env):
        """The out path executes before the entity is recorded."""
        env.add_resource("desk", capacity=1)
        env.spawn("holder", _holder(10.0))
        out = Trajectory("out").set_attribute("left", 1).timeout(1.0)
        env.schedule(1.0, lambda: env.spawn("customer", _impatient(2.0, 1.0, out)))

        env.run(until=6.0)

        customer, = env.monitor.snapshot()
        assert customer.outcome == "RENEGED"
        assert customer.attributes["left"] == 1
        assert customer.end_time == 4.0
        assert customer.activity_time == 1.0

    def test_abort_after_grant_keeps_patient(self, env):
        """Served before patience runs out: the timer is disarmed."""
        env.add_resource("desk", capacity=1)
        env.spawn("holder", _holder(2.0))
        env.spawn("customer", _impatient(5.0, 10.0))

        env.run()

        customer = next(r for r in env.monitor.snapshot() if r.name == "customer")
        assert customer.finished
        assert customer.end_time == 12.0

    def test_timer_outside_queue_is_inert(self, env):
        """Without an abort, a timer firing during service does nothing."""
        env.add_resource("desk", capacity=1)
        env.spawn("holder", _holder(2.0))
        traj = Trajectory().renege_in(3.0).seize("desk").timeout(10.0).release("desk")
        env.spawn("customer", traj)

        env.run()

        customer = next(r for r in env.monitor.snapshot() if r.name == "customer")
        assert customer.finished
        assert customer.end_time == 12.0

    def test_abort_without_timer_is_noop(self, env):
        env.spawn("p", Trajectory().renege_abort().timeout(1.0))
        env.run()

        record, = env.monitor.snapshot()
        assert record.finished

    def test_renege_lets_next_request_fit(self, env):
        """Removing a blocking multi-unit head serves the request behind it."""
        env.add_resource("nurses", capacity=2)
        env.spawn("a", Trajectory().seize("nurses", 1).timeout(10.0).release("nurses"))
        env.spawn(
            "b",
            Trajectory().renege_in(1.0).seize("nurses", 2).renege_abort().timeout(1.0).release("nurses"),
        )
        env.schedule(0.5, lambda: env.spawn("c", Trajectory().seize("nurses").timeout(1.0).release("nurses")))

        env.run()

        records = {r.name: r for r in env.monitor.snapshot()}
        assert records["b"].outcome == "RENEGED"
        assert records["c"].end_time == 2.0
        assert records["c"].waiting_time == 0.5

    def test_rearming_replaces_timer(self, env):
        """A second renege_in replaces the first timer."""
        env.add_resource("desk", capacity=1)
        env.spawn("holder", _holder(10.0))
        traj = Trajectory().renege_in(1.0).renege_in(4.0).seize("desk").release("desk")
        env.spawn("customer", traj)

        env.run(until=20.0)

        customer = next(r for r in env.monitor.snapshot() if r.name == "customer")
        assert customer.outcome == "RENEGED"
        assert customer.end_time == 4.0


class TestPatienceBeforeQueue:
    """Patience that runs out before the entity reaches its seize."""

    def _late_arrival(self, out=None):
        return (
            Trajectory("late")
            .renege_in(1.0, out=out)
            .timeout(2.0)
            .seize("desk")
            .renege_abort()
            .timeout(1.0)
            .release("desk")
        )

    def test_reneges_on_reaching_seize(self, env):
        """Timer fires at t=1 during the timeout; the entity never queues."""
        desk = env.add_resource("desk", capacity=1)
        env.spawn("holder", _holder(100.0))
        env.spawn("customer", self._late_arrival())

        env.run(until=50.0)

        customer = next(r for r in env.monitor.snapshot() if r.name == "customer")
        assert customer.outcome == "RENEGED"
        assert customer.end_time == 2.0
        assert customer.activity_time == 2.0
        assert desk.queue_length == 0

    def test_reneges_even_if_resource_free(self, env):
        env.add_resource("desk", capacity=1)
        env.spawn("customer", self._late_arrival())

        env.run()

        record, = env.monitor.snapshot()
        assert record.outcome == "RENEGED"
        assert env.resource("desk").in_use == 0

    def test_out_path_runs_at_seize(self, env):
        env.add_resource("desk", capacity=1)
        env.spawn("holder", _holder(100.0))
        out = Trajectory("out").set_attribute("left", 1).timeout(0.5)
        env.spawn("customer", self._late_arrival(out))

        env.run(until=50.0)

        customer = next(r for r in env.monitor.snapshot() if r.name == "customer")
        assert customer.outcome == "RENEGED"
        assert customer.attributes["left"] == 1
        assert customer.end_time == 2.5

    def test_abort_before_seize_clears_expiry(self, env):
        """Disarming the timer means the later seize waits normally."""
        env.add_resource("desk", capacity=1)
        env.spawn("holder", _holder(3.0))
        traj = (
            Trajectory()
            .renege_in(1.0)
            .timeout(2.0)
            .renege_abort()
            .seize("desk")
            .timeout(1.0)
            .release("desk")
        )
        env.spawn("customer", traj)

        env.run()

        customer = next(r for r in env.monitor.snapshot() if r.name == "customer")
        assert customer.finished
        assert customer.end_time == 4.0


class TestGrantRenegeRace:
    """A grant and a renege timer due at the same instant."""

    def test_grant_wins_tie(self, env):
        """The timer is scheduled before the release, yet the entity is served."""
        env.add_resource("desk", capacity=1)
        # customer's timer (t=3) is queued before holder's release event (t=3)
        customer = (
            Trajectory()
            .renege_in(3.0)
            .timeout(1.0)
            .seize("desk")
            .renege_abort()
            .timeout(1.0)
            .release("desk")
        )
        env.spawn("customer", customer)
        env.spawn("holder", _holder(3.0))

        env.run()

        record = next(r for r in env.monitor.snapshot() if r.name == "customer")
        assert record.finished
        assert record.outcome == "FINISHED"
        assert record.end_time == 4.0

    def test_grant_wins_tie_repeatedly(self):
        """The outcome does not depend on run-to-run state."""
        from icuflow.engine import Environment

        outcomes = set()
        for _ in range(5):
            env = Environment()
            env.add_resource("desk", capacity=1)
            env.spawn("holder", _holder(3.0))
            env.spawn("customer", _impatient(3.0, 1.0))
            env.run()
            outcomes.add(next(r.outcome for r in env.monitor.snapshot() if r.name == "customer"))

        assert outcomes == {"FINISHED"}
