"""Arrival sources for generators.

Every source implements ``next_interval(env)`` and returns the time
until the next arrival, or ``STOP`` when it has no more arrivals. Each
generator must own its own source instance.
"""

import math
from datetime import date, timedelta
from typing import Dict, Iterable, Optional

import numpy as np

from icuflow.engine.generator import STOP


class FixedIntervals:
    """Replay a finite sequence of inter-arrival times, then stop."""

    def __init__(self, intervals: Iterable[float]) -> None:
        self.intervals = [float(x) for x in intervals]
        if any(x < 0 for x in self.intervals):
            raise ValueError("Inter-arrival times must be non-negative")
        self._position = 0

    def next_interval(self, env=None):
        if self._position >= len(self.intervals):
            return STOP
        value = self.intervals[self._position]
        self._position += 1
        return value


class ExponentialArrivals:
    """Stationary Poisson arrivals, optionally capped at `limit` entities.

    Attributes:
        mean_iat: Mean inter-arrival time.
        rng: NumPy random generator.
        limit: Maximum number of arrivals (None = unlimited).
    """

    def __init__(
        self, mean_iat: float, rng: np.random.Generator, limit: Optional[int] = None
    ) -> None:
        if mean_iat <= 0:
            raise ValueError("mean_iat must be positive")
        self.mean_iat = mean_iat
        self.rng = rng
        self.limit = limit
        self.produced = 0

    def next_interval(self, env=None):
        if self.limit is not None and self.produced >= self.limit:
            return STOP
        self.produced += 1
        return float(self.rng.exponential(self.mean_iat))


class WeekdayArrivals:
    """Non-stationary arrivals whose rate depends on the day of the week.

    Holds its own calendar position: simulation time 0 is midnight on
    `start_date` and one time unit is one day. Within a day arrivals are
    Poisson with that weekday's mean inter-arrival time; a draw that
    crosses midnight is discarded and sampling restarts at the next day
    (exact for a piecewise-constant rate by memorylessness). Weekdays
    missing from `mean_iat_by_weekday` have no arrivals.

    Attributes:
        mean_iat_by_weekday: {weekday (0=Mon): mean inter-arrival time in days}.
        rng: NumPy random generator (not shared with other sources).
        start_date: Calendar date of simulation time 0.
        horizon: Stop producing arrivals after this time (None = never).
        clock: Time of the last arrival produced.
        current_date: Calendar date of the last arrival produced.
        arrivals: Number of arrivals produced.
    """

    def __init__(
        self,
        mean_iat_by_weekday: Dict[int, float],
        rng: np.random.Generator,
        start_date: date = date(2024, 1, 1),
        horizon: Optional[float] = None,
    ) -> None:
        if any(day not in range(7) for day in mean_iat_by_weekday):
            raise ValueError("Weekdays must be integers 0 (Monday) to 6 (Sunday)")
        if any(mean <= 0 for mean in mean_iat_by_weekday.values()):
            raise ValueError("Mean inter-arrival times must be positive")
        self.mean_iat_by_weekday = dict(mean_iat_by_weekday)
        self.rng = rng
        self.start_date = start_date
        self.horizon = horizon
        self.clock = 0.0
        self.current_date = start_date
        self.arrivals = 0

    def weekday_at(self, t: float) -> int:
        """Weekday (0=Mon) of simulation time t."""
        return (self.start_date + timedelta(days=math.floor(t))).weekday()

    def advance(self, t: float) -> None:
        """Move the calendar to the arrival at time t."""
        self.clock = t
        self.current_date = self.start_date + timedelta(days=math.floor(t))
        self.arrivals += 1

    def next_interval(self, env):
        if not self.mean_iat_by_weekday:
            return STOP

        t = self.clock
        while self.horizon is None or t < self.horizon:
            day = math.floor(t)
            mean = self.mean_iat_by_weekday.get(self.weekday_at(t))
            if mean is None:
                t = day + 1.0
                continue
            candidate = t + float(self.rng.exponential(mean))
            if candidate >= day + 1.0:
                t = day + 1.0
                continue
            if self.horizon is not None and candidate >= self.horizon:
                break
            self.advance(candidate)
            return max(candidate - env.now, 0.0)
        return STOP
