"""Scenario configuration dataclasses."""

import dataclasses
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Optional

import numpy as np
import pandas as pd

from icuflow.core.entities import (
    ACUITY_DAY_KEYS, AcuityLevel, AdmissionType, DEFAULT_NURSE_UNITS,
)
from icuflow.core.history import acuity_day_samples, weekday_mean_iat


def _default_emergency_iat() -> Dict[int, float]:
    # Two emergencies a day, every day
    return {day: 0.5 for day in range(7)}


def _default_elective_iat() -> Dict[int, float]:
    # One elective a day, Monday to Friday only
    return {day: 1.0 for day in range(5)}


def _default_max_acuity_days() -> Dict[AdmissionType, Dict[AcuityLevel, int]]:
    return {
        AdmissionType.EMERGENCY: {
            AcuityLevel.L3: 5, AcuityLevel.L2: 4, AcuityLevel.L1: 3, AcuityLevel.L0: 1,
        },
        AdmissionType.ELECTIVE: {
            AcuityLevel.L3: 1, AcuityLevel.L2: 3, AcuityLevel.L1: 2, AcuityLevel.L0: 1,
        },
    }


@dataclass
class ICUScenario:
    """Configuration for an ICU capacity-planning run.

    All times are in days. Simulation time 0 is midnight on start_date.

    Attributes:
        run_length: Simulation horizon in days.
        warm_up: Warm-up period; arrivals before it are excluded from KPIs.
        start_date: Calendar date of time 0 (drives weekday arrival rates).
        n_beds: Number of ICU beds.
        n_nurse_units: Nursing capacity in half-nurse units (2 per nurse).
        bed_queue_size: Emergencies that may wait for a bed (None = unbounded).
            Further emergencies balk (are transferred elsewhere).
        emergency_mean_iat: {weekday: mean days between emergency arrivals}.
        elective_mean_iat: {weekday: mean days between elective arrivals}.
        emergency_patience: Mean days an emergency waits for a bed before
            reneging (exponentially distributed).
        elective_delay: Delay before an elective tries for a bed, so that
            emergencies arriving at the same instant are served first.
        retry_interval: Days until a cancelled elective is re-booked.
        max_retries: Re-bookings allowed per elective (None = unlimited).
        max_acuity_days: Per admission type, the maximum days at each
            level; days are drawn uniformly from 0..max.
        nurse_units: Half-nurse units required at each acuity level.
        acuity_samples: Optional observed (L3, L2, L1, L0) day profiles per
            admission type, resampled instead of the uniform draw.
        random_seed: Master seed for reproducibility.
    """

    # Horizon settings
    run_length: float = 365.0
    warm_up: float = 0.0
    start_date: date = date(2024, 1, 1)

    # Resources
    n_beds: int = 10
    n_nurse_units: int = 16
    bed_queue_size: Optional[int] = 2

    # Arrivals
    emergency_mean_iat: Dict[int, float] = field(default_factory=_default_emergency_iat)
    elective_mean_iat: Dict[int, float] = field(default_factory=_default_elective_iat)

    # Patient behaviour
    emergency_patience: float = 1.0
    elective_delay: float = 0.1
    retry_interval: float = 7.0
    max_retries: Optional[int] = None

    # Lengths of stay
    max_acuity_days: Dict[AdmissionType, Dict[AcuityLevel, int]] = field(
        default_factory=_default_max_acuity_days
    )
    nurse_units: Dict[AcuityLevel, int] = field(
        default_factory=lambda: dict(DEFAULT_NURSE_UNITS)
    )
    acuity_samples: Optional[Dict[AdmissionType, np.ndarray]] = field(
        default=None, repr=False
    )

    # Reproducibility
    random_seed: int = 42

    # RNG streams (created in __post_init__)
    rng_emergency: Optional[np.random.Generator] = field(default=None, init=False, repr=False)
    rng_elective: Optional[np.random.Generator] = field(default=None, init=False, repr=False)
    rng_acuity: Optional[np.random.Generator] = field(default=None, init=False, repr=False)
    rng_patience: Optional[np.random.Generator] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        """Validate parameters and create one RNG stream per stochastic element."""
        self._validate()
        self.rng_emergency = np.random.default_rng(self.random_seed)
        self.rng_elective = np.random.default_rng(self.random_seed + 1)
        self.rng_acuity = np.random.default_rng(self.random_seed + 2)
        self.rng_patience = np.random.default_rng(self.random_seed + 3)

    def _validate(self) -> None:
        if self.run_length <= 0:
            raise ValueError("run_length must be positive")
        if not 0 <= self.warm_up < self.run_length:
            raise ValueError("warm_up must be in [0, run_length)")
        if self.n_beds < 1:
            raise ValueError("n_beds must be at least 1")
        if self.n_nurse_units < 0:
            raise ValueError("n_nurse_units must be non-negative")
        if self.bed_queue_size is not None and self.bed_queue_size < 0:
            raise ValueError("bed_queue_size must be non-negative")
        if self.emergency_patience <= 0:
            raise ValueError("emergency_patience must be positive")
        if self.elective_delay < 0 or self.retry_interval <= 0:
            raise ValueError("elective_delay must be >= 0 and retry_interval > 0")
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        for admission_type, maxima in self.max_acuity_days.items():
            if any(days < 0 for days in maxima.values()):
                raise ValueError(f"max_acuity_days for {admission_type.name} must be >= 0")

    def sample_acuity_days(self, admission_type: AdmissionType) -> Dict[str, int]:
        """Draw the days a new patient will spend at each acuity level.

        Every patient spends at least one day in the ICU: an all-zero draw
        is turned into a single L1 day.

        Returns:
            {"l3_days": .., "l2_days": .., "l1_days": .., "l0_days": ..}
        """
        levels = sorted(AcuityLevel, reverse=True)
        samples = (self.acuity_samples or {}).get(admission_type)
        if samples is not None and len(samples):
            row = samples[self.rng_acuity.integers(len(samples))]
            days = {ACUITY_DAY_KEYS[lvl]: int(row[i]) for i, lvl in enumerate(levels)}
        else:
            maxima = self.max_acuity_days.get(admission_type, {})
            days = {
                ACUITY_DAY_KEYS[lvl]: int(self.rng_acuity.integers(0, maxima.get(lvl, 0) + 1))
                for lvl in levels
            }
        if sum(days.values()) == 0:
            days[ACUITY_DAY_KEYS[AcuityLevel.L1]] = 1
        return days

    def clone_with_seed(self, new_seed: int) -> "ICUScenario":
        """Copy this scenario with a different seed and fresh RNG streams."""
        return dataclasses.replace(self, random_seed=new_seed)

    @classmethod
    def from_history(cls, history: pd.DataFrame, **overrides) -> "ICUScenario":
        """Build a scenario whose arrivals and stays follow historical data.

        Args:
            history: Historical admissions (see icuflow.core.history).
            **overrides: Any other ICUScenario field.
        """
        params = {
            "emergency_mean_iat": weekday_mean_iat(history, AdmissionType.EMERGENCY),
            "elective_mean_iat": weekday_mean_iat(history, AdmissionType.ELECTIVE),
            "acuity_samples": {
                admission_type: acuity_day_samples(history, admission_type)
                for admission_type in AdmissionType
            },
        }
        params.update(overrides)
        return cls(**params)


@dataclass
class BankScenario:
    """Configuration for the introductory bank-queue tutorial.

    Times are in minutes.

    Attributes:
        run_length: Simulation horizon.
        n_customers: Stop after this many customers (None = unlimited).
        n_counters: Number of counters.
        mean_iat: Mean time between customer arrivals.
        mean_service: Mean service time at a counter.
        patience_min, patience_max: Uniform range of customer patience.
        random_seed: Master seed for reproducibility.
    """

    run_length: float = 400.0
    n_customers: Optional[int] = 10
    n_counters: int = 1
    mean_iat: float = 10.0
    mean_service: float = 12.0
    patience_min: float = 1.0
    patience_max: float = 3.0
    random_seed: int = 42

    rng_arrivals: Optional[np.random.Generator] = field(default=None, init=False, repr=False)
    rng_service: Optional[np.random.Generator] = field(default=None, init=False, repr=False)
    rng_patience: Optional[np.random.Generator] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.n_counters < 1:
            raise ValueError("n_counters must be at least 1")
        if self.mean_iat <= 0 or self.mean_service <= 0:
            raise ValueError("mean_iat and mean_service must be positive")
        if not 0 <= self.patience_min <= self.patience_max:
            raise ValueError("patience range must satisfy 0 <= min <= max")
        self.rng_arrivals = np.random.default_rng(self.random_seed)
        self.rng_service = np.random.default_rng(self.random_seed + 1)
        self.rng_patience = np.random.default_rng(self.random_seed + 2)

    def clone_with_seed(self, new_seed: int) -> "BankScenario":
        """Copy this scenario with a different seed and fresh RNG streams."""
        return dataclasses.replace(self, random_seed=new_seed)
