"""Core foundation layer: scenario configuration, arrivals, historical inputs."""

from icuflow.core.arrivals import ExponentialArrivals, FixedIntervals, WeekdayArrivals
from icuflow.core.entities import AcuityLevel, AdmissionType
from icuflow.core.scenario import BankScenario, ICUScenario

__all__ = [
    "ICUScenario",
    "BankScenario",
    "AdmissionType",
    "AcuityLevel",
    "ExponentialArrivals",
    "FixedIntervals",
    "WeekdayArrivals",
]
