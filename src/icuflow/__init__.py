"""
icuflow - ICU capacity planning with discrete-event simulation.

A small event-driven engine (resources, trajectories, generators,
monitor) and the ICU patient-flow and bank tutorial models built on it.
"""

__version__ = "0.1.0"

from icuflow.core.scenario import BankScenario, ICUScenario
from icuflow.engine import Environment, Trajectory
from icuflow.model.icu import run_icu_simulation

__all__ = [
    "ICUScenario",
    "BankScenario",
    "Environment",
    "Trajectory",
    "run_icu_simulation",
    "__version__",
]
