"""Models built on the engine: ICU patient flow and the bank tutorial."""

from icuflow.model.bank import build_bank_environment, run_bank_simulation
from icuflow.model.icu import build_icu_environment, run_icu_simulation

__all__ = [
    "build_icu_environment",
    "run_icu_simulation",
    "build_bank_environment",
    "run_bank_simulation",
]
