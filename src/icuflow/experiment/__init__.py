"""Experimentation layer: replication runner, CI analysis."""

from icuflow.experiment.analysis import (
    SweepResult,
    compute_ci,
    estimate_required_reps,
    sensitivity_sweep,
    summarise_replications,
)
from icuflow.experiment.runner import (
    collect_arrivals,
    multiple_replications,
    run_replication,
    run_scenario_comparison,
)

__all__ = [
    "multiple_replications",
    "run_replication",
    "run_scenario_comparison",
    "collect_arrivals",
    "compute_ci",
    "estimate_required_reps",
    "summarise_replications",
    "sensitivity_sweep",
    "SweepResult",
]
