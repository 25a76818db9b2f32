"""Single and batch simulation runners."""

import logging
from concurrent.futures import ProcessPoolExecutor
from typing import Any, Callable, Dict, List, Optional, Union

import pandas as pd

from icuflow.core.scenario import BankScenario, ICUScenario
from icuflow.model.bank import run_bank_simulation
from icuflow.model.icu import run_icu_simulation

logger = logging.getLogger(__name__)

AnyScenario = Union[ICUScenario, BankScenario]

ICU_METRICS = [
    "departures", "finished", "balked", "reneged",
    "balk_rate", "renege_rate", "mean_wait", "p95_wait", "mean_system_time",
    "util_beds", "util_nurses", "mean_queue_beds",
    "emergency_departures", "emergency_balked", "emergency_reneged", "emergency_mean_wait",
    "elective_departures", "elective_balked", "elective_cancellations",
    "in_system",
]

BANK_METRICS = [
    "departures", "finished", "reneged", "renege_rate",
    "mean_wait", "p_delay", "util_counter",
]


def run_replication(scenario: AnyScenario) -> Dict[str, Any]:
    """Run one replication of whichever model the scenario configures."""
    if isinstance(scenario, ICUScenario):
        return run_icu_simulation(scenario)
    if isinstance(scenario, BankScenario):
        return run_bank_simulation(scenario)
    raise TypeError(f"Unsupported scenario type: {type(scenario).__name__}")


def _run_all(
    scenario: AnyScenario,
    n_reps: int,
    n_jobs: int,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> List[Dict[str, Any]]:
    """Run replications with seeds random_seed + rep, in rep order."""
    rep_scenarios = [scenario.clone_with_seed(scenario.random_seed + rep) for rep in range(n_reps)]

    if n_jobs > 1:
        # Each worker owns its replication; results are merged afterwards
        with ProcessPoolExecutor(max_workers=n_jobs) as pool:
            runs = []
            for rep, run_results in enumerate(pool.map(run_replication, rep_scenarios)):
                runs.append(run_results)
                if progress_callback is not None:
                    progress_callback(rep + 1, n_reps)
        return runs

    runs = []
    for rep, rep_scenario in enumerate(rep_scenarios):
        runs.append(run_replication(rep_scenario))
        if progress_callback is not None:
            progress_callback(rep + 1, n_reps)
    return runs


def multiple_replications(
    scenario: AnyScenario,
    n_reps: int = 30,
    metric_names: Optional[List[str]] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
    n_jobs: int = 1,
) -> Dict[str, List[float]]:
    """Run multiple replications and collect specified metrics.

    Each replication uses a different random seed (base_seed + rep_number)
    to ensure independent samples.

    Args:
        scenario: Base scenario configuration.
        n_reps: Number of replications to run.
        metric_names: Metric names to collect. If None, collects the
            defaults for the scenario's model.
        progress_callback: Optional callback(current_rep, total_reps).
        n_jobs: Worker processes; 1 runs in-process.

    Returns:
        Dictionary mapping metric names to lists of values across replications.
    """
    if metric_names is None:
        metric_names = ICU_METRICS if isinstance(scenario, ICUScenario) else BANK_METRICS

    logger.info(f"Running {n_reps} replications of {type(scenario).__name__} (n_jobs={n_jobs})")
    runs = _run_all(scenario, n_reps, n_jobs, progress_callback)

    results: Dict[str, List[float]] = {name: [] for name in metric_names}
    for run_results in runs:
        for name in metric_names:
            if name in run_results:
                results[name].append(run_results[name])
    return results


def collect_arrivals(
    scenario: AnyScenario, n_reps: int = 10, n_jobs: int = 1
) -> pd.DataFrame:
    """Arrival logs of several replications stacked into one DataFrame.

    Returns:
        Arrival records with an extra "replication" column (0-based).
    """
    runs = _run_all(scenario, n_reps, n_jobs)
    frames = [
        run_results["arrival_log"].assign(replication=rep)
        for rep, run_results in enumerate(runs)
    ]
    return pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()


def run_scenario_comparison(
    scenarios: Dict[str, AnyScenario],
    n_reps: int = 30,
    metric_names: Optional[List[str]] = None,
    n_jobs: int = 1,
) -> Dict[str, Dict[str, List[float]]]:
    """Run multiple scenarios for comparison.

    Returns:
        Nested dictionary: {scenario_name: {metric_name: [values]}}.
    """
    all_results = {}

    for name, scenario in scenarios.items():
        all_results[name] = multiple_replications(
            scenario, n_reps=n_reps, metric_names=metric_names, n_jobs=n_jobs
        )

    return all_results
