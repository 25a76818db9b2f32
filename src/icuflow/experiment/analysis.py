"""Confidence interval and capacity sensitivity analysis."""

import dataclasses
from dataclasses import dataclass
from typing import Dict, List

import numpy as np
import pandas as pd
from scipy import stats

from icuflow.experiment.runner import AnyScenario, multiple_replications


def compute_ci(values: List[float], confidence: float = 0.95) -> Dict:
    """Compute confidence interval for a metric.

    Args:
        values: List of metric values from replications.
        confidence: Confidence level (default 0.95 for 95% CI).

    Returns:
        Dictionary containing mean, std, se, ci_lower, ci_upper,
        ci_half_width and n.
    """
    n = len(values)
    if n < 2:
        mean = float(values[0]) if n == 1 else 0.0
        return {
            "mean": mean,
            "std": 0.0,
            "se": 0.0,
            "ci_lower": mean,
            "ci_upper": mean,
            "ci_half_width": 0.0,
            "n": n,
        }

    arr = np.asarray(values, dtype=float)
    mean = float(np.mean(arr))
    std = float(np.std(arr, ddof=1))
    se = float(stats.sem(arr))

    t_crit = stats.t.ppf((1 + confidence) / 2, df=n - 1)
    half_width = float(t_crit * se)

    return {
        "mean": mean,
        "std": std,
        "se": se,
        "ci_lower": mean - half_width,
        "ci_upper": mean + half_width,
        "ci_half_width": half_width,
        "n": n,
    }


def estimate_required_reps(
    pilot_values: List[float],
    target_half_width: float,
    confidence: float = 0.95,
) -> int:
    """Estimate replications needed to achieve target precision.

    Uses pilot run data to estimate sample variance and project
    the number of replications needed.

    Returns:
        Estimated number of replications (never fewer than the pilot).
    """
    if len(pilot_values) < 2:
        return 100

    n = len(pilot_values)
    std = float(np.std(pilot_values, ddof=1))
    t_crit = stats.t.ppf((1 + confidence) / 2, df=n - 1)

    if target_half_width <= 0:
        return 1000

    required_n = (t_crit * std / target_half_width) ** 2
    return max(int(np.ceil(required_n)), n)


def summarise_replications(
    results: Dict[str, List[float]], confidence: float = 0.95
) -> pd.DataFrame:
    """One row per metric with its mean and confidence interval.

    Args:
        results: Output of multiple_replications.
        confidence: Confidence level.

    Returns:
        DataFrame indexed by metric with columns mean, std, ci_lower,
        ci_upper, ci_half_width, n.
    """
    rows = []
    for metric, values in results.items():
        ci = compute_ci(values, confidence)
        rows.append({"metric": metric, **{k: ci[k] for k in ("mean", "std", "ci_lower", "ci_upper", "ci_half_width", "n")}})
    return pd.DataFrame(rows).set_index("metric") if rows else pd.DataFrame()


@dataclass
class SweepResult:
    """Result of a sensitivity sweep.

    Attributes:
        parameter: Name of the scenario field that was varied.
        values: Parameter values tested.
        metric: Name of the metric measured.
        results: DataFrame with columns value, mean, std, ci_lower, ci_upper, n_reps.
    """
    parameter: str
    values: List[float]
    metric: str
    results: pd.DataFrame

    def to_dataframe(self) -> pd.DataFrame:
        return self.results


def sensitivity_sweep(
    base_scenario: AnyScenario,
    parameter: str,
    values: List[float],
    metric: str,
    n_reps: int = 30,
    confidence: float = 0.95,
    n_jobs: int = 1,
) -> SweepResult:
    """Vary one scenario field across values, measuring impact on a metric.

    Example:
        >>> result = sensitivity_sweep(scenario, "n_beds", [8, 10, 12], "balk_rate")

    Raises:
        ValueError: If the scenario has no such field.
    """
    if parameter not in {f.name for f in dataclasses.fields(base_scenario)}:
        raise ValueError(f"{type(base_scenario).__name__} has no parameter '{parameter}'")

    rows = []
    for value in values:
        scenario = dataclasses.replace(base_scenario, **{parameter: value})
        reps = multiple_replications(scenario, n_reps=n_reps, metric_names=[metric], n_jobs=n_jobs)
        ci = compute_ci(reps[metric], confidence)
        rows.append({
            "value": value,
            "mean": ci["mean"],
            "std": ci["std"],
            "ci_lower": ci["ci_lower"],
            "ci_upper": ci["ci_upper"],
            "n_reps": ci["n"],
        })

    return SweepResult(parameter, list(values), metric, pd.DataFrame(rows))
