"""KPI computation from monitor output."""

from typing import Dict, Optional

import numpy as np
import pandas as pd


def compute_metrics(
    arrival_log: pd.DataFrame,
    resource_log: Optional[pd.DataFrame] = None,
    run_length: Optional[float] = None,
    warm_up: float = 0.0,
) -> Dict[str, float]:
    """Compute summary KPIs for one run.

    Only entities that arrived after the warm-up are counted. Waiting
    and system times are taken over entities that finished their
    trajectory.

    Args:
        arrival_log: Output of Environment.get_arrivals().
        resource_log: Output of Environment.get_resources().
        run_length: Horizon used for time-weighted resource metrics.
        warm_up: Start of the results collection window.

    Returns:
        Dictionary containing:
        - departures, finished, balked, reneged: Counts
        - balk_rate, renege_rate: Fractions of departures
        - mean_wait, median_wait, p95_wait, max_wait: Waiting time of
          finished entities
        - p_delay: Proportion of finished entities that waited at all
        - mean_activity, mean_system_time
        - util_<resource>, mean_queue_<resource>: time-weighted, per resource
    """
    log = arrival_log[arrival_log["start_time"] >= warm_up] if len(arrival_log) else arrival_log
    n = len(log)

    finished = log[log["finished"]] if n else log
    waits = finished["waiting_time"].to_numpy(dtype=float) if len(finished) else np.array([])
    # Float noise from end - start - activity
    waits = np.where(np.abs(waits) < 1e-9, 0.0, waits)

    balked = int((log["outcome"] == "BALKED").sum()) if n else 0
    reneged = int((log["outcome"] == "RENEGED").sum()) if n else 0

    metrics: Dict[str, float] = {
        "departures": n,
        "finished": int(len(finished)),
        "balked": balked,
        "reneged": reneged,
        "balk_rate": balked / n if n else 0.0,
        "renege_rate": reneged / n if n else 0.0,
    }

    if len(waits):
        system_times = (finished["end_time"] - finished["start_time"]).to_numpy(dtype=float)
        metrics.update({
            "mean_wait": float(np.mean(waits)),
            "median_wait": float(np.percentile(waits, 50)),
            "p95_wait": float(np.percentile(waits, 95)),
            "max_wait": float(np.max(waits)),
            "p_delay": float(np.mean(waits > 0)),
            "mean_activity": float(finished["activity_time"].mean()),
            "mean_system_time": float(np.mean(system_times)),
        })
    else:
        metrics.update({
            "mean_wait": 0.0, "median_wait": 0.0, "p95_wait": 0.0, "max_wait": 0.0,
            "p_delay": 0.0, "mean_activity": 0.0, "mean_system_time": 0.0,
        })

    if resource_log is not None and len(resource_log) and run_length is not None:
        for name, records in resource_log.groupby("resource", sort=False):
            capacity = int(records["capacity"].iloc[-1])
            busy = time_weighted_mean(records, "server", warm_up, run_length)
            metrics[f"util_{name}"] = busy / capacity if capacity else 0.0
            metrics[f"mean_queue_{name}"] = time_weighted_mean(
                records, "queue", warm_up, run_length
            )

    return metrics


def time_weighted_mean(
    records: pd.DataFrame, column: str, start: float, end: float
) -> float:
    """Time-weighted average of a step function over [start, end].

    Args:
        records: Rows with a "time" column and the value column, one row
            per state change (the value holds until the next row).
        column: Value column, e.g. "server" or "queue".
        start: Window start.
        end: Window end.

    Returns:
        Average value over the window (0 for an empty window).
    """
    if end <= start or records.empty:
        return 0.0

    log = records.sort_values("time", kind="stable")
    times = log["time"].to_numpy(dtype=float)
    values = log[column].to_numpy(dtype=float)

    total = 0.0
    for i in range(len(times)):
        t_start = max(times[i], start)
        t_end = min(times[i + 1] if i + 1 < len(times) else end, end)
        if t_end > t_start:
            total += values[i] * (t_end - t_start)

    return total / (end - start)
