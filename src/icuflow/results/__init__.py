"""Results layer: KPI computation from monitor output."""

from icuflow.results.collector import compute_metrics, time_weighted_mean

__all__ = ["compute_metrics", "time_weighted_mean"]
