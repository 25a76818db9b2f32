"""Parametrise arrivals and lengths of stay from historical admissions.

The history is a DataFrame with one row per admission:

    date      admission date (anything pandas can parse)
    type      AdmissionType value or name ("elective" / "emergency")
    l3_days, l2_days, l1_days, l0_days
              days spent at each acuity level
"""

from typing import Dict

import numpy as np
import pandas as pd

from icuflow.core.entities import ACUITY_DAY_KEYS, AcuityLevel, AdmissionType

REQUIRED_COLUMNS = ["date", "type"] + [ACUITY_DAY_KEYS[lvl] for lvl in sorted(AcuityLevel, reverse=True)]


def _validate(history: pd.DataFrame) -> None:
    missing = [col for col in REQUIRED_COLUMNS if col not in history.columns]
    if missing:
        raise ValueError(f"History is missing columns: {missing}")


def _rows_of_type(history: pd.DataFrame, admission_type: AdmissionType) -> pd.DataFrame:
    types = history["type"]
    if pd.api.types.is_numeric_dtype(types):
        mask = types == int(admission_type)
    else:
        mask = types.astype(str).str.upper() == admission_type.name
    return history[mask]


def weekday_mean_iat(
    history: pd.DataFrame, admission_type: AdmissionType
) -> Dict[int, float]:
    """Mean inter-arrival time (days) per weekday for one admission type.

    Daily admission counts are averaged per weekday over the full date
    range of the history (days with no admissions count as zero).
    Weekdays that never see an admission are left out, which gives them
    no arrivals in WeekdayArrivals.

    Args:
        history: Historical admissions.
        admission_type: Which stream to parametrise.

    Returns:
        {weekday (0=Mon): mean inter-arrival time in days}.
    """
    _validate(history)
    dates = pd.to_datetime(history["date"]).dt.normalize()
    if dates.empty:
        return {}

    all_days = pd.date_range(dates.min(), dates.max(), freq="D")
    rows = _rows_of_type(history.assign(date=dates), admission_type)
    counts = rows.groupby("date").size().reindex(all_days, fill_value=0)
    mean_counts = counts.groupby(counts.index.weekday).mean()

    return {
        int(weekday): 1.0 / float(mean)
        for weekday, mean in mean_counts.items()
        if mean > 0
    }


def acuity_day_samples(
    history: pd.DataFrame, admission_type: AdmissionType
) -> np.ndarray:
    """Observed acuity-day profiles for one admission type.

    Returns:
        Integer array of shape (n_admissions, 4) with columns ordered
        L3, L2, L1, L0.
    """
    _validate(history)
    columns = [ACUITY_DAY_KEYS[lvl] for lvl in sorted(AcuityLevel, reverse=True)]
    rows = _rows_of_type(history, admission_type)
    return rows[columns].to_numpy(dtype=int)
