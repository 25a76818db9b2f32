"""ICU patient-flow model.

Elective and emergency admissions compete for ICU beds. Once in a bed a
patient steps down through the acuity levels L3 -> L2 -> L1 -> L0,
holding nursing (in half-nurse units) at the levels that need it:

    Emergency: arrive -> wait for a bed (bounded queue; balk when full,
               renege when patience runs out) -> stay -> leave
    Elective:  arrive -> short delay -> bed free? stay : cancel and
               re-book a week later (bounded by max_retries)

All times are in days.
"""

import logging
from typing import Any, Dict

from icuflow.core.arrivals import WeekdayArrivals
from icuflow.core.entities import ACUITY_DAY_KEYS, AcuityLevel, AdmissionType
from icuflow.core.scenario import ICUScenario
from icuflow.engine import CapacityExceededRequest, Dynamic, Environment, Trajectory
from icuflow.results.collector import compute_metrics

logger = logging.getLogger(__name__)

BEDS = "beds"
NURSES = "nurses"


def _top_level(env: Environment, patient) -> int:
    """Highest acuity level the patient spends any days at."""
    for level in sorted(AcuityLevel, reverse=True):
        if patient.get_attribute(ACUITY_DAY_KEYS[level], 0) > 0:
            return int(level)
    return int(AcuityLevel.L0)


def _days_at_level(env: Environment, patient) -> float:
    level = AcuityLevel(patient.get_attribute("level"))
    return patient.get_attribute(ACUITY_DAY_KEYS[level], 0)


def build_stay_trajectory(scenario: ICUScenario) -> Trajectory:
    """Trajectory shared by both pathways once the patient holds a bed.

    Loops over acuity levels from the patient's highest level down to L0
    using the "level" attribute, then releases the bed.
    """
    def nurse_units(env, patient):
        return scenario.nurse_units.get(AcuityLevel(patient.get_attribute("level")), 0)

    def needs_nurse(env, patient):
        return nurse_units(env, patient) > 0 and _days_at_level(env, patient) > 0

    days = Dynamic(_days_at_level)
    units = Dynamic(nurse_units)

    nursed = (
        Trajectory("nursed")
        .seize(NURSES, units)
        .timeout(days)
        .release(NURSES, units)
    )
    unnursed = Trajectory("unnursed").timeout(days)

    return (
        Trajectory("stay")
        .set_attribute("level", Dynamic(_top_level))
        .branch(Dynamic(needs_nurse), then=nursed, otherwise=unnursed)
        .set_attribute("level", Dynamic(lambda env, p: p.get_attribute("level") - 1))
        # Back to the level branch while levels remain
        .branch(
            Dynamic(lambda env, p: p.get_attribute("level") >= 0),
            then=Trajectory("next_level").rollback(3),
        )
        .release(BEDS)
    )


def build_emergency_trajectory(scenario: ICUScenario, stay: Trajectory) -> Trajectory:
    """Emergency pathway: queue for a bed with finite patience."""
    return (
        Trajectory("emergency")
        .set_attribute("start", Dynamic(lambda env, p: env.now))
        .renege_in(Dynamic(lambda env, p: p.get_attribute("patience")))
        .seize(BEDS)
        .renege_abort()
        .join(stay)
    )


def build_elective_trajectory(scenario: ICUScenario, stay: Trajectory) -> Trajectory:
    """Elective pathway: admitted only if a bed is free, else re-booked."""
    def can_retry(env, patient):
        return scenario.max_retries is None or patient.get_attribute("retries") <= scenario.max_retries

    # Rollback(5) climbs out of both nested frames back to the delay step:
    # rollback -> timeout -> (retry branch) -> set retries -> (seize) -> delay
    cancelled = (
        Trajectory("cancelled")
        .set_attribute("retries", Dynamic(lambda env, p: p.get_attribute("retries") + 1))
        .branch(
            Dynamic(can_retry),
            then=Trajectory("rebook").timeout(scenario.retry_interval).rollback(5),
        )
    )

    return (
        Trajectory("elective")
        .set_attribute("start", Dynamic(lambda env, p: env.now))
        .set_attribute("retries", 0)
        .timeout(scenario.elective_delay)
        .seize(BEDS, wait=False, reject=cancelled)
        .join(stay)
    )


def _patient_attributes(scenario: ICUScenario, admission_type: AdmissionType):
    def attributes(env: Environment) -> Dict[str, Any]:
        attrs: Dict[str, Any] = {"type": int(admission_type)}
        attrs.update(scenario.sample_acuity_days(admission_type))
        if admission_type == AdmissionType.EMERGENCY:
            attrs["patience"] = float(
                scenario.rng_patience.exponential(scenario.emergency_patience)
            )
        return attrs
    return attributes


def build_icu_environment(scenario: ICUScenario) -> Environment:
    """Create resources and generators for one replication.

    Raises:
        CapacityExceededRequest: If an acuity level needs more nurse
            units than the unit will ever have.
    """
    for level, units in scenario.nurse_units.items():
        if units > scenario.n_nurse_units:
            raise CapacityExceededRequest(NURSES, units, scenario.n_nurse_units, f"level {level.name}", 0.0)

    env = Environment()
    env.add_resource(BEDS, capacity=scenario.n_beds, queue_size=scenario.bed_queue_size)
    env.add_resource(NURSES, capacity=scenario.n_nurse_units)

    stay = build_stay_trajectory(scenario)
    env.add_generator(
        "emergency",
        build_emergency_trajectory(scenario, stay),
        WeekdayArrivals(
            scenario.emergency_mean_iat, scenario.rng_emergency,
            start_date=scenario.start_date, horizon=scenario.run_length,
        ),
        attributes=_patient_attributes(scenario, AdmissionType.EMERGENCY),
    )
    env.add_generator(
        "elective",
        build_elective_trajectory(scenario, stay),
        WeekdayArrivals(
            scenario.elective_mean_iat, scenario.rng_elective,
            start_date=scenario.start_date, horizon=scenario.run_length,
        ),
        attributes=_patient_attributes(scenario, AdmissionType.ELECTIVE),
    )
    return env


def run_icu_simulation(scenario: ICUScenario) -> Dict[str, Any]:
    """Execute a single ICU replication.

    Args:
        scenario: ICU configuration with parameters and RNGs.

    Returns:
        Dictionary of KPIs (see results.collector.compute_metrics) plus:
        - emergency_* / elective_*: KPIs per admission type
        - elective_cancellations: Total elective re-bookings and cancellations
        - in_system: Patients still in the unit at the horizon
        - arrival_log, resource_log: Raw monitor DataFrames
    """
    env = build_icu_environment(scenario)
    env.run(until=scenario.run_length)

    arrival_log = env.get_arrivals(attributes=True)
    resource_log = env.get_resources()

    results: Dict[str, Any] = compute_metrics(
        arrival_log, resource_log, scenario.run_length, scenario.warm_up
    )
    for admission_type in AdmissionType:
        subset = arrival_log[arrival_log["type"] == int(admission_type)] if len(arrival_log) else arrival_log
        per_type = compute_metrics(subset, warm_up=scenario.warm_up)
        prefix = admission_type.name.lower()
        for key in ("departures", "finished", "balked", "reneged", "mean_wait", "mean_system_time"):
            results[f"{prefix}_{key}"] = per_type[key]

    if len(arrival_log) and "retries" in arrival_log:
        results["elective_cancellations"] = int(arrival_log["retries"].fillna(0).sum())
    else:
        results["elective_cancellations"] = 0

    results["in_system"] = len(env.active)
    results["run_length"] = scenario.run_length
    results["arrival_log"] = arrival_log
    results["resource_log"] = resource_log

    logger.debug(
        f"ICU run seed={scenario.random_seed}: {results['departures']} departures, "
        f"bed utilisation {results.get('util_beds', 0.0):.2f}"
    )
    return results
