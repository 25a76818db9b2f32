"""Bank-queue tutorial model.

The introductory exercise of the workshop: customers arrive at a bank,
queue for a counter, and leave if they have waited longer than their
patience. Times are in minutes.
"""

from typing import Any, Dict

from icuflow.core.arrivals import ExponentialArrivals
from icuflow.core.scenario import BankScenario
from icuflow.engine import Dynamic, Environment, Trajectory
from icuflow.results.collector import compute_metrics

COUNTER = "counter"


def build_customer_trajectory(scenario: BankScenario) -> Trajectory:
    """Customer journey: renege_in(patience) -> seize -> abort -> serve -> release."""
    return (
        Trajectory("customer")
        .renege_in(Dynamic(lambda env, c: c.get_attribute("patience")))
        .seize(COUNTER)
        .renege_abort()
        .timeout(Dynamic(lambda env, c: scenario.rng_service.exponential(scenario.mean_service)))
        .release(COUNTER)
    )


def build_bank_environment(scenario: BankScenario) -> Environment:
    """Create the counter resource and the customer generator."""
    env = Environment()
    env.add_resource(COUNTER, capacity=scenario.n_counters)
    env.add_generator(
        "customer",
        build_customer_trajectory(scenario),
        ExponentialArrivals(scenario.mean_iat, scenario.rng_arrivals, limit=scenario.n_customers),
        attributes=lambda env: {
            "patience": float(scenario.rng_patience.uniform(
                scenario.patience_min, scenario.patience_max
            )),
        },
    )
    return env


def run_bank_simulation(scenario: BankScenario) -> Dict[str, Any]:
    """Execute a single bank replication.

    Returns:
        KPIs from compute_metrics plus the raw arrival and resource logs.
    """
    env = build_bank_environment(scenario)
    env.run(until=scenario.run_length)

    arrival_log = env.get_arrivals(attributes=True)
    resource_log = env.get_resources()
    results: Dict[str, Any] = compute_metrics(arrival_log, resource_log, scenario.run_length)
    results["in_system"] = len(env.active)
    results["run_length"] = scenario.run_length
    results["arrival_log"] = arrival_log
    results["resource_log"] = resource_log
    return results
