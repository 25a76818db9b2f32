"""Tests for the bank-queue tutorial model."""

import pytest

from icuflow.core.scenario import BankScenario
from icuflow.model.bank import COUNTER, build_bank_environment, run_bank_simulation


@pytest.fixture
def scenario(default_seed):
    return BankScenario(run_length=1000.0, random_seed=default_seed)


class TestBankModel:
    """Ten customers, one counter, impatient customers."""

    def test_all_customers_recorded(self, scenario):
        results = run_bank_simulation(scenario)

        assert len(results["arrival_log"]) == 10
        assert results["in_system"] == 0
        assert results["finished"] + results["reneged"] == 10

    def test_reneged_wait_equals_patience(self, scenario):
        log = run_bank_simulation(scenario)["arrival_log"]
        reneged = log[log["outcome"] == "RENEGED"]

        assert (reneged["activity_time"] == 0.0).all()
        assert reneged["waiting_time"].to_numpy() == pytest.approx(reneged["patience"].to_numpy())

    def test_served_customers_waited_less_than_patience(self, scenario):
        log = run_bank_simulation(scenario)["arrival_log"]
        served = log[log["finished"]]

        assert len(served) > 0
        assert (served["waiting_time"] <= served["patience"] + 1e-9).all()

    def test_unlimited_customers_stop_at_horizon(self, default_seed):
        scenario = BankScenario(run_length=200.0, n_customers=None, random_seed=default_seed)
        env = build_bank_environment(scenario)
        env.run(until=scenario.run_length)

        assert env.now == 200.0
        assert env.generators["customer"].active
        assert env.resource(COUNTER).in_use <= scenario.n_counters

    def test_more_counters_fewer_reneges(self, default_seed):
        one = run_bank_simulation(BankScenario(n_customers=200, run_length=5000.0, random_seed=default_seed))
        three = run_bank_simulation(
            BankScenario(n_customers=200, run_length=5000.0, n_counters=3, random_seed=default_seed)
        )
        assert three["reneged"] < one["reneged"]

    def test_invalid_parameters(self):
        with pytest.raises(ValueError):
            BankScenario(n_counters=0)
        with pytest.raises(ValueError):
            BankScenario(patience_min=3.0, patience_max=1.0)
