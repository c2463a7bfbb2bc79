import math

import pytest

from core.kpis import FinancialSettings, compute_kpis


def test_kpis_from_counts():
    k = compute_kpis(contracts=7, total_cost=600.0, protocols=3, ticket=200.0)
    assert k.cpa == pytest.approx(600.0 / 7)
    assert k.revenue == pytest.approx(1400.0)
    assert k.roi == pytest.approx(133.333, rel=1e-4)
    assert k.cost_per_protocol == pytest.approx(200.0)


def test_zero_contracts_with_cost_is_total_loss():
    """No contracts: cpa and revenue are 0, and ROI follows (revenue - cost) / cost, i.e. -100."""
    k = compute_kpis(contracts=0, total_cost=500.0, protocols=0, ticket=100.0)
    assert k.revenue == 0.0
    assert k.cpa == 0.0
    assert k.cost_per_protocol == 0.0
    assert k.roi == pytest.approx(-100.0)


def test_zero_cost_gives_zero_roi():
    k = compute_kpis(contracts=5, total_cost=0.0, protocols=2, ticket=100.0)
    assert k.roi == 0.0
    assert k.revenue == 500.0


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_inputs_never_leak(bad):
    k = compute_kpis(contracts=bad, total_cost=bad, protocols=bad, ticket=bad)
    assert all(math.isfinite(v) for v in (k.cpa, k.revenue, k.roi, k.cost_per_protocol))


def test_financial_settings_from_row():
    assert FinancialSettings.from_row({"id": "3", "average_ticket": "1500,50"}) == FinancialSettings(average_ticket=1500.5, id=3)
    assert FinancialSettings.from_row(None) == FinancialSettings()
