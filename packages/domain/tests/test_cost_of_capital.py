"""Tests for the CAPM / WACC build-up."""

from decimal import Decimal

import pytest

from valuation_domain.analytics.cost_of_capital import (
    adjust_beta_for_industry,
    calculate_wacc,
    capital_structure_sweep,
    cost_of_equity,
    median_unlevered_beta,
    peer_beta_table,
    relever_beta,
    unlever_beta,
)
from valuation_domain.blocks import BlockContext, WACCBlock
from valuation_domain.errors import InvalidInputError
from valuation_domain.schemas import PeerCompany, WACCInputs


PEERS = [
    PeerCompany(name="Alpha", levered_beta=Decimal("1.2"), debt_to_equity=Decimal("0.5")),
    PeerCompany(name="Beta", levered_beta=Decimal("1.0")),
    PeerCompany(name="Gamma", levered_beta=Decimal("1.5"), debt_to_equity=Decimal("1.0")),
]


def _inputs(**overrides) -> WACCInputs:
    data = dict(
        risk_free_rate=Decimal("0.04"),
        equity_risk_premium=Decimal("0.06"),
        size_premium=Decimal("0.02"),
        pre_tax_cost_of_debt=Decimal("0.08"),
        tax_rate=Decimal("0.25"),
        debt_weight=Decimal("0.2"),
        peers=PEERS,
    )
    data.update(overrides)
    return WACCInputs(**data)


class TestBeta:
    def test_unlever_relever_round_trip(self):
        unlevered = unlever_beta(1.2, 0.5, 0.25)
        assert unlevered == pytest.approx(1.2 / 1.375)
        assert relever_beta(unlevered, 0.5, 0.25) == pytest.approx(1.2)

    def test_median_unlevered_beta(self):
        # Alpha 0.8727, Beta 1.0, Gamma 0.8571
        assert median_unlevered_beta(PEERS) == pytest.approx(1.2 / 1.375)

    def test_no_peers_defaults_to_market(self):
        assert median_unlevered_beta([]) == 1.0

    def test_industry_adjustment(self):
        assert adjust_beta_for_industry(1.0, "High") == pytest.approx(1.2)
        assert adjust_beta_for_industry(1.0, "Low") == pytest.approx(0.8)
        with pytest.raises(InvalidInputError):
            adjust_beta_for_industry(1.0, "Extreme")

    def test_peer_table(self):
        table = peer_beta_table(PEERS)
        assert list(table["name"]) == ["Alpha", "Beta", "Gamma"]
        assert table["unlevered_beta"].iloc[1] == pytest.approx(1.0)


class TestWACC:
    def test_cost_of_equity(self):
        assert cost_of_equity(0.04, 1.0, 0.06, 0.02, 0.01, 0.03) == pytest.approx(0.16)

    def test_calculate_wacc(self):
        result = calculate_wacc(_inputs())

        relevered = (1.2 / 1.375) * (1 + 0.75 * 0.25)
        ke = 0.04 + relevered * 0.06 + 0.02
        assert result.relevered_beta == pytest.approx(relevered)
        assert result.cost_of_equity == pytest.approx(ke)
        assert result.after_tax_cost_of_debt == pytest.approx(0.06)
        assert result.wacc == pytest.approx(ke * 0.8 + 0.06 * 0.2)

    def test_beta_override(self):
        result = calculate_wacc(_inputs(beta_override=Decimal("1.0"), debt_weight=Decimal("0")))
        assert result.cost_of_equity == pytest.approx(0.12)
        assert result.wacc == pytest.approx(0.12)

    def test_all_debt_is_invalid(self):
        with pytest.raises(InvalidInputError):
            calculate_wacc(_inputs(debt_weight=Decimal("1")))

    def test_components_sum_to_cost_of_equity(self):
        inputs = _inputs(country_risk_premium=Decimal("0.01"))
        result = calculate_wacc(inputs)
        parts = result.components(inputs)
        build_up = sum(v for k, v in parts.items() if k != "total_equity_premium")
        assert build_up == pytest.approx(result.cost_of_equity)


def test_capital_structure_sweep_flags_one_optimum():
    sweep = capital_structure_sweep(_inputs())

    assert list(sweep["debt_weight"]) == pytest.approx([0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7])
    assert sweep["is_optimal"].sum() == 1
    optimal = sweep[sweep["is_optimal"]].iloc[0]
    assert optimal["wacc"] == pytest.approx(sweep["wacc"].min())
    assert sweep["pre_tax_cost_of_debt"].is_monotonic_increasing


def test_wacc_block():
    context = BlockContext()
    context.set("wacc_inputs", _inputs())
    WACCBlock().execute(context)

    summary = context.get("wacc_summary").iloc[0]
    assert summary["wacc"] == pytest.approx(calculate_wacc(_inputs()).wacc)
    assert summary["equity_weight"] == pytest.approx(0.8)
    assert len(context.get("wacc_peers")) == 3
    assert len(context.get("wacc_capital_structure")) == 8
