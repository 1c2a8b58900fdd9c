"""Tests for the term-matched risk-free rate.

Reference curve (percent):
    1Mo 5.30  3Mo 5.25  6Mo 5.10  1Yr 4.80  2Yr 4.40  3Yr 4.25
    5Yr 4.10  7Yr 4.15  10Yr 4.20  20Yr 4.50  30Yr 4.40
"""

from decimal import Decimal

import numpy as np
import pandas as pd
import pytest

from valuation_domain.analytics.dlom import calculate_dlom
from valuation_domain.analytics.rates import (
    closest_maturity,
    dlom_inputs_from_curve,
    maturity_years,
    opm_assumptions_from_curve,
    risk_free_rate,
)
from valuation_domain.blocks import allocate_opm, build_breakpoint_schedule
from valuation_domain.errors import InvalidInputError


@pytest.fixture
def curve() -> pd.Series:
    return pd.Series({
        "1Mo": 5.30, "3Mo": 5.25, "6Mo": 5.10, "1Yr": 4.80, "2Yr": 4.40, "3Yr": 4.25,
        "5Yr": 4.10, "7Yr": 4.15, "10Yr": 4.20, "20Yr": 4.50, "30Yr": 4.40,
    })


class TestRiskFreeRate:
    def test_exact_maturity(self, curve):
        quote = risk_free_rate(curve, 3)
        assert quote.maturity == "3Yr"
        assert quote.rate == pytest.approx(4.25)
        assert quote.decimal == pytest.approx(0.0425)
        assert not quote.interpolated

    def test_interpolates_between_distant_maturities(self, curve):
        quote = risk_free_rate(curve, 15)
        assert quote.interpolated
        assert quote.maturity == "10Yr-20Yr"
        assert quote.rate == pytest.approx(4.35)

    def test_near_maturity_uses_closest(self, curve):
        # 2Yr is only 0.3 years away, inside the 6 month threshold
        quote = risk_free_rate(curve, 2.3)
        assert quote.maturity == "2Yr"
        assert quote.rate == pytest.approx(4.40)
        assert not quote.interpolated

    def test_beyond_the_curve(self, curve):
        assert risk_free_rate(curve, 35).maturity == "30Yr"
        assert risk_free_rate(curve, 0.1).maturity == "1Mo"

    def test_missing_points_are_skipped(self, curve):
        curve["3Yr"] = np.nan
        quote = risk_free_rate(curve, 3)
        assert quote.maturity == "2Yr-5Yr"
        assert quote.rate == pytest.approx(4.30)

    def test_numeric_maturities(self):
        quote = risk_free_rate(pd.Series({1.0: 4.80, 5.0: 4.10}), 3)
        assert quote.maturity == "1Yr-5Yr"
        assert quote.rate == pytest.approx(4.45)

    def test_explicit_threshold(self, curve):
        # 3Yr and 5Yr are both 1 year away; the shorter maturity wins the tie
        quote = risk_free_rate(curve, 4, interpolation_threshold=2.0)
        assert quote.maturity == "3Yr"
        assert not quote.interpolated

    def test_threshold_from_settings(self, curve, monkeypatch):
        monkeypatch.setenv("VALUATION_RATE_INTERPOLATION_THRESHOLD_YEARS", "0")
        quote = risk_free_rate(curve, 2.4)
        assert quote.interpolated
        assert quote.rate == pytest.approx(4.34)

    def test_invalid_inputs(self, curve):
        with pytest.raises(InvalidInputError, match="must be positive"):
            risk_free_rate(curve, 0)
        with pytest.raises(InvalidInputError, match="no rates"):
            risk_free_rate(pd.Series({"1Yr": np.nan}), 1)
        with pytest.raises(InvalidInputError, match="Unknown Treasury maturity"):
            risk_free_rate(pd.Series({"9Yr": 4.0}), 1)


def test_maturity_years():
    assert maturity_years("6Mo") == pytest.approx(0.5)
    assert maturity_years("10Yr") == 10.0
    assert maturity_years(2.5) == 2.5


def test_closest_maturity(curve):
    assert closest_maturity(curve, 4) == "3Yr"
    assert closest_maturity(curve, 8) == "7Yr"
    assert closest_maturity(curve, 0.3) == "3Mo"


class TestAssumptionBuilders:
    def test_opm_assumptions(self, curve, standard_snapshot):
        assumptions = opm_assumptions_from_curve(curve, volatility=0.55, time_to_liquidity=3)

        assert assumptions.risk_free_rate == Decimal("0.0425")
        assert assumptions.volatility == Decimal("0.55")
        assert assumptions.time_to_liquidity == Decimal("3")

        schedule = build_breakpoint_schedule(standard_snapshot)
        allocation = allocate_opm(schedule, 10_000_000, assumptions)["by_class"]
        assert allocation["allocated_value"].sum() == pytest.approx(10_000_000, rel=1e-6)

    def test_dlom_inputs_keep_percent(self, curve):
        inputs = dlom_inputs_from_curve(curve, volatility=45, time_to_liquidity=2, stock_price=Decimal("50"))

        assert inputs.risk_free_rate == Decimal("4.40")
        assert inputs.volatility == Decimal("45")
        assert inputs.stock_price == Decimal("50")
        assert 0 < calculate_dlom(inputs) < 100
