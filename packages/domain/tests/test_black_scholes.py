"""Tests for Black-Scholes pricing, Greeks and implied volatility."""

import logging
import math

import pytest

from valuation_domain.analytics.black_scholes import (
    call_value,
    call_values,
    greeks,
    implied_volatility,
    put_value,
)
from valuation_domain.errors import InvalidInputError


# Textbook case: S=100, K=100, T=1, r=5%, sigma=20% (d1=0.35, d2=0.15)
SPOT, STRIKE, TIME, RATE, VOL = 100.0, 100.0, 1.0, 0.05, 0.20


class TestPricing:
    def test_call_value(self):
        assert call_value(SPOT, STRIKE, TIME, RATE, VOL) == pytest.approx(10.4506, abs=1e-4)

    def test_put_value(self):
        assert put_value(SPOT, STRIKE, TIME, RATE, VOL) == pytest.approx(5.5735, abs=1e-4)

    def test_put_call_parity(self):
        call = call_value(SPOT, 90, TIME, RATE, VOL)
        put = put_value(SPOT, 90, TIME, RATE, VOL)
        assert call - put == pytest.approx(SPOT - 90 * math.exp(-RATE * TIME))

    def test_zero_strike_is_worth_spot(self):
        assert call_value(SPOT, 0.0, TIME, RATE, VOL) == pytest.approx(SPOT)

    def test_dividend_yield_lowers_call(self):
        assert call_value(SPOT, STRIKE, TIME, RATE, VOL, 0.03) < call_value(SPOT, STRIKE, TIME, RATE, VOL)

    def test_call_values_decrease_with_strike(self):
        values = call_values(SPOT, [0, 50, 100, 150], TIME, RATE, VOL)
        assert values[0] == pytest.approx(SPOT)
        assert values == sorted(values, reverse=True)
        assert values[2] == pytest.approx(10.4506, abs=1e-4)

    def test_call_never_exceeds_spot(self):
        assert call_value(SPOT, 1.0, 10.0, RATE, 2.0) <= SPOT


class TestValidation:
    @pytest.mark.parametrize("kwargs", [
        {"spot": 0.0},
        {"strike": -1.0},
        {"time": 0.0},
        {"volatility": 0.0},
        {"rate": -0.01},
        {"dividend_yield": -0.01},
    ])
    def test_invalid_inputs_raise(self, kwargs):
        args = {"spot": SPOT, "strike": STRIKE, "time": TIME, "rate": RATE, "volatility": VOL}
        args.update(kwargs)
        with pytest.raises(InvalidInputError):
            call_value(**args)

    def test_invalid_input_is_a_value_error(self):
        with pytest.raises(ValueError):
            call_value(-1.0, STRIKE, TIME, RATE, VOL)

    def test_extreme_volatility_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="valuation_domain.analytics.black_scholes"):
            call_value(SPOT, STRIKE, TIME, RATE, 3.5)
        assert "unusually high" in caplog.text

    def test_long_term_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="valuation_domain.analytics.black_scholes"):
            call_value(SPOT, STRIKE, 12.0, RATE, VOL)
        assert "unusually long" in caplog.text


class TestGreeks:
    def test_textbook_greeks(self):
        g = greeks(SPOT, STRIKE, TIME, RATE, VOL)
        assert g.delta == pytest.approx(0.6368, abs=1e-4)
        assert g.gamma == pytest.approx(0.018762, abs=1e-5)
        # Vega per 1% volatility
        assert g.vega == pytest.approx(0.3752, abs=1e-4)
        assert g.theta < 0
        assert g.rho > 0

    def test_zero_strike_delta_is_one(self):
        g = greeks(SPOT, 0.0, TIME, RATE, VOL)
        assert g.delta == pytest.approx(1.0)
        assert g.gamma == 0.0


class TestImpliedVolatility:
    def test_recovers_input_volatility(self):
        price = call_value(SPOT, STRIKE, TIME, RATE, 0.35)
        assert implied_volatility(price, SPOT, STRIKE, TIME, RATE) == pytest.approx(0.35, abs=1e-3)

    def test_recovers_from_low_guess(self):
        price = call_value(SPOT, STRIKE, TIME, RATE, VOL)
        result = implied_volatility(price, SPOT, STRIKE, TIME, RATE, initial_guess=0.1)
        assert result == pytest.approx(VOL, abs=1e-3)

    def test_zero_strike_has_no_implied_volatility(self):
        assert implied_volatility(SPOT, SPOT, 0.0, TIME, RATE) is None
