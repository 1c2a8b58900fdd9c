"""Tests for peer beta and volatility estimation."""

from datetime import date

import numpy as np
import pandas as pd
import pytest

from valuation_domain.analytics.market_risk import (
    beta_confidence_interval,
    blume_adjusted_beta,
    calculate_beta,
    historical_volatility,
    industry_beta,
    log_returns,
    regression_beta,
    rolling_beta,
    volatility_summary,
)
from valuation_domain.blocks import BlockContext, PeerRiskBlock
from valuation_domain.errors import InvalidInputError


def _prices(returns: np.ndarray, start: float, dates: pd.DatetimeIndex) -> pd.Series:
    levels = start * np.exp(np.concatenate([[0.0], np.cumsum(returns)]))
    return pd.Series(levels, index=dates)


@pytest.fixture
def market_returns() -> np.ndarray:
    return np.random.RandomState(42).normal(0.0003, 0.01, 300)


@pytest.fixture
def dates() -> pd.DatetimeIndex:
    return pd.bdate_range("2023-01-02", periods=301)


class TestReturns:
    def test_log_returns(self):
        returns = log_returns(pd.Series([100.0, 110.0, 99.0]))
        assert len(returns) == 2
        assert returns.iloc[0] == pytest.approx(np.log(1.1))
        assert returns.iloc[1] == pytest.approx(np.log(0.9))


class TestBeta:
    def test_exact_linear_relationship(self, market_returns, dates):
        market = _prices(market_returns, 4000.0, dates)
        company = _prices(1.5 * market_returns, 50.0, dates)

        result = calculate_beta(company, market)

        assert result.beta == pytest.approx(1.5)
        assert result.correlation == pytest.approx(1.0)
        assert result.r_squared == pytest.approx(1.0)
        assert result.adjusted_beta == pytest.approx(2 / 3 * 1.5 + 1 / 3)
        assert result.observations == 300
        assert result.start_date == date(2023, 1, 2)

    def test_window_ends_at_valuation_date(self, market_returns, dates):
        market = _prices(market_returns, 4000.0, dates)
        company = _prices(1.5 * market_returns, 50.0, dates)

        result = calculate_beta(company, market, valuation_date=dates[100].date(), period_years=2)
        assert result.end_date == dates[100].date()
        assert result.observations == 100

    def test_too_few_matching_dates(self, market_returns, dates):
        market = _prices(market_returns, 4000.0, dates)
        company = _prices(market_returns, 50.0, dates).iloc[:10]
        with pytest.raises(InvalidInputError):
            calculate_beta(company, market)

    def test_regression_needs_three_points(self):
        with pytest.raises(InvalidInputError):
            regression_beta([0.01, 0.02], [0.01, 0.03])

    def test_regression_zero_market_variance(self):
        with pytest.raises(InvalidInputError):
            regression_beta([0.01, 0.02, 0.03], [0.01, 0.01, 0.01])

    def test_blume(self):
        assert blume_adjusted_beta(1.0) == pytest.approx(1.0)
        assert blume_adjusted_beta(0.4) == pytest.approx(0.6)

    def test_confidence_interval(self):
        assert beta_confidence_interval(1.0, 0.1, 50) == pytest.approx((0.804, 1.196))
        assert beta_confidence_interval(1.0, 0.1, 20) == pytest.approx((0.8, 1.2))

    def test_rolling_beta(self, market_returns, dates):
        market = _prices(market_returns, 4000.0, dates)
        company = _prices(1.5 * market_returns, 50.0, dates)
        rolling = rolling_beta(company, market, window=100, step=50)

        assert len(rolling) == 5
        assert rolling["beta"].tolist() == pytest.approx([1.5] * 5)

    def test_industry_beta(self):
        result = industry_beta([1.0, 2.0], [300.0, 100.0])
        assert result["simple_average"] == pytest.approx(1.5)
        assert result["weighted_average"] == pytest.approx(1.25)
        assert result["median"] == pytest.approx(1.5)

    def test_industry_beta_without_caps_is_simple_average(self):
        assert industry_beta([1.0, 2.0], [0.0, 0.0])["weighted_average"] == pytest.approx(1.5)


class TestVolatility:
    def test_daily_annualization(self, market_returns, dates):
        prices = _prices(market_returns, 100.0, dates)
        expected = np.std(market_returns, ddof=1) * np.sqrt(252)
        assert historical_volatility(prices) == pytest.approx(expected)

    def test_monthly_annualization(self, market_returns, dates):
        prices = _prices(market_returns, 100.0, dates)
        expected = np.std(market_returns, ddof=1) * np.sqrt(12)
        assert historical_volatility(prices, frequency="monthly") == pytest.approx(expected)

    def test_unknown_frequency(self, market_returns, dates):
        with pytest.raises(InvalidInputError):
            historical_volatility(_prices(market_returns, 100.0, dates), frequency="hourly")

    def test_too_few_prices(self):
        with pytest.raises(InvalidInputError):
            historical_volatility(pd.Series([100.0]))

    def test_summary(self):
        summary = volatility_summary({"a": 0.3, "b": 0.5, "c": 0.4})
        assert summary["count"] == 3
        assert summary["median"] == pytest.approx(0.4)
        assert summary["min"] == pytest.approx(0.3)
        assert summary["max"] == pytest.approx(0.5)


def test_peer_risk_block(market_returns, dates):
    market = _prices(market_returns, 4000.0, dates)
    peers = pd.DataFrame({
        "AAA": _prices(1.5 * market_returns, 50.0, dates),
        "BBB": _prices(0.5 * market_returns, 20.0, dates),
    })
    context = BlockContext()
    context.set("peer_prices", peers)
    context.set("market_prices", market.to_frame("SPX"))

    PeerRiskBlock(market_caps={"AAA": 100.0, "BBB": 100.0}).execute(context)

    risk = context.get("peer_risk").set_index("ticker")
    assert risk.loc["AAA", "beta"] == pytest.approx(1.5)
    assert risk.loc["BBB", "beta"] == pytest.approx(0.5)
    assert risk.loc["AAA", "volatility"] == pytest.approx(3 * risk.loc["BBB", "volatility"])

    summary = context.get("peer_risk_summary").iloc[0]
    assert summary["beta_median"] == pytest.approx(1.0)
    assert summary["beta_weighted_average"] == pytest.approx(1.0)
