"""Beta and volatility estimation from price history.

Price series are pandas Series indexed by date. Returns are log returns.
Volatilities are decimals (0.45 = 45%).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..errors import InvalidInputError

logger = logging.getLogger(__name__)


ANNUALIZATION_FACTORS: Dict[str, int] = {
    "daily": 252,
    "weekly": 52,
    "monthly": 12,
}

MIN_BETA_OBSERVATIONS = 20


@dataclass(frozen=True)
class BetaResult:
    beta: float
    adjusted_beta: float
    correlation: float
    r_squared: float
    standard_error: float
    observations: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None


def log_returns(prices: pd.Series) -> pd.Series:
    """ln(P_t / P_t-1), dropping the first (undefined) observation."""
    prices = prices.astype(float)
    return np.log(prices / prices.shift(1)).iloc[1:]


def align_prices(company: pd.Series, market: pd.Series) -> pd.DataFrame:
    """Inner-join two price series on date, sorted ascending."""
    df = pd.concat({"company": company, "market": market}, axis=1, join="inner")
    return df.sort_index().dropna()


def blume_adjusted_beta(raw_beta: float) -> float:
    """Blume adjustment toward 1: 2/3 * beta + 1/3."""
    return (2 / 3) * raw_beta + 1 / 3


def regression_beta(
    company_returns: Sequence[float],
    market_returns: Sequence[float],
) -> Dict[str, float]:
    """Beta = cov(company, market) / var(market), with fit statistics.

    The standard error uses residuals of the through-origin fit
    ``company = beta * market``.
    """
    y = np.asarray(company_returns, dtype=float)
    x = np.asarray(market_returns, dtype=float)
    if len(y) != len(x):
        raise InvalidInputError("Company and market returns must have the same length")
    n = len(y)
    if n < 3:
        raise InvalidInputError("Insufficient data points for beta calculation")

    cov = np.cov(y, x, ddof=1)
    market_var = cov[1, 1]
    if market_var == 0:
        raise InvalidInputError("Market returns have zero variance")

    beta = cov[0, 1] / market_var
    correlation = cov[0, 1] / np.sqrt(cov[0, 0] * market_var) if cov[0, 0] > 0 else 0.0
    residuals = y - beta * x
    standard_error = np.sqrt(np.sum(residuals ** 2) / (n - 2))

    return {
        "beta": float(beta),
        "correlation": float(correlation),
        "r_squared": float(correlation ** 2),
        "standard_error": float(standard_error),
    }


def calculate_beta(
    company_prices: pd.Series,
    market_prices: pd.Series,
    valuation_date: Optional[date] = None,
    period_years: int = 2,
) -> BetaResult:
    """Regression beta over ``period_years`` ending at ``valuation_date``.

    Raises:
        InvalidInputError: If fewer than 20 dates match between the series.
    """
    aligned = align_prices(company_prices, market_prices)
    if valuation_date is not None:
        end = pd.Timestamp(valuation_date)
        start = end - pd.DateOffset(years=period_years)
        index = pd.to_datetime(aligned.index)
        aligned = aligned[(index >= start) & (index <= end)]

    if len(aligned) < MIN_BETA_OBSERVATIONS:
        raise InvalidInputError(
            f"Insufficient data points for beta calculation. Found {len(aligned)} matching dates."
        )

    stats = regression_beta(log_returns(aligned["company"]), log_returns(aligned["market"]))
    return BetaResult(
        beta=stats["beta"],
        adjusted_beta=blume_adjusted_beta(stats["beta"]),
        correlation=stats["correlation"],
        r_squared=stats["r_squared"],
        standard_error=stats["standard_error"],
        observations=len(aligned) - 1,
        start_date=pd.Timestamp(aligned.index[0]).date(),
        end_date=pd.Timestamp(aligned.index[-1]).date(),
    )


def beta_confidence_interval(beta: float, standard_error: float, observations: int) -> Tuple[float, float]:
    """Approximate 95% interval (t = 1.96 above 30 observations, else 2.0)."""
    t_critical = 1.96 if observations > 30 else 2.0
    margin = t_critical * standard_error
    return beta - margin, beta + margin


def rolling_beta(
    company_prices: pd.Series,
    market_prices: pd.Series,
    window: int = 252,
    step: int = 21,
) -> pd.DataFrame:
    """Beta over trailing windows of ``window`` prices, every ``step`` prices."""
    aligned = align_prices(company_prices, market_prices)
    rows = []
    for end in range(window, len(aligned) + 1, step):
        chunk = aligned.iloc[end - window:end]
        stats = regression_beta(log_returns(chunk["company"]), log_returns(chunk["market"]))
        rows.append({
            "date": aligned.index[end - 1],
            "beta": stats["beta"],
            "r_squared": stats["r_squared"],
        })
    return pd.DataFrame(rows, columns=["date", "beta", "r_squared"])


def industry_beta(betas: Sequence[float], market_caps: Sequence[float]) -> Dict[str, float]:
    """Simple, market-cap weighted and median beta across peers."""
    if len(betas) == 0:
        raise InvalidInputError("No peer companies provided")
    b = np.asarray(betas, dtype=float)
    caps = np.asarray(market_caps, dtype=float)
    total_cap = caps.sum()
    weighted = float(np.dot(b, caps) / total_cap) if total_cap > 0 else float(b.mean())
    return {
        "simple_average": float(b.mean()),
        "weighted_average": weighted,
        "median": float(np.median(b)),
    }


def historical_volatility(
    prices: pd.Series,
    frequency: str = "daily",
    annualization_factor: Optional[int] = None,
) -> float:
    """Annualized standard deviation of log returns (sample variance).

    Raises:
        InvalidInputError: With fewer than 2 prices or an unknown frequency.
    """
    if len(prices) < 2:
        raise InvalidInputError("Need at least 2 data points to calculate volatility")
    if annualization_factor is None:
        if frequency not in ANNUALIZATION_FACTORS:
            raise InvalidInputError(f"Unknown frequency '{frequency}'")
        annualization_factor = ANNUALIZATION_FACTORS[frequency]

    returns = log_returns(prices.sort_index())
    if len(returns) < 2:
        return 0.0
    return float(returns.std(ddof=1) * np.sqrt(annualization_factor))


def volatility_summary(volatilities: Mapping[str, float]) -> Dict[str, float]:
    """Descriptive statistics over peer volatilities."""
    if not volatilities:
        raise InvalidInputError("No peer volatilities provided")
    v = np.asarray(list(volatilities.values()), dtype=float)
    return {
        "count": float(len(v)),
        "mean": float(v.mean()),
        "median": float(np.median(v)),
        "p25": float(np.percentile(v, 25)),
        "p75": float(np.percentile(v, 75)),
        "min": float(v.min()),
        "max": float(v.max()),
    }
