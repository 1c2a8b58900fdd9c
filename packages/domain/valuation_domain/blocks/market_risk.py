"""Peer beta and volatility block.

Consumes price history (wide DataFrames: one column per ticker, date index)
and produces the statistics used to select OPM volatility and support the
WACC beta.
"""

import logging
from datetime import date
from typing import List, Optional

import pandas as pd

from .base import Block, BlockContext
from ..analytics.market_risk import (
    calculate_beta,
    historical_volatility,
    industry_beta,
    volatility_summary,
)

logger = logging.getLogger(__name__)


class PeerRiskBlock(Block):
    """Computes regression beta and historical volatility per peer.

    Inputs (from context):
        - peer_prices: DataFrame, date index, one price column per peer
        - market_prices: Series (or single-column DataFrame) of index levels

    Outputs (to context):
        - peer_risk: One row per peer with beta, adjusted_beta, r_squared,
          standard_error, observations and annualized volatility
        - peer_risk_summary: Single row with industry betas (simple,
          market-cap weighted, median) and volatility statistics
    """

    def __init__(
        self,
        peer_prices_key: str = "peer_prices",
        market_prices_key: str = "market_prices",
        valuation_date: Optional[date] = None,
        period_years: int = 2,
        frequency: str = "daily",
        market_caps: Optional[dict] = None,
    ):
        self.peer_prices_key = peer_prices_key
        self.market_prices_key = market_prices_key
        self.valuation_date = valuation_date
        self.period_years = period_years
        self.frequency = frequency
        self.market_caps = market_caps or {}

    def inputs(self) -> List[str]:
        return [self.peer_prices_key, self.market_prices_key]

    def outputs(self) -> List[str]:
        return ["peer_risk", "peer_risk_summary"]

    def execute(self, context: BlockContext) -> None:
        peer_prices: pd.DataFrame = context.get(self.peer_prices_key)
        market = context.get(self.market_prices_key)
        if isinstance(market, pd.DataFrame):
            market = market.iloc[:, 0]

        rows = []
        for ticker in peer_prices.columns:
            prices = peer_prices[ticker].dropna()
            beta = calculate_beta(prices, market, self.valuation_date, self.period_years)
            rows.append({
                "ticker": ticker,
                "beta": beta.beta,
                "adjusted_beta": beta.adjusted_beta,
                "correlation": beta.correlation,
                "r_squared": beta.r_squared,
                "standard_error": beta.standard_error,
                "observations": beta.observations,
                "volatility": historical_volatility(prices, self.frequency),
                "market_cap": float(self.market_caps.get(ticker, 0.0)),
            })
        risk = pd.DataFrame(rows)

        betas = industry_beta(risk["beta"].tolist(), risk["market_cap"].tolist())
        vols = volatility_summary(dict(zip(risk["ticker"], risk["volatility"])))
        summary = {
            "beta_simple_average": betas["simple_average"],
            "beta_weighted_average": betas["weighted_average"],
            "beta_median": betas["median"],
            **{f"volatility_{key}": value for key, value in vols.items()},
        }
        logger.info("Peer median beta %.2f, median volatility %.1f%%", betas["median"], vols["median"] * 100)

        context.set("peer_risk", risk)
        context.set("peer_risk_summary", pd.DataFrame([summary]))
