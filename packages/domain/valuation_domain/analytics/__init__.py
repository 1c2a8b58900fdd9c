"""Valuation analytics.

Pure functions over floats, pandas objects and schema models. Blocks call
these and publish the results as DataFrames.

Modules:
- black_scholes: option pricing, greeks, implied volatility
- probability: scenario probability validation and weighting
- discounting: discount factors, terminal values, DCF engine
- cost_of_capital: beta relevering, CAPM, WACC
- market_risk: regression beta and historical volatility
- dlom: discount for lack of marketability models
- comps: trading and transaction multiples
- rates: risk-free rate matched to a term on the yield curve
"""

from . import (
    black_scholes,
    comps,
    cost_of_capital,
    discounting,
    dlom,
    market_risk,
    probability,
    rates,
)

__all__ = [
    "black_scholes",
    "comps",
    "cost_of_capital",
    "discounting",
    "dlom",
    "market_risk",
    "probability",
    "rates",
]
