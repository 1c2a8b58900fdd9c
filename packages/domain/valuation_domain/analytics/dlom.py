"""Discount for lack of marketability (DLOM) models.

All results are percentages clamped to [0, 100]. Inputs follow DLOMInputs:
volatility, rates and yields in percent.

Models:
    chaffee    European protective put at the money, as % of stock price
    finnerty   Average-strike put, approximated with a strike of 0.92 * S
    ghaidarov  sigma * sqrt(T) * 25 + ln(T + 1) * 8
    longstaff  sigma * sqrt(T) * 20 + r * T * 5 + min(3T, 15)
"""

from __future__ import annotations

import logging
import math
from typing import Dict, Mapping, Optional

from . import black_scholes as bs
from ..config import get_settings
from ..errors import InvalidInputError
from ..schemas import DLOMInputs, DLOM_MODELS

logger = logging.getLogger(__name__)


FINNERTY_STRIKE_RATIO = 0.92


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def _decimals(inputs: DLOMInputs):
    return (
        float(inputs.stock_price),
        float(inputs.time_to_liquidity),
        float(inputs.volatility) / 100,
        float(inputs.risk_free_rate) / 100,
        float(inputs.dividend_yield) / 100,
    )


def chaffee(inputs: DLOMInputs) -> float:
    spot, time, sigma, rate, q = _decimals(inputs)
    strike = float(inputs.strike_price) if inputs.strike_price is not None else spot
    put = bs.put_value(spot, strike, time, rate, sigma, q)
    return _clamp(put / spot * 100)


def finnerty(inputs: DLOMInputs) -> float:
    spot, time, sigma, rate, q = _decimals(inputs)
    put = bs.put_value(spot, spot * FINNERTY_STRIKE_RATIO, time, rate, sigma, q)
    return _clamp(put / spot * 100)


def ghaidarov(inputs: DLOMInputs) -> float:
    _, time, sigma, _, _ = _decimals(inputs)
    return _clamp(sigma * math.sqrt(time) * 25 + math.log(time + 1) * 8)


def longstaff(inputs: DLOMInputs) -> float:
    _, time, sigma, rate, _ = _decimals(inputs)
    return _clamp(sigma * math.sqrt(time) * 20 + rate * time * 5 + min(time * 3, 15))


_MODELS = {
    "chaffee": chaffee,
    "finnerty": finnerty,
    "ghaidarov": ghaidarov,
    "longstaff": longstaff,
}


def calculate_all(inputs: DLOMInputs) -> Dict[str, float]:
    """DLOM (percent) from every model."""
    return {name: _MODELS[name](inputs) for name in DLOM_MODELS}


def resolve_weights(inputs: DLOMInputs) -> Dict[str, float]:
    """Model weights in percent: the inputs' weights, else the configured defaults."""
    if inputs.weights is not None:
        weights = {name: float(inputs.weights.get(name, 0)) for name in DLOM_MODELS}
    else:
        configured = get_settings().dlom_weights
        weights = {name: float(configured.get(name, 0)) for name in DLOM_MODELS}
    return weights


def weighted_dlom(
    results: Mapping[str, float],
    weights: Mapping[str, float],
) -> float:
    """Weighted average DLOM in percent.

    Raises:
        InvalidInputError: If the weights do not total 100.
    """
    total = sum(weights.values())
    if abs(total - 100.0) > 0.01:
        raise InvalidInputError(f"DLOM weights must total 100, got {total}")
    return sum(results[name] * weights.get(name, 0.0) for name in results) / total


def calculate_dlom(inputs: DLOMInputs, weights: Optional[Mapping[str, float]] = None) -> float:
    """Weighted DLOM in percent for ``inputs``."""
    results = calculate_all(inputs)
    resolved = dict(weights) if weights is not None else resolve_weights(inputs)
    value = weighted_dlom(results, resolved)
    logger.debug("DLOM models %s weighted to %.2f%%", results, value)
    return value
