"""Black-Scholes-Merton pricing for European calls and puts.

Used by the OPM (each breakpoint is a call strike on total equity value),
by the put-based DLOM models, and by the implied volatility solver.

Conventions:
    - Rates, yields and volatility are decimals (0.05 = 5%)
    - Time is in years
    - Vega and rho are per 1% move; theta is per calendar day
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

from scipy.stats import norm

from ..config import get_settings
from ..errors import InvalidInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Greeks:
    """Call option sensitivities."""

    delta: float
    gamma: float
    vega: float
    theta: float
    rho: float


def validate_inputs(
    spot: float,
    strike: float,
    time: float,
    rate: float,
    volatility: float,
    dividend_yield: float = 0.0,
    warn: bool = True,
) -> None:
    """Check Black-Scholes inputs, warning on extreme but usable values.

    Solvers that price the same inputs many times pass ``warn=False`` and
    call ``warn_on_extremes`` once themselves.

    Raises:
        InvalidInputError: If any input is outside its valid range.
    """
    errors = []
    if not spot > 0:
        errors.append(f"spot must be > 0, got {spot}")
    if strike < 0:
        errors.append(f"strike must be >= 0, got {strike}")
    if not time > 0:
        errors.append(f"time must be > 0, got {time}")
    if not volatility > 0:
        errors.append(f"volatility must be > 0, got {volatility}")
    if rate < 0:
        errors.append(f"rate must be >= 0, got {rate}")
    if dividend_yield < 0:
        errors.append(f"dividend_yield must be >= 0, got {dividend_yield}")
    if errors:
        raise InvalidInputError("Invalid Black-Scholes inputs: " + "; ".join(errors))

    if warn:
        warn_on_extremes(time, volatility)


def warn_on_extremes(time: float, volatility: float) -> None:
    """Log a warning for unusually high volatility or long time to liquidity."""
    settings = get_settings()
    if volatility > settings.high_volatility_warning:
        logger.warning("Volatility of %.0f%% is unusually high", volatility * 100)
    if time > settings.long_term_warning_years:
        logger.warning("Time to liquidity of %.1f years is unusually long", time)


def d1_d2(
    spot: float,
    strike: float,
    time: float,
    rate: float,
    volatility: float,
    dividend_yield: float = 0.0,
) -> tuple[float, float]:
    """Return the (d1, d2) terms. Requires strike > 0."""
    vol_sqrt_t = volatility * math.sqrt(time)
    d1 = (
        math.log(spot / strike) + (rate - dividend_yield + 0.5 * volatility ** 2) * time
    ) / vol_sqrt_t
    return d1, d1 - vol_sqrt_t


def _call(
    spot: float,
    strike: float,
    time: float,
    rate: float,
    volatility: float,
    dividend_yield: float,
) -> float:
    if strike <= 0:
        return spot
    d1, d2 = d1_d2(spot, strike, time, rate, volatility, dividend_yield)
    value = (
        spot * math.exp(-dividend_yield * time) * norm.cdf(d1)
        - strike * math.exp(-rate * time) * norm.cdf(d2)
    )
    return max(value, 0.0)


def call_value(
    spot: float,
    strike: float,
    time: float,
    rate: float,
    volatility: float,
    dividend_yield: float = 0.0,
) -> float:
    """Price a European call.

    A zero (or negative) strike is worth the full spot value.

    Args:
        spot: Underlying value (total equity value in the OPM)
        strike: Strike price (breakpoint in the OPM)
        time: Years to expiry
        rate: Risk-free rate
        volatility: Annualized volatility
        dividend_yield: Continuous dividend yield

    Returns:
        Call value, never negative.

    Raises:
        InvalidInputError: If inputs are outside their valid range.

    Example:
        >>> round(call_value(100, 100, 1, 0.05, 0.2), 2)
        10.45
    """
    validate_inputs(spot, strike, time, rate, volatility, dividend_yield)
    return _call(spot, strike, time, rate, volatility, dividend_yield)


def call_values(
    spot: float,
    strikes: Sequence[float],
    time: float,
    rate: float,
    volatility: float,
    dividend_yield: float = 0.0,
    warn: bool = True,
) -> List[float]:
    """Price calls at several strikes, validating the shared inputs once."""
    validate_inputs(spot, min(strikes, default=0.0), time, rate, volatility, dividend_yield, warn=warn)
    return [_call(spot, k, time, rate, volatility, dividend_yield) for k in strikes]


def put_value(
    spot: float,
    strike: float,
    time: float,
    rate: float,
    volatility: float,
    dividend_yield: float = 0.0,
) -> float:
    """Price a European put via put-call parity."""
    call = call_value(spot, strike, time, rate, volatility, dividend_yield)
    put = call - spot * math.exp(-dividend_yield * time) + strike * math.exp(-rate * time)
    return max(put, 0.0)


def greeks(
    spot: float,
    strike: float,
    time: float,
    rate: float,
    volatility: float,
    dividend_yield: float = 0.0,
) -> Greeks:
    """Call sensitivities (vega and rho per 1%, theta per day)."""
    validate_inputs(spot, strike, time, rate, volatility, dividend_yield)
    carry = math.exp(-dividend_yield * time)

    if strike <= 0:
        return Greeks(delta=carry, gamma=0.0, vega=0.0, theta=0.0, rho=0.0)

    d1, d2 = d1_d2(spot, strike, time, rate, volatility, dividend_yield)
    discount = math.exp(-rate * time)
    sqrt_t = math.sqrt(time)
    pdf_d1 = norm.pdf(d1)

    theta = (
        -spot * carry * pdf_d1 * volatility / (2 * sqrt_t)
        - rate * strike * discount * norm.cdf(d2)
        + dividend_yield * spot * carry * norm.cdf(d1)
    )

    return Greeks(
        delta=carry * norm.cdf(d1),
        gamma=carry * pdf_d1 / (spot * volatility * sqrt_t),
        vega=spot * carry * pdf_d1 * sqrt_t / 100,
        theta=theta / 365,
        rho=strike * time * discount * norm.cdf(d2) / 100,
    )


def implied_volatility(
    price: float,
    spot: float,
    strike: float,
    time: float,
    rate: float,
    dividend_yield: float = 0.0,
    initial_guess: float = 0.5,
) -> Optional[float]:
    """Solve for the volatility that reproduces an observed call price.

    Newton-Raphson on vega, with volatility clamped to [1%, 500%].

    Returns:
        Implied volatility, or None when vega vanishes or the solver does
        not converge within the configured iterations.
    """
    validate_inputs(spot, strike, time, rate, initial_guess, dividend_yield)
    settings = get_settings()
    if strike <= 0:
        return None

    sigma = initial_guess
    sqrt_t = math.sqrt(time)
    carry = math.exp(-dividend_yield * time)

    for iteration in range(settings.implied_vol_max_iterations):
        diff = _call(spot, strike, time, rate, sigma, dividend_yield) - price
        if abs(diff) < settings.implied_vol_tolerance:
            logger.debug("Implied volatility converged to %.6f after %d iterations", sigma, iteration)
            return sigma

        d1, _ = d1_d2(spot, strike, time, rate, sigma, dividend_yield)
        vega = spot * carry * norm.pdf(d1) * sqrt_t
        if vega < 1e-10:
            logger.debug("Implied volatility stopped: vega vanished at sigma=%.6f", sigma)
            return None

        sigma = min(max(sigma - diff / vega, 0.01), 5.0)

    logger.debug("Implied volatility did not converge for price=%s", price)
    return None
