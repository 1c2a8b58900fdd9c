"""Risk-free rate matched to a time to liquidity.

The yield curve is a pandas Series of quoted yields in percent (4.25 = 4.25%),
indexed by Treasury maturity label ("3Mo", "5Yr") or by years to maturity.
The rate for a term is the closest maturity on the curve, or a linear
interpolation between the two bounding maturities when both are further away
than ``rate_interpolation_threshold_years``.

Example:
    curve = pd.Series({"1Yr": 4.80, "2Yr": 4.40, "5Yr": 4.10, "10Yr": 4.20})
    quote = risk_free_rate(curve, 3.5)    # interpolated 2Yr-5Yr, 4.25
    assumptions = opm_assumptions_from_curve(curve, volatility=0.55, time_to_liquidity=3.5)
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

import pandas as pd

from ..config import get_settings
from ..errors import InvalidInputError
from ..schemas import DLOMInputs, OPMAssumptions

logger = logging.getLogger(__name__)


TREASURY_MATURITIES = {
    "1Mo": 1 / 12,
    "2Mo": 2 / 12,
    "3Mo": 3 / 12,
    "4Mo": 4 / 12,
    "6Mo": 6 / 12,
    "1Yr": 1.0,
    "2Yr": 2.0,
    "3Yr": 3.0,
    "5Yr": 5.0,
    "7Yr": 7.0,
    "10Yr": 10.0,
    "20Yr": 20.0,
    "30Yr": 30.0,
}


@dataclass(frozen=True)
class RiskFreeRate:
    """A yield read off the curve for one term."""

    rate: float  # percent, as quoted
    maturity: str
    interpolated: bool = False

    @property
    def decimal(self) -> float:
        return self.rate / 100


def maturity_years(maturity: Union[str, float]) -> float:
    """Years to maturity for a Treasury label or a numeric term."""
    if isinstance(maturity, str):
        try:
            return TREASURY_MATURITIES[maturity]
        except KeyError:
            raise InvalidInputError(
                f"Unknown Treasury maturity '{maturity}'. Known: {list(TREASURY_MATURITIES)}"
            ) from None
    return float(maturity)


def _label(maturity: Union[str, float]) -> str:
    return maturity if isinstance(maturity, str) else f"{float(maturity):g}Yr"


def curve_points(yield_curve: pd.Series) -> pd.DataFrame:
    """Quoted points of the curve sorted by term: label, years, rate.

    Raises:
        InvalidInputError: If the curve has no usable rates.
    """
    curve = yield_curve.dropna()
    if curve.empty:
        raise InvalidInputError("Yield curve has no rates")
    points = pd.DataFrame({
        "label": [_label(m) for m in curve.index],
        "years": [maturity_years(m) for m in curve.index],
        "rate": curve.astype(float).to_numpy(),
    })
    return points.sort_values("years", kind="stable").reset_index(drop=True)


def closest_maturity(yield_curve: pd.Series, years: float) -> str:
    """Label of the quoted maturity nearest ``years`` (the shorter one on a tie)."""
    points = curve_points(yield_curve)
    return points["label"].iloc[int((points["years"] - years).abs().to_numpy().argmin())]


def risk_free_rate(
    yield_curve: pd.Series,
    years: float,
    interpolation_threshold: Optional[float] = None,
) -> RiskFreeRate:
    """Risk-free rate for a term of ``years``.

    Interpolated rates are rounded to two decimals, matching the precision
    of published Treasury yields.

    Raises:
        InvalidInputError: If the term is not positive or the curve is empty.
    """
    years = float(years)
    if not years > 0:
        raise InvalidInputError(f"Term must be positive, got {years}")
    if interpolation_threshold is None:
        interpolation_threshold = get_settings().rate_interpolation_threshold_years

    points = curve_points(yield_curve)
    below = points[points["years"] < years]
    above = points[points["years"] > years]

    if not below.empty and not above.empty:
        lower, upper = below.iloc[-1], above.iloc[0]
        if min(years - lower["years"], upper["years"] - years) > interpolation_threshold:
            rate = lower["rate"] + (years - lower["years"]) * (upper["rate"] - lower["rate"]) / (
                upper["years"] - lower["years"]
            )
            quote = RiskFreeRate(round(rate, 2), f"{lower['label']}-{upper['label']}", interpolated=True)
            logger.debug("Interpolated %.2f%% for %.2f years (%s)", quote.rate, years, quote.maturity)
            return quote

    closest = points.iloc[int((points["years"] - years).abs().to_numpy().argmin())]
    return RiskFreeRate(float(closest["rate"]), closest["label"])


def opm_assumptions_from_curve(
    yield_curve: pd.Series,
    volatility: float,
    time_to_liquidity: float,
    dividend_yield: float = 0.0,
) -> OPMAssumptions:
    """OPMAssumptions with the risk-free rate read off the curve (decimal)."""
    quote = risk_free_rate(yield_curve, time_to_liquidity)
    logger.info(
        "OPM risk-free rate %.2f%% from %s for %.2f years", quote.rate, quote.maturity, float(time_to_liquidity)
    )
    return OPMAssumptions(
        volatility=Decimal(str(volatility)),
        risk_free_rate=Decimal(str(quote.rate)) / 100,
        time_to_liquidity=Decimal(str(time_to_liquidity)),
        dividend_yield=Decimal(str(dividend_yield)),
    )


def dlom_inputs_from_curve(
    yield_curve: pd.Series,
    volatility: float,
    time_to_liquidity: float,
    **fields,
) -> DLOMInputs:
    """DLOMInputs with the risk-free rate read off the curve.

    ``volatility`` is in percent, like every DLOMInputs rate.
    """
    quote = risk_free_rate(yield_curve, time_to_liquidity)
    return DLOMInputs(
        volatility=Decimal(str(volatility)),
        risk_free_rate=Decimal(str(quote.rate)),
        time_to_liquidity=Decimal(str(time_to_liquidity)),
        **fields,
    )
