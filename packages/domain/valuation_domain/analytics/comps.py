"""Market approach: trading and transaction multiples.

Multiples with a non-positive denominator are excluded (NaN) rather than
reported as negative or infinite.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from ..errors import InvalidInputError
from ..schemas import ComparableCompany, MarketApproachCFG

logger = logging.getLogger(__name__)


# (numerator field, denominator field) per multiple
MULTIPLE_DEFINITIONS = {
    "ev_revenue": ("enterprise_value", "revenue"),
    "ev_ebitda": ("enterprise_value", "ebitda"),
    "pe": ("market_cap", "net_income"),
}


@dataclass(frozen=True)
class MarketIndication:
    approach: str
    multiple: str
    statistic: str
    selected_multiple: float
    discount: float
    adjusted_multiple: float
    subject_metric: float
    indicated_value: float
    value_basis: str


def _ratio(numerator: Optional[float], denominator: Optional[float]) -> float:
    if numerator is None or denominator is None or denominator <= 0:
        return np.nan
    return float(numerator) / float(denominator)


def multiples_table(comparables: Sequence[ComparableCompany]) -> pd.DataFrame:
    """EV/Revenue, EV/EBITDA and P/E for each comparable."""
    rows = []
    for comp in comparables:
        row = {
            "name": comp.name,
            "ticker": comp.ticker,
            "enterprise_value": float(comp.enterprise_value),
            "revenue": float(comp.revenue) if comp.revenue is not None else np.nan,
            "ebitda": float(comp.ebitda) if comp.ebitda is not None else np.nan,
        }
        for multiple, (num, den) in MULTIPLE_DEFINITIONS.items():
            row[multiple] = _ratio(getattr(comp, num), getattr(comp, den))
        rows.append(row)
    return pd.DataFrame(rows)


def multiple_statistics(values: Sequence[float]) -> Dict[str, float]:
    """Count, mean, median, quartiles, min and max, ignoring NaN."""
    v = np.asarray(values, dtype=float)
    v = v[~np.isnan(v)]
    if len(v) == 0:
        return {key: np.nan for key in ("mean", "median", "p25", "p75", "min", "max")} | {"count": 0}
    return {
        "count": int(len(v)),
        "mean": float(v.mean()),
        "median": float(np.median(v)),
        "p25": float(np.percentile(v, 25)),
        "p75": float(np.percentile(v, 75)),
        "min": float(v.min()),
        "max": float(v.max()),
    }


def statistics_table(multiples: pd.DataFrame) -> pd.DataFrame:
    """One row per multiple type with its descriptive statistics."""
    rows = []
    for multiple in MULTIPLE_DEFINITIONS:
        stats = multiple_statistics(multiples[multiple]) if multiple in multiples else multiple_statistics([])
        rows.append({"multiple": multiple, **stats})
    return pd.DataFrame(rows)


def market_indication(cfg: MarketApproachCFG) -> MarketIndication:
    """Implied value = selected statistic x (1 - discount) x subject metric.

    The value is enterprise value for EV multiples and equity value for P/E.

    Raises:
        InvalidInputError: If no comparable has a usable multiple.
    """
    table = multiples_table(cfg.comparables)
    stats = multiple_statistics(table[cfg.multiple])
    if stats["count"] == 0:
        raise InvalidInputError(
            f"No comparable has a positive denominator for {cfg.multiple} ({cfg.approach})"
        )

    selected = stats[cfg.statistic]
    discount = float(cfg.discount)
    adjusted = selected * (1 - discount)
    metric = float(cfg.subject_metric)
    value = adjusted * metric

    logger.debug(
        "%s %s %s: %.2fx -> %.2fx, value %.0f",
        cfg.approach, cfg.multiple, cfg.statistic, selected, adjusted, value,
    )

    return MarketIndication(
        approach=cfg.approach,
        multiple=cfg.multiple,
        statistic=cfg.statistic,
        selected_multiple=selected,
        discount=discount,
        adjusted_multiple=adjusted,
        subject_metric=metric,
        indicated_value=value,
        value_basis=cfg.value_basis,
    )
