"""Discount rate build-up: peer betas, CAPM cost of equity, WACC.

Beta relevering follows Hamada:
    unlevered = levered / (1 + (1 - t) * D/E)
    levered   = unlevered * (1 + (1 - t) * D/E)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence

import numpy as np
import pandas as pd

from ..errors import InvalidInputError
from ..schemas import PeerCompany, WACCInputs

logger = logging.getLogger(__name__)


INDUSTRY_ADJUSTMENTS: Dict[str, float] = {
    "Low": 0.8,
    "Medium": 1.0,
    "High": 1.2,
}

# Debt weights tested by the capital structure sweep
DEBT_RATIOS = (0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7)

# Added to the pre-tax cost of debt per unit of (debt weight)^2
LEVERAGE_SPREAD = 0.10


@dataclass(frozen=True)
class WACCResult:
    unlevered_beta: float
    relevered_beta: float
    cost_of_equity: float
    after_tax_cost_of_debt: float
    debt_weight: float
    equity_weight: float
    wacc: float

    def components(self, inputs: WACCInputs) -> Dict[str, float]:
        """Cost of equity build-up by component."""
        rf = float(inputs.risk_free_rate)
        return {
            "risk_free_rate": rf,
            "beta_adjusted_premium": self.relevered_beta * float(inputs.equity_risk_premium),
            "size_premium": float(inputs.size_premium),
            "country_risk_premium": float(inputs.country_risk_premium),
            "company_specific_premium": float(inputs.company_specific_premium),
            "total_equity_premium": self.cost_of_equity - rf,
        }


def unlever_beta(levered_beta: float, debt_to_equity: float, tax_rate: float) -> float:
    return levered_beta / (1 + (1 - tax_rate) * debt_to_equity)


def relever_beta(unlevered_beta: float, debt_to_equity: float, tax_rate: float) -> float:
    return unlevered_beta * (1 + (1 - tax_rate) * debt_to_equity)


def adjust_beta_for_industry(beta: float, industry_risk: str) -> float:
    """Scale a beta by the industry business-risk factor (Low/Medium/High)."""
    if industry_risk not in INDUSTRY_ADJUSTMENTS:
        raise InvalidInputError(f"Unknown industry risk '{industry_risk}'")
    return beta * INDUSTRY_ADJUSTMENTS[industry_risk]


def median_unlevered_beta(peers: Sequence[PeerCompany]) -> float:
    """Median of the peers' unlevered betas; 1.0 when there are no peers."""
    if not peers:
        return 1.0
    betas = [
        unlever_beta(float(p.levered_beta), float(p.debt_to_equity), float(p.tax_rate))
        for p in peers
    ]
    return float(np.median(betas))


def peer_beta_table(peers: Sequence[PeerCompany]) -> pd.DataFrame:
    """One row per peer with its levered and unlevered beta."""
    rows = [
        {
            "name": p.name,
            "levered_beta": float(p.levered_beta),
            "debt_to_equity": float(p.debt_to_equity),
            "tax_rate": float(p.tax_rate),
            "unlevered_beta": unlever_beta(float(p.levered_beta), float(p.debt_to_equity), float(p.tax_rate)),
            "market_cap": float(p.market_cap) if p.market_cap is not None else np.nan,
        }
        for p in peers
    ]
    return pd.DataFrame(
        rows,
        columns=["name", "levered_beta", "debt_to_equity", "tax_rate", "unlevered_beta", "market_cap"],
    )


def cost_of_equity(
    risk_free_rate: float,
    beta: float,
    equity_risk_premium: float,
    size_premium: float = 0.0,
    country_risk_premium: float = 0.0,
    company_specific_premium: float = 0.0,
) -> float:
    """CAPM with additive premiums: Rf + beta * ERP + size + country + specific."""
    return (
        risk_free_rate
        + beta * equity_risk_premium
        + size_premium
        + country_risk_premium
        + company_specific_premium
    )


def after_tax_cost_of_debt(pre_tax_cost_of_debt: float, tax_rate: float) -> float:
    return pre_tax_cost_of_debt * (1 - tax_rate)


def calculate_wacc(inputs: WACCInputs) -> WACCResult:
    """WACC at the target debt weight in ``inputs``.

    The unlevered beta is the median peer beta (or ``beta_override``),
    scaled by the industry factor, then relevered at the target D/E.
    """
    return _wacc_at(inputs, float(inputs.debt_weight), float(inputs.pre_tax_cost_of_debt))


def _wacc_at(inputs: WACCInputs, debt_weight: float, pre_tax_debt: float) -> WACCResult:
    if debt_weight >= 1:
        raise InvalidInputError("Debt weight must be below 100%")
    equity_weight = 1 - debt_weight
    debt_to_equity = debt_weight / equity_weight
    tax_rate = float(inputs.tax_rate)

    if inputs.beta_override is not None:
        unlevered = float(inputs.beta_override)
    else:
        unlevered = median_unlevered_beta(inputs.peers)
    unlevered = adjust_beta_for_industry(unlevered, inputs.industry_risk)
    relevered = relever_beta(unlevered, debt_to_equity, tax_rate)

    ke = cost_of_equity(
        float(inputs.risk_free_rate),
        relevered,
        float(inputs.equity_risk_premium),
        float(inputs.size_premium),
        float(inputs.country_risk_premium),
        float(inputs.company_specific_premium),
    )
    kd = after_tax_cost_of_debt(pre_tax_debt, tax_rate)

    return WACCResult(
        unlevered_beta=unlevered,
        relevered_beta=relevered,
        cost_of_equity=ke,
        after_tax_cost_of_debt=kd,
        debt_weight=debt_weight,
        equity_weight=equity_weight,
        wacc=ke * equity_weight + kd * debt_weight,
    )


def capital_structure_sweep(
    inputs: WACCInputs,
    debt_ratios: Sequence[float] = DEBT_RATIOS,
) -> pd.DataFrame:
    """WACC across debt weights, flagging the minimum.

    The pre-tax cost of debt rises with leverage by
    ``LEVERAGE_SPREAD * debt_weight**2``.
    """
    rows: List[Dict[str, float]] = []
    base_debt = float(inputs.pre_tax_cost_of_debt)
    for ratio in debt_ratios:
        pre_tax = base_debt + LEVERAGE_SPREAD * ratio ** 2
        result = _wacc_at(inputs, ratio, pre_tax)
        rows.append({
            "debt_weight": ratio,
            "equity_weight": result.equity_weight,
            "relevered_beta": result.relevered_beta,
            "cost_of_equity": result.cost_of_equity,
            "pre_tax_cost_of_debt": pre_tax,
            "after_tax_cost_of_debt": result.after_tax_cost_of_debt,
            "wacc": result.wacc,
        })

    df = pd.DataFrame(rows)
    df["is_optimal"] = False
    if not df.empty:
        df.loc[df["wacc"].idxmin(), "is_optimal"] = True
    return df
