"""Discount rate build-up inputs (CAPM + WACC)."""

from typing import List, Literal, Optional
from decimal import Decimal
from pydantic import Field

from .base import DomainModel, Percentage


class PeerCompany(DomainModel):
    """Guideline company used to derive an unlevered beta."""

    name: str
    levered_beta: Decimal = Field(ge=0)
    debt_to_equity: Decimal = Field(default=Decimal("0"), ge=0)
    tax_rate: Percentage = Decimal("0.25")
    market_cap: Optional[Decimal] = Field(default=None, ge=0)


class WACCInputs(DomainModel):
    """Inputs for the weighted average cost of capital.

    Cost of equity = Rf + beta * ERP + size + country + company-specific premiums.
    Beta is the median unlevered peer beta relevered at the target capital
    structure unless ``beta_override`` is given.
    """

    risk_free_rate: Percentage
    equity_risk_premium: Percentage
    size_premium: Percentage = Decimal("0")
    country_risk_premium: Percentage = Decimal("0")
    company_specific_premium: Percentage = Decimal("0")

    pre_tax_cost_of_debt: Percentage = Decimal("0")
    tax_rate: Percentage = Decimal("0.25")

    debt_weight: Percentage = Field(
        default=Decimal("0"),
        description="Target D / (D + E)"
    )

    peers: List[PeerCompany] = Field(default_factory=list)
    beta_override: Optional[Decimal] = Field(default=None, ge=0)

    industry_risk: Literal["Low", "Medium", "High"] = Field(
        default="Medium",
        description="Industry business risk; scales the unlevered beta (Low 0.8, Medium 1.0, High 1.2)"
    )
