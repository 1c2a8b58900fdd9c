"""Market and asset approach inputs.

Guideline public companies and precedent transactions share one record type;
the approach is chosen on the MarketApproachCFG.
"""

from typing import Dict, List, Literal, Optional
from datetime import date
from decimal import Decimal
from pydantic import Field, model_validator

from .base import DomainModel, MoneyAmount, Percentage


class ComparableCompany(DomainModel):
    """A guideline public company or a precedent transaction target."""

    name: str
    ticker: Optional[str] = None
    enterprise_value: MoneyAmount
    market_cap: Optional[MoneyAmount] = None
    revenue: Optional[Decimal] = None
    ebitda: Optional[Decimal] = None
    net_income: Optional[Decimal] = None
    transaction_date: Optional[date] = None


MultipleType = Literal["ev_revenue", "ev_ebitda", "pe"]
SelectedStatistic = Literal["mean", "median", "p25", "p75"]


class MarketApproachCFG(DomainModel):
    """One market approach indication.

    Example:
        MarketApproachCFG(
            approach="guideline_public",
            multiple="ev_revenue",
            statistic="median",
            subject_metric=Decimal("12_000_000"),
            discount=Decimal("0.20"),
            comparables=[...],
        )
    """

    approach: Literal["guideline_public", "precedent_transactions"] = "guideline_public"
    multiple: MultipleType = "ev_revenue"
    statistic: SelectedStatistic = "median"

    subject_metric: Decimal = Field(
        description="Subject company revenue, EBITDA, or net income matching the multiple"
    )

    discount: Percentage = Field(
        default=Decimal("0"),
        description="Size/growth discount applied to the selected multiple"
    )

    comparables: List[ComparableCompany] = Field(min_length=1)

    @property
    def value_basis(self) -> str:
        """'equity' for P/E indications, 'enterprise' otherwise."""
        return "equity" if self.multiple == "pe" else "enterprise"

    @model_validator(mode='after')
    def validate_pe_inputs(self):
        if self.multiple == "pe":
            missing = [c.name for c in self.comparables if c.market_cap is None]
            if missing:
                raise ValueError(f"P/E multiple requires market_cap for: {missing}")
        return self


class NetAssetSchedule(DomainModel):
    """Adjusted balance sheet for the asset (cost) approach.

    Implied equity value = total assets - total liabilities.
    """

    assets: Dict[str, Decimal] = Field(default_factory=dict)
    liabilities: Dict[str, Decimal] = Field(default_factory=dict)

    @property
    def total_assets(self) -> Decimal:
        return sum(self.assets.values(), Decimal("0"))

    @property
    def total_liabilities(self) -> Decimal:
        return sum(self.liabilities.values(), Decimal("0"))

    @property
    def implied_equity_value(self) -> Decimal:
        return self.total_assets - self.total_liabilities
