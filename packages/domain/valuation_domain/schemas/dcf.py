"""Discounted cash flow assumptions.

Per-year drivers are lists; a single-element list applies to every
projection year. The number of projection years is the length of
``revenue_growth``.
"""

from typing import Any, Dict, List, Literal, Optional
from datetime import date
from decimal import Decimal
from pydantic import Field, model_validator

from .base import DomainModel, MoneyAmount, Multiple, Percentage, Rate, ShareCount


class StubPeriodInputs(DomainModel):
    """Cash flow components for the partial period before the first full projection year.

    Stub FCF = EBIT - taxes + depreciation - capex - change in NWC.
    """

    ebit: Decimal = Decimal("0")
    taxes: Decimal = Decimal("0")
    depreciation: Decimal = Decimal("0")
    capex: Decimal = Decimal("0")
    nwc_change: Decimal = Decimal("0")

    @property
    def free_cash_flow(self) -> Decimal:
        return self.ebit - self.taxes + self.depreciation - self.capex - self.nwc_change


class DCFAssumptions(DomainModel):
    """Projection drivers and discounting policy for the income approach.

    Defaults mirror a typical base case: 5% growth, 20% EBITDA margin,
    3% D&A, 4% capex, 2% terminal growth.

    Example:
        DCFAssumptions(
            base_revenue=Decimal("10_000_000"),
            revenue_growth=[Decimal("0.30"), Decimal("0.25"), Decimal("0.20")],
            ebitda_margin=[Decimal("0.10"), Decimal("0.15"), Decimal("0.20")],
            wacc=Decimal("0.18"),
        )
    """

    base_revenue: MoneyAmount = Field(
        description="Revenue of the most recent fiscal year"
    )

    revenue_growth: List[Rate] = Field(
        default_factory=lambda: [Decimal("0.05")] * 5,
        min_length=1,
        max_length=15,
        description="Year-over-year revenue growth per projection year"
    )

    ebitda_margin: List[Rate] = Field(default_factory=lambda: [Decimal("0.20")])
    depreciation_pct: List[Percentage] = Field(
        default_factory=lambda: [Decimal("0.03")],
        description="Depreciation & amortization as % of revenue"
    )
    capex_pct: List[Percentage] = Field(
        default_factory=lambda: [Decimal("0.04")],
        description="Capital expenditures as % of revenue"
    )
    nwc_pct: List[Rate] = Field(
        default_factory=lambda: [Decimal("0.01")],
        description="Change in net working capital as % of revenue"
    )

    tax_rate: Percentage = Decimal("0.25")

    wacc: Optional[Percentage] = Field(
        default=None,
        description="Discount rate. When None the rate comes from the WACC build-up."
    )

    terminal_method: Literal["perpetual_growth", "exit_multiple"] = "perpetual_growth"
    terminal_growth: Rate = Decimal("0.02")
    exit_multiple: Optional[Multiple] = Field(
        default=None,
        description="Terminal EV/EBITDA multiple (exit_multiple method)"
    )
    terminal_nopat_margin: Optional[Percentage] = Field(
        default=None,
        description="Terminal-year NOPAT margin; with terminal_reinvestment_rate replaces the last-year FCF"
    )
    terminal_reinvestment_rate: Optional[Percentage] = None

    mid_year_convention: bool = False

    fiscal_year_end: Optional[date] = None
    valuation_date: Optional[date] = None
    stub_period: Optional[StubPeriodInputs] = None

    cash: MoneyAmount = Decimal("0")
    debt: MoneyAmount = Decimal("0")
    shares_outstanding: Optional[ShareCount] = None

    @property
    def projection_years(self) -> int:
        return len(self.revenue_growth)

    def driver(self, name: str, year_index: int) -> Decimal:
        """Value of a per-year driver, broadcasting single-element lists."""
        values = getattr(self, name)
        return values[0] if len(values) == 1 else values[year_index]

    @property
    def stub_fraction(self) -> float:
        """Fraction of a year between fiscal year end and valuation date.

        Zero when either date is missing or the valuation date is not after
        the fiscal year end.
        """
        if self.fiscal_year_end is None or self.valuation_date is None:
            return 0.0
        days = (self.valuation_date - self.fiscal_year_end).days
        if days <= 0:
            return 0.0
        return min(days / 365.0, 1.0)

    @model_validator(mode='after')
    def validate_drivers(self):
        years = self.projection_years
        for name in ("ebitda_margin", "depreciation_pct", "capex_pct", "nwc_pct"):
            length = len(getattr(self, name))
            if length not in (1, years):
                raise ValueError(
                    f"{name} has {length} values; expected 1 or {years} (one per projection year)"
                )

        if self.terminal_method == "exit_multiple" and self.exit_multiple is None:
            raise ValueError("exit_multiple terminal method requires exit_multiple")

        if (self.terminal_nopat_margin is None) != (self.terminal_reinvestment_rate is None):
            raise ValueError(
                "terminal_nopat_margin and terminal_reinvestment_rate must be set together"
            )
        return self

    def with_overrides(self, overrides: Dict[str, Any]) -> "DCFAssumptions":
        """Return a re-validated copy with fields replaced (used for scenarios)."""
        return DCFAssumptions.model_validate({**self.model_dump(), **overrides})


class DCFScenario(DomainModel):
    """Named variant of the base DCF (e.g. upside, downside).

    Example:
        DCFScenario(id="upside", label="Upside",
                    overrides={"revenue_growth": [0.40, 0.30, 0.25]})
    """

    id: str = Field(pattern=r'^[a-z][a-z0-9_]*$')
    label: str
    overrides: Dict[str, Any] = Field(default_factory=dict)
