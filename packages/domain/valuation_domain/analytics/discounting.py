"""Discounting and the discounted cash flow engine (income approach).

Timing convention:
    A stub period of ``s`` years (fiscal year end to valuation date) comes
    first. Full projection year ``i`` (0-based) is discounted at
    ``t = s + i + 1`` (end of year) or ``t = s + i + 0.5`` (mid-year). The
    stub cash flow itself is discounted at ``s`` or ``s / 2``.

The terminal value is discounted with the final projection year's factor.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from ..config import get_settings
from ..errors import InvalidInputError
from ..schemas import DCFAssumptions

logger = logging.getLogger(__name__)


# Driver shifts used by the tornado chart (absolute, in decimal terms)
TORNADO_STEPS: Dict[str, float] = {
    "wacc": 0.01,
    "terminal_growth": 0.005,
    "exit_multiple": 1.0,
    "revenue_growth": 0.05,
    "ebitda_margin": 0.02,
    "tax_rate": 0.05,
    "capex_pct": 0.01,
}


# =============================================================================
# Primitives
# =============================================================================

def validate_discount_rate(rate: float) -> None:
    """Raise InvalidInputError unless 0 <= rate <= 1."""
    if not 0 <= rate <= 1:
        raise InvalidInputError(f"Discount rate must be between 0 and 1, got {rate}")


def discount_factor(rate: float, years: float) -> float:
    """1 / (1 + rate)^years."""
    return 1.0 / (1.0 + rate) ** years


def period_timings(
    years: int,
    stub_fraction: float = 0.0,
    mid_year: bool = False,
) -> List[float]:
    """Discounting periods (in years) for each full projection year."""
    offset = 0.5 if mid_year else 1.0
    return [stub_fraction + i + offset for i in range(years)]


def stub_timing(stub_fraction: float, mid_year: bool = False) -> float:
    """Discounting period for the stub cash flow."""
    return stub_fraction / 2 if mid_year else stub_fraction


def gordon_growth_value(next_year_fcf: float, rate: float, growth: float) -> float:
    """Terminal value under the perpetual growth method: FCF(n+1) / (r - g).

    Raises:
        InvalidInputError: If growth is not below the discount rate.
    """
    if growth >= rate:
        raise InvalidInputError(
            f"Terminal growth ({growth:.2%}) must be below the discount rate ({rate:.2%})"
        )
    return next_year_fcf / (rate - growth)


def exit_multiple_value(metric: float, multiple: float) -> float:
    """Terminal value under the exit multiple method."""
    return metric * multiple


# =============================================================================
# DCF Engine
# =============================================================================

@dataclass
class DCFResult:
    """Outcome of one DCF run.

    ``projections`` has one row per projection year with the operating
    build, timing and present value of free cash flow.
    """

    projections: pd.DataFrame
    discount_rate: float
    stub_fraction: float
    stub_fcf: float
    pv_stub_fcf: float
    sum_pv_fcf: float
    terminal_fcf: Optional[float]
    terminal_value: float
    pv_terminal_value: float
    enterprise_value: float
    cash: float
    debt: float
    equity_value: float
    implied_share_price: Optional[float]

    @property
    def terminal_value_pct(self) -> float:
        """Share of enterprise value coming from the terminal value."""
        if self.enterprise_value == 0:
            return 0.0
        return self.pv_terminal_value / self.enterprise_value

    def summary_row(self) -> Dict[str, Optional[float]]:
        return {
            "discount_rate": self.discount_rate,
            "stub_fraction": self.stub_fraction,
            "pv_stub_fcf": self.pv_stub_fcf,
            "sum_pv_fcf": self.sum_pv_fcf,
            "terminal_value": self.terminal_value,
            "pv_terminal_value": self.pv_terminal_value,
            "terminal_value_pct": self.terminal_value_pct,
            "enterprise_value": self.enterprise_value,
            "cash": self.cash,
            "debt": self.debt,
            "equity_value": self.equity_value,
            "implied_share_price": self.implied_share_price,
        }


def project_cash_flows(assumptions: DCFAssumptions) -> pd.DataFrame:
    """Build the operating projection (no discounting).

    Revenue compounds from the base year. Taxes apply to positive EBIT only.
    FCF = EBITDA - taxes - capex - change in NWC.
    """
    rows = []
    revenue = float(assumptions.base_revenue)
    tax_rate = float(assumptions.tax_rate)

    for i in range(assumptions.projection_years):
        growth = float(assumptions.revenue_growth[i])
        revenue = revenue * (1 + growth)
        ebitda = revenue * float(assumptions.driver("ebitda_margin", i))
        depreciation = revenue * float(assumptions.driver("depreciation_pct", i))
        ebit = ebitda - depreciation
        taxes = max(ebit, 0.0) * tax_rate
        capex = revenue * float(assumptions.driver("capex_pct", i))
        nwc_change = revenue * float(assumptions.driver("nwc_pct", i))
        fcf = ebitda - taxes - capex - nwc_change

        rows.append({
            "year": i + 1,
            "revenue": revenue,
            "revenue_growth": growth,
            "ebitda": ebitda,
            "ebitda_margin": ebitda / revenue if revenue else 0.0,
            "depreciation": depreciation,
            "ebit": ebit,
            "taxes": taxes,
            "nopat": ebit - taxes,
            "capex": capex,
            "nwc_change": nwc_change,
            "free_cash_flow": fcf,
        })

    return pd.DataFrame(rows)


def run_dcf(assumptions: DCFAssumptions, discount_rate: Optional[float] = None) -> DCFResult:
    """Value the business with a discounted cash flow.

    Args:
        assumptions: Projection drivers and discounting policy
        discount_rate: WACC; falls back to ``assumptions.wacc``

    Raises:
        InvalidInputError: If no discount rate is available, it is outside
            [0, 1], or terminal growth is not below it.
    """
    if discount_rate is None:
        if assumptions.wacc is None:
            raise InvalidInputError("No discount rate: set DCFAssumptions.wacc or supply WACC inputs")
        discount_rate = float(assumptions.wacc)
    rate = float(discount_rate)
    validate_discount_rate(rate)

    projections = project_cash_flows(assumptions)
    stub = assumptions.stub_fraction
    mid_year = assumptions.mid_year_convention

    timings = period_timings(len(projections), stub, mid_year)
    projections["period"] = timings
    projections["discount_factor"] = [discount_factor(rate, t) for t in timings]
    projections["pv_fcf"] = projections["free_cash_flow"] * projections["discount_factor"]

    stub_fcf = 0.0
    pv_stub = 0.0
    if assumptions.stub_period is not None and stub > 0:
        stub_fcf = float(assumptions.stub_period.free_cash_flow)
        pv_stub = stub_fcf * discount_factor(rate, stub_timing(stub, mid_year))

    last = projections.iloc[-1]
    growth = float(assumptions.terminal_growth)
    terminal_fcf: Optional[float] = None

    if assumptions.terminal_method == "exit_multiple":
        terminal_value = exit_multiple_value(float(last["ebitda"]), float(assumptions.exit_multiple))
    else:
        if assumptions.terminal_nopat_margin is not None:
            terminal_revenue = float(last["revenue"]) * (1 + growth)
            terminal_fcf = (
                terminal_revenue
                * float(assumptions.terminal_nopat_margin)
                * (1 - float(assumptions.terminal_reinvestment_rate))
            )
        else:
            terminal_fcf = float(last["free_cash_flow"]) * (1 + growth)
        terminal_value = gordon_growth_value(terminal_fcf, rate, growth)

    pv_terminal = terminal_value * float(last["discount_factor"])
    sum_pv_fcf = float(projections["pv_fcf"].sum())
    enterprise_value = sum_pv_fcf + pv_stub + pv_terminal

    cash = float(assumptions.cash)
    debt = float(assumptions.debt)
    equity_value = enterprise_value + cash - debt

    share_price = None
    if assumptions.shares_outstanding:
        share_price = equity_value / float(assumptions.shares_outstanding)

    logger.debug(
        "DCF at %.2f%%: EV=%.0f (terminal %.0f%%)",
        rate * 100, enterprise_value, (pv_terminal / enterprise_value * 100) if enterprise_value else 0,
    )

    return DCFResult(
        projections=projections,
        discount_rate=rate,
        stub_fraction=stub,
        stub_fcf=stub_fcf,
        pv_stub_fcf=pv_stub,
        sum_pv_fcf=sum_pv_fcf,
        terminal_fcf=terminal_fcf,
        terminal_value=terminal_value,
        pv_terminal_value=pv_terminal,
        enterprise_value=enterprise_value,
        cash=cash,
        debt=debt,
        equity_value=equity_value,
        implied_share_price=share_price,
    )


# =============================================================================
# Sensitivity and Tornado
# =============================================================================

def sensitivity_grid(
    assumptions: DCFAssumptions,
    discount_rate: float,
    steps: Optional[int] = None,
) -> pd.DataFrame:
    """Enterprise value over discount rate (rows) x terminal driver (columns).

    The terminal driver is terminal growth for the perpetual growth method
    and the exit multiple otherwise. Cells with invalid combinations
    (growth >= rate, negative rate) are NaN.
    """
    settings = get_settings()
    steps = settings.sensitivity_steps if steps is None else steps
    offsets = range(-steps, steps + 1)

    rates = [discount_rate + k * settings.sensitivity_rate_step for k in offsets]
    if assumptions.terminal_method == "exit_multiple":
        field_name = "exit_multiple"
        base = float(assumptions.exit_multiple)
        step = settings.sensitivity_multiple_step
    else:
        field_name = "terminal_growth"
        base = float(assumptions.terminal_growth)
        step = settings.sensitivity_growth_step
    drivers = [base + k * step for k in offsets]

    grid = np.full((len(rates), len(drivers)), np.nan)
    for j, driver in enumerate(drivers):
        try:
            variant = assumptions.with_overrides({field_name: driver})
        except ValueError:
            continue
        for i, rate in enumerate(rates):
            try:
                grid[i, j] = run_dcf(variant, rate).enterprise_value
            except InvalidInputError:
                continue

    df = pd.DataFrame(grid, index=pd.Index(rates, name="discount_rate"), columns=drivers)
    df.columns.name = field_name
    return df


def _shifted(assumptions: DCFAssumptions, driver: str, delta: float) -> DCFAssumptions:
    value = getattr(assumptions, driver)
    if isinstance(value, list):
        return assumptions.with_overrides({driver: [float(v) + delta for v in value]})
    return assumptions.with_overrides({driver: float(value) + delta})


def tornado(assumptions: DCFAssumptions, discount_rate: float) -> pd.DataFrame:
    """One-at-a-time driver sensitivity of enterprise value.

    Each driver in TORNADO_STEPS is moved down and up by its step. Rows are
    sorted by spread (largest first). A side whose shifted inputs are
    invalid is NaN.
    """
    base_ev = run_dcf(assumptions, discount_rate).enterprise_value
    rows = []

    for driver, step in TORNADO_STEPS.items():
        if driver == "terminal_growth" and assumptions.terminal_method != "perpetual_growth":
            continue
        if driver == "exit_multiple" and assumptions.terminal_method != "exit_multiple":
            continue

        values = []
        for delta in (-step, step):
            try:
                if driver == "wacc":
                    ev = run_dcf(assumptions, discount_rate + delta).enterprise_value
                else:
                    ev = run_dcf(_shifted(assumptions, driver, delta), discount_rate).enterprise_value
            except ValueError:
                ev = math.nan
            values.append(ev)

        low, high = values
        rows.append({
            "driver": driver,
            "step": step,
            "low_value": low,
            "high_value": high,
            "base_value": base_ev,
            "spread": abs(high - low),
        })

    df = pd.DataFrame(rows)
    return df.sort_values("spread", ascending=False, na_position="last").reset_index(drop=True)
