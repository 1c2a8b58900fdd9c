"""Option pricing model (OPM) allocation block.

Each breakpoint is the strike of a call option on total equity value. The
value of range i is C(strike_i) - C(strike_i+1); the open-ended last range
is worth C(strike_last). Range values are split among securities by their
participation percentage in that range.
"""

import logging
import math
from typing import Dict, List

import pandas as pd

from .base import Block, BlockContext
from .breakpoints import BreakpointSchedule
from ..analytics import black_scholes as bs
from ..config import get_settings
from ..errors import InvalidInputError, ValuationError
from ..schemas import OPMAssumptions

logger = logging.getLogger(__name__)


def _validate_context(schedule: BreakpointSchedule, equity_value: float) -> None:
    if not equity_value > 0:
        raise InvalidInputError(f"Equity value must be positive, got {equity_value}")
    if not schedule.ranges:
        raise InvalidInputError("OPM needs at least one breakpoint")
    if sum(s.shares for s in schedule.securities.values()) <= 0:
        raise InvalidInputError("OPM needs a positive share count")


def _validate_result(allocation: Dict[str, float], equity_value: float) -> None:
    tolerance = get_settings().opm_overallocation_tolerance
    values = list(allocation.values())
    if any(math.isnan(v) for v in values):
        raise ValuationError("OPM allocation produced NaN values")
    if any(v < -1e-6 * equity_value for v in values):
        raise ValuationError("OPM allocation produced negative values")
    total = sum(values)
    if total > equity_value * (1 + tolerance):
        raise ValuationError(
            f"OPM allocated {total:,.2f}, more than the equity value {equity_value:,.2f}"
        )


def allocate_opm(
    schedule: BreakpointSchedule,
    equity_value: float,
    assumptions: OPMAssumptions,
    warn: bool = True,
) -> Dict[str, pd.DataFrame]:
    """Allocate ``equity_value`` across securities with the OPM.

    ``warn=False`` skips the extreme-input warnings; solvers log them once.

    Returns:
        Dict with DataFrames:
            "breakpoint_values": breakpoint_number, breakpoint_type, strike,
                call_value, incremental_value, pct_of_equity
            "by_security": security_id, share_class_id, shares,
                allocated_value, allocation_pct, value_per_share
            "by_class": share_class_id, shares, allocated_value,
                allocation_pct, value_per_share

    Raises:
        InvalidInputError: If the context is unusable.
        ValuationError: If the allocation fails its sanity checks.
    """
    equity_value = float(equity_value)
    _validate_context(schedule, equity_value)

    floor = get_settings().zero_strike_floor
    strikes = [max(s, floor) for s in schedule.strikes]
    calls = bs.call_values(
        equity_value,
        strikes,
        float(assumptions.time_to_liquidity),
        float(assumptions.risk_free_rate),
        float(assumptions.volatility),
        float(assumptions.dividend_yield),
        warn=warn,
    )

    increments = [
        calls[i] - calls[i + 1] if i + 1 < len(calls) else calls[i]
        for i in range(len(calls))
    ]

    allocation = {sid: 0.0 for sid in schedule.securities}
    bp_rows = []
    for rng, strike, call, increment in zip(schedule.ranges, strikes, calls, increments):
        for sid, pct in rng.participation.items():
            allocation[sid] += increment * pct
        bp_rows.append({
            "breakpoint_number": rng.number,
            "breakpoint_type": rng.breakpoint_type,
            "strike": strike,
            "call_value": call,
            "incremental_value": increment,
            "pct_of_equity": increment / equity_value,
        })

    _validate_result(allocation, equity_value)

    sec_rows = []
    for sid, sec in schedule.securities.items():
        value = max(allocation[sid], 0.0)
        sec_rows.append({
            "security_id": sid,
            "share_class_id": sec.share_class_id,
            "shares": sec.shares,
            "allocated_value": value,
            "allocation_pct": value / equity_value,
            "value_per_share": value / sec.shares if sec.shares > 0 else float("nan"),
        })
    by_security = pd.DataFrame(sec_rows)

    by_class = by_security.groupby("share_class_id", as_index=False).agg({
        "shares": "sum",
        "allocated_value": "sum",
        "allocation_pct": "sum",
    })
    by_class["value_per_share"] = by_class["allocated_value"] / by_class["shares"].where(by_class["shares"] > 0)

    logger.debug(
        "OPM at equity %.0f allocated %.0f across %d securities",
        equity_value, by_security["allocated_value"].sum(), len(by_security),
    )

    return {
        "breakpoint_values": pd.DataFrame(bp_rows),
        "by_security": by_security,
        "by_class": by_class,
    }


def class_value_per_share(
    schedule: BreakpointSchedule,
    equity_value: float,
    assumptions: OPMAssumptions,
    share_class_id: str,
    warn: bool = True,
) -> float:
    """OPM value per share of one class at ``equity_value``."""
    by_class = allocate_opm(schedule, equity_value, assumptions, warn=warn)["by_class"]
    row = by_class[by_class["share_class_id"] == share_class_id]
    if row.empty:
        raise InvalidInputError(f"Share class '{share_class_id}' holds no securities in the schedule")
    return float(row["value_per_share"].iloc[0])


class OPMBlock(Block):
    """Allocates total equity value across share classes with the OPM.

    Inputs (from context):
        - breakpoint_schedule: BreakpointSchedule (from BreakpointBlock)
        - equity_value: Total equity value (float or Decimal)
        - opm_assumptions: OPMAssumptions

    Outputs (to context):
        - opm_breakpoint_values: Call value and incremental value per breakpoint
        - opm_allocation: Allocated value and value per share by class
        - opm_allocation_by_security: Same, per security (options split by strike)
    """

    def __init__(
        self,
        equity_value_key: str = "equity_value",
        assumptions_key: str = "opm_assumptions",
        schedule_key: str = "breakpoint_schedule",
    ):
        self.equity_value_key = equity_value_key
        self.assumptions_key = assumptions_key
        self.schedule_key = schedule_key

    def inputs(self) -> List[str]:
        return [self.schedule_key, self.equity_value_key, self.assumptions_key]

    def outputs(self) -> List[str]:
        return [
            "opm_breakpoint_values",
            "opm_allocation",
            "opm_allocation_by_security",
        ]

    def execute(self, context: BlockContext) -> None:
        schedule: BreakpointSchedule = context.get(self.schedule_key)
        equity_value = float(context.get(self.equity_value_key))
        assumptions: OPMAssumptions = context.get(self.assumptions_key)

        result = allocate_opm(schedule, equity_value, assumptions)

        context.set("opm_breakpoint_values", result["breakpoint_values"])
        context.set("opm_allocation", result["by_class"])
        context.set("opm_allocation_by_security", result["by_security"])
