"""OPM backsolve block.

Solves for the total equity value at which the OPM value per share of a
target class equals an observed transaction price (usually the latest
preferred round).
"""

import logging
from dataclasses import dataclass, asdict
from typing import Dict, List

import pandas as pd
from scipy.optimize import brentq

from .base import Block, BlockContext
from .breakpoints import BreakpointSchedule
from .opm import allocate_opm, class_value_per_share
from ..analytics import black_scholes as bs
from ..config import get_settings
from ..errors import ConvergenceError
from ..schemas import BacksolveTarget, OPMAssumptions

logger = logging.getLogger(__name__)


@dataclass
class BacksolveResult:
    share_class_id: str
    target_price: float
    equity_value: float
    achieved_price: float
    error: float
    iterations: int
    converged: bool
    method: str = "brentq"


def backsolve_equity_value(
    schedule: BreakpointSchedule,
    assumptions: OPMAssumptions,
    share_class_id: str,
    target_price: float,
) -> BacksolveResult:
    """Find the equity value that prices ``share_class_id`` at ``target_price``.

    The root is bracketed between 1.0 and an upper bound that starts at
    target price x total as-converted shares and doubles until the class is
    worth more than the target.

    Raises:
        ConvergenceError: If no bracket exists, or the solution misses the
            target by more than the configured tolerance.
    """
    settings = get_settings()
    target_price = float(target_price)
    bs.warn_on_extremes(float(assumptions.time_to_liquidity), float(assumptions.volatility))

    def pricing_error(equity_value: float) -> float:
        price = class_value_per_share(schedule, equity_value, assumptions, share_class_id, warn=False)
        return price - target_price

    lo = 1.0
    if pricing_error(lo) > 0:
        raise ConvergenceError(
            f"'{share_class_id}' is worth more than {target_price} even at an equity value of {lo}"
        )

    total_shares = sum(s.as_converted_shares for s in schedule.securities.values())
    hi = max(target_price * total_shares, 2.0)
    expansions = 0
    while pricing_error(hi) < 0:
        expansions += 1
        if expansions > settings.backsolve_max_bracket_expansions:
            raise ConvergenceError(
                f"Could not bracket an equity value pricing '{share_class_id}' at {target_price}",
                iterations=expansions,
            )
        hi *= 2
    logger.debug("Backsolve bracket [%.2f, %.2f] after %d expansions", lo, hi, expansions)

    root, info = brentq(
        pricing_error,
        lo,
        hi,
        xtol=1e-2,
        maxiter=settings.backsolve_max_iterations,
        full_output=True,
        disp=False,
    )

    achieved = class_value_per_share(schedule, root, assumptions, share_class_id, warn=False)
    error = achieved - target_price
    if not info.converged or abs(error) > settings.backsolve_tolerance:
        raise ConvergenceError(
            f"Backsolve for '{share_class_id}' stopped {error:+.4f} from the target "
            f"after {info.iterations} iterations",
            iterations=info.iterations,
        )

    logger.info(
        "Backsolved equity value %.0f prices '%s' at %.4f (%d iterations)",
        root, share_class_id, achieved, info.iterations,
    )
    return BacksolveResult(
        share_class_id=share_class_id,
        target_price=target_price,
        equity_value=float(root),
        achieved_price=achieved,
        error=error,
        iterations=int(info.iterations),
        converged=True,
    )


class BacksolveBlock(Block):
    """Backsolves total equity value from a known price per share.

    Inputs (from context):
        - breakpoint_schedule: BreakpointSchedule
        - backsolve_target: BacksolveTarget
        - opm_assumptions: OPMAssumptions

    Outputs (to context):
        - backsolve_result: Single row with share_class_id, target_price,
          equity_value, achieved_price, error, iterations, converged, method
        - backsolve_allocation: OPM allocation by class at the solved value
    """

    def __init__(
        self,
        target_key: str = "backsolve_target",
        assumptions_key: str = "opm_assumptions",
        schedule_key: str = "breakpoint_schedule",
    ):
        self.target_key = target_key
        self.assumptions_key = assumptions_key
        self.schedule_key = schedule_key

    def inputs(self) -> List[str]:
        return [self.schedule_key, self.target_key, self.assumptions_key]

    def outputs(self) -> List[str]:
        return ["backsolve_result", "backsolve_allocation"]

    def execute(self, context: BlockContext) -> None:
        schedule: BreakpointSchedule = context.get(self.schedule_key)
        target: BacksolveTarget = context.get(self.target_key)
        assumptions: OPMAssumptions = context.get(self.assumptions_key)

        result = backsolve_equity_value(
            schedule, assumptions, target.share_class_id, float(target.price_per_share)
        )
        allocation: Dict[str, pd.DataFrame] = allocate_opm(
            schedule, result.equity_value, assumptions, warn=False
        )

        context.set("backsolve_result", pd.DataFrame([asdict(result)]))
        context.set("backsolve_allocation", allocation["by_class"])
