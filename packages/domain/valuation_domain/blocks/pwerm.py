"""Probability-weighted expected return (PWERM) and hybrid blocks.

PWERM: each scenario's exit value is allocated (waterfall or OPM), discounted
to the valuation date and weighted by its probability.

Hybrid: each scenario re-runs the OPM backsolve with its own assumptions; the
resulting equity values and common values per share are probability weighted.

Probabilities are entered in percent and normalized before weighting.
"""

import logging
from typing import Dict, List, Optional, Sequence

import pandas as pd

from .base import Block, BlockContext
from .backsolve import backsolve_equity_value
from .breakpoints import BreakpointSchedule
from .opm import allocate_opm
from ..analytics.probability import distribution_statistics, validate_probabilities
from ..errors import InvalidInputError
from ..schemas import BacksolveTarget, HybridScenario, OPMAssumptions, PWERMScenario

logger = logging.getLogger(__name__)


def _normalized_weights(probabilities: Sequence[float]) -> List[float]:
    validation = validate_probabilities(probabilities)
    validation.raise_for_errors()
    return validation.normalized


def scenario_assumptions(
    scenario,
    base: Optional[OPMAssumptions],
) -> OPMAssumptions:
    """OPM assumptions for a scenario: the base with the scenario's overrides."""
    if base is not None:
        return base.with_overrides(
            volatility=scenario.volatility,
            risk_free_rate=scenario.risk_free_rate,
            time_to_liquidity=scenario.time_to_liquidity,
        )
    if None in (scenario.volatility, scenario.risk_free_rate, scenario.time_to_liquidity):
        raise InvalidInputError(
            f"Scenario '{scenario.id}' has no complete OPM assumptions"
        )
    return OPMAssumptions(
        volatility=scenario.volatility,
        risk_free_rate=scenario.risk_free_rate,
        time_to_liquidity=scenario.time_to_liquidity,
    )


def _security_values(
    schedule: BreakpointSchedule,
    scenario: PWERMScenario,
    net_proceeds: float,
    base: Optional[OPMAssumptions],
) -> Dict[str, float]:
    if scenario.allocation_method == "waterfall" or net_proceeds <= 0:
        return schedule.allocate(net_proceeds)
    by_security = allocate_opm(schedule, net_proceeds, scenario_assumptions(scenario, base))["by_security"]
    return dict(zip(by_security["security_id"], by_security["allocated_value"]))


class PWERMBlock(Block):
    """Probability-weights scenario outcomes per share class.

    Inputs (from context):
        - breakpoint_schedule: BreakpointSchedule
        - pwerm_scenarios: List[PWERMScenario]
        - opm_assumptions: OPMAssumptions (only when assumptions_key is set)

    Outputs (to context):
        - pwerm_scenario_values: One row per (scenario, class):
            * scenario_id, label, probability, weight, allocation_method
            * exit_value, net_proceeds, years_to_exit, discount_rate, pv_factor
            * share_class_id, shares, exit_distribution, present_value
            * value_per_share, weighted_value_per_share, contribution_pct
        - pwerm_summary: One row per class with the probability-weighted
          present value and value per share
        - pwerm_statistics: Distribution of value per share across scenarios
          per class (mean, std_dev, coefficient_of_variation, p25, median, p75)
    """

    def __init__(
        self,
        scenarios_key: str = "pwerm_scenarios",
        assumptions_key: Optional[str] = "opm_assumptions",
        schedule_key: str = "breakpoint_schedule",
    ):
        self.scenarios_key = scenarios_key
        self.assumptions_key = assumptions_key
        self.schedule_key = schedule_key

    def inputs(self) -> List[str]:
        keys = [self.schedule_key, self.scenarios_key]
        if self.assumptions_key:
            keys.append(self.assumptions_key)
        return keys

    def outputs(self) -> List[str]:
        return ["pwerm_scenario_values", "pwerm_summary", "pwerm_statistics"]

    def execute(self, context: BlockContext) -> None:
        schedule: BreakpointSchedule = context.get(self.schedule_key)
        scenarios: List[PWERMScenario] = context.get(self.scenarios_key)
        base = context.get(self.assumptions_key) if self.assumptions_key else None

        if not scenarios:
            raise InvalidInputError("PWERM needs at least one scenario")
        weights = _normalized_weights([float(s.probability) for s in scenarios])
        class_shares = schedule.class_shares()

        rows = []
        for scenario, weight in zip(scenarios, weights):
            net_proceeds = float(scenario.to_exit_scenario().calculate_net_proceeds())
            pv_factor = float(scenario.present_value_factor())
            by_security = _security_values(schedule, scenario, net_proceeds, base)

            by_class: Dict[str, float] = {cid: 0.0 for cid in class_shares}
            for sid, value in by_security.items():
                by_class[schedule.securities[sid].share_class_id] += value

            for class_id, distribution in by_class.items():
                shares = class_shares[class_id]
                present_value = distribution * pv_factor
                per_share = present_value / shares if shares > 0 else 0.0
                rows.append({
                    "scenario_id": scenario.id,
                    "label": scenario.label,
                    "probability": float(scenario.probability),
                    "weight": weight,
                    "allocation_method": scenario.allocation_method,
                    "exit_value": float(scenario.exit_value),
                    "net_proceeds": net_proceeds,
                    "years_to_exit": float(scenario.years_to_exit),
                    "discount_rate": float(scenario.discount_rate),
                    "pv_factor": pv_factor,
                    "share_class_id": class_id,
                    "shares": shares,
                    "exit_distribution": distribution,
                    "present_value": present_value,
                    "value_per_share": per_share,
                    "weighted_value_per_share": per_share * weight,
                })

        values = pd.DataFrame(rows)
        totals = values.groupby("share_class_id")["weighted_value_per_share"].transform("sum")
        values["contribution_pct"] = (values["weighted_value_per_share"] / totals.where(totals != 0)).fillna(0.0)

        values["weighted_present_value"] = values["present_value"] * values["weight"]
        summary = values.groupby("share_class_id", as_index=False).agg(
            shares=("shares", "first"),
            weighted_present_value=("weighted_present_value", "sum"),
            value_per_share=("weighted_value_per_share", "sum"),
        )
        values = values.drop(columns="weighted_present_value")

        stats_rows = []
        for class_id, group in values.groupby("share_class_id"):
            stats = distribution_statistics(group["value_per_share"].tolist(), group["probability"].tolist())
            stats_rows.append({
                "share_class_id": class_id,
                "mean": stats.mean,
                "std_dev": stats.std_dev,
                "coefficient_of_variation": stats.coefficient_of_variation,
                "p25": stats.p25,
                "median": stats.median,
                "p75": stats.p75,
            })

        logger.info("PWERM weighted %d scenarios across %d classes", len(scenarios), len(class_shares))

        context.set("pwerm_scenario_values", values)
        context.set("pwerm_summary", summary)
        context.set("pwerm_statistics", pd.DataFrame(stats_rows))


class HybridBlock(Block):
    """Probability-weights OPM backsolves run under different assumptions.

    Inputs (from context):
        - breakpoint_schedule: BreakpointSchedule
        - hybrid_scenarios: List[HybridScenario]
        - backsolve_target: BacksolveTarget
        - opm_assumptions: OPMAssumptions (base for scenario overrides)

    Outputs (to context):
        - hybrid_scenarios_results: One row per scenario with its assumptions,
          target price, backsolved equity value and common value per share
        - hybrid_summary: Single row with the weighted equity value and
          weighted common value per share
    """

    def __init__(
        self,
        common_share_class_id: str = "common",
        scenarios_key: str = "hybrid_scenarios",
        target_key: str = "backsolve_target",
        assumptions_key: str = "opm_assumptions",
        schedule_key: str = "breakpoint_schedule",
    ):
        self.common_share_class_id = common_share_class_id
        self.scenarios_key = scenarios_key
        self.target_key = target_key
        self.assumptions_key = assumptions_key
        self.schedule_key = schedule_key

    def inputs(self) -> List[str]:
        return [self.schedule_key, self.scenarios_key, self.target_key, self.assumptions_key]

    def outputs(self) -> List[str]:
        return ["hybrid_scenarios_results", "hybrid_summary"]

    def execute(self, context: BlockContext) -> None:
        schedule: BreakpointSchedule = context.get(self.schedule_key)
        scenarios: List[HybridScenario] = context.get(self.scenarios_key)
        target: BacksolveTarget = context.get(self.target_key)
        base: OPMAssumptions = context.get(self.assumptions_key)

        if not scenarios:
            raise InvalidInputError("Hybrid method needs at least one scenario")
        weights = _normalized_weights([float(s.probability) for s in scenarios])

        rows = []
        for scenario, weight in zip(scenarios, weights):
            assumptions = scenario_assumptions(scenario, base)
            price = float(scenario.target_price_per_share or target.price_per_share)
            result = backsolve_equity_value(schedule, assumptions, target.share_class_id, price)

            by_class = allocate_opm(schedule, result.equity_value, assumptions, warn=False)["by_class"]
            common = by_class[by_class["share_class_id"] == self.common_share_class_id]
            common_value = float(common["value_per_share"].iloc[0]) if not common.empty else 0.0

            rows.append({
                "scenario_id": scenario.id,
                "label": scenario.label,
                "probability": float(scenario.probability),
                "weight": weight,
                "volatility": float(assumptions.volatility),
                "risk_free_rate": float(assumptions.risk_free_rate),
                "time_to_liquidity": float(assumptions.time_to_liquidity),
                "target_price": price,
                "equity_value": result.equity_value,
                "common_value_per_share": common_value,
                "weighted_equity_value": result.equity_value * weight,
                "weighted_common_value": common_value * weight,
            })

        results = pd.DataFrame(rows)
        summary = pd.DataFrame([{
            "scenarios": len(results),
            "equity_value": results["weighted_equity_value"].sum(),
            "common_value_per_share": results["weighted_common_value"].sum(),
        }])

        context.set("hybrid_scenarios_results", results)
        context.set("hybrid_summary", summary)
