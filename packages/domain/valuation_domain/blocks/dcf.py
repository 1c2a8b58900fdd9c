"""Discounted cash flow (income approach) block."""

import logging
from typing import List, Optional

import pandas as pd

from .base import Block, BlockContext
from ..analytics.discounting import run_dcf, sensitivity_grid, tornado
from ..schemas import DCFAssumptions, DCFScenario

logger = logging.getLogger(__name__)


class DCFBlock(Block):
    """Values the business with a DCF and its sensitivities.

    Inputs (from context):
        - dcf_assumptions: DCFAssumptions
        - wacc_summary: WACC build-up (only when wacc_key is set; its "wacc"
          column is the discount rate)
        - dcf_scenarios: List[DCFScenario] (only when scenarios_key is set)

    Outputs (to context):
        - dcf_projections: One row per projection year (revenue build, FCF,
          period, discount_factor, pv_fcf)
        - dcf_valuation: Single row (sum of PV, terminal value, enterprise
          value, equity bridge, implied share price)
        - dcf_sensitivity: Enterprise value grid, discount rate (index) x
          terminal growth or exit multiple (columns)
        - dcf_tornado: Driver sensitivities sorted by spread
        - dcf_scenario_results: Base case and each scenario side by side
    """

    def __init__(
        self,
        assumptions_key: str = "dcf_assumptions",
        wacc_key: Optional[str] = None,
        scenarios_key: Optional[str] = None,
    ):
        self.assumptions_key = assumptions_key
        self.wacc_key = wacc_key
        self.scenarios_key = scenarios_key

    def inputs(self) -> List[str]:
        keys = [self.assumptions_key]
        if self.wacc_key:
            keys.append(self.wacc_key)
        if self.scenarios_key:
            keys.append(self.scenarios_key)
        return keys

    def outputs(self) -> List[str]:
        return [
            "dcf_projections",
            "dcf_valuation",
            "dcf_sensitivity",
            "dcf_tornado",
            "dcf_scenario_results",
        ]

    def execute(self, context: BlockContext) -> None:
        assumptions: DCFAssumptions = context.get(self.assumptions_key)

        rate = None
        if self.wacc_key:
            rate = float(context.get(self.wacc_key)["wacc"].iloc[0])
        result = run_dcf(assumptions, rate)
        rate = result.discount_rate

        scenario_rows = [self._scenario_row("base", "Base", result)]
        if self.scenarios_key:
            scenarios: List[DCFScenario] = context.get(self.scenarios_key)
            for scenario in scenarios:
                variant = assumptions.with_overrides(scenario.overrides)
                # An explicit scenario rate wins over the base case and the build-up
                if "wacc" in scenario.overrides and variant.wacc is not None:
                    variant_rate = float(variant.wacc)
                else:
                    variant_rate = rate
                scenario_rows.append(
                    self._scenario_row(scenario.id, scenario.label, run_dcf(variant, variant_rate))
                )

        logger.info(
            "DCF enterprise value %.0f at %.2f%% discount rate", result.enterprise_value, rate * 100
        )

        context.set("dcf_projections", result.projections)
        context.set("dcf_valuation", pd.DataFrame([result.summary_row()]))
        context.set("dcf_sensitivity", sensitivity_grid(assumptions, rate))
        context.set("dcf_tornado", tornado(assumptions, rate))
        context.set("dcf_scenario_results", pd.DataFrame(scenario_rows))

    @staticmethod
    def _scenario_row(scenario_id: str, label: str, result) -> dict:
        return {
            "scenario_id": scenario_id,
            "label": label,
            "discount_rate": result.discount_rate,
            "enterprise_value": result.enterprise_value,
            "equity_value": result.equity_value,
            "implied_share_price": result.implied_share_price,
            "terminal_value_pct": result.terminal_value_pct,
        }
