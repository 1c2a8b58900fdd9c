"""Discount rate (WACC) build-up block."""

import logging
from typing import List

import pandas as pd

from .base import Block, BlockContext
from ..analytics.cost_of_capital import calculate_wacc, capital_structure_sweep, peer_beta_table
from ..schemas import WACCInputs

logger = logging.getLogger(__name__)


class WACCBlock(Block):
    """Builds the weighted average cost of capital.

    Inputs (from context):
        - wacc_inputs: WACCInputs

    Outputs (to context):
        - wacc_summary: Single row with betas, cost of equity and its
          components, after-tax cost of debt, weights and wacc
        - wacc_peers: Levered and unlevered beta per peer
        - wacc_capital_structure: WACC across debt weights, optimum flagged
    """

    def __init__(self, inputs_key: str = "wacc_inputs"):
        self.inputs_key = inputs_key

    def inputs(self) -> List[str]:
        return [self.inputs_key]

    def outputs(self) -> List[str]:
        return ["wacc_summary", "wacc_peers", "wacc_capital_structure"]

    def execute(self, context: BlockContext) -> None:
        wacc_inputs: WACCInputs = context.get(self.inputs_key)
        result = calculate_wacc(wacc_inputs)

        summary = {
            "unlevered_beta": result.unlevered_beta,
            "relevered_beta": result.relevered_beta,
            **result.components(wacc_inputs),
            "cost_of_equity": result.cost_of_equity,
            "pre_tax_cost_of_debt": float(wacc_inputs.pre_tax_cost_of_debt),
            "after_tax_cost_of_debt": result.after_tax_cost_of_debt,
            "debt_weight": result.debt_weight,
            "equity_weight": result.equity_weight,
            "wacc": result.wacc,
        }
        logger.info("WACC %.2f%% (cost of equity %.2f%%)", result.wacc * 100, result.cost_of_equity * 100)

        context.set("wacc_summary", pd.DataFrame([summary]))
        context.set("wacc_peers", peer_beta_table(wacc_inputs.peers))
        context.set("wacc_capital_structure", capital_structure_sweep(wacc_inputs))
