"""Discount for lack of marketability block."""

import logging
from typing import List

import pandas as pd

from .base import Block, BlockContext
from ..analytics.dlom import calculate_all, resolve_weights, weighted_dlom
from ..schemas import DLOMInputs

logger = logging.getLogger(__name__)


class DLOMBlock(Block):
    """Runs every DLOM model and weights the results.

    Inputs (from context):
        - dlom_inputs: DLOMInputs

    Outputs (to context):
        - dlom_results: One row per model with dlom_pct, weight_pct and
          weighted contribution
        - dlom_summary: Single row with the weighted dlom_pct and the
          decimal discount
    """

    def __init__(self, inputs_key: str = "dlom_inputs"):
        self.inputs_key = inputs_key

    def inputs(self) -> List[str]:
        return [self.inputs_key]

    def outputs(self) -> List[str]:
        return ["dlom_results", "dlom_summary"]

    def execute(self, context: BlockContext) -> None:
        dlom_inputs: DLOMInputs = context.get(self.inputs_key)
        results = calculate_all(dlom_inputs)
        weights = resolve_weights(dlom_inputs)
        concluded = weighted_dlom(results, weights)

        rows = [
            {
                "model": model,
                "dlom_pct": value,
                "weight_pct": weights[model],
                "weighted_contribution": value * weights[model] / 100,
            }
            for model, value in results.items()
        ]
        logger.info("Concluded DLOM %.2f%%", concluded)

        context.set("dlom_results", pd.DataFrame(rows))
        context.set("dlom_summary", pd.DataFrame([{
            "dlom_pct": concluded,
            "discount": concluded / 100,
            "time_to_liquidity": float(dlom_inputs.time_to_liquidity),
            "volatility_pct": float(dlom_inputs.volatility),
        }]))
