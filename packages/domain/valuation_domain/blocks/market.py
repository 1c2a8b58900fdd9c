"""Market approach block (guideline public companies and precedent transactions)."""

import logging
from dataclasses import asdict
from typing import List

import pandas as pd

from .base import Block, BlockContext
from ..analytics.comps import market_indication, multiples_table, statistics_table
from ..schemas import MarketApproachCFG

logger = logging.getLogger(__name__)


class MarketApproachBlock(Block):
    """Computes multiples, statistics and implied values for each approach.

    Inputs (from context):
        - market_approaches: List[MarketApproachCFG]

    Outputs (to context):
        - market_multiples: One row per (approach, comparable) with EV/Revenue,
          EV/EBITDA and P/E
        - market_statistics: One row per (approach, multiple) with count,
          mean, median, p25, p75, min, max
        - market_indications: One row per approach with the selected and
          adjusted multiple and the indicated value
    """

    def __init__(self, approaches_key: str = "market_approaches"):
        self.approaches_key = approaches_key

    def inputs(self) -> List[str]:
        return [self.approaches_key]

    def outputs(self) -> List[str]:
        return ["market_multiples", "market_statistics", "market_indications"]

    def execute(self, context: BlockContext) -> None:
        approaches: List[MarketApproachCFG] = context.get(self.approaches_key)

        multiples, statistics, indications = [], [], []
        for cfg in approaches:
            table = multiples_table(cfg.comparables)
            table.insert(0, "approach", cfg.approach)
            multiples.append(table)

            stats = statistics_table(table)
            stats.insert(0, "approach", cfg.approach)
            statistics.append(stats)

            indications.append(asdict(market_indication(cfg)))

        for row in indications:
            logger.info(
                "%s indication %.0f (%s basis)", row["approach"], row["indicated_value"], row["value_basis"]
            )

        context.set("market_multiples", pd.concat(multiples, ignore_index=True) if multiples else pd.DataFrame())
        context.set("market_statistics", pd.concat(statistics, ignore_index=True) if statistics else pd.DataFrame())
        context.set("market_indications", pd.DataFrame(indications))
