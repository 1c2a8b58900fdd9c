"""Valuation synthesis blocks.

IndicationsBlock weights the value indications from each approach into a
single equity value. ConclusionBlock blends the allocation methods' common
value per share and applies the DLOM to reach fair market value per
common share.
"""

import logging
import math
from typing import Dict, List, Optional

import pandas as pd

from .base import Block, BlockContext
from ..errors import InvalidInputError
from ..schemas import NetAssetSchedule

logger = logging.getLogger(__name__)


_METHOD_LABELS = {
    "dcf": "Income Approach (DCF)",
    "guideline_public": "Guideline Public Companies",
    "precedent_transactions": "Precedent Transactions",
    "net_asset": "Asset Approach (Adjusted Net Assets)",
    "backsolve": "OPM Backsolve",
}

_ALLOCATION_OUTPUTS = {
    "opm": "opm_allocation",
    "pwerm": "pwerm_summary",
    "hybrid": "hybrid_summary",
}


def _check_weights(weights: Dict[str, float], what: str) -> None:
    if any(w < 0 for w in weights.values()):
        raise InvalidInputError(f"{what} weights cannot be negative")
    total = sum(weights.values())
    if abs(total - 1.0) > 1e-6:
        raise InvalidInputError(f"{what} weights must total 1, got {total:.4f}")


class IndicationsBlock(Block):
    """Weights approach indications into a concluded equity value.

    Enterprise value indications (DCF, EV multiples) are bridged to equity
    by adding cash and subtracting debt. Equity indications (P/E, net
    assets, backsolve) are used as is.

    Inputs (from context), depending on the weighted methods:
        - dcf_valuation (dcf)
        - market_indications (guideline_public, precedent_transactions)
        - backsolve_result (backsolve)

    Outputs (to context):
        - value_indications: One row per method with basis, indicated value,
          equity value, weight and weighted equity value
        - equity_value: Concluded equity value (float)
    """

    def __init__(
        self,
        method_weights: Optional[Dict[str, float]] = None,
        cash: float = 0.0,
        debt: float = 0.0,
        net_assets: Optional[NetAssetSchedule] = None,
        equity_value: Optional[float] = None,
    ):
        self.method_weights = {m: float(w) for m, w in (method_weights or {}).items() if w > 0}
        self.cash = float(cash)
        self.debt = float(debt)
        self.net_assets = net_assets
        self.explicit_equity_value = float(equity_value) if equity_value is not None else None
        if not self.method_weights and self.explicit_equity_value is None:
            raise InvalidInputError("IndicationsBlock needs method weights or an explicit equity value")

    def inputs(self) -> List[str]:
        keys = []
        if "dcf" in self.method_weights:
            keys.append("dcf_valuation")
        if {"guideline_public", "precedent_transactions"} & set(self.method_weights):
            keys.append("market_indications")
        if "backsolve" in self.method_weights:
            keys.append("backsolve_result")
        return keys

    def outputs(self) -> List[str]:
        return ["value_indications", "equity_value"]

    def execute(self, context: BlockContext) -> None:
        if not self.method_weights:
            context.set("value_indications", pd.DataFrame([{
                "method": "concluded",
                "label": "Concluded Equity Value",
                "basis": "equity",
                "indicated_value": self.explicit_equity_value,
                "equity_value": self.explicit_equity_value,
                "weight": 1.0,
                "weighted_equity_value": self.explicit_equity_value,
            }]))
            context.set("equity_value", self.explicit_equity_value)
            return

        _check_weights(self.method_weights, "Method")

        rows = []
        for method, weight in self.method_weights.items():
            indicated, basis = self._indication(method, context)
            equity = indicated + self.cash - self.debt if basis == "enterprise" else indicated
            rows.append({
                "method": method,
                "label": _METHOD_LABELS[method],
                "basis": basis,
                "indicated_value": indicated,
                "equity_value": equity,
                "weight": weight,
                "weighted_equity_value": equity * weight,
            })

        indications = pd.DataFrame(rows)
        equity_value = float(indications["weighted_equity_value"].sum())
        if self.explicit_equity_value is not None:
            equity_value = self.explicit_equity_value
        if not equity_value > 0:
            raise InvalidInputError(f"Concluded equity value must be positive, got {equity_value:,.2f}")

        logger.info("Concluded equity value %.0f from %d methods", equity_value, len(rows))
        context.set("value_indications", indications)
        context.set("equity_value", equity_value)

    def _indication(self, method: str, context: BlockContext):
        if method == "dcf":
            return float(context.get("dcf_valuation")["enterprise_value"].iloc[0]), "enterprise"
        if method in ("guideline_public", "precedent_transactions"):
            market = context.get("market_indications")
            rows = market[market["approach"] == method]
            if rows.empty:
                raise InvalidInputError(f"No market indication for '{method}'")
            bases = set(rows["value_basis"])
            if len(bases) > 1:
                raise InvalidInputError(f"'{method}' mixes enterprise and equity multiples")
            return float(rows["indicated_value"].mean()), bases.pop()
        if method == "net_asset":
            if self.net_assets is None:
                raise InvalidInputError("net_asset method is weighted but no net asset schedule was given")
            return float(self.net_assets.implied_equity_value), "equity"
        if method == "backsolve":
            return float(context.get("backsolve_result")["equity_value"].iloc[0]), "equity"
        raise InvalidInputError(f"Unknown valuation method '{method}'")


class ConclusionBlock(Block):
    """Concludes fair market value per common share.

    Blends the common value per share from each allocation method by its
    weight, then applies the DLOM (when dlom_key is set).

    Inputs (from context):
        - equity_value
        - opm_allocation / pwerm_summary / hybrid_summary per weighted method
        - dlom_summary (only when dlom_key is set)

    Outputs (to context):
        - allocation_summary: One row per allocation method with weight and
          common value per share
        - valuation_conclusion: Single row with equity value, marketable
          value per share, DLOM and fair market value per common share
    """

    def __init__(
        self,
        allocation_weights: Optional[Dict[str, float]] = None,
        common_share_class_id: str = "common",
        dlom_key: Optional[str] = "dlom_summary",
    ):
        weights = allocation_weights if allocation_weights is not None else {"opm": 1.0}
        self.allocation_weights = {m: float(w) for m, w in weights.items() if w > 0}
        self.common_share_class_id = common_share_class_id
        self.dlom_key = dlom_key
        _check_weights(self.allocation_weights, "Allocation")

    def inputs(self) -> List[str]:
        keys = ["equity_value"]
        keys.extend(_ALLOCATION_OUTPUTS[m] for m in self.allocation_weights)
        if self.dlom_key:
            keys.append(self.dlom_key)
        return keys

    def outputs(self) -> List[str]:
        return ["allocation_summary", "valuation_conclusion"]

    def execute(self, context: BlockContext) -> None:
        equity_value = float(context.get("equity_value"))

        rows = []
        for method, weight in self.allocation_weights.items():
            per_share = self._common_value(method, context.get(_ALLOCATION_OUTPUTS[method]))
            rows.append({
                "method": method,
                "weight": weight,
                "common_value_per_share": per_share,
                "weighted_value_per_share": per_share * weight,
            })
        allocation = pd.DataFrame(rows)
        marketable = float(allocation["weighted_value_per_share"].sum())

        dlom = 0.0
        if self.dlom_key:
            dlom = float(context.get(self.dlom_key)["discount"].iloc[0])
        fmv = marketable * (1 - dlom)

        logger.info(
            "Fair market value per common share %.4f (marketable %.4f, DLOM %.1f%%)",
            fmv, marketable, dlom * 100,
        )

        context.set("allocation_summary", allocation)
        context.set("valuation_conclusion", pd.DataFrame([{
            "common_share_class_id": self.common_share_class_id,
            "equity_value": equity_value,
            "marketable_value_per_share": marketable,
            "dlom": dlom,
            "dlom_amount_per_share": marketable * dlom,
            "fair_market_value_per_share": fmv,
        }]))

    def _common_value(self, method: str, table: pd.DataFrame) -> float:
        if method == "hybrid":
            return float(table["common_value_per_share"].iloc[0])
        rows = table[table["share_class_id"] == self.common_share_class_id]
        if rows.empty:
            raise InvalidInputError(
                f"{method} result has no value for share class '{self.common_share_class_id}'"
            )
        value = float(rows["value_per_share"].iloc[0])
        return 0.0 if math.isnan(value) else value
