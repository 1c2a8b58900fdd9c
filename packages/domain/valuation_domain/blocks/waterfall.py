"""Waterfall computation block.

Distributes the net proceeds of an exit across securities, classes and
holders by walking the breakpoint schedule: each range contributes
min(max(X - from, 0), width) of value X, split by participation percentage.

Within a security, holders split preference tranches by their preference
amount and everything above by as-converted shares. Option holders receive
value net of their exercise price (an option only participates above its
strike).
"""

import logging
from typing import Dict, List, Union

import pandas as pd

from .base import Block, BlockContext
from .breakpoints import BreakpointSchedule, security_id_for
from ..errors import InvalidInputError
from ..schemas import CapTableSnapshot, ExitScenario

logger = logging.getLogger(__name__)


_STEP_LABELS = {
    "liquidation_preference": "Liquidation Preference",
    "pro_rata_distribution": "Pro Rata Distribution",
    "option_exercise": "Option Exercise",
    "voluntary_conversion": "Voluntary Conversion",
    "participation_cap": "Participation Cap",
}


def holder_shares(snapshot: CapTableSnapshot, schedule: BreakpointSchedule) -> pd.DataFrame:
    """Each holder's fraction of its security's preference and participation.

    Columns: holder_id, share_class_id, security_id, shares,
    liquidation_preference, preference_fraction, participation_fraction.
    """
    rows = []
    for position in snapshot.positions:
        share_class = snapshot.share_class(position.share_class_id)
        sid = security_id_for(position, share_class)
        security = schedule.securities[sid]
        as_converted = float(snapshot.as_converted_shares(position))
        preference = float(snapshot.liquidation_preference_amount(position))

        rows.append({
            "holder_id": position.holder_id,
            "share_class_id": position.share_class_id,
            "security_id": sid,
            "shares": float(position.shares),
            "liquidation_preference": preference,
            "preference_fraction": (
                preference / security.liquidation_preference if security.liquidation_preference > 0 else 0.0
            ),
            "participation_fraction": (
                as_converted / security.as_converted_shares if security.as_converted_shares > 0 else 0.0
            ),
        })

    df = pd.DataFrame(rows)
    return df.groupby(["holder_id", "share_class_id", "security_id"], as_index=False).sum()


def distribute(
    schedule: BreakpointSchedule,
    snapshot: CapTableSnapshot,
    net_proceeds: float,
    scenario_id: str = "exit",
) -> Dict[str, pd.DataFrame]:
    """Run the waterfall at ``net_proceeds``.

    Returns:
        Dict with "steps", "by_holder" and "by_class" DataFrames. Total
        distributed equals ``net_proceeds``.
    """
    value = float(net_proceeds)

    # Steps: one per range touched
    steps = []
    remaining = value
    for rng in schedule.ranges:
        amount = rng.amount_at(value)
        if amount <= 0:
            break
        label = _STEP_LABELS[rng.breakpoint_type]
        if rng.breakpoint_type == "liquidation_preference":
            label = f"{label} - {', '.join(rng.participation)}"
        steps.append({
            "scenario_id": scenario_id,
            "step": len(steps) + 1,
            "step_name": label,
            "breakpoint_type": rng.breakpoint_type,
            "from_value": rng.from_value,
            "to_value": rng.to_value,
            "amount_available": remaining,
            "amount_distributed": amount,
            "amount_remaining": remaining - amount,
        })
        remaining -= amount

    # Holders
    components = schedule.allocate_components(value)
    holders = holder_shares(snapshot, schedule)
    holders["scenario_id"] = scenario_id
    holders["liquidation_preference_amount"] = [
        components[sid]["liquidation_preference"] * frac
        for sid, frac in zip(holders["security_id"], holders["preference_fraction"])
    ]
    holders["participation_amount"] = [
        components[sid]["participation"] * frac
        for sid, frac in zip(holders["security_id"], holders["participation_fraction"])
    ]
    holders["total_distribution"] = holders["liquidation_preference_amount"] + holders["participation_amount"]
    holders["distribution_pct"] = holders["total_distribution"] / value * 100 if value > 0 else 0.0
    holders["value_per_share"] = holders["total_distribution"] / holders["shares"].where(holders["shares"] > 0)
    by_holder = holders[[
        "scenario_id", "holder_id", "share_class_id", "security_id", "shares",
        "liquidation_preference_amount", "participation_amount", "total_distribution",
        "distribution_pct", "value_per_share",
    ]].sort_values("total_distribution", ascending=False).reset_index(drop=True)

    # Classes
    by_class = by_holder.groupby("share_class_id", as_index=False).agg({
        "shares": "sum",
        "liquidation_preference_amount": "sum",
        "participation_amount": "sum",
        "total_distribution": "sum",
        "distribution_pct": "sum",
    })
    by_class.insert(0, "scenario_id", scenario_id)
    by_class.insert(
        2, "share_class_name",
        [snapshot.share_class(cid).name for cid in by_class["share_class_id"]],
    )
    by_class["value_per_share"] = by_class["total_distribution"] / by_class["shares"].where(by_class["shares"] > 0)
    by_class = by_class.sort_values("total_distribution", ascending=False).reset_index(drop=True)

    logger.debug("Waterfall %s: distributed %.0f across %d steps", scenario_id, value - remaining, len(steps))

    return {
        "steps": pd.DataFrame(steps, columns=[
            "scenario_id", "step", "step_name", "breakpoint_type", "from_value", "to_value",
            "amount_available", "amount_distributed", "amount_remaining",
        ]),
        "by_holder": by_holder,
        "by_class": by_class,
    }


class WaterfallBlock(Block):
    """Computes the distribution waterfall for one or more exit scenarios.

    Inputs (from context):
        - cap_table_snapshot: CapTableSnapshot with holder positions
        - breakpoint_schedule: BreakpointSchedule (from BreakpointBlock)
        - exit_scenario: ExitScenario, or a list of them

    Outputs (to context):
        - waterfall_steps: One row per breakpoint range touched:
            * scenario_id, step, step_name, breakpoint_type, from_value, to_value
            * amount_available, amount_distributed, amount_remaining
        - waterfall_by_holder: One row per holder and security:
            * scenario_id, holder_id, share_class_id, security_id, shares
            * liquidation_preference_amount, participation_amount
            * total_distribution, distribution_pct, value_per_share
        - waterfall_by_class: Totals per share class with value_per_share

    Example:
        context.set("cap_table_snapshot", snapshot)
        context.set("exit_scenario", ExitScenario(id="base", label="Base",
                                                  exit_value=50_000_000))
        BlockExecutor([BreakpointBlock(), WaterfallBlock()]).execute(context)
        by_class_df = context.get("waterfall_by_class")
    """

    def __init__(
        self,
        snapshot_key: str = "cap_table_snapshot",
        scenario_key: str = "exit_scenario",
        schedule_key: str = "breakpoint_schedule",
    ):
        self.snapshot_key = snapshot_key
        self.scenario_key = scenario_key
        self.schedule_key = schedule_key

    def inputs(self) -> List[str]:
        return [self.snapshot_key, self.schedule_key, self.scenario_key]

    def outputs(self) -> List[str]:
        return [
            "waterfall_steps",
            "waterfall_by_holder",
            "waterfall_by_class",
        ]

    def execute(self, context: BlockContext) -> None:
        snapshot: CapTableSnapshot = context.get(self.snapshot_key)
        schedule: BreakpointSchedule = context.get(self.schedule_key)
        scenarios: Union[ExitScenario, List[ExitScenario]] = context.get(self.scenario_key)
        if isinstance(scenarios, ExitScenario):
            scenarios = [scenarios]
        if not scenarios:
            raise InvalidInputError("WaterfallBlock needs at least one exit scenario")

        results = [
            distribute(schedule, snapshot, scenario.calculate_net_proceeds(), scenario.id)
            for scenario in scenarios
        ]

        context.set("waterfall_steps", pd.concat([r["steps"] for r in results], ignore_index=True))
        context.set("waterfall_by_holder", pd.concat([r["by_holder"] for r in results], ignore_index=True))
        context.set("waterfall_by_class", pd.concat([r["by_class"] for r in results], ignore_index=True))
