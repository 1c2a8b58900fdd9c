"""Cap table computation block.

Converts a CapTableSnapshot into DataFrames for Excel rendering or analysis.

Output DataFrames:
- cap_table_ownership: Per-position ownership with fully diluted percentages
- cap_table_by_class: Ownership and preference aggregated by share class
- cap_table_summary: Share counts, option pool and total preference
"""

from typing import List
from decimal import Decimal
import pandas as pd

from .base import Block, BlockContext
from ..schemas import CapTableSnapshot


class CapTableBlock(Block):
    """Converts CapTableSnapshot to ownership DataFrames.

    Inputs (from context):
        - cap_table_snapshot: CapTableSnapshot to convert

    Outputs (to context):
        - cap_table_ownership: DataFrame with columns:
            * holder_id, share_class_id, share_class_name, share_type
            * shares: Shares held (or under option)
            * as_converted_shares: Common-equivalent shares
            * is_option, exercise_price
            * ownership_pct: Fully diluted ownership percentage
            * liquidation_preference: Preference owed to the position

        - cap_table_by_class: DataFrame with columns:
            * share_class_id, share_class_name, share_type
            * shares, as_converted_shares, ownership_pct
            * liquidation_preference: Aggregate preference of the class
            * seniority_rank: Preference rank (NaN without a preference)
            * holders_count: Number of holders in class

        - cap_table_summary: DataFrame with single row:
            * shares_outstanding, options_outstanding, option_pool_available
            * fully_diluted_shares, total_holders, total_share_classes
            * total_liquidation_preference

    Example:
        context = BlockContext()
        context.set("cap_table_snapshot", cap_table.snapshot(valuation_date))

        CapTableBlock().execute(context)
        ownership_df = context.get("cap_table_ownership")
    """

    def __init__(self, snapshot_key: str = "cap_table_snapshot"):
        self.snapshot_key = snapshot_key

    def inputs(self) -> List[str]:
        return [self.snapshot_key]

    def outputs(self) -> List[str]:
        return [
            "cap_table_ownership",
            "cap_table_by_class",
            "cap_table_summary",
        ]

    def execute(self, context: BlockContext) -> None:
        snapshot: CapTableSnapshot = context.get(self.snapshot_key)

        ownership_df = self._compute_ownership(snapshot)
        context.set("cap_table_ownership", ownership_df)
        context.set("cap_table_by_class", self._compute_by_class(ownership_df, snapshot))
        context.set("cap_table_summary", self._compute_summary(snapshot, ownership_df))

    def _compute_ownership(self, snapshot: CapTableSnapshot) -> pd.DataFrame:
        rows = []
        total_shares = snapshot.fully_diluted_shares

        for position in snapshot.positions:
            share_class = snapshot.share_class(position.share_class_id)
            ownership_pct = (
                float(position.shares / total_shares * 100)
                if total_shares > 0
                else 0.0
            )

            rows.append({
                "holder_id": position.holder_id,
                "share_class_id": position.share_class_id,
                "share_class_name": share_class.name,
                "share_type": share_class.share_type,
                "shares": float(position.shares),
                "as_converted_shares": float(snapshot.as_converted_shares(position)),
                "is_option": position.is_option,
                "exercise_price": float(position.exercise_price) if position.exercise_price is not None else None,
                "ownership_pct": ownership_pct,
                "liquidation_preference": float(snapshot.liquidation_preference_amount(position)),
            })

        df = pd.DataFrame(rows, columns=[
            "holder_id", "share_class_id", "share_class_name", "share_type", "shares",
            "as_converted_shares", "is_option", "exercise_price", "ownership_pct",
            "liquidation_preference",
        ])

        if not df.empty:
            df = df.sort_values("ownership_pct", ascending=False).reset_index(drop=True)

        return df

    def _compute_by_class(
        self, ownership_df: pd.DataFrame, snapshot: CapTableSnapshot
    ) -> pd.DataFrame:
        columns = [
            "share_class_id", "share_class_name", "share_type", "shares", "as_converted_shares",
            "ownership_pct", "liquidation_preference", "holders_count", "seniority_rank",
        ]
        if ownership_df.empty:
            return pd.DataFrame(columns=columns)

        by_class = ownership_df.groupby(["share_class_id", "share_class_name", "share_type"]).agg({
            "shares": "sum",
            "as_converted_shares": "sum",
            "ownership_pct": "sum",
            "liquidation_preference": "sum",
            "holder_id": "nunique",
        }).reset_index()

        by_class = by_class.rename(columns={"holder_id": "holders_count"})
        ranks = []
        for class_id in by_class["share_class_id"]:
            pref = snapshot.share_class(class_id).liquidation_preference
            ranks.append(pref.seniority_rank if pref else None)
        by_class["seniority_rank"] = ranks

        return by_class.sort_values("ownership_pct", ascending=False)[columns].reset_index(drop=True)

    def _compute_summary(
        self, snapshot: CapTableSnapshot, ownership_df: pd.DataFrame
    ) -> pd.DataFrame:
        total_preference = sum(
            (snapshot.liquidation_preference_amount(p) for p in snapshot.positions),
            Decimal("0"),
        )

        return pd.DataFrame([{
            "shares_outstanding": float(snapshot.total_shares_outstanding),
            "options_outstanding": float(snapshot.options_outstanding),
            "option_pool_available": float(snapshot.option_pool_available),
            "fully_diluted_shares": float(snapshot.fully_diluted_shares),
            "total_holders": ownership_df["holder_id"].nunique() if not ownership_df.empty else 0,
            "total_share_classes": len(snapshot.share_classes),
            "total_liquidation_preference": float(total_preference),
        }])
