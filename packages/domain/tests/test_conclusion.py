"""Tests for the value indication weighting and the FMV conclusion."""

from decimal import Decimal

import pandas as pd
import pytest

from valuation_domain.blocks import BlockContext, BlockExecutor, ConclusionBlock, IndicationsBlock
from valuation_domain.errors import InvalidInputError
from valuation_domain.schemas import NetAssetSchedule


def _context() -> BlockContext:
    context = BlockContext()
    context.set("dcf_valuation", pd.DataFrame([{"enterprise_value": 1_000.0}]))
    context.set("market_indications", pd.DataFrame([
        {"approach": "guideline_public", "indicated_value": 800.0, "value_basis": "enterprise"},
        {"approach": "guideline_public", "indicated_value": 1_200.0, "value_basis": "enterprise"},
        {"approach": "precedent_transactions", "indicated_value": 1_500.0, "value_basis": "equity"},
    ]))
    context.set("backsolve_result", pd.DataFrame([{"equity_value": 900.0}]))
    return context


class TestIndicationsBlock:
    def test_enterprise_values_bridged_to_equity(self):
        context = _context()
        IndicationsBlock({"dcf": 0.5, "guideline_public": 0.5}, cash=100, debt=50).execute(context)

        indications = context.get("value_indications").set_index("method")
        assert indications.loc["dcf", "equity_value"] == pytest.approx(1_050.0)
        # Two guideline configs are averaged before bridging
        assert indications.loc["guideline_public", "indicated_value"] == pytest.approx(1_000.0)
        assert context.get("equity_value") == pytest.approx(1_050.0)

    def test_equity_basis_not_bridged(self):
        context = _context()
        IndicationsBlock(
            {"precedent_transactions": 0.25, "backsolve": 0.75}, cash=100, debt=50
        ).execute(context)

        indications = context.get("value_indications").set_index("method")
        assert indications.loc["precedent_transactions", "equity_value"] == pytest.approx(1_500.0)
        assert indications.loc["backsolve", "basis"] == "equity"
        assert context.get("equity_value") == pytest.approx(0.25 * 1_500 + 0.75 * 900)

    def test_net_assets(self):
        context = BlockContext()
        schedule = NetAssetSchedule(assets={"cash": Decimal("700")}, liabilities={"loan": Decimal("200")})
        IndicationsBlock({"net_asset": 1.0}, net_assets=schedule).execute(context)
        assert context.get("equity_value") == pytest.approx(500.0)

    def test_net_assets_missing(self):
        with pytest.raises(InvalidInputError):
            IndicationsBlock({"net_asset": 1.0}).execute(BlockContext())

    def test_zero_weights_dropped_from_inputs(self):
        block = IndicationsBlock({"dcf": 1.0, "backsolve": 0})
        assert block.inputs() == ["dcf_valuation"]

    def test_weights_must_total_one(self):
        with pytest.raises(InvalidInputError):
            IndicationsBlock({"dcf": 0.5, "backsolve": 0.3}).execute(_context())

    def test_explicit_equity_value(self):
        context = BlockContext()
        IndicationsBlock(equity_value=25_000_000).execute(context)

        assert context.get("equity_value") == 25_000_000
        assert context.get("value_indications").iloc[0]["method"] == "concluded"

    def test_explicit_value_overrides_weighting(self):
        context = _context()
        IndicationsBlock({"dcf": 1.0}, equity_value=2_000).execute(context)

        assert context.get("equity_value") == 2_000
        assert len(context.get("value_indications")) == 1

    def test_needs_weights_or_value(self):
        with pytest.raises(InvalidInputError):
            IndicationsBlock()

    def test_non_positive_conclusion(self):
        with pytest.raises(InvalidInputError):
            IndicationsBlock({"dcf": 1.0}, debt=5_000).execute(_context())

    def test_mixed_market_bases(self):
        context = BlockContext()
        context.set("market_indications", pd.DataFrame([
            {"approach": "guideline_public", "indicated_value": 800.0, "value_basis": "enterprise"},
            {"approach": "guideline_public", "indicated_value": 900.0, "value_basis": "equity"},
        ]))
        with pytest.raises(InvalidInputError):
            IndicationsBlock({"guideline_public": 1.0}).execute(context)


def _allocations(context: BlockContext) -> BlockContext:
    context.set("equity_value", 10_000_000.0)
    context.set("opm_allocation", pd.DataFrame([
        {"share_class_id": "common", "value_per_share": 0.80},
        {"share_class_id": "series_a", "value_per_share": 1.50},
    ]))
    context.set("pwerm_summary", pd.DataFrame([
        {"share_class_id": "common", "value_per_share": 1.00},
        {"share_class_id": "series_a", "value_per_share": 1.60},
    ]))
    context.set("hybrid_summary", pd.DataFrame([{"scenarios": 2, "common_value_per_share": 0.90}]))
    context.set("dlom_summary", pd.DataFrame([{"dlom_pct": 25.0, "discount": 0.25}]))
    return context


class TestConclusionBlock:
    def test_opm_only_with_dlom(self):
        context = _allocations(BlockContext())
        ConclusionBlock().execute(context)

        conclusion = context.get("valuation_conclusion").iloc[0]
        assert conclusion["marketable_value_per_share"] == pytest.approx(0.80)
        assert conclusion["dlom"] == pytest.approx(0.25)
        assert conclusion["dlom_amount_per_share"] == pytest.approx(0.20)
        assert conclusion["fair_market_value_per_share"] == pytest.approx(0.60)
        assert conclusion["equity_value"] == 10_000_000.0

    def test_blended_allocation(self):
        context = _allocations(BlockContext())
        ConclusionBlock({"opm": 0.5, "pwerm": 0.25, "hybrid": 0.25}, dlom_key=None).execute(context)

        summary = context.get("allocation_summary").set_index("method")
        assert summary.loc["hybrid", "common_value_per_share"] == pytest.approx(0.90)
        marketable = 0.5 * 0.80 + 0.25 * 1.00 + 0.25 * 0.90
        conclusion = context.get("valuation_conclusion").iloc[0]
        assert conclusion["marketable_value_per_share"] == pytest.approx(marketable)
        assert conclusion["fair_market_value_per_share"] == pytest.approx(marketable)

    def test_inputs_follow_weights(self):
        block = ConclusionBlock({"pwerm": 1.0}, dlom_key=None)
        assert block.inputs() == ["equity_value", "pwerm_summary"]

    def test_other_class(self):
        context = _allocations(BlockContext())
        ConclusionBlock(common_share_class_id="series_a", dlom_key=None).execute(context)
        assert context.get("valuation_conclusion").iloc[0]["marketable_value_per_share"] == pytest.approx(1.50)

    def test_unknown_class(self):
        context = _allocations(BlockContext())
        with pytest.raises(InvalidInputError):
            ConclusionBlock(common_share_class_id="series_b").execute(context)

    def test_allocation_weights_must_total_one(self):
        with pytest.raises(InvalidInputError):
            ConclusionBlock({"opm": 0.6, "pwerm": 0.6})


def test_indications_feed_conclusion():
    context = _context()
    context.set("opm_allocation", pd.DataFrame([{"share_class_id": "common", "value_per_share": 0.10}]))
    context.set("dlom_summary", pd.DataFrame([{"dlom_pct": 20.0, "discount": 0.20}]))
    BlockExecutor([
        ConclusionBlock(),
        IndicationsBlock({"dcf": 1.0}, cash=100, debt=50),
    ]).execute(context)

    assert context.get("valuation_conclusion").iloc[0]["equity_value"] == pytest.approx(1_050.0)
