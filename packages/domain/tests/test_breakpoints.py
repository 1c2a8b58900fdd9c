"""Tests for breakpoint analysis.

Tests cover:
- Security pooling (stock per class, options per strike)
- Range construction for non-participating, participating and capped preferred
- Seniority tranches
- Allocation at a given equity value
- Error cases
"""

import math
from datetime import date
from decimal import Decimal

import pytest

from valuation_domain.blocks import BlockContext, BreakpointBlock, build_breakpoint_schedule
from valuation_domain.blocks.breakpoints import collect_securities
from valuation_domain.errors import InvalidInputError
from valuation_domain.schemas import (
    CapTable,
    ConversionRights,
    OptionPoolCreation,
    ShareClass,
    WarrantIssuance,
)

from conftest import VALUATION_DATE, common_class, issue, preferred_class


def _two_class_cap_table(participation: str, cap_multiple: str = None) -> CapTable:
    """1M common and 1M preferred at $1 (1M preference)."""
    cap_table = CapTable(company_name="TestCo")
    cap_table.share_classes["common"] = common_class()
    cap_table.share_classes["series_a"] = preferred_class(
        participation=participation, cap_multiple=cap_multiple
    )
    cap_table.add_event(issue("e1", "founder", "common", 1_000_000))
    cap_table.add_event(issue("e2", "investor", "series_a", 1_000_000, "1.00"))
    return cap_table


# =============================================================================
# Securities
# =============================================================================

class TestCollectSecurities:
    def test_stock_pooled_per_class_and_options_per_strike(self, standard_snapshot):
        securities = collect_securities(standard_snapshot)

        assert set(securities) == {"common", "series_a", "options@0.5"}
        assert securities["common"].shares == 8_000_000
        assert securities["series_a"].liquidation_preference == pytest.approx(2_000_000)
        assert securities["options@0.5"].kind == "option"
        assert securities["options@0.5"].strike == pytest.approx(0.5)

    def test_unallocated_pool_is_not_a_security(self, standard_snapshot):
        securities = collect_securities(standard_snapshot)
        total = sum(s.shares for s in securities.values())
        # 8M common + 2M preferred + 500K granted; the 500K left in the pool is excluded
        assert total == 10_500_000


# =============================================================================
# Range construction
# =============================================================================

class TestStandardSchedule:
    def test_breakpoint_types_and_bounds(self, standard_snapshot):
        schedule = build_breakpoint_schedule(standard_snapshot)

        assert [r.breakpoint_type for r in schedule.ranges] == [
            "liquidation_preference",
            "pro_rata_distribution",
            "option_exercise",
            "voluntary_conversion",
        ]
        assert [r.from_value for r in schedule.ranges] == pytest.approx(
            [0.0, 2_000_000, 6_000_000, 10_250_000]
        )
        assert math.isinf(schedule.ranges[-1].to_value)

    def test_participation_sums_to_one_in_every_range(self, standard_snapshot):
        schedule = build_breakpoint_schedule(standard_snapshot)
        for rng in schedule.ranges:
            assert sum(rng.participation.values()) == pytest.approx(1.0)

    def test_final_range_shares_by_as_converted_shares(self, standard_snapshot):
        schedule = build_breakpoint_schedule(standard_snapshot)
        last = schedule.ranges[-1]

        assert last.participation["common"] == pytest.approx(8 / 10.5)
        assert last.participation["series_a"] == pytest.approx(2 / 10.5)
        assert last.participation["options@0.5"] == pytest.approx(0.5 / 10.5)

    def test_total_liquidation_preference(self, standard_snapshot):
        schedule = build_breakpoint_schedule(standard_snapshot)
        assert schedule.total_liquidation_preference == pytest.approx(2_000_000)

    def test_allocation_sums_to_value(self, standard_snapshot):
        schedule = build_breakpoint_schedule(standard_snapshot)
        for value in (500_000, 2_000_000, 7_500_000, 25_000_000):
            assert sum(schedule.allocate(value).values()) == pytest.approx(value)


class TestParticipationTypes:
    def test_participating_preferred_shares_from_the_start(self):
        snapshot = _two_class_cap_table("participating").snapshot(VALUATION_DATE)
        schedule = build_breakpoint_schedule(snapshot)

        assert len(schedule.ranges) == 2
        assert schedule.ranges[1].participation == pytest.approx({"common": 0.5, "series_a": 0.5})

    def test_capped_participating_leaves_then_rejoins(self):
        snapshot = _two_class_cap_table("capped_participating", cap_multiple="2.0").snapshot(VALUATION_DATE)
        schedule = build_breakpoint_schedule(snapshot)

        assert [r.breakpoint_type for r in schedule.ranges] == [
            "liquidation_preference",
            "pro_rata_distribution",
            "participation_cap",
            "voluntary_conversion",
        ]
        assert [r.from_value for r in schedule.ranges] == pytest.approx([0, 1_000_000, 3_000_000, 4_000_000])
        # Between the cap and conversion only common participates
        assert schedule.ranges[2].participation == {"common": 1.0}

    def test_capped_participating_allocation(self):
        snapshot = _two_class_cap_table("capped_participating", cap_multiple="2.0").snapshot(VALUATION_DATE)
        schedule = build_breakpoint_schedule(snapshot)

        capped = schedule.allocate(3_500_000)
        assert capped["series_a"] == pytest.approx(2_000_000)
        assert capped["common"] == pytest.approx(1_500_000)

        converted = schedule.allocate(6_000_000)
        assert converted["series_a"] == pytest.approx(3_000_000)
        assert converted["common"] == pytest.approx(3_000_000)

    def test_senior_class_takes_first_tranche(self):
        cap_table = CapTable(company_name="TestCo")
        cap_table.share_classes["common"] = common_class()
        cap_table.share_classes["series_a"] = preferred_class("series_a", seniority_rank=1)
        cap_table.share_classes["series_b"] = preferred_class("series_b", price="2.00", seniority_rank=0)
        cap_table.add_event(issue("e1", "founder", "common", 1_000_000))
        cap_table.add_event(issue("e2", "a_fund", "series_a", 1_000_000, "1.00"))
        cap_table.add_event(issue("e3", "b_fund", "series_b", 1_000_000, "2.00"))

        schedule = build_breakpoint_schedule(cap_table.snapshot(VALUATION_DATE))
        first, second = schedule.ranges[0], schedule.ranges[1]

        assert first.participation == {"series_b": 1.0}
        assert first.width == pytest.approx(2_000_000)
        assert second.participation == {"series_a": 1.0}
        assert second.width == pytest.approx(1_000_000)

        partial = schedule.allocate(2_500_000)
        assert partial["series_b"] == pytest.approx(2_000_000)
        assert partial["series_a"] == pytest.approx(500_000)
        assert partial["common"] == pytest.approx(0.0)

    def test_same_rank_splits_by_preference(self):
        cap_table = CapTable(company_name="TestCo")
        cap_table.share_classes["common"] = common_class()
        cap_table.share_classes["series_a"] = preferred_class("series_a")
        cap_table.share_classes["series_b"] = preferred_class("series_b", price="3.00")
        cap_table.add_event(issue("e1", "founder", "common", 1_000_000))
        cap_table.add_event(issue("e2", "a_fund", "series_a", 1_000_000, "1.00"))
        cap_table.add_event(issue("e3", "b_fund", "series_b", 1_000_000, "3.00"))

        schedule = build_breakpoint_schedule(cap_table.snapshot(VALUATION_DATE))
        assert schedule.ranges[0].participation == pytest.approx({"series_a": 0.25, "series_b": 0.75})


# =============================================================================
# Warrants and foreign currency preferred
# =============================================================================

class TestWarrants:
    @pytest.fixture
    def warrant_snapshot(self, standard_cap_table):
        standard_cap_table.share_classes["warrants"] = ShareClass(
            id="warrants",
            name="Lender Warrants",
            share_type="warrant",
            conversion_rights=ConversionRights(converts_to_class_id="common"),
        )
        standard_cap_table.add_event(WarrantIssuance(
            event_id="lender_warrant",
            event_date=date(2023, 9, 1),
            holder_id="bank",
            share_class_id="warrants",
            shares=Decimal("1000000"),
            exercise_price=Decimal("2.00"),
        ))
        return standard_cap_table.snapshot(VALUATION_DATE)

    def test_warrant_joins_at_its_strike(self, warrant_snapshot):
        schedule = build_breakpoint_schedule(warrant_snapshot)

        # Series A converts at $1.00 per share (10.25M); the warrant joins at
        # $2.00 after another 10.5M shares x $1.00
        assert [r.breakpoint_type for r in schedule.ranges] == [
            "liquidation_preference",
            "pro_rata_distribution",
            "option_exercise",
            "voluntary_conversion",
            "option_exercise",
        ]
        assert [r.from_value for r in schedule.ranges] == pytest.approx(
            [0.0, 2_000_000, 6_000_000, 10_250_000, 20_750_000]
        )
        assert "warrants@2" not in schedule.ranges[3].participation
        assert schedule.ranges[-1].participation["warrants@2"] == pytest.approx(1 / 11.5)

    def test_warrant_allocation(self, warrant_snapshot):
        schedule = build_breakpoint_schedule(warrant_snapshot)

        assert schedule.allocate(20_000_000)["warrants@2"] == pytest.approx(0.0)
        above = schedule.allocate(25_000_000)
        assert above["warrants@2"] == pytest.approx(4_250_000 / 11.5)
        assert sum(above.values()) == pytest.approx(25_000_000)


class TestIssueCurrency:
    def _gbp_cap_table(self, **rates) -> CapTable:
        """1M common and 1M preferred issued at GBP 1.00."""
        cap_table = CapTable(company_name="TestCo", exchange_rates=rates)
        cap_table.share_classes["common"] = common_class()
        series_a = preferred_class()
        series_a.issue_currency = "GBP"
        cap_table.share_classes["series_a"] = series_a
        cap_table.add_event(issue("e1", "founder", "common", 1_000_000))
        cap_table.add_event(issue("e2", "investor", "series_a", 1_000_000, "1.00"))
        return cap_table

    def test_preference_converted_to_base_currency(self):
        snapshot = self._gbp_cap_table(GBP=Decimal("1.25")).snapshot(VALUATION_DATE)
        assert snapshot.class_liquidation_preference("series_a") == Decimal("1250000")

        schedule = build_breakpoint_schedule(snapshot)
        assert schedule.total_liquidation_preference == pytest.approx(1_250_000)
        # Conversion at $1.25 per share: 1.25M + 1M common x $1.25
        assert [r.from_value for r in schedule.ranges] == pytest.approx([0.0, 1_250_000, 2_500_000])

    def test_missing_exchange_rate(self):
        with pytest.raises(ValueError, match="Exchange rates missing for issue currencies"):
            self._gbp_cap_table().snapshot(VALUATION_DATE)

    def test_base_currency_class_is_unchanged(self):
        cap_table = CapTable(company_name="TestCo", base_currency="GBP", exchange_rates={})
        cap_table.share_classes["common"] = common_class()
        series_a = preferred_class()
        series_a.issue_currency = "GBP"
        cap_table.share_classes["series_a"] = series_a
        cap_table.add_event(issue("e2", "investor", "series_a", 1_000_000, "1.00"))

        snapshot = cap_table.snapshot(VALUATION_DATE)
        assert snapshot.class_liquidation_preference("series_a") == Decimal("1000000")


# =============================================================================
# Errors and block wiring
# =============================================================================

def test_empty_cap_table_raises():
    cap_table = CapTable(company_name="Empty")
    cap_table.share_classes["common"] = common_class()
    cap_table.add_event(OptionPoolCreation(
        event_id="pool", event_date=date(2020, 1, 1), shares_authorized=Decimal("1000"),
    ))
    with pytest.raises(InvalidInputError):
        build_breakpoint_schedule(cap_table.snapshot(VALUATION_DATE))


def test_breakpoint_block_outputs(standard_snapshot):
    context = BlockContext()
    context.set("cap_table_snapshot", standard_snapshot)
    BreakpointBlock().execute(context)

    breakpoints = context.get("breakpoints")
    assert list(breakpoints["breakpoint_number"]) == [1, 2, 3, 4]
    assert math.isinf(breakpoints["to_value"].iloc[-1])

    participation = context.get("breakpoint_participation")
    assert set(participation.columns) == {
        "breakpoint_number", "security_id", "share_class_id", "participating_shares", "participation_pct",
    }
    assert len(context.get("breakpoint_securities")) == 3
