"""Tests for the market approach (trading and transaction multiples)."""

import math
from decimal import Decimal

import pytest
from pydantic import ValidationError

from valuation_domain.analytics.comps import (
    market_indication,
    multiple_statistics,
    multiples_table,
    statistics_table,
)
from valuation_domain.blocks import BlockContext, MarketApproachBlock
from valuation_domain.errors import InvalidInputError
from valuation_domain.schemas import ComparableCompany, MarketApproachCFG, NetAssetSchedule


def _comps():
    return [
        ComparableCompany(name="Alpha", ticker="ALP", enterprise_value=Decimal("100"), revenue=Decimal("10"),
                          ebitda=Decimal("5"), market_cap=Decimal("90"), net_income=Decimal("3")),
        ComparableCompany(name="Beta", ticker="BET", enterprise_value=Decimal("200"), revenue=Decimal("25"),
                          ebitda=Decimal("-4"), market_cap=Decimal("180"), net_income=Decimal("-1")),
        ComparableCompany(name="Gamma", ticker="GAM", enterprise_value=Decimal("300"), revenue=Decimal("20"),
                          ebitda=Decimal("20"), market_cap=Decimal("240"), net_income=Decimal("12")),
        ComparableCompany(name="Delta", enterprise_value=Decimal("50"), revenue=Decimal("-5"),
                          market_cap=Decimal("40")),
    ]


class TestMultiples:
    def test_multiples_table(self):
        table = multiples_table(_comps()).set_index("name")

        assert table.loc["Alpha", "ev_revenue"] == pytest.approx(10.0)
        assert table.loc["Gamma", "ev_ebitda"] == pytest.approx(15.0)
        assert table.loc["Alpha", "pe"] == pytest.approx(30.0)

    def test_non_positive_denominators_excluded(self):
        table = multiples_table(_comps()).set_index("name")

        assert math.isnan(table.loc["Beta", "ev_ebitda"])
        assert math.isnan(table.loc["Beta", "pe"])
        assert math.isnan(table.loc["Delta", "ev_revenue"])
        assert math.isnan(table.loc["Delta", "ev_ebitda"])

    def test_statistics_ignore_nan(self):
        stats = multiple_statistics([10.0, 8.0, 15.0, float("nan")])
        assert stats["count"] == 3
        assert stats["median"] == pytest.approx(10.0)
        assert stats["mean"] == pytest.approx(11.0)
        assert stats["min"] == 8.0
        assert stats["max"] == 15.0

    def test_empty_statistics(self):
        stats = multiple_statistics([float("nan")])
        assert stats["count"] == 0
        assert math.isnan(stats["median"])

    def test_statistics_table(self):
        table = statistics_table(multiples_table(_comps()))
        assert list(table["multiple"]) == ["ev_revenue", "ev_ebitda", "pe"]
        assert table.set_index("multiple").loc["ev_ebitda", "count"] == 2


class TestIndication:
    def test_discounted_median(self):
        cfg = MarketApproachCFG(subject_metric=Decimal("5"), discount=Decimal("0.20"), comparables=_comps())
        indication = market_indication(cfg)

        assert indication.selected_multiple == pytest.approx(10.0)
        assert indication.adjusted_multiple == pytest.approx(8.0)
        assert indication.indicated_value == pytest.approx(40.0)
        assert indication.value_basis == "enterprise"

    def test_pe_is_equity_basis(self):
        cfg = MarketApproachCFG(
            approach="precedent_transactions", multiple="pe", statistic="mean",
            subject_metric=Decimal("2"), comparables=_comps()[:3],
        )
        indication = market_indication(cfg)
        # Alpha 30x, Gamma 20x
        assert indication.selected_multiple == pytest.approx(25.0)
        assert indication.indicated_value == pytest.approx(50.0)
        assert indication.value_basis == "equity"

    def test_pe_requires_market_cap(self):
        with pytest.raises(ValidationError):
            MarketApproachCFG(
                multiple="pe", subject_metric=Decimal("1"),
                comparables=[ComparableCompany(name="X", enterprise_value=Decimal("10"), net_income=Decimal("1"))],
            )

    def test_no_usable_comparables(self):
        cfg = MarketApproachCFG(
            multiple="ev_ebitda", subject_metric=Decimal("1"),
            comparables=[ComparableCompany(name="X", enterprise_value=Decimal("10"), ebitda=Decimal("-1"))],
        )
        with pytest.raises(InvalidInputError):
            market_indication(cfg)


def test_net_asset_schedule():
    schedule = NetAssetSchedule(
        assets={"cash": Decimal("500"), "receivables": Decimal("250")},
        liabilities={"payables": Decimal("150")},
    )
    assert schedule.total_assets == Decimal("750")
    assert schedule.implied_equity_value == Decimal("600")


def test_market_approach_block():
    context = BlockContext()
    context.set("market_approaches", [
        MarketApproachCFG(subject_metric=Decimal("5"), comparables=_comps()),
        MarketApproachCFG(approach="precedent_transactions", multiple="ev_ebitda",
                          subject_metric=Decimal("2"), comparables=_comps()),
    ])
    MarketApproachBlock().execute(context)

    multiples = context.get("market_multiples")
    assert len(multiples) == 8
    assert set(multiples["approach"]) == {"guideline_public", "precedent_transactions"}

    statistics = context.get("market_statistics")
    assert len(statistics) == 6

    indications = context.get("market_indications").set_index("approach")
    assert indications.loc["guideline_public", "indicated_value"] == pytest.approx(50.0)
    # EV/EBITDA: Alpha 20x, Gamma 15x -> median 17.5x
    assert indications.loc["precedent_transactions", "indicated_value"] == pytest.approx(35.0)
