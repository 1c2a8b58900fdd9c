"""Shared cap table fixtures.

The "standard" cap table used across block tests:
    - common: alice 5M, bob 3M (8M shares)
    - series_a: 2M shares at $1.00, 1x non-participating, converts 1:1
    - options: 1M pool, 500K granted to carol at $0.50

Its breakpoints are:
    1. 0 -> 2.0M        liquidation preference (series_a)
    2. 2.0M -> 6.0M     pro rata, common only (up to $0.50 per share)
    3. 6.0M -> 10.25M   options exercise, 8.5M shares (up to $1.00 per share)
    4. 10.25M -> inf    series_a converts, 10.5M shares
"""

from datetime import date
from decimal import Decimal

import pytest

from valuation_domain.config import get_settings
from valuation_domain.schemas import (
    CapTable,
    ConversionRights,
    LiquidationPreference,
    OPMAssumptions,
    OptionGrantEvent,
    OptionPoolCreation,
    ParticipationRights,
    ShareClass,
    ShareIssuanceEvent,
)


VALUATION_DATE = date(2024, 12, 31)


def common_class() -> ShareClass:
    return ShareClass(id="common", name="Common Stock", share_type="common")


def option_class() -> ShareClass:
    return ShareClass(
        id="options",
        name="Employee Options",
        share_type="option",
        conversion_rights=ConversionRights(converts_to_class_id="common"),
    )


def preferred_class(
    class_id: str = "series_a",
    price: str = "1.00",
    participation: str = "non_participating",
    cap_multiple: str = None,
    seniority_rank: int = 0,
    multiple: str = "1.0",
) -> ShareClass:
    return ShareClass(
        id=class_id,
        name=class_id.replace("_", " ").title() + " Preferred",
        share_type="preferred",
        original_issue_price=Decimal(price),
        liquidation_preference=LiquidationPreference(
            multiple=Decimal(multiple),
            seniority_rank=seniority_rank,
        ),
        participation_rights=ParticipationRights(
            participation_type=participation,
            cap_multiple=Decimal(cap_multiple) if cap_multiple else None,
        ),
        conversion_rights=ConversionRights(converts_to_class_id="common"),
    )


def issue(event_id: str, holder: str, class_id: str, shares: int, price: str = None,
          on: date = date(2020, 1, 1)) -> ShareIssuanceEvent:
    return ShareIssuanceEvent(
        event_id=event_id,
        event_date=on,
        holder_id=holder,
        share_class_id=class_id,
        shares=Decimal(shares),
        price_per_share=Decimal(price) if price else None,
    )


def build_standard_cap_table() -> CapTable:
    cap_table = CapTable(company_name="Acme")
    cap_table.share_classes["common"] = common_class()
    cap_table.share_classes["series_a"] = preferred_class()
    cap_table.share_classes["options"] = option_class()

    cap_table.add_event(issue("founder_alice", "alice", "common", 5_000_000))
    cap_table.add_event(issue("founder_bob", "bob", "common", 3_000_000))
    cap_table.add_event(OptionPoolCreation(
        event_id="pool", event_date=date(2021, 1, 1), shares_authorized=Decimal("1000000"),
    ))
    cap_table.add_event(issue("series_a_fund", "fund_one", "series_a", 2_000_000, "1.00", date(2022, 6, 1)))
    cap_table.add_event(OptionGrantEvent(
        event_id="grant_carol",
        event_date=date(2023, 3, 1),
        holder_id="carol",
        share_class_id="options",
        option_grant_id="g1",
        shares=Decimal("500000"),
        exercise_price=Decimal("0.50"),
    ))
    return cap_table


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached per process; clear them around every test."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def standard_cap_table() -> CapTable:
    return build_standard_cap_table()


@pytest.fixture
def standard_snapshot(standard_cap_table):
    return standard_cap_table.snapshot(VALUATION_DATE)


@pytest.fixture
def opm_assumptions() -> OPMAssumptions:
    return OPMAssumptions(
        volatility=Decimal("0.60"),
        risk_free_rate=Decimal("0.04"),
        time_to_liquidity=Decimal("3"),
    )
