"""Report configurations shared by the workbook tests.

Cap table: founders 8M common, 2M Series A at $1.00 (1x non-participating),
a 1M option pool with 500K granted at $0.50.
"""

from datetime import date
from decimal import Decimal

from valuation_domain.schemas import (
    BacksolveTarget,
    CapTable,
    Company,
    ComparableCompany,
    ConversionRights,
    DCFAssumptions,
    DLOMInputs,
    ExitScenario,
    HybridScenario,
    LiquidationPreference,
    MarketApproachCFG,
    OPMAssumptions,
    OptionGrantEvent,
    OptionPoolCreation,
    PeerCompany,
    PWERMScenario,
    ReportCFG,
    ShareClass,
    ShareIssuanceEvent,
    Valuation,
    WACCInputs,
)

VALUATION_DATE = date(2024, 12, 31)


def cap_table() -> CapTable:
    table = CapTable(company_name="Acme Corp")
    table.share_classes["common"] = ShareClass(id="common", name="Common Stock", share_type="common")
    table.share_classes["series_a"] = ShareClass(
        id="series_a",
        name="Series A Preferred",
        share_type="preferred",
        original_issue_price=Decimal("1.00"),
        liquidation_preference=LiquidationPreference(seniority_rank=0),
        conversion_rights=ConversionRights(converts_to_class_id="common"),
    )
    table.share_classes["options"] = ShareClass(
        id="options",
        name="Employee Options",
        share_type="option",
        conversion_rights=ConversionRights(converts_to_class_id="common"),
    )

    for event_id, holder, class_id, shares, price, on in [
        ("founder_alice", "alice", "common", "5000000", None, date(2020, 1, 1)),
        ("founder_bob", "bob", "common", "3000000", None, date(2020, 1, 1)),
        ("series_a", "fund_one", "series_a", "2000000", "1.00", date(2022, 6, 1)),
    ]:
        table.add_event(ShareIssuanceEvent(
            event_id=event_id,
            event_date=on,
            holder_id=holder,
            share_class_id=class_id,
            shares=Decimal(shares),
            price_per_share=Decimal(price) if price else None,
        ))
    table.add_event(OptionPoolCreation(
        event_id="pool", event_date=date(2021, 1, 1), shares_authorized=Decimal("1000000"),
    ))
    table.add_event(OptionGrantEvent(
        event_id="grant_carol",
        event_date=date(2023, 3, 1),
        holder_id="carol",
        share_class_id="options",
        option_grant_id="g1",
        shares=Decimal("500000"),
        exercise_price=Decimal("0.50"),
    ))
    return table


def _opm() -> OPMAssumptions:
    return OPMAssumptions(
        volatility=Decimal("0.60"),
        risk_free_rate=Decimal("0.04"),
        time_to_liquidity=Decimal("3"),
    )


def _target() -> BacksolveTarget:
    return BacksolveTarget(share_class_id="series_a", price_per_share=Decimal("1.50"))


def _dlom() -> DLOMInputs:
    return DLOMInputs(time_to_liquidity=Decimal("3"), volatility=Decimal("60"), risk_free_rate=Decimal("4"))


def _valuation(**weights) -> Valuation:
    return Valuation(id="acme_fy24", company_id="acme", valuation_date=VALUATION_DATE, **weights)


def backsolve_report(**fields) -> ReportCFG:
    """Backsolve-only valuation: OPM allocation and DLOM."""
    data = dict(
        company=Company(id="acme", name="Acme Corp"),
        valuation=_valuation(method_weights={"backsolve": Decimal("1")}),
        cap_table=cap_table(),
        opm_assumptions=_opm(),
        backsolve_target=_target(),
        dlom=_dlom(),
    )
    data.update(fields)
    return ReportCFG(**data)


def full_report(**fields) -> ReportCFG:
    """Every method and every sheet."""
    data = dict(
        company=Company(id="acme", name="Acme Corp", industry="Software"),
        valuation=_valuation(
            method_weights={
                "dcf": Decimal("0.4"),
                "guideline_public": Decimal("0.3"),
                "backsolve": Decimal("0.3"),
            },
            allocation_weights={"opm": Decimal("0.5"), "pwerm": Decimal("0.5")},
        ),
        cap_table=cap_table(),
        dcf=DCFAssumptions(
            base_revenue=Decimal("10000000"),
            revenue_growth=[Decimal("0.30"), Decimal("0.25"), Decimal("0.20")],
            ebitda_margin=[Decimal("0.10"), Decimal("0.15"), Decimal("0.20")],
            terminal_growth=Decimal("0.03"),
            shares_outstanding=Decimal("11000000"),
        ),
        wacc=WACCInputs(
            risk_free_rate=Decimal("0.04"),
            equity_risk_premium=Decimal("0.06"),
            size_premium=Decimal("0.03"),
            company_specific_premium=Decimal("0.05"),
            pre_tax_cost_of_debt=Decimal("0.08"),
            debt_weight=Decimal("0.10"),
            peers=[
                PeerCompany(name="Alpha", levered_beta=Decimal("1.2"), debt_to_equity=Decimal("0.5"),
                            market_cap=Decimal("5000000000")),
                PeerCompany(name="Beta", levered_beta=Decimal("1.0"), market_cap=Decimal("2000000000")),
                PeerCompany(name="Gamma", levered_beta=Decimal("1.5"), debt_to_equity=Decimal("1.0")),
            ],
        ),
        market_approaches=[
            MarketApproachCFG(
                subject_metric=Decimal("10000000"),
                discount=Decimal("0.20"),
                comparables=[
                    ComparableCompany(name="Alpha", ticker="ALP", enterprise_value=Decimal("400000000"),
                                      revenue=Decimal("100000000"), ebitda=Decimal("20000000")),
                    ComparableCompany(name="Gamma", ticker="GAM", enterprise_value=Decimal("300000000"),
                                      revenue=Decimal("60000000"), ebitda=Decimal("15000000")),
                ],
            ),
        ],
        opm_assumptions=_opm(),
        backsolve_target=_target(),
        pwerm_scenarios=[
            PWERMScenario(id="sale", label="Strategic Sale", probability=Decimal("60"),
                          exit_value=Decimal("40000000"), years_to_exit=Decimal("2"),
                          discount_rate=Decimal("0.25")),
            PWERMScenario(id="wind_down", label="Wind Down", probability=Decimal("40"),
                          exit_value=Decimal("3000000"), exit_type="dissolution",
                          years_to_exit=Decimal("1"), discount_rate=Decimal("0.25")),
        ],
        hybrid_scenarios=[
            HybridScenario(id="ipo", label="IPO", probability=Decimal("30"), time_to_liquidity=Decimal("1")),
            HybridScenario(id="stay_private", label="Stay Private", probability=Decimal("70"),
                           time_to_liquidity=Decimal("4")),
        ],
        exit_scenarios=[
            ExitScenario(id="low", label="Low", exit_value=Decimal("5000000")),
            ExitScenario(id="high", label="High", exit_value=Decimal("50000000"),
                         transaction_costs_percentage=Decimal("0.03")),
        ],
        cash=Decimal("2000000"),
        debt=Decimal("500000"),
        dlom=_dlom(),
    )
    data.update(fields)
    return ReportCFG(**data)
