"""Report configuration - top-level entry point for a valuation run.

The ReportCFG is the root configuration object that ties together:
- Company and valuation engagement metadata
- The cap table (replayed as of the valuation date)
- Inputs for each valuation method (DCF, market, asset, backsolve)
- Allocation inputs (OPM assumptions, PWERM and hybrid scenarios)
- DLOM inputs
- Display options (which sheets to render)

This is what gets passed to the pipeline builder and the Excel renderer.
"""

from typing import List, Optional
from decimal import Decimal
from pydantic import Field, model_validator

from .base import DomainModel, MoneyAmount, ShareClassId
from .company import Company, Valuation
from .cap_table import CapTable
from .assumptions import OPMAssumptions, BacksolveTarget
from .scenarios import ExitScenario, PWERMScenario, HybridScenario
from .dcf import DCFAssumptions, DCFScenario
from .cost_of_capital import WACCInputs
from .market import MarketApproachCFG, NetAssetSchedule
from .dlom import DLOMInputs


class SheetOptions(DomainModel):
    """Toggles for optional workbook sheets.

    Sheets whose inputs are missing are skipped regardless of these flags.
    """

    include_cap_table: bool = True
    include_breakpoints: bool = True
    include_opm: bool = True
    include_waterfall: bool = True
    include_dcf: bool = True
    include_wacc: bool = True
    include_market: bool = True
    include_dlom: bool = True
    include_pwerm: bool = True


class ReportCFG(DomainModel):
    """Everything needed to run a valuation and render its workbook.

    Example:
        cfg = ReportCFG(
            company=Company(id="acme", name="Acme Corp"),
            valuation=Valuation(id="acme_fy24", company_id="acme",
                                valuation_date=date(2024, 12, 31),
                                method_weights={"backsolve": 1}),
            cap_table=cap_table,
            opm_assumptions=OPMAssumptions(volatility=0.6, risk_free_rate=0.04,
                                           time_to_liquidity=3),
            backsolve_target=BacksolveTarget(share_class_id="series_a",
                                             price_per_share=1.50),
            dlom=DLOMInputs(time_to_liquidity=3, volatility=60),
        )
    """

    company: Company
    valuation: Valuation
    cap_table: CapTable

    common_share_class_id: ShareClassId = Field(
        default="common",
        description="Class whose per-share value is the concluded FMV"
    )

    # Valuation methods
    equity_value: Optional[MoneyAmount] = Field(
        default=None,
        description="Concluded equity value supplied directly (skips method weighting)"
    )
    dcf: Optional[DCFAssumptions] = None
    dcf_scenarios: List[DCFScenario] = Field(default_factory=list)
    wacc: Optional[WACCInputs] = None
    market_approaches: List[MarketApproachCFG] = Field(default_factory=list)
    net_assets: Optional[NetAssetSchedule] = None
    backsolve_target: Optional[BacksolveTarget] = None

    cash: MoneyAmount = Field(default=Decimal("0"), description="Cash added in the equity bridge")
    debt: MoneyAmount = Field(default=Decimal("0"), description="Debt subtracted in the equity bridge")

    # Allocation
    opm_assumptions: Optional[OPMAssumptions] = None
    pwerm_scenarios: List[PWERMScenario] = Field(default_factory=list)
    hybrid_scenarios: List[HybridScenario] = Field(default_factory=list)
    exit_scenarios: List[ExitScenario] = Field(
        default_factory=list,
        description="Exit values to show on the waterfall sheet"
    )

    dlom: Optional[DLOMInputs] = None

    sheets: SheetOptions = Field(default_factory=SheetOptions)

    @model_validator(mode='after')
    def validate_method_inputs(self):
        weights = self.valuation.method_weights
        if not weights and self.equity_value is None:
            raise ValueError("Provide valuation.method_weights or an explicit equity_value")

        approaches = {m.approach for m in self.market_approaches}
        requirements = {
            "dcf": self.dcf is not None,
            "guideline_public": "guideline_public" in approaches,
            "precedent_transactions": "precedent_transactions" in approaches,
            "net_asset": self.net_assets is not None,
            "backsolve": self.backsolve_target is not None and self.opm_assumptions is not None,
        }
        for method, weight in weights.items():
            if weight > 0 and not requirements[method]:
                raise ValueError(f"Method '{method}' is weighted but its inputs are missing")

        if self.dcf is not None and self.dcf.wacc is None and self.wacc is None:
            raise ValueError("DCF needs either dcf.wacc or WACC inputs")

        allocation = self.valuation.allocation_weights
        if allocation.get("opm", 0) > 0 and self.opm_assumptions is None:
            raise ValueError("OPM allocation requires opm_assumptions")
        if allocation.get("pwerm", 0) > 0 and not self.pwerm_scenarios:
            raise ValueError("PWERM allocation requires pwerm_scenarios")
        if allocation.get("hybrid", 0) > 0:
            if not self.hybrid_scenarios or self.backsolve_target is None or self.opm_assumptions is None:
                raise ValueError(
                    "Hybrid allocation requires hybrid_scenarios, backsolve_target and opm_assumptions"
                )

        if self.opm_assumptions is None:
            for scenario in self.pwerm_scenarios:
                if scenario.allocation_method == "opm" and None in (
                    scenario.volatility, scenario.risk_free_rate, scenario.time_to_liquidity
                ):
                    raise ValueError(
                        f"PWERM scenario '{scenario.id}' uses the OPM but neither it nor the "
                        "report defines complete OPM assumptions"
                    )

        if self.common_share_class_id not in self.cap_table.share_classes:
            raise ValueError(
                f"common_share_class_id '{self.common_share_class_id}' is not a defined share class"
            )
        return self
