"""Exit and weighting scenarios.

Exit scenarios drive the waterfall (what each class receives at a given
exit value). PWERM scenarios attach a probability, timing, and discount rate
to an exit. Hybrid scenarios instead carry OPM overrides and are resolved by
backsolving.

Probabilities are expressed in percent (0-100), matching how they are
entered and reported.
"""

from typing import Literal, Optional
from decimal import Decimal
from datetime import date
from pydantic import Field

from .base import DomainModel, MoneyAmount, Percentage, ScenarioId, Volatility


# =============================================================================
# Exit Scenario
# =============================================================================

class ExitScenario(DomainModel):
    """Exit scenario for waterfall analysis.

    Each scenario specifies:
        - Exit value (equity proceeds before costs)
        - Exit type (M&A, IPO, dissolution)
        - Transaction costs (legal, banking fees)
        - Management carve-out (bonus pool paid ahead of shareholders)

    Example:
        M&A Exit:
            exit_value: $50M
            transaction_costs: 3% ($1.5M for bankers, lawyers)
            management_carveout: 5% of the remainder ($2.425M)
            Net proceeds to distribute: $46.075M through the waterfall
    """

    id: str = Field(
        description="Unique identifier for this scenario (e.g., 'base_case', 'upside')"
    )

    label: str = Field(
        description="Human-readable label (e.g., 'Base Case', 'Liquidation')"
    )

    exit_value: MoneyAmount = Field(
        description="Total exit proceeds before costs/deductions"
    )

    exit_type: Literal["M&A", "IPO", "dissolution", "secondary"] = Field(
        default="M&A",
        description="Type of exit event"
    )

    exit_date: Optional[date] = None

    transaction_costs_percentage: Percentage = Field(
        default=Decimal("0"),
        description="Transaction costs as % of exit value"
    )

    management_carveout_percentage: Percentage = Field(
        default=Decimal("0"),
        description="Management carve-out as % of proceeds after transaction costs"
    )

    def calculate_net_proceeds(self) -> Decimal:
        """Calculate net proceeds available for distribution through waterfall.

        Deductions (in order):
            1. Transaction costs (percentage of exit value)
            2. Management carveout (percentage of proceeds after transaction costs)
        """
        proceeds = self.exit_value

        if self.transaction_costs_percentage:
            proceeds -= self.exit_value * self.transaction_costs_percentage

        if self.management_carveout_percentage:
            proceeds -= proceeds * self.management_carveout_percentage

        return proceeds


# =============================================================================
# PWERM Scenario
# =============================================================================

class PWERMScenario(DomainModel):
    """One outcome in a probability-weighted expected return analysis.

    The exit is allocated either through the waterfall (a known exit value
    at a known date) or through the OPM (an uncertain outcome, e.g. "stay
    private"), then discounted back to the valuation date.

    Example:
        PWERMScenario(id="ipo", label="IPO", probability=30,
                      exit_value=250_000_000, years_to_exit=2.5,
                      discount_rate=0.25)
    """

    id: ScenarioId
    label: str

    probability: Decimal = Field(
        ge=0,
        le=100,
        description="Scenario probability in percent"
    )

    exit_value: MoneyAmount = Field(
        description="Equity value at exit (or equity value allocated by the OPM)"
    )

    exit_type: Literal["M&A", "IPO", "dissolution", "secondary"] = "M&A"

    years_to_exit: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Years from valuation date to the exit"
    )

    discount_rate: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        le=1,
        description="Annual discount rate applied to the exit proceeds"
    )

    allocation_method: Literal["waterfall", "opm"] = "waterfall"

    transaction_costs_percentage: Percentage = Decimal("0")

    # OPM overrides (only used when allocation_method == "opm")
    volatility: Optional[Volatility] = None
    risk_free_rate: Optional[Decimal] = Field(default=None, ge=0, le=1)
    time_to_liquidity: Optional[Decimal] = Field(default=None, gt=0, le=20)

    def present_value_factor(self) -> Decimal:
        """1 / (1 + r)^t for this scenario's timing."""
        if self.years_to_exit == 0 or self.discount_rate == 0:
            return Decimal("1")
        return Decimal("1") / (Decimal("1") + self.discount_rate) ** self.years_to_exit

    def to_exit_scenario(self) -> ExitScenario:
        """Exit scenario used to run the waterfall for this outcome."""
        return ExitScenario(
            id=self.id,
            label=self.label,
            exit_value=self.exit_value,
            exit_type=self.exit_type,
            transaction_costs_percentage=self.transaction_costs_percentage,
        )


# =============================================================================
# Hybrid Scenario
# =============================================================================

class HybridScenario(DomainModel):
    """A weighted OPM backsolve scenario.

    Each hybrid scenario re-runs the backsolve with its own Black-Scholes
    overrides (e.g. a near-term IPO with a short time to liquidity versus a
    stay-private case with a long one), and the resulting values are weighted
    by probability.
    """

    id: ScenarioId
    label: str

    probability: Decimal = Field(
        ge=0,
        le=100,
        description="Scenario probability in percent"
    )

    volatility: Optional[Volatility] = None
    risk_free_rate: Optional[Decimal] = Field(default=None, ge=0, le=1)
    time_to_liquidity: Optional[Decimal] = Field(default=None, gt=0, le=20)

    target_price_per_share: Optional[MoneyAmount] = Field(
        default=None,
        description="Overrides the backsolve target price for this scenario"
    )
