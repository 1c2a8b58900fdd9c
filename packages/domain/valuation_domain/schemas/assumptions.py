"""Option pricing model assumptions and backsolve targets."""

from typing import Optional
from datetime import date
from decimal import Decimal
from pydantic import Field

from .base import DomainModel, ShareClassId, MoneyAmount, Volatility


class OPMAssumptions(DomainModel):
    """Black-Scholes inputs shared by every breakpoint in an OPM allocation.

    Volatility is usually selected from guideline public company equity
    volatility over a lookback equal to the expected time to liquidity.
    The risk-free rate matches that same term on the Treasury curve.
    """

    volatility: Volatility = Field(
        description="Annualized equity volatility (0.55 = 55%)"
    )

    risk_free_rate: Decimal = Field(
        ge=0,
        le=1,
        description="Continuously compounded risk-free rate for the term"
    )

    time_to_liquidity: Decimal = Field(
        gt=0,
        le=20,
        description="Expected years until a liquidity event"
    )

    dividend_yield: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        le=1,
        description="Continuous dividend yield (almost always 0 for private companies)"
    )

    def with_overrides(
        self,
        volatility: Optional[Decimal] = None,
        risk_free_rate: Optional[Decimal] = None,
        time_to_liquidity: Optional[Decimal] = None,
    ) -> "OPMAssumptions":
        """Return a copy with any provided fields replaced (re-validated)."""
        data = self.model_dump()
        if volatility is not None:
            data["volatility"] = volatility
        if risk_free_rate is not None:
            data["risk_free_rate"] = risk_free_rate
        if time_to_liquidity is not None:
            data["time_to_liquidity"] = time_to_liquidity
        return OPMAssumptions.model_validate(data)


class BacksolveTarget(DomainModel):
    """Known price for one class, used to solve for total equity value.

    Typically the latest preferred round's issue price, or an arm's length
    secondary price for common.
    """

    share_class_id: ShareClassId = Field(
        description="Class whose OPM value per share must match the price"
    )

    price_per_share: MoneyAmount = Field(
        gt=0,
        description="Observed price per share"
    )

    transaction_date: Optional[date] = None
    description: Optional[str] = None
