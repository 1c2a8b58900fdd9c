"""Discount for lack of marketability inputs.

Rates, volatility and yields are expressed in percent (45 = 45%), the same
way the models are quoted in practice.
"""

from typing import Dict, Optional
from decimal import Decimal
from pydantic import Field, model_validator

from .base import DomainModel


DLOM_MODELS = ("chaffee", "finnerty", "ghaidarov", "longstaff")


class DLOMInputs(DomainModel):
    """Inputs shared by the put-based and approximation DLOM models."""

    stock_price: Decimal = Field(
        default=Decimal("100"),
        gt=0,
        description="Marketable value per share (the models scale, so 100 is conventional)"
    )

    strike_price: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Put strike; defaults to the stock price (at-the-money)"
    )

    time_to_liquidity: Decimal = Field(
        gt=0,
        le=20,
        description="Expected holding period in years"
    )

    volatility: Decimal = Field(
        gt=0,
        le=500,
        description="Annualized volatility in percent"
    )

    risk_free_rate: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        le=100,
        description="Risk-free rate in percent"
    )

    dividend_yield: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        le=100,
        description="Dividend yield in percent"
    )

    weights: Optional[Dict[str, Decimal]] = Field(
        default=None,
        description="Model weights in percent; None uses the configured defaults"
    )

    @model_validator(mode='after')
    def validate_weights(self):
        if self.weights is None:
            return self
        unknown = set(self.weights) - set(DLOM_MODELS)
        if unknown:
            raise ValueError(f"Unknown DLOM models in weights: {sorted(unknown)}")
        if any(w < 0 for w in self.weights.values()):
            raise ValueError("DLOM weights cannot be negative")
        total = sum(self.weights.values())
        if abs(total - Decimal("100")) > Decimal("0.01"):
            raise ValueError(f"DLOM weights must total 100, got {total}")
        return self
