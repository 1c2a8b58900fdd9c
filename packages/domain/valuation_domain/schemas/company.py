"""Company and valuation engagement records.

These are plain business records: who is being valued, as of when, and for
what purpose. They carry no calculation logic; blocks and the report renderer
read them for labels, dates, and method weights.
"""

from typing import Dict, Literal, Optional
from datetime import date
from decimal import Decimal
from pydantic import Field, field_validator, model_validator

from .base import DomainModel


ValuationMethod = Literal[
    "dcf",
    "guideline_public",
    "precedent_transactions",
    "net_asset",
    "backsolve",
]

AllocationMethod = Literal["opm", "pwerm", "hybrid"]


class Company(DomainModel):
    """Subject company being valued."""

    id: str = Field(pattern=r'^[a-z][a-z0-9_]*$')
    name: str
    industry: Optional[str] = None
    stage: Literal["seed", "early", "growth", "late", "pre_ipo"] = "early"
    fiscal_year_end: Optional[date] = Field(
        default=None,
        description="Most recent fiscal year end; drives the DCF stub period"
    )
    base_currency: str = "USD"

    @field_validator('base_currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        if not v.isupper() or len(v) != 3:
            raise ValueError(f"Currency must be 3-letter uppercase ISO 4217 code, got: {v}")
        return v


class Valuation(DomainModel):
    """A valuation engagement for one company as of one date.

    method_weights blend enterprise/equity value indications into the
    concluded equity value. allocation_weights blend per-share common values
    from the allocation methods (OPM, PWERM, hybrid). Each set must total 1.

    Example:
        Valuation(
            id="acme_2024_q4",
            company_id="acme",
            valuation_date=date(2024, 12, 31),
            method_weights={"dcf": 0.5, "guideline_public": 0.5},
        )
    """

    id: str = Field(pattern=r'^[a-z][a-z0-9_]*$')
    company_id: str
    valuation_date: date
    purpose: Literal["409a", "asc_820", "gift_and_estate", "other"] = "409a"
    status: Literal["draft", "in_review", "final"] = "draft"
    preparer: Optional[str] = None

    method_weights: Dict[ValuationMethod, Decimal] = Field(
        default_factory=dict,
        description="Weight per valuation method (decimals summing to 1)"
    )

    allocation_weights: Dict[AllocationMethod, Decimal] = Field(
        default_factory=lambda: {"opm": Decimal("1")},
        description="Weight per allocation method (decimals summing to 1)"
    )

    @model_validator(mode='after')
    def validate_weights(self):
        for label, weights in (("method_weights", self.method_weights),
                               ("allocation_weights", self.allocation_weights)):
            if not weights:
                continue
            if any(w < 0 for w in weights.values()):
                raise ValueError(f"{label} cannot be negative")
            total = sum(weights.values())
            if abs(total - Decimal("1")) > Decimal("0.0001"):
                raise ValueError(f"{label} must sum to 1, got {total}")
        if not self.allocation_weights:
            raise ValueError("allocation_weights cannot be empty")
        return self
