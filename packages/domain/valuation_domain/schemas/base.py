"""Base classes and type system for valuation domain models.

This module provides the foundational types, validators, and base classes
used throughout the valuation schema system.
"""

from decimal import Decimal
from typing import Annotated
from pydantic import BaseModel, Field, ConfigDict

# =============================================================================
# Base Model
# =============================================================================

class DomainModel(BaseModel):
    """Base class for all domain models.

    Provides common configuration for all Pydantic models in the domain layer:
    - Validation on assignment for runtime safety
    - Support for Decimal and date types
    - Enum value serialization
    """

    model_config = ConfigDict(
        frozen=False,  # Allow mutation for computed fields
        validate_assignment=True,
        use_enum_values=True,
        arbitrary_types_allowed=True,
    )


# =============================================================================
# Type Aliases - Numeric
# =============================================================================

ShareCount = Annotated[
    Decimal,
    Field(ge=0, description="Number of shares (non-negative)")
]

MoneyAmount = Annotated[
    Decimal,
    Field(ge=0, description="Currency amount (non-negative)")
]

Percentage = Annotated[
    Decimal,
    Field(ge=0, le=1, description="Percentage as decimal (0.0 to 1.0)")
]

Multiple = Annotated[
    Decimal,
    Field(ge=0, description="Multiplier value (e.g., 2x = 2.0)")
]

Rate = Annotated[
    Decimal,
    Field(ge=-1, le=1, description="Annual rate as decimal; may be negative (e.g., revenue decline)")
]

Volatility = Annotated[
    Decimal,
    Field(gt=0, le=5, description="Annualized volatility as decimal (0.45 = 45%)")
]

Years = Annotated[
    Decimal,
    Field(gt=0, description="Time in years (strictly positive)")
]


# =============================================================================
# ID Conventions
# =============================================================================

ShareClassId = Annotated[
    str,
    Field(
        pattern=r'^[a-z][a-z0-9_]*$',
        description="Snake_case identifier for share classes (e.g., 'common', 'series_a_preferred')"
    )
]

HolderId = Annotated[
    str,
    Field(
        pattern=r'^[a-z][a-z0-9_]*$',
        description="Snake_case identifier for shareholders (e.g., 'founder_alice', 'acme_vc')"
    )
]

EventId = Annotated[
    str,
    Field(
        description="Unique event identifier (UUID or user-defined)"
    )
]

ScenarioId = Annotated[
    str,
    Field(
        pattern=r'^[a-z][a-z0-9_]*$',
        description="Snake_case identifier for scenarios (e.g., 'base', 'ipo', 'downside')"
    )
]


# =============================================================================
# ID Examples and Conventions
# =============================================================================
#
# Share Class IDs:
#   - "common" - Common stock
#   - "series_a_preferred" - Series A Preferred
#   - "employee_options" - Option pool grants
#
# Holder IDs:
#   - "founder_alice" - Founder Alice
#   - "acme_vc" - Acme Ventures VC firm
#   - "employee_1234" - Employee option holder
#
# Scenario IDs:
#   - "ipo" - IPO exit
#   - "strategic_sale" - M&A exit
#   - "dissolution" - Liquidation at low value
#
# =============================================================================
