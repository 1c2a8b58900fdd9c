"""Position tracking for shareholders and optionholders.

A Position represents a holder's stake in a specific share class at a point in time.
Positions are computed from events in the event-sourced model.
"""

from typing import Optional
from datetime import date
from decimal import Decimal
from pydantic import Field, model_validator

from .base import DomainModel, ShareClassId, HolderId, ShareCount, MoneyAmount


class Position(DomainModel):
    """A holder's position in a specific share class.

    Examples:
        Common stock position:
            holder_id="founder_alice"
            share_class_id="common"
            shares=5_000_000

        Investor position:
            holder_id="acme_vc"
            share_class_id="series_a_preferred"
            shares=2_500_000
            cost_basis=5_000_000

        Option position (not yet exercised):
            holder_id="employee_123"
            share_class_id="employee_options"
            shares=50_000
            is_option=True
            exercise_price=0.40
            option_grant_id="grant_2023_014"
    """

    holder_id: HolderId = Field(
        description="ID of the shareholder/optionholder"
    )

    share_class_id: ShareClassId = Field(
        description="Share class being held"
    )

    shares: ShareCount = Field(
        description="Number of shares held (or under option)"
    )

    acquisition_date: date = Field(
        description="Date shares were acquired (or option granted)"
    )

    cost_basis: Optional[MoneyAmount] = Field(
        default=None,
        description="Total cost basis (price paid for shares). None = no cost (founder shares, etc.)"
    )

    is_option: bool = Field(
        default=False,
        description="True if this is an unexercised option/warrant position"
    )

    exercise_price: Optional[MoneyAmount] = Field(
        default=None,
        description="Exercise/strike price per share (for options/warrants)"
    )

    expiration_date: Optional[date] = Field(
        default=None,
        description="Expiration date for options/warrants (None = no expiration)"
    )

    option_grant_id: Optional[str] = Field(
        default=None,
        description="Grant identifier, used to match exercises to grants"
    )

    @model_validator(mode='after')
    def validate_option_fields(self):
        if self.is_option and self.exercise_price is None:
            raise ValueError("Option positions require exercise_price")
        return self

    def effective_cost_per_share(self) -> Optional[Decimal]:
        """Calculate the effective cost per share.

        Returns:
            Cost per share if cost_basis is set, otherwise None.
        """
        if self.cost_basis is None or self.shares == 0:
            return None
        return self.cost_basis / self.shares

    def total_exercise_cost(self) -> Optional[Decimal]:
        """Calculate total cost to exercise all options/warrants.

        Returns:
            Total cost (exercise_price * shares) for options/warrants, None otherwise.
        """
        if not self.is_option or self.exercise_price is None:
            return None
        return self.exercise_price * self.shares
