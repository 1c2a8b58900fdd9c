"""Cap table events for event-sourced architecture.

Events are immutable records of what happened to a cap table over time.
The state of a cap table as of the valuation date is computed by replaying
events chronologically.

This event-sourcing pattern provides:
- Complete audit trail (who, what, when)
- Time-travel queries (cap table as of any valuation date)
- Reproducibility (same events -> same state)

Every concrete event carries an ``event_type`` literal so a JSON event list can
be parsed back into the right classes (see ``AnyCapTableEvent``).
"""

from abc import ABC, abstractmethod
from typing import Annotated, Optional, Literal, Union, TYPE_CHECKING
from datetime import date
from decimal import Decimal
from pydantic import Field

from .base import (
    DomainModel,
    EventId,
    ShareClassId,
    HolderId,
    ShareCount,
    MoneyAmount,
)
from .positions import Position

if TYPE_CHECKING:
    from .cap_table import CapTableSnapshot


# =============================================================================
# Event Base Class
# =============================================================================

class CapTableEvent(DomainModel, ABC):
    """Base class for all cap table events.

    Each event has an apply() method that updates a CapTableSnapshot.

    Example event timeline:
        1. ShareIssuanceEvent: Founders get 10M common shares
        2. OptionPoolCreation: Reserve 2M shares for employees
        3. ShareIssuanceEvent: Series A investors get 4M preferred shares
        4. OptionGrantEvent: Employee granted 50K options at $0.40
        5. OptionExerciseEvent: Employee exercises 20K of those options
    """

    event_id: EventId = Field(
        description="Unique identifier for this event (UUID or user-defined)"
    )

    event_date: date = Field(
        description="Date the event occurred (for chronological ordering)"
    )

    description: Optional[str] = Field(
        default=None,
        description="Human-readable description of the event for audit trail"
    )

    @abstractmethod
    def apply(self, snapshot: 'CapTableSnapshot') -> None:
        """Apply this event to a snapshot to update its state.

        Args:
            snapshot: The CapTableSnapshot to mutate
        """
        pass


# =============================================================================
# Share Issuance Event
# =============================================================================

class ShareIssuanceEvent(CapTableEvent):
    """Shares are issued to a holder.

    Covers founder shares, preferred issued in a financing, restricted stock
    and advisor grants. Option grants use OptionGrantEvent instead.
    """

    event_type: Literal["share_issuance"] = "share_issuance"

    holder_id: HolderId = Field(
        description="ID of the holder receiving shares"
    )

    share_class_id: ShareClassId = Field(
        description="Share class being issued"
    )

    shares: ShareCount = Field(
        description="Number of shares issued"
    )

    price_per_share: Optional[MoneyAmount] = Field(
        default=None,
        description="Price per share paid by holder (None = no cost, e.g., founder shares)"
    )

    def apply(self, snapshot: 'CapTableSnapshot') -> None:
        """Add or update position in snapshot."""
        snapshot.add_or_update_position(
            Position(
                holder_id=self.holder_id,
                share_class_id=self.share_class_id,
                shares=self.shares,
                acquisition_date=self.event_date,
                cost_basis=self.price_per_share * self.shares if self.price_per_share else None,
            )
        )


# =============================================================================
# Share Transfer Event
# =============================================================================

class ShareTransferEvent(CapTableEvent):
    """Shares are transferred from one holder to another (secondary sale).

    Transfers don't change total shares outstanding, just ownership. When
    resulting_share_class_id is set the buyer receives a different class than
    the seller gave up (common bought by an investor and re-papered as
    preferred, for example).

    Secondary prices are an input to the valuation as well: a recent arm's
    length transfer price is a common backsolve target.
    """

    event_type: Literal["share_transfer"] = "share_transfer"

    from_holder_id: HolderId
    to_holder_id: HolderId

    share_class_id: ShareClassId = Field(
        description="Share class being transferred (from seller's perspective)"
    )

    shares: ShareCount

    price_per_share: Optional[MoneyAmount] = Field(
        default=None,
        description="Transfer price per share (if disclosed)"
    )

    resulting_share_class_id: Optional[ShareClassId] = Field(
        default=None,
        description="Share class buyer receives, if different from the seller's class"
    )

    def apply(self, snapshot: 'CapTableSnapshot') -> None:
        snapshot.transfer_shares(
            from_holder=self.from_holder_id,
            to_holder=self.to_holder_id,
            share_class_id=self.share_class_id,
            shares=self.shares,
            transfer_date=self.event_date,
            transfer_price=self.price_per_share,
            resulting_share_class_id=self.resulting_share_class_id,
        )


# =============================================================================
# Conversion Event
# =============================================================================

class ConversionEvent(CapTableEvent):
    """Shares convert from one class to another.

    Common scenarios:
        - Preferred converts voluntarily to common
        - Stock split (1 share -> 2 shares via 2:1 conversion)
        - Reverse split (2 shares -> 1 share via 0.5:1 conversion)
    """

    event_type: Literal["conversion"] = "conversion"

    holder_id: HolderId
    from_share_class_id: ShareClassId
    to_share_class_id: ShareClassId

    shares_converted: ShareCount = Field(
        description="Number of shares being converted (in from_share_class)"
    )

    conversion_ratio: Decimal = Field(
        gt=0,
        description="Conversion ratio: 1 share of from_class -> N shares of to_class"
    )

    def apply(self, snapshot: 'CapTableSnapshot') -> None:
        snapshot.reduce_position(
            self.holder_id,
            self.from_share_class_id,
            self.shares_converted
        )
        snapshot.add_or_update_position(
            Position(
                holder_id=self.holder_id,
                share_class_id=self.to_share_class_id,
                shares=self.shares_converted * self.conversion_ratio,
                acquisition_date=self.event_date,
            )
        )


# =============================================================================
# Option Pool Creation Event
# =============================================================================

class OptionPoolCreation(CapTableEvent):
    """Option pool is created or expanded.

    Pool shares are authorized but not issued. They count toward fully diluted
    shares for ownership reporting but never receive value in the breakpoint
    analysis; only granted options do.
    """

    event_type: Literal["option_pool_creation"] = "option_pool_creation"

    shares_authorized: ShareCount = Field(
        description="Number of shares added to the option pool"
    )

    def apply(self, snapshot: 'CapTableSnapshot') -> None:
        snapshot.option_pool_authorized += self.shares_authorized
        snapshot.option_pool_available += self.shares_authorized


# =============================================================================
# Option Grant Event
# =============================================================================

class OptionGrantEvent(CapTableEvent):
    """Options are granted out of the pool.

    The grant creates an option position at its strike and reduces the shares
    available for future grants. Grants larger than the available pool raise.
    """

    event_type: Literal["option_grant"] = "option_grant"

    holder_id: HolderId
    share_class_id: ShareClassId = Field(
        description="Option share class (share_type='option')"
    )
    option_grant_id: str = Field(
        description="Grant identifier, referenced by later exercises"
    )
    shares: ShareCount
    exercise_price: MoneyAmount = Field(
        description="Strike price per share"
    )
    expiration_date: Optional[date] = None

    def apply(self, snapshot: 'CapTableSnapshot') -> None:
        if self.shares > snapshot.option_pool_available:
            raise ValueError(
                f"Option grant {self.option_grant_id} for {self.shares} shares exceeds "
                f"available pool of {snapshot.option_pool_available}"
            )
        snapshot.option_pool_available -= self.shares
        snapshot.add_or_update_position(
            Position(
                holder_id=self.holder_id,
                share_class_id=self.share_class_id,
                shares=self.shares,
                acquisition_date=self.event_date,
                is_option=True,
                exercise_price=self.exercise_price,
                expiration_date=self.expiration_date,
                option_grant_id=self.option_grant_id,
            )
        )


# =============================================================================
# Option Exercise Event
# =============================================================================

class OptionExerciseEvent(CapTableEvent):
    """Employee/advisor exercises stock options.

    When options are exercised:
        1. The option position for the grant decreases
        2. Shares of the underlying class are issued to the holder
        3. The holder's cost basis is exercise price * shares
    """

    event_type: Literal["option_exercise"] = "option_exercise"

    holder_id: HolderId
    option_grant_id: str
    shares_exercised: ShareCount

    resulting_share_class_id: ShareClassId = Field(
        default="common",
        description="Share class received upon exercise (usually 'common')"
    )

    def apply(self, snapshot: 'CapTableSnapshot') -> None:
        exercise_price = snapshot.reduce_option_position(
            self.holder_id,
            self.option_grant_id,
            self.shares_exercised,
        )
        snapshot.add_or_update_position(
            Position(
                holder_id=self.holder_id,
                share_class_id=self.resulting_share_class_id,
                shares=self.shares_exercised,
                acquisition_date=self.event_date,
                cost_basis=exercise_price * self.shares_exercised,
            )
        )


# =============================================================================
# Warrant Issuance Event
# =============================================================================

class WarrantIssuance(CapTableEvent):
    """Warrants are issued (lender coverage, investor sweeteners, service providers).

    Warrants are tracked like options (is_option=True, strike-bearing) but do
    not come out of the employee pool.
    """

    event_type: Literal["warrant_issuance"] = "warrant_issuance"

    holder_id: HolderId
    share_class_id: ShareClassId = Field(
        description="Warrant share class (share_type='warrant')"
    )
    shares: ShareCount = Field(
        description="Number of underlying shares purchasable"
    )
    exercise_price: MoneyAmount
    expiration_date: Optional[date] = None

    def apply(self, snapshot: 'CapTableSnapshot') -> None:
        snapshot.add_or_update_position(
            Position(
                holder_id=self.holder_id,
                share_class_id=self.share_class_id,
                shares=self.shares,
                acquisition_date=self.event_date,
                is_option=True,
                exercise_price=self.exercise_price,
                expiration_date=self.expiration_date,
                option_grant_id=self.event_id,
            )
        )


AnyCapTableEvent = Annotated[
    Union[
        ShareIssuanceEvent,
        ShareTransferEvent,
        ConversionEvent,
        OptionPoolCreation,
        OptionGrantEvent,
        OptionExerciseEvent,
        WarrantIssuance,
    ],
    Field(discriminator="event_type"),
]
