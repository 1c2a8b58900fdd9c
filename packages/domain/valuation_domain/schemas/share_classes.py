"""Share classes and economic rights models.

This module defines the economic rights attached to different classes of
securities in a cap table. Preferred stock, common stock, and derivative
securities (options, warrants) have different rights that determine where
each class sits in the breakpoint schedule and how much of a given equity
value it receives.
"""

from typing import Optional, Literal
from decimal import Decimal
from pydantic import Field, model_validator

from .base import (
    DomainModel,
    ShareClassId,
    Multiple,
    MoneyAmount,
)


# =============================================================================
# Liquidation Preference
# =============================================================================

class LiquidationPreference(DomainModel):
    """Liquidation preference defines how proceeds are distributed in an exit.

    In a liquidation event (acquisition or dissolution), shareholders with
    liquidation preferences get paid before others. The multiple determines how much
    they receive relative to their original issue price.

    Example:
        2x liquidation preference means investor gets 2x their investment
        before common shareholders get anything.

    Seniority:
        - Rank 0 = highest priority (gets paid first)
        - Higher ranks get paid after lower ranks
        - Classes sharing a rank (or a pari passu group) split their tranche
          in proportion to their preference amounts
    """

    multiple: Multiple = Field(
        default=Decimal("1.0"),
        description="Liquidation preference multiple (1.0 = 1x, 2.0 = 2x, etc.)"
    )

    seniority_rank: int = Field(
        ge=0,
        description="Priority in waterfall (0 = highest, increasing = lower priority)"
    )

    pari_passu_group: Optional[str] = Field(
        default=None,
        description="Group ID for equal seniority. Classes in the same group share one tranche."
    )


# =============================================================================
# Participation Rights
# =============================================================================

class ParticipationRights(DomainModel):
    """Participation rights define if/how a share class participates in proceeds
    after receiving liquidation preference.

    Types:
        - Non-participating: Gets liquidation pref OR as-converted value, whichever is greater.
          Converts once the common value per share exceeds pref / as-converted shares.

        - Participating: Gets liquidation pref AND pro-rata.

        - Capped participating: Gets liquidation pref AND pro-rata, up to a total cap.
          E.g., "1x pref with 3x cap" stops participating once it has 3x, then
          converts back in once converting is worth more than the cap.

    Example:
        Series A invests $5M for 25% of company.
        Company exits for $100M.

        Non-participating:
            - Liquidation pref: $5M
            - Pro-rata: $25M
            - Takes $25M (better of the two)

        Participating:
            - Liquidation pref: $5M
            - Pro-rata of remaining $95M: 0.25 * $95M = $23.75M
            - Total: $28.75M

        Capped participating (3x cap):
            - Participating would give $28.75M, above the $15M cap
            - Converting gives $25M, so the holder converts
    """

    participation_type: Literal["non_participating", "participating", "capped_participating"]

    cap_multiple: Optional[Multiple] = Field(
        default=None,
        description="Cap as multiple of original issue price. E.g., 3.0 = 3x total return cap."
    )

    @model_validator(mode='after')
    def validate_cap_multiple(self):
        """Validate that cap_multiple is set correctly for participation type."""
        if self.participation_type == "capped_participating":
            if self.cap_multiple is None:
                raise ValueError("capped_participating requires cap_multiple")
            if self.cap_multiple <= Decimal("1.0"):
                raise ValueError("cap_multiple must be > 1.0 (cap must exceed liquidation pref)")
        elif self.cap_multiple is not None:
            raise ValueError(
                f"cap_multiple only valid for capped_participating, not {self.participation_type}"
            )
        return self


# =============================================================================
# Conversion Rights
# =============================================================================

class ConversionRights(DomainModel):
    """Conversion rights allow converting from one share class to another.

    Preferred converts to common when the as-converted value beats the
    preference; options and warrants "convert" into common on exercise.

    Conversion ratio mechanics:
        - initial_conversion_ratio: Set at issuance (usually 1:1)
        - current_conversion_ratio: Adjusted for anti-dilution, stock splits, etc.
          This is the ratio the breakpoint analysis uses.
    """

    converts_to_class_id: ShareClassId = Field(
        description="Share class ID this converts to (usually 'common')"
    )

    initial_conversion_ratio: Decimal = Field(
        default=Decimal("1.0"),
        gt=0,
        description="Initial ratio: 1 share of this class -> N shares of target class"
    )

    current_conversion_ratio: Decimal = Field(
        default=Decimal("1.0"),
        gt=0,
        description="Current ratio (adjusted for anti-dilution, splits, etc.)"
    )

    auto_convert_on_ipo: bool = Field(
        default=True,
        description="Automatically convert on qualified IPO"
    )


# =============================================================================
# Share Class
# =============================================================================

class ShareClass(DomainModel):
    """A class of securities with specific economic rights.

    Examples:
        - Common Stock: residual claim, no preference
        - Series A Preferred: 1x non-participating preference, converts to common 1:1
        - Series B Preferred: 1x participating preference senior to A
        - Employee Options: exercise into common at the grant strike

    Economic rights hierarchy used by the breakpoint analysis:
        1. Liquidation preference (with seniority)
        2. Participation rights (if any)
        3. Conversion rights (if any)

    The liquidation preference amount is
    shares * original_issue_price * multiple. When original_issue_price is
    not set, the position's cost basis stands in for shares * price. Both are
    converted from issue_currency into the cap table's base currency.
    """

    id: ShareClassId
    name: str = Field(description="Human-readable name (e.g., 'Series A Preferred Stock')")

    share_type: Literal["common", "preferred", "option", "warrant"] = Field(
        description="Fundamental share type category"
    )

    original_issue_price: Optional[MoneyAmount] = Field(
        default=None,
        description="Original issue price per share (preferred); basis for the preference amount"
    )

    issue_currency: Optional[str] = Field(
        default=None,
        pattern=r'^[A-Z]{3}$',
        description="ISO 4217 currency of the issue price and cost basis; None means the cap table base currency"
    )

    liquidation_preference: Optional[LiquidationPreference] = Field(
        default=None,
        description="Liquidation preference (typically only for preferred)"
    )

    participation_rights: Optional[ParticipationRights] = Field(
        default=None,
        description="Participation in proceeds after liquidation pref"
    )

    conversion_rights: Optional[ConversionRights] = Field(
        default=None,
        description="Right to convert to another share class (preferred -> common, option -> common)"
    )

    @model_validator(mode='after')
    def validate_economic_rights(self):
        """Validate that economic rights make sense for share type.

        Preferred stock: Must have liquidation preference
        Options/Warrants: No liquidation preference (they convert to underlying shares)
        """
        if self.share_type == "preferred":
            if self.liquidation_preference is None:
                raise ValueError("Preferred stock must have liquidation_preference")

        if self.share_type in ("option", "warrant"):
            if self.liquidation_preference is not None:
                raise ValueError(f"{self.share_type} cannot have liquidation_preference")
            if self.participation_rights is not None:
                raise ValueError(f"{self.share_type} cannot have participation_rights")

        if self.participation_rights is not None and self.liquidation_preference is None:
            raise ValueError("participation_rights require a liquidation_preference")

        return self

    @property
    def is_derivative(self) -> bool:
        """True for options and warrants (exercisable, strike-bearing securities)."""
        return self.share_type in ("option", "warrant")

    @property
    def conversion_ratio(self) -> Decimal:
        """Current conversion ratio into the underlying class (1 when none is set)."""
        if self.conversion_rights is None:
            return Decimal("1")
        return self.conversion_rights.current_conversion_ratio

    @property
    def participation_type(self) -> Optional[str]:
        """Participation type, defaulting preferred without rights to non-participating."""
        if self.participation_rights is not None:
            return self.participation_rights.participation_type
        if self.liquidation_preference is not None:
            return "non_participating"
        return None
