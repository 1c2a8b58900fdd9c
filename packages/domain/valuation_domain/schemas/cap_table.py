"""Cap table and snapshot models for event-sourced architecture.

The CapTable stores the event history and share class definitions.
CapTableSnapshots represent the computed state at a specific point in time,
normally the valuation date.
"""

from typing import Dict, List, Optional
from datetime import date
from decimal import Decimal
from pydantic import Field, field_validator, model_validator

from .base import DomainModel, ShareCount
from .share_classes import ShareClass
from .events import AnyCapTableEvent, CapTableEvent
from .positions import Position


# =============================================================================
# Currency
# =============================================================================

def convert_currency(
    amount: Decimal,
    from_currency: Optional[str],
    base_currency: str,
    exchange_rates: Dict[str, Decimal],
) -> Decimal:
    """Convert ``amount`` into ``base_currency``.

    ``exchange_rates`` maps a currency code to units of base currency per unit
    (``{"GBP": 1.27}`` means 1 GBP = 1.27 USD). A missing or matching
    ``from_currency`` leaves the amount unchanged.

    Raises:
        ValueError: If no exchange rate is defined for from_currency
    """
    if from_currency is None or from_currency == base_currency:
        return amount

    if from_currency not in exchange_rates:
        raise ValueError(
            f"Exchange rate not defined for {from_currency}. "
            f"Add to cap_table.exchange_rates['{from_currency}']"
        )

    return amount * exchange_rates[from_currency]


# =============================================================================
# Cap Table Snapshot
# =============================================================================

class CapTableSnapshot(DomainModel):
    """Point-in-time cap table state.

    A snapshot represents the computed state of the cap table at a specific date.
    It's computed by replaying all events up to that date chronologically.

    Usage:
        snapshot = cap_table.snapshot(as_of_date=date(2024, 12, 31))
        alice_ownership = snapshot.ownership_percentage("founder_alice")
        series_a_pref = snapshot.class_liquidation_preference("series_a")
    """

    as_of_date: date = Field(
        description="Date of this snapshot"
    )

    positions: List[Position] = Field(
        default_factory=list,
        description="All holder positions (shares, options, warrants)"
    )

    total_shares_outstanding: ShareCount = Field(
        default=Decimal("0"),
        description="Total shares issued and outstanding (excludes unexercised options)"
    )

    option_pool_authorized: ShareCount = Field(
        default=Decimal("0"),
        description="Total shares authorized for option pool"
    )

    option_pool_available: ShareCount = Field(
        default=Decimal("0"),
        description="Shares available for new grants (authorized - granted)"
    )

    share_classes: Dict[str, ShareClass] = Field(
        default_factory=dict,
        description="Share class definitions (copied from CapTable for snapshot access)"
    )

    base_currency: str = Field(
        default="USD",
        description="Currency all snapshot amounts are reported in"
    )

    exchange_rates: Dict[str, Decimal] = Field(
        default_factory=dict,
        description="Exchange rates to base_currency (copied from CapTable)"
    )

    @property
    def options_outstanding(self) -> ShareCount:
        """Shares under unexercised options and warrants."""
        return sum(
            (p.shares for p in self.positions if p.is_option),
            Decimal("0"),
        )

    @property
    def fully_diluted_shares(self) -> ShareCount:
        """Outstanding shares + outstanding options/warrants + unallocated pool."""
        return self.total_shares_outstanding + self.options_outstanding + self.option_pool_available

    def share_class(self, share_class_id: str) -> ShareClass:
        """Look up a share class, raising if the snapshot doesn't define it."""
        try:
            return self.share_classes[share_class_id]
        except KeyError:
            raise ValueError(
                f"Unknown share class '{share_class_id}'. "
                f"Defined classes: {sorted(self.share_classes)}"
            ) from None

    def add_or_update_position(self, position: Position) -> None:
        """Add a new position or merge into the matching existing one.

        Share positions merge on holder + class. Option positions also need the
        same grant id and strike so each grant keeps its own exercise price.
        """
        existing = next(
            (p for p in self.positions
             if p.holder_id == position.holder_id
             and p.share_class_id == position.share_class_id
             and p.is_option == position.is_option
             and p.option_grant_id == position.option_grant_id
             and p.exercise_price == position.exercise_price),
            None
        )

        if existing:
            existing.shares += position.shares
            if position.cost_basis:
                existing.cost_basis = (existing.cost_basis or Decimal("0")) + position.cost_basis
        else:
            self.positions.append(position)

        if not position.is_option:
            self.total_shares_outstanding += position.shares

    def reduce_position(
        self,
        holder_id: str,
        share_class_id: str,
        shares: Decimal
    ) -> Optional[Decimal]:
        """Reduce a holder's share position (for conversions, transfers, etc.).

        Args:
            holder_id: ID of holder whose position to reduce
            share_class_id: Share class to reduce
            shares: Number of shares to reduce

        Returns:
            Cost basis released by the reduction (pro-rata), or None when the
            position carries no cost basis.

        Raises:
            ValueError: If position not found or insufficient shares
        """
        position = next(
            (p for p in self.positions
             if p.holder_id == holder_id
             and p.share_class_id == share_class_id
             and not p.is_option),
            None
        )

        if not position:
            raise ValueError(
                f"Position not found: holder={holder_id}, class={share_class_id}"
            )

        if position.shares < shares:
            raise ValueError(
                f"Insufficient shares: holder has {position.shares}, trying to reduce by {shares}"
            )

        released_basis = None
        if position.cost_basis is not None and position.shares > 0:
            released_basis = position.cost_basis * shares / position.shares
            position.cost_basis = position.cost_basis - released_basis

        position.shares -= shares
        self.total_shares_outstanding -= shares

        if position.shares == 0:
            self.positions.remove(position)

        return released_basis

    def reduce_option_position(
        self,
        holder_id: str,
        option_grant_id: str,
        shares: Decimal,
    ) -> Decimal:
        """Reduce an option grant on exercise.

        Returns:
            The grant's exercise price.

        Raises:
            ValueError: If the grant is unknown or has fewer shares than requested
        """
        position = next(
            (p for p in self.positions
             if p.holder_id == holder_id
             and p.is_option
             and p.option_grant_id == option_grant_id),
            None
        )

        if not position:
            raise ValueError(
                f"Option grant not found: holder={holder_id}, grant={option_grant_id}"
            )

        if position.shares < shares:
            raise ValueError(
                f"Insufficient options: grant has {position.shares}, trying to exercise {shares}"
            )

        position.shares -= shares
        if position.shares == 0:
            self.positions.remove(position)

        return position.exercise_price

    def transfer_shares(
        self,
        from_holder: str,
        to_holder: str,
        share_class_id: str,
        shares: Decimal,
        transfer_date: date,
        transfer_price: Optional[Decimal] = None,
        resulting_share_class_id: Optional[str] = None,
    ) -> None:
        """Transfer shares from one holder to another.

        Total shares outstanding doesn't change, just ownership. When
        ``resulting_share_class_id`` is given the buyer's shares land in that class.
        """
        self.reduce_position(from_holder, share_class_id, shares)

        self.add_or_update_position(
            Position(
                holder_id=to_holder,
                share_class_id=resulting_share_class_id or share_class_id,
                shares=shares,
                acquisition_date=transfer_date,
                cost_basis=transfer_price * shares if transfer_price else None,
            )
        )

    def ownership_percentage(
        self,
        holder_id: str,
        fully_diluted: bool = False
    ) -> Decimal:
        """Calculate ownership percentage for a holder.

        Args:
            holder_id: Holder to calculate ownership for
            fully_diluted: If True, options and the unallocated pool count in both
                the holder's shares and the denominator

        Returns:
            Ownership percentage as decimal (0.25 = 25%)
        """
        holder_shares = sum(
            (p.shares for p in self.positions
             if p.holder_id == holder_id and (fully_diluted or not p.is_option)),
            Decimal("0"),
        )

        total = self.fully_diluted_shares if fully_diluted else self.total_shares_outstanding

        return holder_shares / total if total > 0 else Decimal("0")

    def as_converted_shares(self, position: Position) -> Decimal:
        """Common-equivalent shares for a position (shares * conversion ratio)."""
        return position.shares * self.share_class(position.share_class_id).conversion_ratio

    def original_investment(self, position: Position) -> Decimal:
        """Amount originally invested for a preference-bearing position.

        Uses shares * original issue price, falling back to the position's cost
        basis when the class has no original issue price. The amount is
        converted from the class's issue currency into base_currency.

        Raises:
            ValueError: If a preferred position has neither an issue price nor a cost basis
        """
        share_class = self.share_class(position.share_class_id)
        if share_class.original_issue_price is not None:
            amount = position.shares * share_class.original_issue_price
        elif position.cost_basis is not None:
            amount = position.cost_basis
        else:
            raise ValueError(
                f"Cannot size liquidation preference for {position.holder_id} in "
                f"'{share_class.id}': set original_issue_price on the class or a cost basis"
            )
        return convert_currency(amount, share_class.issue_currency, self.base_currency, self.exchange_rates)

    def liquidation_preference_amount(self, position: Position) -> Decimal:
        """Liquidation preference owed to a single position.

        Preference = original investment * multiple. Zero for classes without a
        preference and for option positions.
        """
        share_class = self.share_class(position.share_class_id)
        pref = share_class.liquidation_preference
        if pref is None or position.is_option:
            return Decimal("0")
        return self.original_investment(position) * pref.multiple

    def participation_cap_amount(self, position: Position) -> Optional[Decimal]:
        """Total return cap for a capped participating position, None otherwise."""
        share_class = self.share_class(position.share_class_id)
        rights = share_class.participation_rights
        if rights is None or rights.participation_type != "capped_participating":
            return None
        return self.original_investment(position) * rights.cap_multiple

    def class_liquidation_preference(self, share_class_id: str) -> Decimal:
        """Aggregate liquidation preference for a share class."""
        return sum(
            (self.liquidation_preference_amount(p) for p in self.get_positions_by_class(share_class_id)),
            Decimal("0"),
        )

    def shares_by_class(self) -> Dict[str, Decimal]:
        """Shares (or shares under option) held per share class."""
        totals: Dict[str, Decimal] = {}
        for position in self.positions:
            totals[position.share_class_id] = totals.get(position.share_class_id, Decimal("0")) + position.shares
        return totals

    def get_positions_by_holder(self, holder_id: str) -> List[Position]:
        return [p for p in self.positions if p.holder_id == holder_id]

    def get_positions_by_class(self, share_class_id: str) -> List[Position]:
        return [p for p in self.positions if p.share_class_id == share_class_id]


# =============================================================================
# Cap Table
# =============================================================================

class CapTable(DomainModel):
    """Event-sourced cap table.

    The CapTable is the source of truth for ownership. It stores:
        1. Event history (what happened, when)
        2. Share class definitions (economic rights)
        3. Exchange rates (for multi-currency support)

    State is NOT stored directly - it's computed by replaying events.

    Example:
        cap_table = CapTable(company_name="Acme Corp", base_currency="USD")
        cap_table.share_classes["common"] = ShareClass(...)
        cap_table.add_event(ShareIssuanceEvent(...))

        snapshot = cap_table.snapshot(valuation_date)
    """

    company_name: str = Field(
        description="Company legal name"
    )

    base_currency: str = Field(
        default="USD",
        description="Primary currency for reporting (ISO 4217 code)"
    )

    events: List[AnyCapTableEvent] = Field(
        default_factory=list,
        description="Chronological history of cap table events (append-only)"
    )

    share_classes: Dict[str, ShareClass] = Field(
        default_factory=dict,
        description="Share class definitions (share_class_id -> ShareClass)"
    )

    exchange_rates: Dict[str, Decimal] = Field(
        default_factory=dict,
        description="Exchange rates to base_currency (e.g., {'GBP': 1.27} = 1 GBP = 1.27 USD)"
    )

    @field_validator('base_currency')
    @classmethod
    def validate_base_currency(cls, v: str) -> str:
        """Validate base currency is uppercase 3-letter ISO 4217 code."""
        if not v.isupper() or len(v) != 3:
            raise ValueError(f"Currency must be 3-letter uppercase ISO 4217 code, got: {v}")
        return v

    @field_validator('events')
    @classmethod
    def sort_events_by_date(cls, v: List[CapTableEvent]) -> List[CapTableEvent]:
        """Ensure events are sorted chronologically by event_date."""
        return sorted(v, key=lambda e: e.event_date)

    @model_validator(mode='after')
    def validate_pari_passu_groups(self):
        """All classes in a pari passu group must share a seniority rank."""
        ranks: Dict[str, int] = {}
        for share_class in self.share_classes.values():
            pref = share_class.liquidation_preference
            if pref is None or pref.pari_passu_group is None:
                continue
            seen = ranks.setdefault(pref.pari_passu_group, pref.seniority_rank)
            if seen != pref.seniority_rank:
                raise ValueError(
                    f"Pari passu group '{pref.pari_passu_group}' mixes seniority ranks "
                    f"{seen} and {pref.seniority_rank}"
                )
        return self

    @model_validator(mode='after')
    def validate_issue_currencies(self):
        """Every foreign issue currency needs an exchange rate."""
        self._check_exchange_rates()
        return self

    def _check_exchange_rates(self) -> None:
        missing = sorted({
            share_class.issue_currency
            for share_class in self.share_classes.values()
            if share_class.issue_currency not in (None, self.base_currency)
            and share_class.issue_currency not in self.exchange_rates
        })
        if missing:
            raise ValueError(f"Exchange rates missing for issue currencies: {missing}")

    def convert_to_base_currency(self, amount: Decimal, from_currency: str) -> Decimal:
        """Convert amount from another currency to base currency.

        Raises:
            ValueError: If exchange rate not defined for from_currency
        """
        return convert_currency(amount, from_currency, self.base_currency, self.exchange_rates)

    def snapshot(self, as_of_date: date) -> CapTableSnapshot:
        """Compute cap table state at a specific date.

        Replays all events dated on or before ``as_of_date`` against an empty
        snapshot, then checks that every position references a known class.

        Raises:
            ValueError: If an event references an unknown share class, fails to
                apply, or a class's issue currency has no exchange rate
        """
        self._check_exchange_rates()
        snapshot = CapTableSnapshot(
            as_of_date=as_of_date,
            share_classes=self.share_classes,
            base_currency=self.base_currency,
            exchange_rates=self.exchange_rates,
        )

        for event in self.events:
            if event.event_date <= as_of_date:
                event.apply(snapshot)

        unknown = sorted({p.share_class_id for p in snapshot.positions} - set(self.share_classes))
        if unknown:
            raise ValueError(f"Positions reference undefined share classes: {unknown}")

        return snapshot

    def current_snapshot(self) -> CapTableSnapshot:
        """Get current cap table state (all events applied)."""
        return self.snapshot(date.today())

    def add_event(self, event: CapTableEvent) -> None:
        """Add an event to the cap table.

        Events are re-sorted by date after adding so chronological replay
        always works.
        """
        self.events = sorted([*self.events, event], key=lambda e: e.event_date)
