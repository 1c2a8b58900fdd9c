"""Breakpoint analysis block.

Splits total equity value into contiguous ranges ("breakpoints") and records,
for each range, which securities share in it and in what proportion. Both the
waterfall (value at a known exit) and the OPM (a call option on each range)
are computed from this schedule.

Securities:
    - One stock security per share class (all holders of the class pooled)
    - One option security per (class, exercise price) for options and warrants
    - The unallocated option pool is not a security and never receives value

Range construction:
    1. Liquidation preference tranches, one per seniority rank (0 first).
       Classes sharing a rank split the tranche by preference amount.
    2. Above total preference, value is tracked per common-equivalent share.
       Common, participating preferred and options struck at or below
       ITM_STRIKE participate from the start.
    3. Thresholds (per common-equivalent share) change the participating set:
         option / warrant              joins at its strike
         non-participating preferred   joins at preference / as-converted shares
         capped participating          leaves at (cap - preference) / as-converted
                                       and rejoins at cap / as-converted
    4. The last range is open-ended.
"""

import itertools
import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .base import Block, BlockContext
from ..errors import InvalidInputError
from ..schemas import CapTableSnapshot, Position, ShareClass

logger = logging.getLogger(__name__)


# Options struck at or below this are treated as already in the money
ITM_STRIKE = 0.01

BREAKPOINT_TYPES = (
    "liquidation_preference",
    "pro_rata_distribution",
    "option_exercise",
    "voluntary_conversion",
    "participation_cap",
)

# When several thresholds coincide, the range is labelled by the first match here
_TYPE_PRIORITY = ("voluntary_conversion", "participation_cap", "option_exercise")

_JOIN = "join"
_LEAVE = "leave"


# =============================================================================
# Schedule Model
# =============================================================================

@dataclass
class Security:
    """A pooled claim on equity value used by the breakpoint analysis."""

    security_id: str
    share_class_id: str
    kind: str  # "stock" or "option"
    shares: float = 0.0
    as_converted_shares: float = 0.0
    strike: float = 0.0
    liquidation_preference: float = 0.0
    participation_cap: Optional[float] = None
    seniority_rank: Optional[int] = None
    participation_type: Optional[str] = None


@dataclass
class BreakpointRange:
    """One equity value range and how it is shared.

    ``participation`` maps security id to its fraction of the range (sums
    to 1). ``participating_shares`` maps security id to the shares counted
    in the range (as-converted above the preference stack).
    """

    number: int
    breakpoint_type: str
    from_value: float
    to_value: float
    participation: Dict[str, float] = field(default_factory=dict)
    participating_shares: Dict[str, float] = field(default_factory=dict)

    @property
    def width(self) -> float:
        return self.to_value - self.from_value

    @property
    def is_open_ended(self) -> bool:
        return math.isinf(self.to_value)

    def amount_at(self, value: float) -> float:
        """Portion of ``value`` that falls inside this range."""
        return min(max(value - self.from_value, 0.0), self.width)


@dataclass
class BreakpointSchedule:
    """Ordered breakpoint ranges over a set of securities."""

    securities: Dict[str, Security]
    ranges: List[BreakpointRange]

    @property
    def total_liquidation_preference(self) -> float:
        return sum(
            r.width for r in self.ranges if r.breakpoint_type == "liquidation_preference"
        )

    @property
    def strikes(self) -> List[float]:
        """Lower bound of every range (the OPM call strikes)."""
        return [r.from_value for r in self.ranges]

    def class_shares(self) -> Dict[str, float]:
        """Shares per share class across its securities."""
        totals: Dict[str, float] = {}
        for sec in self.securities.values():
            totals[sec.share_class_id] = totals.get(sec.share_class_id, 0.0) + sec.shares
        return totals

    def allocate_components(self, value: float) -> Dict[str, Dict[str, float]]:
        """Split ``value`` per security into preference and participation amounts."""
        result = {
            sid: {"liquidation_preference": 0.0, "participation": 0.0}
            for sid in self.securities
        }
        for rng in self.ranges:
            amount = rng.amount_at(value)
            if amount <= 0:
                break
            component = (
                "liquidation_preference"
                if rng.breakpoint_type == "liquidation_preference"
                else "participation"
            )
            for sid, pct in rng.participation.items():
                result[sid][component] += amount * pct
        return result

    def allocate(self, value: float) -> Dict[str, float]:
        """Total distribution per security at equity value ``value``."""
        return {
            sid: parts["liquidation_preference"] + parts["participation"]
            for sid, parts in self.allocate_components(value).items()
        }

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for rng in self.ranges:
            rows.append({
                "breakpoint_number": rng.number,
                "breakpoint_type": rng.breakpoint_type,
                "from_value": rng.from_value,
                "to_value": rng.to_value,
                "width": rng.width,
                "participating_shares": sum(rng.participating_shares.values()),
                "participants": ", ".join(rng.participation),
            })
        return pd.DataFrame(rows, columns=[
            "breakpoint_number", "breakpoint_type", "from_value", "to_value",
            "width", "participating_shares", "participants",
        ])

    def participation_frame(self) -> pd.DataFrame:
        """Long form: one row per (range, participating security)."""
        rows = []
        for rng in self.ranges:
            for sid, pct in rng.participation.items():
                rows.append({
                    "breakpoint_number": rng.number,
                    "security_id": sid,
                    "share_class_id": self.securities[sid].share_class_id,
                    "participating_shares": rng.participating_shares.get(sid, 0.0),
                    "participation_pct": pct,
                })
        return pd.DataFrame(rows, columns=[
            "breakpoint_number", "security_id", "share_class_id",
            "participating_shares", "participation_pct",
        ])

    def securities_frame(self) -> pd.DataFrame:
        rows = [
            {
                "security_id": s.security_id,
                "share_class_id": s.share_class_id,
                "kind": s.kind,
                "shares": s.shares,
                "as_converted_shares": s.as_converted_shares,
                "strike": s.strike,
                "liquidation_preference": s.liquidation_preference,
                "participation_cap": s.participation_cap if s.participation_cap is not None else np.nan,
                "seniority_rank": s.seniority_rank,
                "participation_type": s.participation_type,
            }
            for s in self.securities.values()
        ]
        return pd.DataFrame(rows)


# =============================================================================
# Construction
# =============================================================================

def security_id_for(position: Position, share_class: ShareClass) -> str:
    """Security a position belongs to (options are split by exercise price)."""
    if position.is_option or share_class.is_derivative:
        strike = float(position.exercise_price or 0)
        return f"{share_class.id}@{strike:g}"
    return share_class.id


def collect_securities(snapshot: CapTableSnapshot) -> Dict[str, Security]:
    """Pool snapshot positions into securities."""
    securities: Dict[str, Security] = {}

    for position in snapshot.positions:
        share_class = snapshot.share_class(position.share_class_id)
        sid = security_id_for(position, share_class)
        ratio = float(share_class.conversion_ratio)

        sec = securities.get(sid)
        if sec is None:
            is_option = sid != share_class.id
            pref = share_class.liquidation_preference
            sec = Security(
                security_id=sid,
                share_class_id=share_class.id,
                kind="option" if is_option else "stock",
                strike=float(position.exercise_price or 0) / ratio if is_option else 0.0,
                seniority_rank=pref.seniority_rank if pref and not is_option else None,
                participation_type=None if is_option else share_class.participation_type,
            )
            securities[sid] = sec

        sec.shares += float(position.shares)
        sec.as_converted_shares += float(position.shares) * ratio
        if sec.kind == "stock":
            sec.liquidation_preference += float(snapshot.liquidation_preference_amount(position))
            cap = snapshot.participation_cap_amount(position)
            if cap is not None:
                sec.participation_cap = (sec.participation_cap or 0.0) + float(cap)

    return securities


def _threshold_events(
    securities: Dict[str, Security],
) -> Tuple[Dict[str, float], List[Tuple[float, str, str, str]]]:
    """Initial participants and (threshold, action, security, type) events."""
    active: Dict[str, float] = {}
    events: List[Tuple[float, str, str, str]] = []

    for sid, sec in securities.items():
        shares = sec.as_converted_shares
        if shares <= 0:
            continue

        if sec.kind == "option":
            if sec.strike <= ITM_STRIKE:
                active[sid] = shares
            else:
                events.append((sec.strike, _JOIN, sid, "option_exercise"))

        elif sec.participation_type == "non_participating":
            threshold = sec.liquidation_preference / shares
            if threshold <= 0:
                active[sid] = shares
            else:
                events.append((threshold, _JOIN, sid, "voluntary_conversion"))

        elif sec.participation_type == "capped_participating":
            cap = sec.participation_cap or 0.0
            leave_at = max(0.0, (cap - sec.liquidation_preference) / shares)
            if leave_at > 0:
                active[sid] = shares
                events.append((leave_at, _LEAVE, sid, "participation_cap"))
            events.append((cap / shares, _JOIN, sid, "voluntary_conversion"))

        else:
            # common and fully participating preferred
            active[sid] = shares

    events.sort(key=lambda e: e[0])
    return active, events


def _range(
    number: int,
    breakpoint_type: str,
    start: float,
    end: float,
    shares: Dict[str, float],
    weights: Dict[str, float],
) -> BreakpointRange:
    total = sum(weights.values())
    return BreakpointRange(
        number=number,
        breakpoint_type=breakpoint_type,
        from_value=start,
        to_value=end,
        participation={sid: w / total for sid, w in weights.items()},
        participating_shares=dict(shares),
    )


def build_breakpoint_schedule(snapshot: CapTableSnapshot) -> BreakpointSchedule:
    """Compute the breakpoint schedule for a cap table snapshot.

    Raises:
        InvalidInputError: If the snapshot has no shares, or nothing
            participates above the last breakpoint.
    """
    securities = collect_securities(snapshot)
    if not securities or sum(s.shares for s in securities.values()) <= 0:
        raise InvalidInputError("Cap table has no outstanding securities to allocate value to")

    ranges: List[BreakpointRange] = []
    cursor = 0.0

    # 1. Liquidation preference tranches by seniority
    ranks = sorted({
        s.seniority_rank for s in securities.values()
        if s.liquidation_preference > 0 and s.seniority_rank is not None
    })
    for rank in ranks:
        members = {
            sid: s.liquidation_preference for sid, s in securities.items()
            if s.seniority_rank == rank and s.liquidation_preference > 0
        }
        width = sum(members.values())
        ranges.append(_range(
            len(ranges) + 1,
            "liquidation_preference",
            cursor,
            cursor + width,
            {sid: securities[sid].shares for sid in members},
            members,
        ))
        cursor += width

    # 2-3. Per common-equivalent share thresholds
    active, events = _threshold_events(securities)
    per_share = 0.0
    range_type = "pro_rata_distribution"

    for threshold, group in itertools.groupby(events, key=lambda e: e[0]):
        group = list(group)
        active_shares = sum(active.values())
        if threshold > per_share and active_shares > 0:
            width = (threshold - per_share) * active_shares
            ranges.append(_range(len(ranges) + 1, range_type, cursor, cursor + width, active, active))
            cursor += width
        per_share = max(per_share, threshold)

        for _, action, sid, _ in group:
            if action == _JOIN:
                active[sid] = securities[sid].as_converted_shares
            else:
                active.pop(sid, None)

        types = {event_type for _, _, _, event_type in group}
        range_type = next(t for t in _TYPE_PRIORITY if t in types)

    # 4. Open-ended final range
    if sum(active.values()) <= 0:
        raise InvalidInputError(
            "No security participates above the last breakpoint; "
            "the cap table needs common shares or participating securities"
        )
    ranges.append(_range(len(ranges) + 1, range_type, cursor, np.inf, active, active))

    schedule = BreakpointSchedule(securities=securities, ranges=ranges)
    logger.debug(
        "Built %d breakpoints over %d securities (total preference %.0f)",
        len(ranges), len(securities), schedule.total_liquidation_preference,
    )
    return schedule


# =============================================================================
# Block
# =============================================================================

class BreakpointBlock(Block):
    """Computes the breakpoint schedule for a cap table snapshot.

    Inputs (from context):
        - cap_table_snapshot: CapTableSnapshot

    Outputs (to context):
        - breakpoint_schedule: BreakpointSchedule (used by waterfall, OPM, backsolve)
        - breakpoints: DataFrame, one row per range:
            * breakpoint_number, breakpoint_type
            * from_value, to_value (inf for the last range), width
            * participating_shares, participants
        - breakpoint_participation: DataFrame, one row per (range, security):
            * breakpoint_number, security_id, share_class_id
            * participating_shares, participation_pct
        - breakpoint_securities: DataFrame describing each security
    """

    def __init__(self, snapshot_key: str = "cap_table_snapshot"):
        self.snapshot_key = snapshot_key

    def inputs(self) -> List[str]:
        return [self.snapshot_key]

    def outputs(self) -> List[str]:
        return [
            "breakpoint_schedule",
            "breakpoints",
            "breakpoint_participation",
            "breakpoint_securities",
        ]

    def execute(self, context: BlockContext) -> None:
        snapshot: CapTableSnapshot = context.get(self.snapshot_key)
        schedule = build_breakpoint_schedule(snapshot)

        context.set("breakpoint_schedule", schedule)
        context.set("breakpoints", schedule.to_frame())
        context.set("breakpoint_participation", schedule.participation_frame())
        context.set("breakpoint_securities", schedule.securities_frame())
