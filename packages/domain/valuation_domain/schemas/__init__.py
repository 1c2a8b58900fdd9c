"""Valuation domain schemas.

This package contains all Pydantic models for the valuation domain layer:
- Base types and conventions
- Share classes and economic rights
- Positions, events, cap tables and snapshots
- Company and valuation engagement records
- Method inputs (OPM, DCF, WACC, market, asset, DLOM)
- Exit, PWERM and hybrid scenarios
- Report configuration

Usage:
    from valuation_domain.schemas import (
        CapTable, CapTableSnapshot, ShareClass, Position,
        ShareIssuanceEvent, OPMAssumptions, ExitScenario, ReportCFG
    )
"""

# Base types
from .base import (
    DomainModel,
    ShareCount,
    MoneyAmount,
    Percentage,
    Multiple,
    Rate,
    Volatility,
    Years,
    ShareClassId,
    HolderId,
    EventId,
    ScenarioId,
)

# Share classes and economic rights
from .share_classes import (
    ShareClass,
    LiquidationPreference,
    ParticipationRights,
    ConversionRights,
)

# Positions
from .positions import Position

# Events
from .events import (
    CapTableEvent,
    AnyCapTableEvent,
    ShareIssuanceEvent,
    ShareTransferEvent,
    ConversionEvent,
    OptionPoolCreation,
    OptionGrantEvent,
    OptionExerciseEvent,
    WarrantIssuance,
)

# Cap table
from .cap_table import (
    CapTable,
    CapTableSnapshot,
    convert_currency,
)

# Engagement
from .company import Company, Valuation

# Method inputs
from .assumptions import OPMAssumptions, BacksolveTarget
from .scenarios import ExitScenario, PWERMScenario, HybridScenario
from .dcf import DCFAssumptions, DCFScenario, StubPeriodInputs
from .cost_of_capital import PeerCompany, WACCInputs
from .market import ComparableCompany, MarketApproachCFG, NetAssetSchedule
from .dlom import DLOMInputs, DLOM_MODELS

# Report
from .report import ReportCFG, SheetOptions

__all__ = [
    # Base types
    "DomainModel",
    "ShareCount",
    "MoneyAmount",
    "Percentage",
    "Multiple",
    "Rate",
    "Volatility",
    "Years",
    "ShareClassId",
    "HolderId",
    "EventId",
    "ScenarioId",
    # Share classes
    "ShareClass",
    "LiquidationPreference",
    "ParticipationRights",
    "ConversionRights",
    # Positions
    "Position",
    # Events
    "CapTableEvent",
    "AnyCapTableEvent",
    "ShareIssuanceEvent",
    "ShareTransferEvent",
    "ConversionEvent",
    "OptionPoolCreation",
    "OptionGrantEvent",
    "OptionExerciseEvent",
    "WarrantIssuance",
    # Cap table
    "CapTable",
    "CapTableSnapshot",
    "convert_currency",
    # Engagement
    "Company",
    "Valuation",
    # Method inputs
    "OPMAssumptions",
    "BacksolveTarget",
    "ExitScenario",
    "PWERMScenario",
    "HybridScenario",
    "DCFAssumptions",
    "DCFScenario",
    "StubPeriodInputs",
    "PeerCompany",
    "WACCInputs",
    "ComparableCompany",
    "MarketApproachCFG",
    "NetAssetSchedule",
    "DLOMInputs",
    "DLOM_MODELS",
    # Report
    "ReportCFG",
    "SheetOptions",
]
