"""Computation blocks for private company valuation.

This package contains the computation layer that transforms domain schemas into
DataFrames suitable for Excel rendering or other consumption.

Architecture:
    Schemas (data models) → Blocks (computation) → DataFrames (output)

Key concepts:
- Blocks are reusable computation units with explicit dependencies
- Each block declares its inputs and outputs
- Dependency graph enables topological execution
- All tabular outputs are pandas DataFrames for downstream consumption

Available blocks:
- CapTableBlock: Converts CapTableSnapshot to ownership DataFrames
- BreakpointBlock: Equity value ranges and participating securities
- WaterfallBlock: Distribution of exit proceeds by holder and class
- OPMBlock: Option pricing model allocation by class
- BacksolveBlock: Equity value implied by a transaction price
- PWERMBlock / HybridBlock: Probability-weighted scenario values
- DCFBlock / WACCBlock: Income approach and discount rate
- MarketApproachBlock: Guideline companies and precedent transactions
- PeerRiskBlock: Peer beta and volatility from price history
- DLOMBlock: Discount for lack of marketability
- IndicationsBlock / ConclusionBlock: Concluded equity value and FMV per share

Usage:
    from valuation_domain.blocks import run_valuation

    context = run_valuation(report_cfg)
    conclusion_df = context.get("valuation_conclusion")
"""

from .base import Block, BlockExecutor, BlockContext, CircularDependencyError, topological_sort
from .cap_table import CapTableBlock
from .breakpoints import BreakpointBlock, BreakpointSchedule, build_breakpoint_schedule
from .waterfall import WaterfallBlock, distribute
from .opm import OPMBlock, allocate_opm
from .backsolve import BacksolveBlock, BacksolveResult, backsolve_equity_value
from .pwerm import PWERMBlock, HybridBlock
from .dcf import DCFBlock
from .wacc import WACCBlock
from .market_risk import PeerRiskBlock
from .dlom import DLOMBlock
from .market import MarketApproachBlock
from .conclusion import IndicationsBlock, ConclusionBlock
from .pipeline import build_valuation_pipeline, run_valuation, seed_context

__all__ = [
    "Block",
    "BlockExecutor",
    "BlockContext",
    "CircularDependencyError",
    "topological_sort",
    "CapTableBlock",
    "BreakpointBlock",
    "BreakpointSchedule",
    "build_breakpoint_schedule",
    "WaterfallBlock",
    "distribute",
    "OPMBlock",
    "allocate_opm",
    "BacksolveBlock",
    "BacksolveResult",
    "backsolve_equity_value",
    "PWERMBlock",
    "HybridBlock",
    "DCFBlock",
    "WACCBlock",
    "PeerRiskBlock",
    "DLOMBlock",
    "MarketApproachBlock",
    "IndicationsBlock",
    "ConclusionBlock",
    "build_valuation_pipeline",
    "run_valuation",
    "seed_context",
]
