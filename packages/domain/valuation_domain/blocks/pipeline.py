"""Assemble and run the block graph for a ReportCFG.

Only the blocks whose inputs the report provides are added; the executor
sorts them by their declared inputs and outputs.
"""

import logging
from typing import List

from .base import Block, BlockContext, BlockExecutor
from .cap_table import CapTableBlock
from .breakpoints import BreakpointBlock
from .waterfall import WaterfallBlock
from .opm import OPMBlock
from .backsolve import BacksolveBlock
from .pwerm import PWERMBlock, HybridBlock
from .dcf import DCFBlock
from .wacc import WACCBlock
from .dlom import DLOMBlock
from .market import MarketApproachBlock
from .conclusion import IndicationsBlock, ConclusionBlock
from ..schemas import ReportCFG

logger = logging.getLogger(__name__)


def seed_context(cfg: ReportCFG) -> BlockContext:
    """Create a context holding the snapshot and every method input in cfg."""
    context = BlockContext()
    context.set("cap_table_snapshot", cfg.cap_table.snapshot(cfg.valuation.valuation_date))

    optional_inputs = {
        "opm_assumptions": cfg.opm_assumptions,
        "backsolve_target": cfg.backsolve_target,
        "dcf_assumptions": cfg.dcf,
        "wacc_inputs": cfg.wacc,
        "dlom_inputs": cfg.dlom,
    }
    for key, value in optional_inputs.items():
        if value is not None:
            context.set(key, value)

    list_inputs = {
        "dcf_scenarios": cfg.dcf_scenarios,
        "market_approaches": cfg.market_approaches,
        "pwerm_scenarios": cfg.pwerm_scenarios,
        "hybrid_scenarios": cfg.hybrid_scenarios,
        "exit_scenario": cfg.exit_scenarios,
    }
    for key, value in list_inputs.items():
        if value:
            context.set(key, list(value))

    return context


def build_valuation_pipeline(cfg: ReportCFG) -> List[Block]:
    """Choose the blocks needed for cfg."""
    has_opm = cfg.opm_assumptions is not None
    has_backsolve = has_opm and cfg.backsolve_target is not None

    blocks: List[Block] = [CapTableBlock(), BreakpointBlock()]

    if cfg.wacc is not None:
        blocks.append(WACCBlock())
    if cfg.dcf is not None:
        # An explicit DCF discount rate wins over the WACC build-up
        blocks.append(DCFBlock(
            wacc_key="wacc_summary" if cfg.dcf.wacc is None else None,
            scenarios_key="dcf_scenarios" if cfg.dcf_scenarios else None,
        ))
    if cfg.market_approaches:
        blocks.append(MarketApproachBlock())
    if has_backsolve:
        blocks.append(BacksolveBlock())

    blocks.append(IndicationsBlock(
        method_weights=cfg.valuation.method_weights,
        cash=cfg.cash,
        debt=cfg.debt,
        net_assets=cfg.net_assets,
        equity_value=cfg.equity_value,
    ))

    if has_opm:
        blocks.append(OPMBlock())
    if cfg.pwerm_scenarios:
        blocks.append(PWERMBlock(assumptions_key="opm_assumptions" if has_opm else None))
    if cfg.hybrid_scenarios and has_backsolve:
        blocks.append(HybridBlock(common_share_class_id=cfg.common_share_class_id))
    if cfg.exit_scenarios:
        blocks.append(WaterfallBlock())
    if cfg.dlom is not None:
        blocks.append(DLOMBlock())

    blocks.append(ConclusionBlock(
        allocation_weights=cfg.valuation.allocation_weights,
        common_share_class_id=cfg.common_share_class_id,
        dlom_key="dlom_summary" if cfg.dlom is not None else None,
    ))
    return blocks


def run_valuation(cfg: ReportCFG) -> BlockContext:
    """Run the full valuation for cfg and return the populated context."""
    blocks = build_valuation_pipeline(cfg)
    logger.info(
        "Running valuation '%s' for %s with %d blocks", cfg.valuation.id, cfg.company.name, len(blocks)
    )
    return BlockExecutor(blocks).execute(seed_context(cfg))
