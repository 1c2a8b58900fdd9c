"""Valuation Domain Engine - Core domain models and valuation math.

This package provides the computational layer for private company
(409A) equity valuations:
- Event-sourced cap table with share classes and economic rights
- Breakpoint analysis, waterfall and OPM allocation across share classes
- OPM backsolve, PWERM and hybrid scenario weighting
- Income (DCF), market and asset approaches
- Discount rate build-up, beta and volatility analytics
- DLOM models and the concluded fair market value per common share

The domain layer is designed to be:
- Framework-agnostic (no web or database dependencies)
- Testable (pure Python with Pydantic validation)
- Composable (blocks declare inputs/outputs and run in dependency order)
"""

from .schemas import *  # noqa: F403, F401

__version__ = "0.1.0"
