"""Excel rendering for valuation reports."""

from .report_renderer import ValuationReportRenderer

__all__ = ["ValuationReportRenderer"]
