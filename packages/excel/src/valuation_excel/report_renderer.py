"""Valuation report renderer.

Runs the block pipeline for a ReportCFG and lays the results out as an
analyst workbook: a Summary sheet with the concluded value, then one sheet
per method. Inputs are blue, calculations black, and the headline outputs
carry workbook-level named ranges.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from openpyxl import Workbook
from openpyxl.comments import Comment
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.workbook.defined_name import DefinedName
from openpyxl.worksheet.datavalidation import DataValidation

from valuation_domain.blocks import BlockContext, run_valuation
from valuation_domain.schemas import ReportCFG

logger = logging.getLogger(__name__)


MONEY = '$#,##0'
PRICE = '$#,##0.00'
SHARES = '#,##0'
PCT = '0.0%'
PCT2 = '0.00%'
MULTIPLE = '0.00"x"'
FACTOR = '0.0000'
NUMBER = '0.00'
DATE = 'yyyy-mm-dd'

# (DataFrame column, header, number format)
Column = Tuple[str, str, Optional[str]]

METHOD_LABELS = {
    "opm": "Option Pricing Method",
    "pwerm": "PWERM",
    "hybrid": "Hybrid Method",
}

DLOM_MODEL_LABELS = {
    "chaffee": "Chaffee (protective put)",
    "finnerty": "Finnerty (average-strike put)",
    "ghaidarov": "Ghaidarov (average-strike put)",
    "longstaff": "Longstaff (lookback put)",
}


@dataclass
class ValueLine:
    key: str
    label: str
    value: Any
    number_format: Optional[str] = None
    is_input: bool = False
    bold: bool = False


def _cell_value(value: Any) -> Any:
    if value is None:
        return None
    if hasattr(value, "item"):
        value = value.item()
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return None
    return value


class ValuationReportRenderer:
    """Render one valuation as a workbook with a sheet per method."""

    def __init__(self, config: ReportCFG, context: Optional[BlockContext] = None):
        self.config = config
        self._context = context

        # Define styles
        self.blue_font = Font(color="0000FF")  # Inputs
        self.black_font = Font(color="000000")  # Calculations
        self.bold_font = Font(bold=True)
        self.bold_blue_font = Font(bold=True, color="0000FF")
        self.title_font = Font(size=14, bold=True)
        self.subtitle_font = Font(italic=True, color="595959")

        # Header styling
        self.header_font = Font(bold=True, color="FFFFFF")  # White text on dark blue
        self.header_fill = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")

        # Section header styling
        self.section_header_font = Font(italic=True, bold=True)
        self.section_header_fill = PatternFill(start_color="E7E6E6", end_color="E7E6E6", fill_type="solid")

        # Concluded value styling
        self.conclusion_fill = PatternFill(start_color="FFFACD", end_color="FFFACD", fill_type="solid")

        # Interactive input cell styling
        self.input_cell_fill = PatternFill(start_color="CCE5FF", end_color="CCE5FF", fill_type="solid")
        self.input_cell_border = Border(
            left=Side(style='medium', color='0070C0'),
            right=Side(style='medium', color='0070C0'),
            top=Side(style='medium', color='0070C0'),
            bottom=Side(style='medium', color='0070C0')
        )

        # Border styles
        self.thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )
        self.top_border = Border(top=Side(style='medium'))

        # Alignment
        self.center_align = Alignment(horizontal='center', vertical='center', wrap_text=True)

    @property
    def context(self) -> BlockContext:
        """Pipeline results, computed on first access."""
        if self._context is None:
            self._context = run_valuation(self.config)
        return self._context

    def render(self, output_path: str) -> str:
        wb = self.build_workbook()
        wb.save(output_path)
        logger.info("Wrote %s with sheets %s", output_path, wb.sheetnames)
        return output_path

    def build_workbook(self) -> Workbook:
        wb = Workbook()
        wb.remove(wb.active)

        context = self.context
        options = self.config.sheets

        self._render_summary(wb, context)

        sheets = [
            (options.include_cap_table, ("cap_table_ownership",), self._render_cap_table),
            (options.include_breakpoints, ("breakpoints",), self._render_breakpoints),
            (options.include_opm, ("opm_allocation", "backsolve_result"), self._render_opm),
            (options.include_waterfall, ("waterfall_by_class",), self._render_waterfall),
            (options.include_dcf, ("dcf_projections",), self._render_dcf),
            (options.include_dcf, ("dcf_sensitivity",), self._render_sensitivity),
            (options.include_wacc, ("wacc_summary",), self._render_wacc),
            (options.include_market, ("market_indications",), self._render_market),
            (options.include_dlom, ("dlom_results",), self._render_dlom),
            (options.include_pwerm, ("pwerm_summary", "hybrid_summary"), self._render_pwerm),
        ]
        for enabled, keys, render_sheet in sheets:
            if not enabled:
                continue
            if not any(context.has(key) for key in keys):
                logger.debug("Skipping %s: no %s in results", render_sheet.__name__, keys)
                continue
            render_sheet(wb, context)

        return wb

    # ------------------------------------------------------------------ #
    # Summary
    # ------------------------------------------------------------------ #

    def _render_summary(self, wb: Workbook, context: BlockContext) -> None:
        cfg = self.config
        sheet = self._new_sheet(wb, "Summary", f"Valuation Summary - {cfg.company.name}")
        sheet.column_dimensions["A"].width = 38

        row = self._write_section(sheet, 4, "Engagement", 6)
        refs, row = self._write_values(sheet, row, [
            ValueLine("company", "Company", cfg.company.name),
            ValueLine("valuation_date", "Valuation date", cfg.valuation.valuation_date, DATE),
            ValueLine("purpose", "Purpose", cfg.valuation.purpose),
            ValueLine("status", "Status", cfg.valuation.status, is_input=True),
            ValueLine("common", "Common share class", cfg.common_share_class_id),
        ])
        self._mark_as_input_cell(sheet[refs["status"]], "Engagement status")
        self._add_dropdown_validation(
            sheet, refs["status"], ["draft", "in_review", "final"],
            prompt_title="Status", prompt_text="Engagement status",
        )

        # Value indications -> concluded equity value
        row = self._write_section(sheet, row + 1, "Value Indications", 6)
        first, row = self._write_table(
            sheet, context.get("value_indications"), row,
            [
                ("label", "Method", None),
                ("basis", "Basis", None),
                ("indicated_value", "Indicated Value", MONEY),
                ("equity_value", "Equity Value", MONEY),
                ("weight", "Weight", PCT),
                ("weighted_equity_value", "Weighted Value", MONEY),
            ],
            input_columns={"weight"},
        )
        last = row - 1
        for r in range(first, row):
            sheet[f"F{r}"].value = f"=D{r}*E{r}"

        if cfg.equity_value is not None:
            equity_line = ValueLine(
                "equity_value", "Concluded Equity Value", float(cfg.equity_value), MONEY, is_input=True, bold=True
            )
        else:
            equity_line = ValueLine(
                "equity_value", "Concluded Equity Value", f"=SUM(F{first}:F{last})", MONEY, bold=True
            )
        refs, row = self._write_values(sheet, row, [equity_line], value_col=6)
        self._add_named_range(wb, "Summary", "EquityValue", refs["equity_value"])

        # Allocation -> per-share conclusion
        allocation = context.get("allocation_summary").copy()
        allocation["label"] = [METHOD_LABELS.get(m, m) for m in allocation["method"]]
        row = self._write_section(sheet, row + 1, "Common Value per Share", 6)
        first, row = self._write_table(
            sheet, allocation, row,
            [
                ("label", "Allocation Method", None),
                ("weight", "Weight", PCT),
                ("common_value_per_share", "Common Value / Share", PRICE),
                ("weighted_value_per_share", "Weighted Value / Share", PRICE),
            ],
            input_columns={"weight"},
        )
        last = row - 1
        for r in range(first, row):
            sheet[f"D{r}"].value = f"=B{r}*C{r}"

        conclusion = context.get("valuation_conclusion").iloc[0]
        refs, row = self._write_values(sheet, row, [
            ValueLine("marketable", "Marketable Value per Share", f"=SUM(D{first}:D{last})", PRICE, bold=True),
            ValueLine("dlom", "Discount for Lack of Marketability", conclusion["dlom"], PCT),
        ], value_col=4)
        refs["fmv"] = f"D{row}"
        _, row = self._write_values(sheet, row, [
            ValueLine(
                "fmv", "Fair Market Value per Common Share",
                f"={refs['marketable']}*(1-{refs['dlom']})", PRICE, bold=True,
            ),
        ], value_col=4)
        for ref in (refs["fmv"], f"A{row - 1}"):
            sheet[ref].fill = self.conclusion_fill

        self._add_named_range(wb, "Summary", "MarketableValuePerShare", refs["marketable"])
        self._add_named_range(wb, "Summary", "DLOM", refs["dlom"])
        self._add_named_range(wb, "Summary", "FMVPerShare", refs["fmv"])

        for col in "BCDEF":
            sheet.column_dimensions[col].width = 18

    # ------------------------------------------------------------------ #
    # Cap table and breakpoints
    # ------------------------------------------------------------------ #

    def _render_cap_table(self, wb: Workbook, context: BlockContext) -> None:
        sheet = self._new_sheet(wb, "Cap Table", "Capitalization Table")
        sheet.column_dimensions["A"].width = 28

        ownership = context.get("cap_table_ownership").copy()
        ownership["ownership_pct"] = ownership["ownership_pct"] / 100
        row = self._write_section(sheet, 4, "Holders", 7)
        first, row = self._write_table(
            sheet, ownership, row,
            [
                ("holder_id", "Holder", None),
                ("share_class_name", "Share Class", None),
                ("shares", "Shares", SHARES),
                ("exercise_price", "Exercise Price", PRICE),
                ("as_converted_shares", "As-Converted Shares", SHARES),
                ("ownership_pct", "% Fully Diluted", PCT),
                ("liquidation_preference", "Liquidation Preference", MONEY),
            ],
            input_columns={"shares", "exercise_price"},
            total_columns={"shares", "as_converted_shares", "ownership_pct", "liquidation_preference"},
        )
        sheet.freeze_panes = f"B{first}"

        by_class = context.get("cap_table_by_class").copy()
        by_class["ownership_pct"] = by_class["ownership_pct"] / 100
        row = self._write_section(sheet, row + 1, "By Share Class", 7)
        _, row = self._write_table(
            sheet, by_class, row,
            [
                ("share_class_name", "Share Class", None),
                ("share_type", "Type", None),
                ("shares", "Shares", SHARES),
                ("holders_count", "Holders", SHARES),
                ("as_converted_shares", "As-Converted Shares", SHARES),
                ("ownership_pct", "% Fully Diluted", PCT),
                ("liquidation_preference", "Liquidation Preference", MONEY),
            ],
            total_columns={"shares", "as_converted_shares", "ownership_pct", "liquidation_preference"},
        )

        summary = context.get("cap_table_summary").iloc[0]
        row = self._write_section(sheet, row + 1, "Totals", 7)
        refs, row = self._write_values(sheet, row, [
            ValueLine("outstanding", "Shares outstanding", summary["shares_outstanding"], SHARES),
            ValueLine("options", "Options outstanding", summary["options_outstanding"], SHARES),
            ValueLine("pool", "Option pool available", summary["option_pool_available"], SHARES),
            ValueLine("fd", "Fully diluted shares", summary["fully_diluted_shares"], SHARES, bold=True),
            ValueLine("lp", "Total liquidation preference", summary["total_liquidation_preference"], MONEY),
        ])
        self._add_named_range(wb, "Cap Table", "FullyDilutedShares", refs["fd"])
        self._add_named_range(wb, "Cap Table", "TotalLiquidationPreference", refs["lp"])

        for col in "BCDEFG":
            sheet.column_dimensions[col].width = 18

    def _render_breakpoints(self, wb: Workbook, context: BlockContext) -> None:
        sheet = self._new_sheet(wb, "Breakpoints", "Breakpoint Analysis")

        row = self._write_section(sheet, 4, "Equity Value Ranges", 7)
        first, row = self._write_table(
            sheet, context.get("breakpoints"), row,
            [
                ("breakpoint_number", "#", None),
                ("breakpoint_type", "Type", None),
                ("from_value", "From", MONEY),
                ("to_value", "To", MONEY),
                ("width", "Range Width", MONEY),
                ("participating_shares", "Participating Shares", SHARES),
                ("participants", "Participating Securities", None),
            ],
        )
        # Open-ended final range
        if row > first:
            sheet[f"D{row - 1}"].value = "and above"

        row = self._write_section(sheet, row + 1, "Participation by Range", 7)
        _, row = self._write_table(
            sheet, context.get("breakpoint_participation"), row,
            [
                ("breakpoint_number", "#", None),
                ("security_id", "Security", None),
                ("share_class_id", "Share Class", None),
                ("participating_shares", "Participating Shares", SHARES),
                ("participation_pct", "Participation", PCT2),
            ],
        )

        row = self._write_section(sheet, row + 1, "Securities", 7)
        self._write_table(
            sheet, context.get("breakpoint_securities"), row,
            [
                ("security_id", "Security", None),
                ("share_class_id", "Share Class", None),
                ("kind", "Kind", None),
                ("shares", "Shares", SHARES),
                ("strike", "Strike / Share", PRICE),
                ("liquidation_preference", "Liquidation Preference", MONEY),
                ("participation_cap", "Participation Cap", MONEY),
            ],
            input_columns={"shares"},
        )

        sheet.column_dimensions["A"].width = 18
        for col in "BCDEF":
            sheet.column_dimensions[col].width = 18
        sheet.column_dimensions["G"].width = 40

    # ------------------------------------------------------------------ #
    # Allocation methods
    # ------------------------------------------------------------------ #

    def _render_opm(self, wb: Workbook, context: BlockContext) -> None:
        sheet = self._new_sheet(wb, "OPM", "Option Pricing Method")
        sheet.column_dimensions["A"].width = 30
        row = 4

        assumptions = self.config.opm_assumptions
        if assumptions is not None:
            row = self._write_section(sheet, row, "Assumptions", 6)
            lines = [
                ValueLine("volatility", "Volatility", float(assumptions.volatility), PCT, is_input=True),
                ValueLine("rf", "Risk-free rate", float(assumptions.risk_free_rate), PCT2, is_input=True),
                ValueLine("time", "Time to liquidity (years)", float(assumptions.time_to_liquidity), NUMBER, is_input=True),
                ValueLine("dividend", "Dividend yield", float(assumptions.dividend_yield), PCT2, is_input=True),
            ]
            if context.has("equity_value"):
                lines.insert(0, ValueLine("equity", "Equity value allocated", context.get("equity_value"), MONEY))
            refs, row = self._write_values(sheet, row, lines)
            self._add_named_range(wb, "OPM", "OPM_Volatility", refs["volatility"])

        if context.has("opm_allocation"):
            row = self._write_section(sheet, row + 1, "Breakpoint Call Values", 6)
            _, row = self._write_table(
                sheet, context.get("opm_breakpoint_values"), row,
                [
                    ("breakpoint_number", "#", None),
                    ("breakpoint_type", "Type", None),
                    ("strike", "Strike (Equity Value)", MONEY),
                    ("call_value", "Call Value", MONEY),
                    ("incremental_value", "Incremental Value", MONEY),
                    ("pct_of_equity", "% of Equity", PCT),
                ],
                total_columns={"incremental_value", "pct_of_equity"},
            )

            allocation = context.get("opm_allocation")
            row = self._write_section(sheet, row + 1, "Allocation by Share Class", 6)
            first, row = self._write_table(
                sheet, allocation, row,
                [
                    ("share_class_id", "Share Class", None),
                    ("shares", "Shares", SHARES),
                    ("allocated_value", "Allocated Value", MONEY),
                    ("allocation_pct", "% of Equity", PCT),
                    ("value_per_share", "Value / Share", PRICE),
                ],
                total_columns={"allocated_value", "allocation_pct"},
            )
            for offset, class_id in enumerate(allocation["share_class_id"]):
                if class_id == self.config.common_share_class_id:
                    self._add_named_range(wb, "OPM", "OPM_CommonValuePerShare", f"E{first + offset}")

        if context.has("backsolve_result"):
            result = context.get("backsolve_result").iloc[0]
            row = self._write_section(sheet, row + 1, "Backsolve", 6)
            refs, row = self._write_values(sheet, row, [
                ValueLine("class", "Calibrated share class", result["share_class_id"]),
                ValueLine("target", "Transaction price per share", result["target_price"], PRICE, is_input=True),
                ValueLine("equity", "Implied equity value", result["equity_value"], MONEY, bold=True),
                ValueLine("achieved", "Model price per share", result["achieved_price"], PRICE),
                ValueLine("error", "Pricing error", result["error"], '0.000000'),
                ValueLine("iterations", "Solver iterations", result["iterations"]),
                ValueLine("converged", "Converged", bool(result["converged"])),
            ])
            self._add_named_range(wb, "OPM", "Backsolve_EquityValue", refs["equity"])

        for col in "BCDEF":
            sheet.column_dimensions[col].width = 18

    def _render_waterfall(self, wb: Workbook, context: BlockContext) -> None:
        sheet = self._new_sheet(wb, "Waterfall", "Liquidation Waterfall")
        sheet.column_dimensions["A"].width = 28

        steps = context.get("waterfall_steps")
        by_class = context.get("waterfall_by_class")
        by_holder = context.get("waterfall_by_holder")
        scenarios = {s.id: s for s in self.config.exit_scenarios}

        row = 4
        for scenario_id in by_class["scenario_id"].unique():
            scenario = scenarios.get(scenario_id)
            title = f"Exit Scenario: {scenario.label if scenario else scenario_id}"
            row = self._write_section(sheet, row, title, 7)
            if scenario is not None:
                _, row = self._write_values(sheet, row, [
                    ValueLine("exit", "Exit value", float(scenario.exit_value), MONEY, is_input=True),
                    ValueLine("net", "Net proceeds", float(scenario.calculate_net_proceeds()), MONEY),
                ])

            _, row = self._write_table(
                sheet, steps[steps["scenario_id"] == scenario_id], row,
                [
                    ("step_name", "Step", None),
                    ("breakpoint_type", "Type", None),
                    ("from_value", "From", MONEY),
                    ("to_value", "To", MONEY),
                    ("amount_distributed", "Distributed", MONEY),
                    ("amount_remaining", "Remaining", MONEY),
                ],
                total_columns={"amount_distributed"},
            )

            _, row = self._write_table(
                sheet, by_class[by_class["scenario_id"] == scenario_id], row + 1,
                [
                    ("share_class_name", "Share Class", None),
                    ("shares", "Shares", SHARES),
                    ("liquidation_preference_amount", "Preference", MONEY),
                    ("participation_amount", "Participation", MONEY),
                    ("total_distribution", "Total", MONEY),
                    ("value_per_share", "Value / Share", PRICE),
                ],
                total_columns={"liquidation_preference_amount", "participation_amount", "total_distribution"},
            )

            holders = by_holder[by_holder["scenario_id"] == scenario_id].copy()
            holders["distribution_pct"] = holders["distribution_pct"] / 100
            _, row = self._write_table(
                sheet, holders, row + 1,
                [
                    ("holder_id", "Holder", None),
                    ("share_class_id", "Share Class", None),
                    ("shares", "Shares", SHARES),
                    ("total_distribution", "Distribution", MONEY),
                    ("distribution_pct", "% of Proceeds", PCT),
                    ("value_per_share", "Value / Share", PRICE),
                ],
                total_columns={"total_distribution", "distribution_pct"},
            )
            row += 1

        for col in "BCDEFG":
            sheet.column_dimensions[col].width = 18

    def _render_pwerm(self, wb: Workbook, context: BlockContext) -> None:
        sheet = self._new_sheet(wb, "PWERM", "Probability-Weighted Expected Return")
        sheet.column_dimensions["A"].width = 28
        row = 4

        if context.has("pwerm_summary"):
            values = context.get("pwerm_scenario_values")
            scenarios = values.drop_duplicates("scenario_id").copy()
            scenarios["probability"] = scenarios["probability"] / 100
            row = self._write_section(sheet, row, "Scenarios", 8)
            _, row = self._write_table(
                sheet, scenarios, row,
                [
                    ("label", "Scenario", None),
                    ("probability", "Probability", PCT),
                    ("allocation_method", "Allocation", None),
                    ("exit_value", "Exit Value", MONEY),
                    ("net_proceeds", "Net Proceeds", MONEY),
                    ("years_to_exit", "Years to Exit", NUMBER),
                    ("discount_rate", "Discount Rate", PCT),
                    ("pv_factor", "PV Factor", FACTOR),
                ],
                input_columns={"probability", "exit_value", "years_to_exit", "discount_rate"},
                total_columns={"probability"},
            )

            row = self._write_section(sheet, row + 1, "Value per Share by Scenario", 8)
            _, row = self._write_table(
                sheet, values, row,
                [
                    ("label", "Scenario", None),
                    ("share_class_id", "Share Class", None),
                    ("exit_distribution", "Exit Distribution", MONEY),
                    ("present_value", "Present Value", MONEY),
                    ("value_per_share", "Value / Share", PRICE),
                    ("weighted_value_per_share", "Weighted / Share", PRICE),
                ],
            )

            summary = context.get("pwerm_summary")
            row = self._write_section(sheet, row + 1, "Probability-Weighted Value", 8)
            first, row = self._write_table(
                sheet, summary, row,
                [
                    ("share_class_id", "Share Class", None),
                    ("shares", "Shares", SHARES),
                    ("weighted_present_value", "Weighted Present Value", MONEY),
                    ("value_per_share", "Value / Share", PRICE),
                ],
                total_columns={"weighted_present_value"},
            )
            for offset, class_id in enumerate(summary["share_class_id"]):
                if class_id == self.config.common_share_class_id:
                    self._add_named_range(wb, "PWERM", "PWERM_CommonValuePerShare", f"D{first + offset}")

            row = self._write_section(sheet, row + 1, "Value per Share Distribution", 8)
            _, row = self._write_table(
                sheet, context.get("pwerm_statistics"), row,
                [
                    ("share_class_id", "Share Class", None),
                    ("mean", "Mean", PRICE),
                    ("std_dev", "Std Dev", PRICE),
                    ("coefficient_of_variation", "CoV", NUMBER),
                    ("p25", "25th", PRICE),
                    ("median", "Median", PRICE),
                    ("p75", "75th", PRICE),
                ],
            )

        if context.has("hybrid_summary"):
            results = context.get("hybrid_scenarios_results").copy()
            results["probability"] = results["probability"] / 100
            row = self._write_section(sheet, row + 1, "Hybrid Method", 8)
            _, row = self._write_table(
                sheet, results, row,
                [
                    ("label", "Scenario", None),
                    ("probability", "Probability", PCT),
                    ("volatility", "Volatility", PCT),
                    ("time_to_liquidity", "Years", NUMBER),
                    ("target_price", "Calibration Price", PRICE),
                    ("equity_value", "Equity Value", MONEY),
                    ("common_value_per_share", "Common / Share", PRICE),
                ],
                input_columns={"probability", "volatility", "time_to_liquidity", "target_price"},
            )
            summary = context.get("hybrid_summary").iloc[0]
            refs, row = self._write_values(sheet, row, [
                ValueLine("equity", "Weighted equity value", summary["equity_value"], MONEY),
                ValueLine("common", "Weighted common value per share", summary["common_value_per_share"], PRICE, bold=True),
            ])
            self._add_named_range(wb, "PWERM", "Hybrid_CommonValuePerShare", refs["common"])

        for col in "BCDEFGH":
            sheet.column_dimensions[col].width = 16

    # ------------------------------------------------------------------ #
    # Income approach
    # ------------------------------------------------------------------ #

    def _render_dcf(self, wb: Workbook, context: BlockContext) -> None:
        sheet = self._new_sheet(wb, "DCF", "Discounted Cash Flow")
        sheet.column_dimensions["A"].width = 30
        valuation = context.get("dcf_valuation").iloc[0]
        assumptions = self.config.dcf

        row = self._write_section(sheet, 4, "Assumptions", 15)
        lines = [
            ValueLine("rate", "Discount rate", valuation["discount_rate"], PCT2, is_input=assumptions.wacc is not None),
            ValueLine("method", "Terminal method", assumptions.terminal_method),
        ]
        if assumptions.terminal_method == "exit_multiple":
            lines.append(ValueLine("exit_multiple", "Exit multiple (EBITDA)", float(assumptions.exit_multiple), MULTIPLE, is_input=True))
        else:
            lines.append(ValueLine("growth", "Terminal growth", float(assumptions.terminal_growth), PCT2, is_input=True))
        lines.extend([
            ValueLine("tax", "Tax rate", float(assumptions.tax_rate), PCT, is_input=True),
            ValueLine("mid_year", "Mid-year convention", assumptions.mid_year_convention),
            ValueLine("stub", "Stub period (years)", valuation["stub_fraction"], NUMBER),
        ])
        _, row = self._write_values(sheet, row, lines)

        columns: List[Column] = [
            ("year", "Year", None),
            ("revenue", "Revenue", MONEY),
            ("revenue_growth", "Growth", PCT),
            ("ebitda", "EBITDA", MONEY),
            ("ebitda_margin", "Margin", PCT),
            ("depreciation", "D&A", MONEY),
            ("ebit", "EBIT", MONEY),
            ("taxes", "Taxes", MONEY),
            ("nopat", "NOPAT", MONEY),
            ("capex", "Capex", MONEY),
            ("nwc_change", "Change in NWC", MONEY),
            ("free_cash_flow", "Free Cash Flow", MONEY),
            ("period", "Period", NUMBER),
            ("discount_factor", "Discount Factor", FACTOR),
            ("pv_fcf", "PV of FCF", MONEY),
        ]
        row = self._write_section(sheet, row + 1, "Projections", len(columns))
        first, row = self._write_table(
            sheet, context.get("dcf_projections"), row, columns,
            input_columns={"revenue_growth", "ebitda_margin"},
        )
        last = row - 1
        letters = {key: self._col_letter(idx) for idx, (key, _, _) in enumerate(columns, start=1)}
        fcf, factor, pv = letters["free_cash_flow"], letters["discount_factor"], letters["pv_fcf"]
        for r in range(first, row):
            sheet[f"{pv}{r}"].value = f"={fcf}{r}*{factor}{r}"

        row = self._write_section(sheet, row + 1, "Enterprise to Equity Value", len(columns))
        refs, row = self._write_values(sheet, row, [
            ValueLine("sum_pv", "Sum of PV of free cash flows", f"=SUM({pv}{first}:{pv}{last})", MONEY),
            ValueLine("pv_stub", "PV of stub period cash flow", valuation["pv_stub_fcf"], MONEY),
            ValueLine("tv", "Terminal value", valuation["terminal_value"], MONEY),
            ValueLine("pv_tv", "PV of terminal value", valuation["pv_terminal_value"], MONEY),
        ])
        ev_ref = f"B{row}"
        refs2, row = self._write_values(sheet, row, [
            ValueLine("ev", "Enterprise value", f"={refs['sum_pv']}+{refs['pv_stub']}+{refs['pv_tv']}", MONEY, bold=True),
            ValueLine("tv_pct", "Terminal value % of EV", f"=IFERROR({refs['pv_tv']}/{ev_ref},0)", PCT),
            ValueLine("cash", "Plus: cash", valuation["cash"], MONEY, is_input=True),
            ValueLine("debt", "Less: debt", valuation["debt"], MONEY, is_input=True),
        ])
        refs.update(refs2)
        refs3, row = self._write_values(sheet, row, [
            ValueLine("equity", "Equity value", f"={refs['ev']}+{refs['cash']}-{refs['debt']}", MONEY, bold=True),
        ])
        refs.update(refs3)
        if not pd.isna(valuation["implied_share_price"]):
            _, row = self._write_values(sheet, row, [
                ValueLine("price", "Implied price per share", valuation["implied_share_price"], PRICE),
            ])
        self._add_named_range(wb, "DCF", "DCF_EnterpriseValue", refs["ev"])
        self._add_named_range(wb, "DCF", "DCF_EquityValue", refs["equity"])

        scenario_results = context.get("dcf_scenario_results")
        if len(scenario_results) > 1:
            row = self._write_section(sheet, row + 1, "Scenarios", len(columns))
            _, row = self._write_table(
                sheet, scenario_results, row,
                [
                    ("label", "Scenario", None),
                    ("discount_rate", "Discount Rate", PCT2),
                    ("enterprise_value", "Enterprise Value", MONEY),
                    ("equity_value", "Equity Value", MONEY),
                    ("implied_share_price", "Price / Share", PRICE),
                    ("terminal_value_pct", "TV % of EV", PCT),
                ],
            )

        row = self._write_section(sheet, row + 1, "Driver Sensitivity (Enterprise Value)", len(columns))
        self._write_table(
            sheet, context.get("dcf_tornado"), row,
            [
                ("driver", "Driver", None),
                ("step", "Step (+/-)", FACTOR),
                ("low_value", "Low", MONEY),
                ("high_value", "High", MONEY),
                ("base_value", "Base", MONEY),
                ("spread", "Spread", MONEY),
            ],
        )

        for idx in range(2, len(columns) + 1):
            sheet.column_dimensions[self._col_letter(idx)].width = 15

    def _render_sensitivity(self, wb: Workbook, context: BlockContext) -> None:
        sheet = self._new_sheet(wb, "Sensitivity", "Enterprise Value Sensitivity")
        grid: pd.DataFrame = context.get("dcf_sensitivity")
        driver = grid.columns.name or "terminal_growth"
        driver_format = MULTIPLE if driver == "exit_multiple" else PCT2
        driver_label = "Exit multiple" if driver == "exit_multiple" else "Terminal growth"

        row = 4
        corner = sheet.cell(row=row, column=1, value=f"Discount rate \\ {driver_label}")
        corner.font = self.header_font
        corner.fill = self.header_fill
        corner.alignment = self.center_align
        corner.border = self.thin_border
        for idx, value in enumerate(grid.columns, start=2):
            cell = sheet.cell(row=row, column=idx, value=_cell_value(value))
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.border = self.thin_border
            cell.number_format = driver_format

        for offset, (rate, values) in enumerate(grid.iterrows(), start=1):
            label = sheet.cell(row=row + offset, column=1, value=_cell_value(rate))
            label.font = self.bold_font
            label.number_format = PCT2
            label.border = self.thin_border
            for idx, value in enumerate(values, start=2):
                cell = sheet.cell(row=row + offset, column=idx, value=_cell_value(value))
                cell.number_format = MONEY
                cell.border = self.thin_border

        # Base case sits at the centre of the grid
        base_row = row + 1 + len(grid.index) // 2
        base_col = 2 + len(grid.columns) // 2
        sheet.cell(row=base_row, column=base_col).fill = self.conclusion_fill

        sheet.column_dimensions["A"].width = 30
        for idx in range(2, len(grid.columns) + 2):
            sheet.column_dimensions[self._col_letter(idx)].width = 16

    def _render_wacc(self, wb: Workbook, context: BlockContext) -> None:
        sheet = self._new_sheet(wb, "WACC", "Weighted Average Cost of Capital")
        sheet.column_dimensions["A"].width = 34
        summary = context.get("wacc_summary").iloc[0]

        row = self._write_section(sheet, 4, "Cost of Equity", 8)
        refs, row = self._write_values(sheet, row, [
            ValueLine("unlevered", "Unlevered beta (peer median)", summary["unlevered_beta"], NUMBER),
            ValueLine("relevered", "Relevered beta", summary["relevered_beta"], NUMBER),
            ValueLine("rf", "Risk-free rate", summary["risk_free_rate"], PCT2, is_input=True),
            ValueLine("beta_premium", "Beta x equity risk premium", summary["beta_adjusted_premium"], PCT2),
            ValueLine("size", "Size premium", summary["size_premium"], PCT2, is_input=True),
            ValueLine("country", "Country risk premium", summary["country_risk_premium"], PCT2, is_input=True),
            ValueLine("specific", "Company-specific premium", summary["company_specific_premium"], PCT2, is_input=True),
        ])
        ce_refs, row = self._write_values(sheet, row, [
            ValueLine(
                "cost_of_equity", "Cost of equity",
                f"=SUM({refs['rf']},{refs['beta_premium']},{refs['size']},{refs['country']},{refs['specific']})",
                PCT2, bold=True,
            ),
        ])

        row = self._write_section(sheet, row + 1, "Cost of Debt and Weights", 8)
        debt_refs, row = self._write_values(sheet, row, [
            ValueLine("pre_tax", "Pre-tax cost of debt", summary["pre_tax_cost_of_debt"], PCT2, is_input=True),
            ValueLine("after_tax", "After-tax cost of debt", summary["after_tax_cost_of_debt"], PCT2),
            ValueLine("debt_weight", "Debt weight", summary["debt_weight"], PCT, is_input=True),
        ])
        weight_refs, row = self._write_values(sheet, row, [
            ValueLine("equity_weight", "Equity weight", f"=1-{debt_refs['debt_weight']}", PCT),
        ])
        wacc_refs, row = self._write_values(sheet, row, [
            ValueLine(
                "wacc", "WACC",
                f"={ce_refs['cost_of_equity']}*{weight_refs['equity_weight']}"
                f"+{debt_refs['after_tax']}*{debt_refs['debt_weight']}",
                PCT2, bold=True,
            ),
        ])
        sheet[wacc_refs["wacc"]].fill = self.conclusion_fill
        self._add_named_range(wb, "WACC", "WACC", wacc_refs["wacc"])
        self._add_named_range(wb, "WACC", "CostOfEquity", ce_refs["cost_of_equity"])

        peers = context.get("wacc_peers")
        if not peers.empty:
            row = self._write_section(sheet, row + 1, "Guideline Company Betas", 8)
            _, row = self._write_table(
                sheet, peers, row,
                [
                    ("name", "Company", None),
                    ("levered_beta", "Levered Beta", NUMBER),
                    ("debt_to_equity", "Debt / Equity", PCT),
                    ("tax_rate", "Tax Rate", PCT),
                    ("unlevered_beta", "Unlevered Beta", NUMBER),
                    ("market_cap", "Market Cap", MONEY),
                ],
                input_columns={"levered_beta", "debt_to_equity", "tax_rate", "market_cap"},
            )

        row = self._write_section(sheet, row + 1, "Capital Structure Sensitivity", 8)
        sweep = context.get("wacc_capital_structure").copy()
        sweep["is_optimal"] = ["Optimal" if flag else "" for flag in sweep["is_optimal"]]
        self._write_table(
            sheet, sweep, row,
            [
                ("debt_weight", "Debt Weight", PCT),
                ("equity_weight", "Equity Weight", PCT),
                ("relevered_beta", "Relevered Beta", NUMBER),
                ("cost_of_equity", "Cost of Equity", PCT2),
                ("pre_tax_cost_of_debt", "Pre-tax Debt", PCT2),
                ("after_tax_cost_of_debt", "After-tax Debt", PCT2),
                ("wacc", "WACC", PCT2),
                ("is_optimal", "", None),
            ],
        )

        for col in "BCDEFGH":
            sheet.column_dimensions[col].width = 15

    # ------------------------------------------------------------------ #
    # Market approach
    # ------------------------------------------------------------------ #

    def _render_market(self, wb: Workbook, context: BlockContext) -> None:
        sheet = self._new_sheet(wb, "Market", "Market Approach")
        sheet.column_dimensions["A"].width = 30

        multiples = context.get("market_multiples")
        statistics = context.get("market_statistics")
        indications = context.get("market_indications")

        row = 4
        for approach in indications["approach"].unique():
            title = approach.replace("_", " ").title()
            row = self._write_section(sheet, row, title, 8)
            _, row = self._write_table(
                sheet, multiples[multiples["approach"] == approach], row,
                [
                    ("name", "Company", None),
                    ("ticker", "Ticker", None),
                    ("enterprise_value", "Enterprise Value", MONEY),
                    ("revenue", "Revenue", MONEY),
                    ("ebitda", "EBITDA", MONEY),
                    ("ev_revenue", "EV / Revenue", MULTIPLE),
                    ("ev_ebitda", "EV / EBITDA", MULTIPLE),
                    ("pe", "P / E", MULTIPLE),
                ],
                input_columns={"enterprise_value", "revenue", "ebitda"},
            )

            _, row = self._write_table(
                sheet, statistics[statistics["approach"] == approach], row + 1,
                [
                    ("multiple", "Multiple", None),
                    ("count", "Count", None),
                    ("mean", "Mean", MULTIPLE),
                    ("median", "Median", MULTIPLE),
                    ("p25", "25th", MULTIPLE),
                    ("p75", "75th", MULTIPLE),
                    ("min", "Min", MULTIPLE),
                    ("max", "Max", MULTIPLE),
                ],
            )

            first, row = self._write_table(
                sheet, indications[indications["approach"] == approach], row + 1,
                [
                    ("multiple", "Applied Multiple", None),
                    ("statistic", "Statistic", None),
                    ("selected_multiple", "Selected", MULTIPLE),
                    ("discount", "Discount", PCT),
                    ("adjusted_multiple", "Adjusted", MULTIPLE),
                    ("subject_metric", "Subject Metric", MONEY),
                    ("indicated_value", "Indicated Value", MONEY),
                    ("value_basis", "Basis", None),
                ],
                input_columns={"discount", "subject_metric"},
            )
            for r in range(first, row):
                sheet[f"E{r}"].value = f"=C{r}*(1-D{r})"
                sheet[f"G{r}"].value = f"=E{r}*F{r}"
            name = approach.title().replace("_", "")
            self._add_named_range(wb, "Market", f"{name}_Value", f"G{first}")
            row += 1

        for col in "BCDEFGH":
            sheet.column_dimensions[col].width = 15

    # ------------------------------------------------------------------ #
    # DLOM
    # ------------------------------------------------------------------ #

    def _render_dlom(self, wb: Workbook, context: BlockContext) -> None:
        sheet = self._new_sheet(wb, "DLOM", "Discount for Lack of Marketability")
        sheet.column_dimensions["A"].width = 34
        inputs = self.config.dlom

        row = self._write_section(sheet, 4, "Inputs", 4)
        lines = [
            ValueLine("stock", "Stock price", float(inputs.stock_price), PRICE, is_input=True),
            ValueLine(
                "strike", "Strike price",
                float(inputs.strike_price if inputs.strike_price is not None else inputs.stock_price),
                PRICE, is_input=True,
            ),
            ValueLine("time", "Time to liquidity (years)", float(inputs.time_to_liquidity), NUMBER, is_input=True),
            ValueLine("volatility", "Volatility (%)", float(inputs.volatility), NUMBER, is_input=True),
            ValueLine("rf", "Risk-free rate (%)", float(inputs.risk_free_rate), NUMBER, is_input=True),
            ValueLine("dividend", "Dividend yield (%)", float(inputs.dividend_yield), NUMBER, is_input=True),
        ]
        refs, row = self._write_values(sheet, row, lines)
        self._mark_as_input_cell(sheet[refs["volatility"]], "Annualized volatility in percent (60 = 60%)")

        results = context.get("dlom_results").copy()
        results["label"] = [DLOM_MODEL_LABELS.get(m, m) for m in results["model"]]
        results["dlom_pct"] = results["dlom_pct"] / 100
        results["weight_pct"] = results["weight_pct"] / 100
        results["weighted_contribution"] = results["weighted_contribution"] / 100

        row = self._write_section(sheet, row + 1, "Model Results", 4)
        first, row = self._write_table(
            sheet, results, row,
            [
                ("label", "Model", None),
                ("dlom_pct", "DLOM", PCT2),
                ("weight_pct", "Weight", PCT),
                ("weighted_contribution", "Weighted", PCT2),
            ],
            input_columns={"weight_pct"},
        )
        last = row - 1
        for r in range(first, row):
            sheet[f"D{r}"].value = f"=B{r}*C{r}"

        refs, row = self._write_values(sheet, row, [
            ValueLine("weights", "Total weight", f"=SUM(C{first}:C{last})", PCT),
        ], value_col=3)
        concluded, row = self._write_values(sheet, row, [
            ValueLine("dlom", "Concluded DLOM", f"=SUM(D{first}:D{last})", PCT2, bold=True),
        ], value_col=4)
        sheet[concluded["dlom"]].fill = self.conclusion_fill
        self._add_named_range(wb, "DLOM", "DLOM_Concluded", concluded["dlom"])

        for col in "BCD":
            sheet.column_dimensions[col].width = 16

    # ------------------------------------------------------------------ #
    # Layout helpers
    # ------------------------------------------------------------------ #

    def _new_sheet(self, wb: Workbook, title: str, heading: str):
        sheet = wb.create_sheet(title=title[:31])
        sheet.sheet_properties.pageSetUpPr.fitToPage = True
        sheet.sheet_view.showGridLines = False

        title_cell = sheet["A1"]
        title_cell.value = heading
        title_cell.font = self.title_font

        subtitle = sheet["A2"]
        subtitle.value = (
            f"{self.config.company.name} | Valuation date "
            f"{self.config.valuation.valuation_date.isoformat()}"
        )
        subtitle.font = self.subtitle_font
        return sheet

    def _write_section(self, sheet, row: int, text: str, width: int) -> int:
        """Grey section banner across ``width`` columns; returns the next row."""
        for col in range(1, width + 1):
            sheet.cell(row=row, column=col).fill = self.section_header_fill
        cell = sheet.cell(row=row, column=1, value=text)
        cell.font = self.section_header_font
        return row + 1

    def _write_table(
        self,
        sheet,
        df: pd.DataFrame,
        row: int,
        columns: Sequence[Column],
        input_columns: Optional[set] = None,
        total_columns: Optional[set] = None,
    ) -> Tuple[int, int]:
        """Write a header row and one row per record.

        Columns in ``total_columns`` get a SUM row underneath (the first
        column must not be one of them, it holds the label).

        Returns:
            (first data row, next free row)
        """
        input_columns = input_columns or set()
        total_columns = total_columns or set()

        for idx, (_, header, _) in enumerate(columns, start=1):
            cell = sheet.cell(row=row, column=idx, value=header)
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.alignment = self.center_align
            cell.border = self.thin_border

        first = row + 1
        current = first
        for record in df.to_dict("records"):
            for idx, (key, _, number_format) in enumerate(columns, start=1):
                cell = sheet.cell(row=current, column=idx, value=_cell_value(record.get(key)))
                cell.border = self.thin_border
                cell.font = self.blue_font if key in input_columns else self.black_font
                if number_format:
                    cell.number_format = number_format
            current += 1

        last = current - 1
        if total_columns and last >= first:
            label = sheet.cell(row=current, column=1, value="Total")
            label.font = self.bold_font
            label.border = self.top_border
            for idx, (key, _, number_format) in enumerate(columns, start=1):
                if key not in total_columns:
                    continue
                letter = self._col_letter(idx)
                cell = sheet.cell(row=current, column=idx, value=f"=SUM({letter}{first}:{letter}{last})")
                cell.font = self.bold_font
                cell.border = self.top_border
                if number_format:
                    cell.number_format = number_format
            current += 1

        return first, current

    def _write_values(
        self, sheet, row: int, lines: Sequence[ValueLine], value_col: int = 2
    ) -> Tuple[Dict[str, str], int]:
        """Label in column A, value in ``value_col``.

        Returns:
            (line key -> value cell reference, next free row)
        """
        refs: Dict[str, str] = {}
        letter = self._col_letter(value_col)
        for line in lines:
            label = sheet.cell(row=row, column=1, value=line.label)
            if line.bold:
                label.font = self.bold_font

            cell = sheet.cell(row=row, column=value_col, value=_cell_value(line.value))
            if line.is_input:
                cell.font = self.bold_blue_font if line.bold else self.blue_font
            else:
                cell.font = self.bold_font if line.bold else self.black_font
            if line.number_format:
                cell.number_format = line.number_format

            refs[line.key] = f"{letter}{row}"
            row += 1
        return refs, row

    def _mark_as_input_cell(self, cell, description: Optional[str] = None) -> None:
        """Light blue fill and border on a cell meant to be edited."""
        cell.fill = self.input_cell_fill
        cell.border = self.input_cell_border

        if description:
            cell.comment = Comment(description, "Valuation Report")

    def _add_dropdown_validation(
        self,
        worksheet,
        cell_ref: str,
        options: List[str],
        prompt_title: str = "Select Value",
        prompt_text: str = "Choose from the dropdown"
    ) -> None:
        dv = DataValidation(
            type="list",
            formula1=f'"{",".join(options)}"',
            allow_blank=False
        )
        dv.prompt = prompt_text
        dv.promptTitle = prompt_title
        worksheet.add_data_validation(dv)
        dv.add(cell_ref)

    def _add_named_range(
        self,
        workbook: Workbook,
        sheet_name: str,
        name: str,
        cell_ref: str
    ) -> None:
        """Workbook-level name for a single cell (absolute reference)."""
        col = cell_ref.rstrip("0123456789")
        row = cell_ref[len(col):]
        workbook.defined_names.add(
            DefinedName(
                name=name,
                attr_text=f"'{sheet_name}'!${col}${row}"
            )
        )

    @staticmethod
    def _col_letter(idx: int) -> str:
        """Convert 1-based column index to Excel column letter."""
        letter = ""
        while idx > 0:
            idx, rem = divmod(idx - 1, 26)
            letter = chr(65 + rem) + letter
        return letter


__all__ = ["ValuationReportRenderer"]
