"""Command line entry point: render a valuation workbook from a JSON report config.

Usage:
    valuation-report acme_fy24.json -o acme_fy24.xlsx
"""

import argparse
import logging
import pathlib
import sys
from typing import List, Optional

from pydantic import ValidationError

from valuation_domain.config import get_settings
from valuation_domain.errors import ValuationError
from valuation_domain.log_config import setup
from valuation_domain.schemas import ReportCFG

from .report_renderer import ValuationReportRenderer

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="valuation-report",
        description="Run a private company valuation and render it as an Excel workbook",
    )
    parser.add_argument("config", type=pathlib.Path, help="ReportCFG JSON file")
    parser.add_argument(
        "-o", "--output", type=pathlib.Path, default=None,
        help="Output .xlsx path (default: config path with .xlsx suffix)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def load_config(path: pathlib.Path) -> ReportCFG:
    return ReportCFG.model_validate_json(path.read_text(encoding="utf-8"))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup(verbose=args.verbose, level=get_settings().log_level)

    output = args.output or args.config.with_suffix(".xlsx")
    try:
        cfg = load_config(args.config)
    except OSError as exc:
        logger.error("Cannot read %s: %s", args.config, exc)
        return 2
    except ValidationError as exc:
        logger.error("Invalid report config %s:\n%s", args.config, exc)
        return 2

    try:
        ValuationReportRenderer(cfg).render(str(output))
    except ValuationError as exc:
        logger.error("Valuation failed: %s", exc)
        return 1

    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
