"""Tests for the valuation-report command line entry point."""

from decimal import Decimal

from openpyxl import load_workbook

from sample_report import backsolve_report
from valuation_domain.schemas import BacksolveTarget
from valuation_excel.cli import build_parser, load_config, main


def _write_config(tmp_path, cfg, name="acme_fy24.json"):
    path = tmp_path / name
    path.write_text(cfg.model_dump_json(indent=2), encoding="utf-8")
    return path


def test_renders_workbook(tmp_path, capsys):
    config = _write_config(tmp_path, backsolve_report())
    output = tmp_path / "out" / "acme.xlsx"
    output.parent.mkdir()

    assert main([str(config), "-o", str(output)]) == 0

    assert capsys.readouterr().out.strip() == str(output)
    assert "FMVPerShare" in load_workbook(output).defined_names


def test_default_output_next_to_config(tmp_path):
    config = _write_config(tmp_path, backsolve_report())

    assert main([str(config)]) == 0
    assert (tmp_path / "acme_fy24.xlsx").exists()


def test_config_round_trip(tmp_path):
    cfg = backsolve_report()
    loaded = load_config(_write_config(tmp_path, cfg))

    assert loaded.valuation.method_weights == {"backsolve": Decimal("1")}
    assert loaded.backsolve_target.price_per_share == Decimal("1.50")
    assert len(loaded.cap_table.events) == len(cfg.cap_table.events)


def test_missing_config(tmp_path):
    assert main([str(tmp_path / "missing.json")]) == 2


def test_invalid_config(tmp_path):
    config = tmp_path / "bad.json"
    config.write_text('{"company": {"id": "acme", "name": "Acme"}}', encoding="utf-8")

    assert main([str(config)]) == 2
    assert not (tmp_path / "bad.xlsx").exists()


def test_valuation_failure(tmp_path):
    # No equity value prices the Series A this low
    cfg = backsolve_report(
        backsolve_target=BacksolveTarget(share_class_id="series_a", price_per_share=Decimal("0.000000001")),
    )
    config = _write_config(tmp_path, cfg)

    assert main([str(config)]) == 1
    assert not (tmp_path / "acme_fy24.xlsx").exists()


def test_parser_flags():
    args = build_parser().parse_args(["cfg.json", "-v"])
    assert args.verbose
    assert args.output is None
