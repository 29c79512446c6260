"""
Unit tests -- JSON / CSV export.
"""
import json

import pytest

from src.insights.export import render_export, rows_to_csv, rows_to_json, save_output


def test_json_keeps_full_precision(sample_rows):
    data = json.loads(rows_to_json(sample_rows))
    assert data[1]["ctr"] == 0.0431818


def test_csv_header_and_rows(sample_rows):
    lines = rows_to_csv(sample_rows).splitlines()
    assert lines[0] == "query,clicks,impressions,ctr,position"
    assert lines[1] == "buy shoes,120,1500,0.08,3.2"
    assert len(lines) == 6


def test_csv_empty():
    assert rows_to_csv([]) == ""


def test_render_export_unknown_format(sample_rows):
    with pytest.raises(ValueError, match="Unsupported export format"):
        render_export(sample_rows, "xml")


def test_save_output(tmp_path, sample_rows):
    path = save_output(render_export(sample_rows, "json"), "json", tmp_path / "out")
    assert path.suffix == ".json"
    assert path.parent == tmp_path / "out"
    assert json.loads(path.read_text())[0]["query"] == "buy shoes"
