"""Tests for batch ingestion of raw exports."""
import json
import logging
from pathlib import Path

import pandas as pd
import pytest

import adspender.ingestion as ingestion
from adspender.config import PipelineConfig
from adspender.errors import ConfigurationError
from adspender.ingestion import RENAME_LOG_COLUMNS, ingest_file, run_ingestion


DEFAULT_BODY = ["MEDIA,01/01/2024,SPEND", "TV,5,100", "Radio,6,200"]


def write_export(directory: Path, name: str, range_line: str, body=None) -> Path:
    lines = [
        "VIVVIX AdSpender",
        "Custom Report",
        "Media: All",
        "Market: National",
        range_line,
        *(body or DEFAULT_BODY),
        "GRAND TOTAL,11,300",
        "Copyright VIVVIX",
    ]
    path = directory / name
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def test_partial_export_is_normalized_and_routed(tmp_path):
    write_export(tmp_path, "jan_export.csv", "Report for 1/1/2024 to 1/3/2024")
    config = PipelineConfig(root_dir=tmp_path)

    result = run_ingestion(config)

    assert result.succeeded == 1
    assert result.failed == 0
    assert result.outputs == ["01012024_1.csv"]

    output = tmp_path / "partial" / "01012024_1.csv"
    frame = pd.read_csv(output, dtype=str, keep_default_na=False)
    assert list(frame.columns) == ["MEDIA", "SPEND", "TOTAL DIGITAL IMP"]
    assert frame.values.tolist() == [["TV", "100", ""], ["Radio", "200", ""]]

    metadata = json.loads((tmp_path / "metadata" / "01012024_1_metadata.json").read_text(encoding="utf-8"))
    assert metadata == {
        "FileName": "01012024_1.csv",
        "OriginalFile": "jan_export.csv",
        "StartDate": "01012024",
        "EndDate": "01032024",
        "WeekStart": "20240101",
        "DayCount": 3,
        "Type": "partial",
        "NObservations": 2,
    }

    assert not (tmp_path / "jan_export.csv").exists()
    assert (tmp_path / "processed" / "jan_export.csv").is_file()


def test_full_week_goes_to_validated(tmp_path):
    write_export(tmp_path, "week.csv", "Time Period: 1/1/2024 - 1/7/2024")

    result = run_ingestion(PipelineConfig(root_dir=tmp_path))

    assert result.outputs == ["01012024.csv"]
    assert (tmp_path / "validated" / "01012024.csv").is_file()
    assert not (tmp_path / "partial").exists() or not list((tmp_path / "partial").iterdir())


def test_rename_log_header_written_once(tmp_path):
    write_export(tmp_path, "a.csv", "Report for 1/1/2024 to 1/3/2024")
    run_ingestion(PipelineConfig(root_dir=tmp_path))
    write_export(tmp_path, "b.csv", "Report for 1/8/2024 to 1/14/2024")
    run_ingestion(PipelineConfig(root_dir=tmp_path))

    log = pd.read_csv(tmp_path / "rename_log.csv", dtype=str)
    assert list(log.columns) == RENAME_LOG_COLUMNS
    assert log.values.tolist() == [
        ["a.csv", "01012024_1.csv", "01012024", "01032024"],
        ["b.csv", "01082024.csv", "01082024", "01142024"],
    ]
    text = (tmp_path / "rename_log.csv").read_text(encoding="utf-8")
    assert text.count("Original Name") == 1


def test_rename_log_is_not_treated_as_input(tmp_path):
    write_export(tmp_path, "a.csv", "Report for 1/1/2024 to 1/3/2024")
    run_ingestion(PipelineConfig(root_dir=tmp_path))

    result = run_ingestion(PipelineConfig(root_dir=tmp_path))

    assert result.succeeded == 0
    assert result.failed == 0
    assert (tmp_path / "rename_log.csv").is_file()


def test_auto_delete_removes_source(tmp_path):
    write_export(tmp_path, "a.csv", "Report for 1/1/2024 to 1/3/2024")

    run_ingestion(PipelineConfig(root_dir=tmp_path, auto_delete=True))

    assert not (tmp_path / "a.csv").exists()
    assert not (tmp_path / "processed" / "a.csv").exists()
    assert (tmp_path / "partial" / "01012024_1.csv").is_file()


def test_failed_extraction_leaves_raw_file_and_continues(tmp_path):
    write_export(tmp_path, "bad.csv", "Report generated on 1/1/2024")
    write_export(tmp_path, "good.csv", "Report for 1/1/2024 to 1/3/2024")

    result = run_ingestion(PipelineConfig(root_dir=tmp_path))

    assert result.succeeded == 1
    assert [f.name for f in result.failures] == ["bad.csv"]
    assert "Couldn't extract dates" in result.failures[0].reason
    assert (tmp_path / "bad.csv").is_file()
    assert not list(tmp_path.rglob("*.tmp"))
    assert "Some files were not processed due to errors." in result.summary()


def test_filesystem_error_rolls_back_outputs(tmp_path, monkeypatch):
    write_export(tmp_path, "a.csv", "Report for 1/1/2024 to 1/3/2024")

    def fail_move(path, layout, stage):
        raise OSError("disk full")

    monkeypatch.setattr(ingestion, "move_to_stage", fail_move)
    result = run_ingestion(PipelineConfig(root_dir=tmp_path))

    assert result.failed == 1
    assert (tmp_path / "a.csv").is_file()
    assert not (tmp_path / "partial" / "01012024_1.csv").exists()
    assert not (tmp_path / "metadata" / "01012024_1_metadata.json").exists()
    assert not (tmp_path / "rename_log.csv").exists()
    assert not list(tmp_path.rglob("*.tmp"))


def test_confirmation_declined_touches_nothing(tmp_path):
    write_export(tmp_path, "a.csv", "Report for 1/1/2024 to 1/3/2024")
    seen = []

    def decline(count, root):
        seen.append((count, root))
        return False

    result = run_ingestion(PipelineConfig(root_dir=tmp_path), confirm=decline)

    assert seen == [(1, tmp_path.resolve())]
    assert result.succeeded == 0
    assert (tmp_path / "a.csv").is_file()
    assert not (tmp_path / "partial").exists()


def test_stale_temporary_files_are_removed(tmp_path):
    (tmp_path / "partial").mkdir()
    stale = tmp_path / "partial" / "01012024_1.csv.tmp"
    stale.write_text("half written", encoding="utf-8")

    run_ingestion(PipelineConfig(root_dir=tmp_path))

    assert not stale.exists()


def test_search_export_keeps_marker(tmp_path):
    write_export(tmp_path, "jan_S.csv", "Report for 1/1/2024 to 1/7/2024")

    ingested = ingest_file(tmp_path / "jan_S.csv", PipelineConfig(root_dir=tmp_path))

    assert ingested.destination == tmp_path.resolve() / "partial" / "01012024_S.csv"
    assert ingested.metadata.type == "search"
    assert ingested.metadata.day_count == 7


def test_missing_root_is_a_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError):
        run_ingestion(PipelineConfig())
    with pytest.raises(ConfigurationError):
        run_ingestion(PipelineConfig(root_dir=tmp_path / "nope"))


def test_lifecycle_manifest_tracks_source_and_output(tmp_path):
    write_export(tmp_path, "a.csv", "Report for 1/1/2024 to 1/3/2024")

    run_ingestion(PipelineConfig(root_dir=tmp_path))

    manifest = json.loads((tmp_path / "lifecycle_manifest.json").read_text(encoding="utf-8"))
    assert manifest == {"outputs": {"01012024_1.csv": "partial"}, "sources": {"a.csv": "processed"}}


def test_replacing_existing_output_is_warned(tmp_path, caplog):
    write_export(tmp_path, "a.csv", "Report for 1/1/2024 to 1/3/2024")
    run_ingestion(PipelineConfig(root_dir=tmp_path))
    write_export(tmp_path, "b.csv", "Report for 1/1/2024 to 1/3/2024", body=["MEDIA,SPEND", "Print,9"])

    with caplog.at_level(logging.WARNING, logger="adspender"):
        result = run_ingestion(PipelineConfig(root_dir=tmp_path))

    assert result.outputs == ["01012024_1.csv"]
    assert any("[WARNING] Replacing existing" in r.getMessage() for r in caplog.records)
    frame = pd.read_csv(tmp_path / "partial" / "01012024_1.csv", dtype=str, keep_default_na=False)
    assert frame["MEDIA"].tolist() == ["Print"]
    assert json.loads((tmp_path / "metadata" / "01012024_1_metadata.json").read_text(encoding="utf-8"))["OriginalFile"] == "b.csv"
