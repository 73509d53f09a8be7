"""Tests for day coverage analysis over the metadata corpus."""
from datetime import date

import pytest

from adspender.config import PipelineConfig
from adspender.coverage import (
    analyze_coverage,
    build_coverage_index,
    find_missing_days,
    find_overlaps,
    parse_query_date,
)
from adspender.metadata_store import Metadata, MetadataStore
from adspender.path_utils import Layout


def record(name, start, end, type_="partial"):
    return Metadata(FileName=name, StartDate=start, EndDate=end, Type=type_)


def test_gap_between_ranges_is_reported():
    index = build_coverage_index(
        [record("a.csv", "01012024", "01032024"), record("b.csv", "01052024", "01072024")]
    )

    assert find_missing_days(index, date(2024, 1, 1), date(2024, 1, 7)) == [date(2024, 1, 4)]
    assert find_overlaps(index) == {}


def test_shared_day_is_an_overlap():
    index = build_coverage_index(
        [record("a.csv", "01012024", "01032024"), record("b.csv", "01022024", "01022024")]
    )

    assert find_missing_days(index, date(2024, 1, 1), date(2024, 1, 3)) == []
    assert find_overlaps(index) == {date(2024, 1, 2): ["a.csv", "b.csv"]}


def test_overlaps_outside_query_window_are_still_reported():
    index = build_coverage_index(
        [record("a.csv", "02012024", "02022024"), record("b.csv", "02022024", "02032024")]
    )

    assert find_overlaps(index) == {date(2024, 2, 2): ["a.csv", "b.csv"]}
    assert find_missing_days(index, date(2024, 1, 1), date(2024, 1, 2)) == [date(2024, 1, 1), date(2024, 1, 2)]


def test_same_file_name_is_counted_once():
    index = build_coverage_index(
        [record("a.csv", "01012024", "01022024"), record("a.csv", "01022024", "01032024")]
    )
    assert index[date(2024, 1, 2)] == ["a.csv"]
    assert find_overlaps(index) == {}


def test_inverted_record_covers_nothing():
    index = build_coverage_index([record("a.csv", "01052024", "01012024")])
    assert index == {}


def test_inverted_query_has_no_missing_days():
    assert find_missing_days({}, date(2024, 1, 5), date(2024, 1, 1)) == []


def test_unparseable_record_dates_are_skipped():
    index = build_coverage_index([record("bad.csv", "13452024", "13462024"), record("ok.csv", "01012024", "01012024")])
    assert index == {date(2024, 1, 1): ["ok.csv"]}


def test_analyze_coverage_scans_metadata_directory(tmp_path):
    store = MetadataStore(Layout(tmp_path))
    store.write(record("01012024_1.csv", "01012024", "01032024"))
    store.write(record("01012024_2.csv", "01052024", "01072024"))
    store.write(record("01012024.csv", "01012024", "01072024", type_="combined"))
    (tmp_path / "metadata" / "junk_metadata.json").write_text("not json", encoding="utf-8")

    report = analyze_coverage(PipelineConfig(root_dir=tmp_path), date(2024, 1, 1), date(2024, 1, 8))

    assert report.missing_days == [date(2024, 1, 8)]
    assert not report.is_complete
    assert sorted(report.overlaps) == [date(2024, 1, d) for d in (1, 2, 3, 5, 6, 7)]
    assert [p.name for p in report.skipped] == ["junk_metadata.json"]

    frame = report.to_frame()
    assert len(frame) == 8
    assert frame["file_count"].tolist() == [2, 2, 2, 1, 2, 2, 2, 0]


def test_summary_wording(tmp_path):
    store = MetadataStore(Layout(tmp_path))
    store.write(record("a.csv", "01012024", "01022024"))
    store.write(record("b.csv", "01022024", "01022024"))

    report = analyze_coverage(PipelineConfig(root_dir=tmp_path), date(2024, 1, 1), date(2024, 1, 4))
    text = report.summary()

    assert "Missing dates:" in text
    assert "January 3, 2024" in text
    assert "January 4, 2024" in text
    assert "01-02-2024: a.csv, b.csv" in text


def test_complete_range_summary(tmp_path):
    MetadataStore(Layout(tmp_path)).write(record("a.csv", "01012024", "01072024"))

    report = analyze_coverage(PipelineConfig(root_dir=tmp_path), date(2024, 1, 1), date(2024, 1, 7))

    assert report.is_complete
    assert "There are no missing dates in the range." in report.summary()
    assert "There are no dates covered by multiple files." in report.summary()


def test_empty_root_reports_every_day_missing(tmp_path):
    report = analyze_coverage(PipelineConfig(root_dir=tmp_path), date(2024, 1, 1), date(2024, 1, 3))
    assert len(report.missing_days) == 3
    assert report.overlaps == {}


def test_parse_query_date():
    assert parse_query_date("01-04-2024") == date(2024, 1, 4)
    with pytest.raises(ValueError):
        parse_query_date("2024-01-04")


def test_non_utf8_sidecar_is_skipped(tmp_path):
    store = MetadataStore(Layout(tmp_path))
    store.write(record("a.csv", "01012024", "01032024"))
    (tmp_path / "metadata" / "binary_metadata.json").write_bytes(b"\xff\xfe{garbage")

    report = analyze_coverage(PipelineConfig(root_dir=tmp_path), date(2024, 1, 1), date(2024, 1, 3))

    assert report.is_complete
    assert [p.name for p in report.skipped] == ["binary_metadata.json"]
