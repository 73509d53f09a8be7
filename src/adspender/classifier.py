"""Week alignment, report type and canonical naming for ingested reports."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Optional

from .config import ClassifierOptions
from .range_extractor import DateRange, format_storage_date


SEARCH_MARKER = "_S"
NO_SEARCH_MARKER = "_W"
WEEK_START_FORMAT = "%Y%m%d"


class ReportType(str, Enum):
    WEEKLY = "weekly"
    PARTIAL = "partial"
    SEARCH = "search"
    NO_SEARCH = "no search"
    COMBINED = "combined"


@dataclass(frozen=True)
class Classification:
    """Everything the pipeline needs to route one report."""

    date_range: DateRange
    week_start: date
    day_count: int
    report_type: ReportType
    search_marker: str
    partial_suffix: str
    canonical_name: str
    destination: str  # "validated" or "partial"

    @property
    def week_start_label(self) -> str:
        """``YYYYMMDD`` as stored in metadata."""
        return self.week_start.strftime(WEEK_START_FORMAT)


def get_week_start(day: date) -> date:
    """Return the Monday on or before ``day``.

    Counting Sunday as 0, the offset is ``Monday - weekday``; Sunday would
    give +1, which is forced to -6 so the result never lands in the future.
    """
    sunday_based = (day.weekday() + 1) % 7
    offset = 1 - sunday_based
    if offset > 0:
        offset = -6
    return day + timedelta(days=offset)


def get_day_count(start: date, end: date) -> int:
    """Inclusive day span; an inverted range yields zero or less."""
    return (end - start).days + 1


def detect_search_marker(filename: str) -> str:
    """Return ``_S``, ``_W`` or an empty string."""
    if SEARCH_MARKER in filename:
        return SEARCH_MARKER
    if NO_SEARCH_MARKER in filename:
        return NO_SEARCH_MARKER
    return ""


def get_report_type(day_count: int, search_marker: str) -> ReportType:
    if search_marker == SEARCH_MARKER:
        return ReportType.SEARCH
    if search_marker == NO_SEARCH_MARKER:
        return ReportType.NO_SEARCH
    if day_count < 7:
        return ReportType.PARTIAL
    return ReportType.WEEKLY


def get_partial_suffix(start: date, day_count: int) -> str:
    if day_count >= 7:
        return ""
    return "_1" if start.weekday() == 0 else "_2"


def classify(date_range: DateRange, filename: str, options: Optional[ClassifierOptions] = None) -> Classification:
    """Classify a report from its extracted range and source filename."""
    if date_range.is_empty:
        raise ValueError("Cannot classify an empty date range")
    options = options or ClassifierOptions()

    start = date_range.start_date
    end = date_range.end_date
    week_start = get_week_start(start)
    day_count = get_day_count(start, end)
    marker = detect_search_marker(filename)
    report_type = get_report_type(day_count, marker)
    partial_suffix = get_partial_suffix(start, day_count)
    name_marker = marker if options.retain_search_marker else ""

    canonical_name = f"{format_storage_date(week_start)}{partial_suffix}{name_marker}.csv"
    destination = "validated" if report_type is ReportType.WEEKLY else "partial"

    return Classification(
        date_range=date_range,
        week_start=week_start,
        day_count=day_count,
        report_type=report_type,
        search_marker=marker,
        partial_suffix=partial_suffix,
        canonical_name=canonical_name,
        destination=destination,
    )
