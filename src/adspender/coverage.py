"""Day-level coverage of the metadata corpus: gaps and overlaps."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, List

import pandas as pd

from .config import PipelineConfig
from .metadata_store import Metadata, MetadataStore
from .path_utils import get_layout
from .range_extractor import parse_storage_date


LOGGER = logging.getLogger("adspender.coverage")

QUERY_DATE_FORMAT = "%m-%d-%Y"

CoverageIndex = Dict[date, List[str]]


def parse_query_date(value: str) -> date:
    """Parse a user supplied ``MM-DD-YYYY`` date."""
    return datetime.strptime(value.strip(), QUERY_DATE_FORMAT).date()


def _days(start: date, end: date) -> List[date]:
    if start > end:
        return []
    return [ts.date() for ts in pd.date_range(start=start, end=end, freq="D")]


def build_coverage_index(records: Iterable[Metadata]) -> CoverageIndex:
    """Map every covered day to the FileNames whose range includes it.

    Records whose dates cannot be parsed are skipped; an inverted range
    covers no days.
    """
    index: CoverageIndex = {}
    for record in records:
        try:
            start = parse_storage_date(record.start_date)
            end = parse_storage_date(record.end_date)
        except ValueError as exc:
            LOGGER.warning("Error parsing dates in metadata for %s: %s", record.file_name, exc)
            continue
        for day in _days(start, end):
            bucket = index.setdefault(day, [])
            if record.file_name not in bucket:
                bucket.append(record.file_name)
    return index


def find_missing_days(index: CoverageIndex, start: date, end: date) -> List[date]:
    """Days of ``[start, end]`` with no contributing file, ascending."""
    return [day for day in _days(start, end) if not index.get(day)]


def find_overlaps(index: CoverageIndex) -> Dict[date, List[str]]:
    """Days, anywhere in the index, claimed by more than one file."""
    return {day: list(names) for day, names in sorted(index.items()) if len(names) > 1}


@dataclass
class CoverageReport:
    start: date
    end: date
    missing_days: List[date]
    overlaps: Dict[date, List[str]]
    index: CoverageIndex = field(repr=False)
    skipped: List[Path] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing_days

    def to_frame(self) -> pd.DataFrame:
        """One row per day of the queried range with its contributing files."""
        days = _days(self.start, self.end)
        return pd.DataFrame(
            {
                "date": days,
                "file_count": [len(self.index.get(d, [])) for d in days],
                "files": [", ".join(self.index.get(d, [])) for d in days],
            }
        )

    def summary(self) -> str:
        lines: List[str] = []
        if not self.missing_days:
            lines.append("There are no missing dates in the range.")
        else:
            lines.append("Missing dates:")
            lines.extend(f"{d:%B} {d.day}, {d.year}" for d in self.missing_days)
        lines.append("")
        if self.overlaps:
            lines.append("Dates covered by multiple files:")
            lines.extend(f"{d:%m-%d-%Y}: {', '.join(names)}" for d, names in self.overlaps.items())
        else:
            lines.append("There are no dates covered by multiple files.")
        if self.skipped:
            lines.append("")
            lines.append(f"Skipped {len(self.skipped)} unreadable metadata file(s).")
        return "\n".join(lines)


def analyze_coverage(config: PipelineConfig, start: date, end: date) -> CoverageReport:
    """Scan the metadata directory and report gaps in ``[start, end]`` and overlaps.

    Raises:
        ConfigurationError: no usable root directory configured
    """
    store = MetadataStore(get_layout(config))
    if not store.directory.is_dir():
        LOGGER.warning("No metadata directory found at %s", store.directory)
    entries, skipped = store.scan()
    index = build_coverage_index(record for _, record in entries)
    report = CoverageReport(
        start=start,
        end=end,
        missing_days=find_missing_days(index, start, end),
        overlaps=find_overlaps(index),
        index=index,
        skipped=skipped,
    )
    LOGGER.info(
        "Coverage %s to %s: %d record(s), %d missing day(s), %d overlapping day(s)",
        start,
        end,
        len(entries),
        len(report.missing_days),
        len(report.overlaps),
    )
    return report
