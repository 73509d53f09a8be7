"""Reporting date range extraction from the export's title line."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from .errors import DateParseError, ExtractionError


LOGGER = logging.getLogger("adspender.range_extractor")

DATE_PATTERN = re.compile(r"(\d{1,2}/\d{1,2}/\d{4})")
SOURCE_DATE_FORMAT = "%m/%d/%Y"
STORAGE_DATE_FORMAT = "%m%d%Y"


@dataclass(frozen=True)
class DateRange:
    """Start and end of a report in ``MMDDYYYY`` form.

    Both fields blank means extraction failed. The pair is kept in the order
    it appeared in the source line, even when start is after end.
    """

    start: str = ""
    end: str = ""

    @classmethod
    def empty(cls) -> "DateRange":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.start or not self.end

    @property
    def start_date(self) -> date:
        return parse_storage_date(self.start)

    @property
    def end_date(self) -> date:
        return parse_storage_date(self.end)

    @property
    def day_count(self) -> int:
        """Inclusive number of days from start to end."""
        return (self.end_date - self.start_date).days + 1


def parse_storage_date(value: str) -> date:
    """Parse an ``MMDDYYYY`` string."""
    return datetime.strptime(value, STORAGE_DATE_FORMAT).date()


def format_storage_date(value: date) -> str:
    return value.strftime(STORAGE_DATE_FORMAT)


def parse_date_range(line: Optional[str]) -> DateRange:
    """Return the first two dates found in ``line``.

    Raises:
        ExtractionError: fewer than two ``M/D/YYYY`` substrings
        DateParseError: a substring is not a real calendar date
    """
    matches = DATE_PATTERN.findall(line or "")
    if len(matches) < 2:
        raise ExtractionError(f"Couldn't extract both dates from line: {line!r}")

    parsed = []
    for raw in matches[:2]:
        try:
            parsed.append(datetime.strptime(raw, SOURCE_DATE_FORMAT).date())
        except ValueError as exc:
            raise DateParseError(f"Error parsing date {raw!r}: {exc}") from exc

    start, end = parsed
    return DateRange(start=format_storage_date(start), end=format_storage_date(end))


def extract_date_range(line: Optional[str]) -> DateRange:
    """Like ``parse_date_range`` but returns ``DateRange.empty()`` on failure."""
    try:
        return parse_date_range(line)
    except ExtractionError as exc:
        LOGGER.warning("%s", exc)
        return DateRange.empty()
