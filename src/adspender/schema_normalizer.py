"""Boilerplate stripping and column normalization for raw AdSpender exports.

A raw export looks like::

    VIVVIX AdSpender                       <- boilerplate (lines 1-5)
    ...
    Report for 1/1/2024 to 1/3/2024        <- line 5, carries the date range
    MEDIA,PARENT,01/01/2024,TOTAL DIGITAL IMP (000)
    ...data rows...
    GRAND TOTAL,...                        <- footer, everything after is dropped

The header row sometimes carries date-stamped columns (``01/01/2024``); those
are dropped so that weekly files line up when concatenated.
"""
from __future__ import annotations

import io
import logging
import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from .config import NormalizerOptions
from .errors import NormalizationError


LOGGER = logging.getLogger("adspender.schema_normalizer")


@dataclass(frozen=True)
class RawReport:
    """A raw export split into its designated date line and tabular body."""

    path: Path
    range_line: Optional[str]
    body_lines: Tuple[str, ...]
    content_lines: int


@dataclass
class NormalizedTable:
    """Header plus string-valued data rows with a uniform column count."""

    frame: pd.DataFrame
    dropped_columns: List[str] = field(default_factory=list)
    synthesized_total: bool = False

    @property
    def header(self) -> List[str]:
        return [str(c) for c in self.frame.columns]

    @property
    def rows(self) -> List[List[str]]:
        return self.frame.astype(str).values.tolist()

    @property
    def n_observations(self) -> int:
        return int(len(self.frame))

    def to_csv(self, path: Path) -> Path:
        self.frame.to_csv(path, index=False, lineterminator="\n")
        return path


def split_report(lines: Iterable[str], options: NormalizerOptions) -> Tuple[Optional[str], List[str], int]:
    """Separate the designated date line and the body from boilerplate.

    The designated line is the last boilerplate line (the 5th by default), or
    the line right before the sentinel when the sentinel comes first.

    Returns ``(range_line, body_lines, content_lines)`` where
    ``content_lines`` counts every line read before the sentinel.
    """
    range_line: Optional[str] = None
    previous: Optional[str] = None
    body: List[str] = []
    count = 0

    for line in lines:
        line = line.rstrip("\r\n")
        if options.sentinel in line:
            if range_line is None:
                range_line = previous
            break
        count += 1
        if count == options.skip_lines:
            range_line = line
        if count > options.skip_lines:
            body.append(line)
        previous = line

    return range_line, body, count


def read_raw_report(path: Path, options: NormalizerOptions) -> RawReport:
    """Read a raw export from disk and split it."""
    with open(path, "r", encoding="utf-8", errors="replace", newline="") as stream:
        range_line, body, count = split_report(stream, options)
    return RawReport(path=Path(path), range_line=range_line, body_lines=tuple(body), content_lines=count)


def _starts_with_digit(column: str) -> bool:
    return bool(column) and column[0] in string.digits


def _parse_body(body_lines: Sequence[str]) -> pd.DataFrame:
    text = "\n".join(body_lines)
    if not text.strip():
        raise NormalizationError("Report body is empty; no header row found")
    try:
        raw = pd.read_csv(
            io.StringIO(text),
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise NormalizationError(f"Report body is not valid CSV: {exc}") from exc
    return raw.fillna("")


def normalize_rows(body_lines: Sequence[str], options: NormalizerOptions) -> NormalizedTable:
    """Turn body lines (header first) into a ``NormalizedTable``."""

    raw = _parse_body(body_lines)
    header = [str(c) for c in raw.iloc[0].tolist()]
    data = raw.iloc[1:]

    keep: List[int] = []
    dropped: List[str] = []
    for idx, column in enumerate(header):
        if options.drop_numeric_columns and _starts_with_digit(column):
            dropped.append(column)
        else:
            keep.append(idx)

    frame = pd.DataFrame(
        data.iloc[:, keep].values,
        columns=[header[i] for i in keep],
        dtype=str,
    )

    has_total = any(c.startswith(options.total_column) for c in header)
    synthesized = False
    if not has_total and options.synthesize_total_column:
        frame.insert(len(frame.columns), options.total_column, "", allow_duplicates=True)
        synthesized = True

    if dropped:
        LOGGER.debug("Dropped date-stamped columns: %s", dropped)
    if synthesized:
        LOGGER.debug("Added missing '%s' column", options.total_column)
    return NormalizedTable(frame=frame, dropped_columns=dropped, synthesized_total=synthesized)


def normalize_report(report: RawReport, options: NormalizerOptions) -> NormalizedTable:
    """Normalize the body of an already split ``RawReport``."""
    return normalize_rows(report.body_lines, options)
