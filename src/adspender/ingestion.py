"""Ingestion of raw AdSpender exports into the managed layout.

Per file: split boilerplate, normalize columns, extract the date range,
classify, write the table and its sidecar into place, log the rename and
archive (or delete) the original. A failing file is skipped; the batch
continues.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

import pandas as pd

from .classifier import Classification, classify
from .config import PipelineConfig
from .errors import AdSpenderError, ExtractionError
from .lifecycle import LifecycleManifest, LifecycleStage, move_to_stage
from .logging_utils import log_warning
from .metadata_store import Metadata, MetadataStore
from .path_utils import (
    Layout,
    cleanup_tmp_files,
    ensure_directory,
    get_layout,
    list_csv_files,
    remove_if_exists,
    tmp_path_for,
)
from .range_extractor import extract_date_range
from .schema_normalizer import NormalizedTable, normalize_report, read_raw_report


LOGGER = logging.getLogger("adspender.ingestion")

RENAME_LOG_COLUMNS = ["Original Name", "New Name", "Start Date", "End Date"]


@dataclass
class FileFailure:
    name: str
    reason: str


@dataclass
class BatchResult:
    """Outcome of a batch: how many units succeeded and which failed."""

    succeeded: int = 0
    failures: List[FileFailure] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def had_errors(self) -> bool:
        return bool(self.failures)

    def summary(self, noun: str = "files", verb: str = "converted") -> str:
        lines = []
        if self.succeeded:
            lines.append(f"{self.succeeded} {noun} were successfully {verb}.")
        if self.had_errors:
            lines.append(f"Some {noun} were not processed due to errors.")
        if not self.succeeded and not self.had_errors:
            lines.append(f"No {noun} were available or matched the criteria for processing.")
        return "\n".join(lines)


@dataclass(frozen=True)
class IngestedFile:
    source: Path
    destination: Path
    sidecar: Path
    metadata: Metadata
    classification: Classification


def gather_input_files(layout: Layout) -> List[Path]:
    """Raw exports waiting at the root, excluding the rename log."""
    return list_csv_files(layout.root)


def append_rename_log(layout: Layout, original: str, new_name: str, start: str, end: str) -> Path:
    """Append one row; the header is written only when the log is created."""
    log_path = layout.rename_log
    entry = pd.DataFrame([[original, new_name, start, end]], columns=RENAME_LOG_COLUMNS)
    entry.to_csv(log_path, mode="a", header=not log_path.exists(), index=False, lineterminator="\n")
    return log_path


def build_metadata(source_name: str, classification: Classification, table: NormalizedTable) -> Metadata:
    return Metadata(
        FileName=classification.canonical_name,
        OriginalFile=source_name,
        StartDate=classification.date_range.start,
        EndDate=classification.date_range.end,
        WeekStart=classification.week_start_label,
        DayCount=classification.day_count,
        Type=classification.report_type.value,
        NObservations=table.n_observations,
    )


def ingest_file(
    path: Path,
    config: PipelineConfig,
    layout: Optional[Layout] = None,
    manifest: Optional[LifecycleManifest] = None,
) -> IngestedFile:
    """Ingest a single raw export.

    Raises:
        ExtractionError: the designated line does not carry a valid range
        NormalizationError: the body is not a readable table
        OSError: any filesystem step failed; partial outputs are rolled back
    """
    path = Path(path)
    layout = layout or get_layout(config)
    store = MetadataStore(layout)

    report = read_raw_report(path, config.normalizer)
    LOGGER.debug("Read %d content line(s) from %s", report.content_lines, path.name)
    table = normalize_report(report, config.normalizer)

    date_range = extract_date_range(report.range_line)
    if date_range.is_empty:
        raise ExtractionError(f"Couldn't extract dates from file {path.name}")

    classification = classify(date_range, path.name, config.classifier)
    metadata = build_metadata(path.name, classification, table)

    dest_dir = ensure_directory(layout.stage_dir(classification.destination))
    ensure_directory(store.directory)
    destination = dest_dir / classification.canonical_name
    sidecar = store.path_for(classification.canonical_name)
    if destination.exists():
        log_warning(LOGGER, f"Replacing existing {destination} with output of {path.name}")

    tmp_dest = tmp_path_for(destination)
    tmp_sidecar = tmp_path_for(sidecar)
    committed: List[Path] = []
    try:
        table.to_csv(tmp_dest)
        store.write_pending(metadata)
        os.replace(tmp_dest, destination)
        committed.append(destination)
        os.replace(tmp_sidecar, sidecar)
        committed.append(sidecar)

        source_stage = LifecycleStage.DELETED if config.auto_delete else LifecycleStage.PROCESSED
        move_to_stage(path, layout, source_stage)
    except OSError:
        for leftover in [tmp_dest, tmp_sidecar, *committed]:
            remove_if_exists(leftover)
        raise

    try:
        append_rename_log(layout, path.name, classification.canonical_name, date_range.start, date_range.end)
    except OSError as exc:
        LOGGER.error("Could not append to rename log for %s: %s", path.name, exc)

    if manifest is not None:
        manifest.record_source(path.name, source_stage)
        manifest.record_output(classification.canonical_name, LifecycleStage.for_destination(classification.destination))

    LOGGER.info(
        "Converted %s -> %s/%s (%s, %d day(s), %d rows)",
        path.name,
        classification.destination,
        classification.canonical_name,
        classification.report_type.value,
        classification.day_count,
        table.n_observations,
    )
    return IngestedFile(
        source=path,
        destination=destination,
        sidecar=sidecar,
        metadata=metadata,
        classification=classification,
    )


def run_ingestion(
    config: PipelineConfig,
    confirm: Optional[Callable[[int, Path], bool]] = None,
) -> BatchResult:
    """Ingest every raw export under the configured root.

    ``confirm`` receives the file count and root directory and gates the
    whole batch; returning False leaves everything untouched.

    Raises:
        ConfigurationError: no usable root directory configured
    """
    layout = get_layout(config)
    files = gather_input_files(layout)
    result = BatchResult()

    if confirm is not None and not confirm(len(files), layout.root):
        LOGGER.info("Ingestion cancelled; no files were touched.")
        return result

    cleanup_tmp_files(layout)
    manifest = LifecycleManifest.load(layout)
    for path in files:
        try:
            ingested = ingest_file(path, config, layout=layout, manifest=manifest)
        except (AdSpenderError, OSError) as exc:
            LOGGER.error("Failed to convert %s: %s", path.name, exc)
            result.failures.append(FileFailure(path.name, str(exc)))
            continue
        result.succeeded += 1
        result.outputs.append(ingested.metadata.file_name)

    if result.succeeded:
        try:
            manifest.save()
        except OSError as exc:
            LOGGER.error("Could not save lifecycle manifest: %s", exc)
    LOGGER.info("Ingestion finished: %d succeeded, %d failed", result.succeeded, result.failed)
    return result
