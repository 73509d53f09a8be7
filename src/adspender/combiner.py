"""Consolidation of ingested files that cover the same date range."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pandas as pd

from .classifier import get_week_start
from .config import PipelineConfig
from .errors import AdSpenderError, CombineConflictError
from .ingestion import BatchResult, FileFailure
from .lifecycle import LifecycleManifest, LifecycleStage, copy_to_stage, move_to_stage
from .metadata_store import NOT_APPLICABLE, Metadata, MetadataStore
from .path_utils import Layout, ensure_directory, get_layout, list_csv_files, remove_if_exists, tmp_path_for
from .range_extractor import DateRange


LOGGER = logging.getLogger("adspender.combiner")

GroupKey = Tuple[str, str]


@dataclass(frozen=True)
class Candidate:
    path: Path
    metadata: Metadata


def gather_candidates(layout: Layout, store: MetadataStore, config: PipelineConfig) -> List[Candidate]:
    """Files in the configured source stages whose sidecar is readable.

    Previously combined outputs are never candidates again.
    """
    candidates: List[Candidate] = []
    for stage_name in config.combine_sources:
        for path in list_csv_files(layout.stage_dir(stage_name)):
            metadata = store.find(path.name)
            if metadata is None:
                continue
            if metadata.type == "combined":
                continue
            LOGGER.debug("Candidate %s with date range %s to %s", path, metadata.start_date, metadata.end_date)
            candidates.append(Candidate(path, metadata))
    return candidates


def group_by_range(candidates: List[Candidate]) -> Dict[GroupKey, List[Candidate]]:
    """Group candidates by (StartDate, EndDate), keeping listing order."""
    groups: Dict[GroupKey, List[Candidate]] = {}
    for candidate in candidates:
        key = (candidate.metadata.start_date, candidate.metadata.end_date)
        groups.setdefault(key, []).append(candidate)
    return groups


def read_rows(path: Path) -> pd.DataFrame:
    """Read a normalized file as raw string rows, header row included."""
    return pd.read_csv(path, header=None, dtype=str, keep_default_na=False, skip_blank_lines=True).fillna("")


def concatenate(paths: List[Path]) -> pd.DataFrame:
    """Concatenate files, keeping the header row of the first one only."""
    frames = []
    for idx, path in enumerate(paths):
        rows = read_rows(path)
        frames.append(rows if idx == 0 else rows.iloc[1:])
    return pd.concat(frames, ignore_index=True).fillna("")


def build_combined_metadata(key: GroupKey, combined_name: str, merged: pd.DataFrame, recompute: bool) -> Metadata:
    """Record for a combined file.

    Without ``recompute`` only the range, name and type are set, leaving
    WeekStart, DayCount and NObservations blank/zero as the combined file is
    expected to be re-validated downstream.
    """
    start, end = key
    fields = {
        "FileName": combined_name,
        "OriginalFile": NOT_APPLICABLE,
        "StartDate": start,
        "EndDate": end,
        "Type": "combined",
    }
    if recompute:
        date_range = DateRange(start=start, end=end)
        fields["WeekStart"] = get_week_start(date_range.start_date).strftime("%Y%m%d")
        fields["DayCount"] = date_range.day_count
        fields["NObservations"] = max(len(merged) - 1, 0)
    return Metadata(**fields)


def check_destination(
    destination: Path,
    combined_name: str,
    members: List[Candidate],
    store: MetadataStore,
) -> None:
    """Refuse to overwrite a live output or sidecar that is not in the group.

    Raises:
        CombineConflictError: ``destination`` or its sidecar belongs to another file
    """
    if destination.exists() and all(m.path != destination for m in members):
        raise CombineConflictError(f"{destination} exists and is not part of the group")
    if store.exists(combined_name) and all(m.path.name != combined_name for m in members):
        raise CombineConflictError(f"metadata for {combined_name} belongs to a file outside the group")


def preserve_occupants(
    members: List[Candidate],
    combined_name: str,
    destination: Path,
    layout: Layout,
    store: MetadataStore,
    auto_delete: bool,
) -> None:
    """Archive copies of members that the commit overwrites in place."""
    if auto_delete:
        return
    for member in members:
        if member.path.name != combined_name:
            continue
        if member.path == destination:
            copy_to_stage(member.path, layout, LifecycleStage.COMBINED_ARCHIVE)
        store.archive_copy(member.path.name)


def dispose_sources(
    members: List[Candidate],
    layout: Layout,
    store: MetadataStore,
    auto_delete: bool,
    manifest: Optional[LifecycleManifest] = None,
    combined_name: Optional[str] = None,
    destination: Optional[Path] = None,
) -> None:
    """Delete or archive each source file together with its sidecar.

    A member sitting at ``destination`` has already been replaced by the
    combined file, and a member named ``combined_name`` no longer owns its
    sidecar; ``preserve_occupants`` archived both beforehand.
    """
    stage = LifecycleStage.DELETED if auto_delete else LifecycleStage.COMBINED_ARCHIVE
    for member in members:
        if member.path != destination:
            move_to_stage(member.path, layout, stage)
        if member.path.name != combined_name:
            if auto_delete:
                store.delete(member.path.name)
            else:
                store.archive(member.path.name)
        if manifest is not None:
            manifest.record_output(member.path.name, stage)


def combine_group(
    key: GroupKey,
    members: List[Candidate],
    config: PipelineConfig,
    layout: Layout,
    store: MetadataStore,
    manifest: Optional[LifecycleManifest] = None,
) -> Metadata:
    """Merge one group into ``{StartDate}.csv`` and retire its sources.

    The merged table and its sidecar are written to temporary paths and
    renamed into place before any source is retired, so a failure up to the
    commit leaves every source live. A failure while retiring sources leaves
    the committed output, which already holds every row of the group.
    """
    combined_name = f"{key[0]}.csv"
    out_dir = ensure_directory(layout.stage_dir(config.combined_dir))
    destination = out_dir / combined_name
    sidecar = store.path_for(combined_name)
    check_destination(destination, combined_name, members, store)

    merged = concatenate([m.path for m in members])
    metadata = build_combined_metadata(key, combined_name, merged, config.recompute_combined)

    tmp_dest = tmp_path_for(destination)
    tmp_sidecar = tmp_path_for(sidecar)
    fresh = not destination.exists()
    committed = False
    try:
        merged.to_csv(tmp_dest, header=False, index=False, lineterminator="\n")
        store.write_pending(metadata)
        preserve_occupants(members, combined_name, destination, layout, store, config.auto_delete)
        os.replace(tmp_dest, destination)
        committed = True
        os.replace(tmp_sidecar, sidecar)
    except OSError:
        if committed and fresh:
            remove_if_exists(destination)
        remove_if_exists(tmp_dest)
        remove_if_exists(tmp_sidecar)
        raise

    try:
        dispose_sources(members, layout, store, config.auto_delete, manifest, combined_name, destination)
    finally:
        if manifest is not None:
            manifest.record_output(combined_name, LifecycleStage.for_destination(config.combined_dir))
    LOGGER.info(
        "Combined %d files for %s-%s into %s/%s",
        len(members),
        key[0],
        key[1],
        config.combined_dir,
        combined_name,
    )
    return metadata


def run_combiner(
    config: PipelineConfig,
    confirm: Optional[Callable[[int, Path], bool]] = None,
) -> BatchResult:
    """Combine every group of two or more files sharing a date range.

    Raises:
        ConfigurationError: no usable root directory configured
    """
    layout = get_layout(config)
    store = MetadataStore(layout)
    candidates = gather_candidates(layout, store, config)
    result = BatchResult()

    if confirm is not None and not confirm(len(candidates), layout.root):
        LOGGER.info("Combination cancelled; no files were touched.")
        return result
    if not candidates:
        LOGGER.info("No CSV files found to combine.")
        return result

    manifest = LifecycleManifest.load(layout)
    groups = group_by_range(candidates)
    for key in sorted(groups):
        members = groups[key]
        if len(members) < 2:
            continue
        try:
            metadata = combine_group(key, members, config, layout, store, manifest)
        except (AdSpenderError, OSError, ValueError) as exc:
            LOGGER.error("Failed to combine files for %s-%s: %s", key[0], key[1], exc)
            result.failures.append(FileFailure(f"{key[0]}-{key[1]}", str(exc)))
            continue
        result.succeeded += 1
        result.outputs.append(metadata.file_name)

    if result.succeeded:
        try:
            manifest.save()
        except OSError as exc:
            LOGGER.error("Could not save lifecycle manifest: %s", exc)
    LOGGER.info("Combination finished: %d group(s) combined, %d failed", result.succeeded, result.failed)
    return result
