"""Lifecycle stage tags for raw sources and managed outputs.

The directory a file lives in is its stage; ``lifecycle_manifest.json`` at the
root records the same stage as an explicit tag so that a crash leaving a file
in an unexpected directory can be detected by ``audit_layout``.

Manifest shape::

    {"sources": {"raw_export.csv": "processed"},
     "outputs": {"01012024_1.csv": "partial"}}
"""
from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from .path_utils import Layout, atomic_write_text, list_csv_files, sidecar_name


LOGGER = logging.getLogger("adspender.lifecycle")


class LifecycleStage(str, Enum):
    RAW = "raw"
    PARTIAL = "partial"
    VALIDATED = "validated"
    PROCESSED = "processed"
    COMBINED_ARCHIVE = "processed/combined"
    DELETED = "deleted"

    @classmethod
    def for_destination(cls, destination: str) -> "LifecycleStage":
        return cls.VALIDATED if destination == "validated" else cls.PARTIAL


def stage_directory(layout: Layout, stage: LifecycleStage) -> Optional[Path]:
    """Directory materializing ``stage``; ``None`` for deleted files."""
    return {
        LifecycleStage.RAW: layout.root,
        LifecycleStage.PARTIAL: layout.partial,
        LifecycleStage.VALIDATED: layout.validated,
        LifecycleStage.PROCESSED: layout.processed,
        LifecycleStage.COMBINED_ARCHIVE: layout.processed_combined,
        LifecycleStage.DELETED: None,
    }[stage]


class LifecycleManifest:
    """In-memory view of the manifest; ``save`` persists it atomically."""

    SECTIONS = ("sources", "outputs")

    def __init__(self, layout: Layout, entries: Optional[Dict[str, Dict[str, str]]] = None) -> None:
        self.layout = layout
        self.entries: Dict[str, Dict[str, str]] = {s: dict((entries or {}).get(s, {})) for s in self.SECTIONS}

    @classmethod
    def load(cls, layout: Layout) -> "LifecycleManifest":
        path = layout.manifest
        if not path.is_file():
            return cls(layout)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            LOGGER.warning("Ignoring unreadable lifecycle manifest %s: %s", path, exc)
            return cls(layout)
        if not isinstance(data, dict):
            LOGGER.warning("Ignoring malformed lifecycle manifest %s", path)
            return cls(layout)
        return cls(layout, data)

    def save(self) -> Path:
        return atomic_write_text(self.layout.manifest, json.dumps(self.entries, indent=2, sort_keys=True) + "\n")

    def stage_of(self, section: str, name: str) -> Optional[LifecycleStage]:
        raw = self.entries[section].get(name)
        try:
            return LifecycleStage(raw) if raw is not None else None
        except ValueError:
            return None

    def record(self, section: str, name: str, stage: LifecycleStage) -> None:
        self.entries[section][name] = stage.value

    def record_source(self, name: str, stage: LifecycleStage) -> None:
        self.record("sources", name, stage)

    def record_output(self, name: str, stage: LifecycleStage) -> None:
        self.record("outputs", name, stage)


def move_to_stage(path: Path, layout: Layout, stage: LifecycleStage) -> Optional[Path]:
    """Relocate ``path`` into the directory of ``stage`` (or delete it)."""
    target_dir = stage_directory(layout, stage)
    if target_dir is None:
        path.unlink()
        return None
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / path.name
    os.replace(path, target)
    return target


def copy_to_stage(path: Path, layout: Layout, stage: LifecycleStage) -> Optional[Path]:
    """Copy ``path`` into the directory of ``stage``; no-op for deleted."""
    target_dir = stage_directory(layout, stage)
    if target_dir is None:
        return None
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / path.name
    shutil.copy2(path, target)
    return target


@dataclass(frozen=True)
class LayoutIssue:
    kind: str
    name: str
    detail: str


def audit_layout(layout: Layout, manifest: Optional[LifecycleManifest] = None) -> List[LayoutIssue]:
    """Compare manifest tags, stage directories and sidecars.

    Reports managed files without a sidecar, sidecars without a managed
    file, and manifest tags whose directory does not hold the file.
    """
    manifest = manifest or LifecycleManifest.load(layout)
    issues: List[LayoutIssue] = []

    live: Dict[str, LifecycleStage] = {}
    for stage in (LifecycleStage.PARTIAL, LifecycleStage.VALIDATED):
        for path in list_csv_files(stage_directory(layout, stage)):
            if path.name in live:
                issues.append(LayoutIssue("duplicate", path.name, f"present in both {live[path.name].value} and {stage.value}"))
            live[path.name] = stage
            if not (layout.metadata / sidecar_name(path.name)).is_file():
                issues.append(LayoutIssue("missing_sidecar", path.name, f"{stage.value}/{path.name} has no metadata"))

    live_sidecars = {sidecar_name(name) for name in live}
    if layout.metadata.is_dir():
        for sidecar in sorted(layout.metadata.glob("*.json")):
            if sidecar.name not in live_sidecars:
                issues.append(LayoutIssue("orphan_sidecar", sidecar.name, "no managed file in partial/ or validated/"))

    for section in LifecycleManifest.SECTIONS:
        for name in sorted(manifest.entries[section]):
            stage = manifest.stage_of(section, name)
            if stage is None:
                issues.append(LayoutIssue("unknown_stage", name, f"unrecognized tag {manifest.entries[section][name]!r}"))
                continue
            directory = stage_directory(layout, stage)
            if directory is None:
                if section == "outputs" and name in live:
                    issues.append(LayoutIssue("stage_mismatch", name, f"tagged deleted but present in {live[name].value}"))
                continue
            if not (directory / name).is_file():
                issues.append(LayoutIssue("stage_mismatch", name, f"tagged {stage.value} but not found in {directory}"))

    for issue in issues:
        LOGGER.warning("Layout issue [%s] %s: %s", issue.kind, issue.name, issue.detail)
    return issues
