"""On-disk layout under the configured root directory."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from .config import PipelineConfig


LOGGER = logging.getLogger("adspender.paths")

RENAME_LOG_NAME = "rename_log.csv"
MANIFEST_NAME = "lifecycle_manifest.json"
METADATA_SUFFIX = "_metadata.json"
TMP_SUFFIX = ".tmp"


@dataclass(frozen=True)
class Layout:
    """Every directory and shared file a run touches."""

    root: Path

    @property
    def partial(self) -> Path:
        return self.root / "partial"

    @property
    def validated(self) -> Path:
        return self.root / "validated"

    @property
    def processed(self) -> Path:
        return self.root / "processed"

    @property
    def processed_combined(self) -> Path:
        return self.processed / "combined"

    @property
    def metadata(self) -> Path:
        return self.root / "metadata"

    @property
    def metadata_archive(self) -> Path:
        return self.metadata / "archive"

    @property
    def rename_log(self) -> Path:
        return self.root / RENAME_LOG_NAME

    @property
    def manifest(self) -> Path:
        return self.root / MANIFEST_NAME

    def stage_dir(self, name: str) -> Path:
        """Return the output directory for ``partial`` or ``validated``."""
        if name == "partial":
            return self.partial
        if name == "validated":
            return self.validated
        raise ValueError(f"Unknown stage directory: {name}")


def get_layout(config: PipelineConfig) -> Layout:
    """Return the layout for the configured root directory."""
    return Layout(config.require_root_dir())


def ensure_directory(directory: str | Path) -> Path:
    """Ensure that the directory exists."""

    path = Path(directory)
    path.mkdir(parents=True, exist_ok=True)
    return path


def sidecar_name(file_name: str) -> str:
    """``01012024_1.csv`` -> ``01012024_1_metadata.json``."""
    return f"{Path(file_name).stem}{METADATA_SUFFIX}"


def tmp_path_for(path: Path) -> Path:
    """Temporary sibling of ``path`` on the same filesystem."""
    return path.with_name(path.name + TMP_SUFFIX)


def list_csv_files(directory: Path, exclude: tuple[str, ...] = (RENAME_LOG_NAME,)) -> List[Path]:
    """Name-sorted ``*.csv`` files directly inside ``directory``."""
    if not directory.is_dir():
        return []
    return sorted(
        (p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ".csv" and p.name not in exclude),
        key=lambda p: p.name,
    )


def remove_if_exists(path: Path) -> bool:
    """Unlink ``path``; return whether something was removed."""
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False


def atomic_write_text(path: Path, text: str) -> Path:
    """Write ``text`` to a temporary sibling and rename it over ``path``."""
    tmp = tmp_path_for(path)
    try:
        tmp.write_text(text, encoding="utf-8")
        os.replace(tmp, path)
    except OSError:
        remove_if_exists(tmp)
        raise
    return path


def cleanup_tmp_files(layout: Layout) -> List[Path]:
    """Remove stale temporary files left by an interrupted run."""

    removed: List[Path] = []
    for directory in (layout.root, layout.partial, layout.validated, layout.metadata):
        if not directory.is_dir():
            continue
        for tmp in directory.glob(f"*{TMP_SUFFIX}"):
            try:
                tmp.unlink()
                removed.append(tmp)
            except OSError as exc:
                LOGGER.warning("Could not remove stale temporary file %s: %s", tmp, exc)
    if removed:
        LOGGER.info("Removed %d stale temporary file(s)", len(removed))
    return removed
