"""Metadata sidecars: one JSON record per managed output file."""
from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MetadataCorruptionError
from .path_utils import Layout, atomic_write_text, ensure_directory, remove_if_exists, sidecar_name, tmp_path_for


LOGGER = logging.getLogger("adspender.metadata")

NOT_APPLICABLE = "NA"

MetadataType = Literal["weekly", "partial", "search", "no search", "combined"]


class Metadata(BaseModel):
    """Provenance and derived attributes of one managed file.

    Field names follow the JSON contract (``FileName``, ``StartDate`` ...);
    the Python attributes are snake_case.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    file_name: str = Field(..., alias="FileName")
    original_file: str = Field(NOT_APPLICABLE, alias="OriginalFile")
    start_date: str = Field(..., alias="StartDate", pattern=r"^\d{8}$")
    end_date: str = Field(..., alias="EndDate", pattern=r"^\d{8}$")
    week_start: str = Field("", alias="WeekStart", pattern=r"^(\d{8})?$")
    day_count: int = Field(0, alias="DayCount")
    type: MetadataType = Field(..., alias="Type")
    n_observations: int = Field(0, alias="NObservations", ge=0)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), indent=4) + "\n"

    @property
    def sidecar_name(self) -> str:
        return sidecar_name(self.file_name)


class MetadataStore:
    """Reads and writes sidecars under ``<root>/metadata``."""

    def __init__(self, layout: Layout) -> None:
        self.layout = layout

    @property
    def directory(self) -> Path:
        return self.layout.metadata

    @property
    def archive_directory(self) -> Path:
        return self.layout.metadata_archive

    def path_for(self, file_name: str) -> Path:
        return self.directory / sidecar_name(file_name)

    def exists(self, file_name: str) -> bool:
        return self.path_for(file_name).is_file()

    def write(self, metadata: Metadata) -> Path:
        """Atomically write the sidecar for ``metadata.file_name``."""
        ensure_directory(self.directory)
        path = self.path_for(metadata.file_name)
        atomic_write_text(path, metadata.to_json())
        LOGGER.debug("Wrote metadata %s", path)
        return path

    def write_pending(self, metadata: Metadata) -> Path:
        """Write the sidecar to its temporary path only; the caller renames it."""
        ensure_directory(self.directory)
        tmp = tmp_path_for(self.path_for(metadata.file_name))
        tmp.write_text(metadata.to_json(), encoding="utf-8")
        return tmp

    def read_path(self, path: Path) -> Metadata:
        """Parse one sidecar, raising ``MetadataCorruptionError`` when invalid."""
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except UnicodeDecodeError as exc:
            raise MetadataCorruptionError(path, f"not UTF-8 text ({exc})") from exc
        except json.JSONDecodeError as exc:
            raise MetadataCorruptionError(path, f"not JSON ({exc})") from exc
        if not isinstance(payload, dict):
            raise MetadataCorruptionError(path, "top-level value is not an object")
        try:
            return Metadata.model_validate(payload)
        except ValidationError as exc:
            raise MetadataCorruptionError(path, str(exc)) from exc

    def read(self, file_name: str) -> Metadata:
        return self.read_path(self.path_for(file_name))

    def find(self, file_name: str) -> Optional[Metadata]:
        """Return the record for ``file_name`` or ``None`` when missing or corrupt."""
        path = self.path_for(file_name)
        if not path.is_file():
            LOGGER.warning("No metadata sidecar for %s (expected %s)", file_name, path)
            return None
        try:
            return self.read_path(path)
        except (MetadataCorruptionError, OSError) as exc:
            LOGGER.warning("Skipping %s: %s", file_name, exc)
            return None

    def scan(self) -> Tuple[List[Tuple[Path, Metadata]], List[Path]]:
        """Read every top-level ``*.json`` sidecar.

        Returns ``(records, skipped)``; unreadable or invalid sidecars are
        logged and listed in ``skipped`` rather than raising.
        """
        records: List[Tuple[Path, Metadata]] = []
        skipped: List[Path] = []
        for path in self._iter_sidecars():
            try:
                records.append((path, self.read_path(path)))
            except (MetadataCorruptionError, OSError) as exc:
                LOGGER.warning("Skipping metadata %s: %s", path.name, exc)
                skipped.append(path)
        return records, skipped

    def _iter_sidecars(self) -> Iterator[Path]:
        if not self.directory.is_dir():
            return iter(())
        return iter(sorted((p for p in self.directory.glob("*.json") if p.is_file()), key=lambda p: p.name))

    def archive(self, file_name: str) -> Path:
        """Move the sidecar of ``file_name`` into ``metadata/archive``."""
        ensure_directory(self.archive_directory)
        src = self.path_for(file_name)
        dst = self.archive_directory / src.name
        os.replace(src, dst)
        return dst

    def archive_copy(self, file_name: str) -> Path:
        """Copy the sidecar into ``metadata/archive``, leaving it in place."""
        ensure_directory(self.archive_directory)
        src = self.path_for(file_name)
        dst = self.archive_directory / src.name
        shutil.copy2(src, dst)
        return dst

    def delete(self, file_name: str) -> bool:
        return remove_if_exists(self.path_for(file_name))
