"""Configuration loading and validation using YAML and Pydantic."""
from __future__ import annotations

from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ConfigurationError


class NormalizerOptions(BaseModel):
    """Options for stripping boilerplate and normalizing report columns."""

    model_config = ConfigDict(frozen=True)

    skip_lines: int = Field(5, ge=0, description="Leading boilerplate lines before the header")
    sentinel: str = Field("GRAND TOTAL", description="Marker of the first footer line")
    total_column: str = Field("TOTAL DIGITAL IMP", description="Column every normalized table must carry")
    drop_numeric_columns: bool = Field(True, description="Drop header columns starting with a digit")
    synthesize_total_column: bool = Field(True, description="Append an empty total column when absent")

    @field_validator("sentinel", "total_column")
    @classmethod
    def validate_not_blank(cls, v):
        """Reject blank markers, which would match every line or column."""
        if not str(v).strip():
            raise ValueError("marker must not be blank")
        return v


class ClassifierOptions(BaseModel):
    """Options for canonical naming."""

    model_config = ConfigDict(frozen=True)

    retain_search_marker: bool = Field(
        True,
        description="Carry the _S/_W filename marker into the canonical name",
    )


class LoggingConfig(BaseModel):
    """Console and file logging settings."""

    model_config = ConfigDict(frozen=True)

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    file_name: str = "adspender.log"
    logs_dir: Optional[Path] = Field(None, description="Defaults to <root_dir>/logs")


class PipelineConfig(BaseModel):
    """Complete, immutable configuration threaded through every operation."""

    model_config = ConfigDict(frozen=True)

    root_dir: Optional[Path] = Field(None, description="Directory holding the raw exports")
    auto_delete: bool = Field(False, description="Delete sources instead of archiving them")
    recompute_combined: bool = Field(
        False,
        description="Recompute DayCount, WeekStart and NObservations on combined records",
    )
    combine_sources: List[Literal["partial", "validated"]] = Field(
        default_factory=lambda: ["partial", "validated"],
        min_length=1,
        description="Stage directories scanned by the combiner, in order",
    )
    combined_dir: Literal["partial", "validated"] = Field(
        "validated", description="Stage directory receiving combined outputs"
    )
    normalizer: NormalizerOptions = Field(default_factory=NormalizerOptions)
    classifier: ClassifierOptions = Field(default_factory=ClassifierOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("root_dir", mode="before")
    @classmethod
    def validate_root_dir(cls, v):
        """Treat an empty string the same as an unset directory."""
        if v is None or not str(v).strip():
            return None
        return Path(str(v).strip()).expanduser()

    def require_root_dir(self) -> Path:
        """Return the configured root directory or raise ``ConfigurationError``."""
        if self.root_dir is None:
            raise ConfigurationError("No root directory configured. Set 'root_dir' or pass --root.")
        root = self.root_dir.resolve()
        if not root.is_dir():
            raise ConfigurationError(f"Configured root directory does not exist: {root}")
        return root

    def with_overrides(self, root_dir: Optional[str | Path] = None, auto_delete: Optional[bool] = None) -> "PipelineConfig":
        """Return a copy with command-line overrides applied."""
        data = self.model_dump()
        if root_dir is not None:
            data["root_dir"] = root_dir
        if auto_delete is not None:
            data["auto_delete"] = auto_delete
        return PipelineConfig.model_validate(data)


def load_config(path: str | Path) -> dict:
    """Load a YAML configuration file."""

    with open(path, "r", encoding="utf-8") as stream:
        return yaml.safe_load(stream) or {}


def load_and_validate_config(config_dict: dict | None) -> PipelineConfig:
    """
    Validate a raw configuration mapping.

    Accepts both the flat layout (``root_dir`` at top level) and the legacy
    settings layout (``directory`` / ``auto_delete`` under ``settings``).

    Raises:
        pydantic.ValidationError: If a value has the wrong type or range
    """
    raw = dict(config_dict or {})
    legacy = raw.pop("settings", None)
    if isinstance(legacy, dict):
        raw.setdefault("root_dir", legacy.get("directory"))
        if "auto_delete" in legacy:
            raw.setdefault("auto_delete", legacy["auto_delete"])
    return PipelineConfig.model_validate(raw)


def resolve_config(config_path: Optional[str | Path] = None) -> PipelineConfig:
    """Load and validate ``config_path``; a missing file yields the defaults."""
    if config_path is None or not Path(config_path).exists():
        return PipelineConfig()
    return load_and_validate_config(load_config(config_path))
