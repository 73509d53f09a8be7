"""
AdSpender export pipeline.

Ingests raw VIVVIX AdSpender exports, routes them through the
partial/validated/processed layout with a metadata sidecar per file,
combines same-range partial files and reports day coverage.
"""

from .combiner import run_combiner
from .config import PipelineConfig, load_and_validate_config, load_config
from .coverage import analyze_coverage
from .ingestion import ingest_file, run_ingestion

__all__ = [
    "PipelineConfig",
    "analyze_coverage",
    "ingest_file",
    "load_and_validate_config",
    "load_config",
    "run_combiner",
    "run_ingestion",
]
