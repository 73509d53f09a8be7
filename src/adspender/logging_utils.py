"""Unified logging utilities for adspender.

All modules log through children of the ``adspender`` logger. ``get_logger``
attaches the handlers once per run:
  - console (same format as the file)
  - adspender.log under the configured logs directory

If the file handler cannot be attached, console logging keeps working.
"""
from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Dict

from .config import PipelineConfig


LOGGER_NAME = "adspender"
SYSTEM_FMT = "[%(asctime)s] [%(levelname)s] %(name)s | %(message)s"
DATE_FMT = "%Y-%m-%d %H:%M:%S"


def _ensure_logs_dir(config: PipelineConfig) -> Path | None:
    logs_dir = config.logging.logs_dir
    if logs_dir is None:
        if config.root_dir is None or not config.root_dir.is_dir():
            return None
        logs_dir = config.root_dir / "logs"
    logs_dir = Path(logs_dir).expanduser().resolve()
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def _safe_add_file_handler(logger: logging.Logger, path: Path, level: int) -> None:
    try:
        fh = logging.FileHandler(path, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(SYSTEM_FMT, datefmt=DATE_FMT))
        logger.addHandler(fh)
    except OSError as exc:
        logger.warning("[WARNING] Failed to attach file handler %s (%s)", str(path), exc)


def get_logger(config: PipelineConfig) -> logging.Logger:
    """Return the package logger with console + file handlers.

    Handlers are reset on every call so repeated initialization in one
    process does not duplicate output.
    """
    level = getattr(logging, config.logging.level)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers = []

    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(logging.Formatter(SYSTEM_FMT, datefmt=DATE_FMT))
    logger.addHandler(sh)

    try:
        logs_dir = _ensure_logs_dir(config)
    except OSError as exc:
        logger.warning("[WARNING] Unable to create logs directory (%s); logging to console only", exc)
        logs_dir = None
    if logs_dir is not None:
        _safe_add_file_handler(logger, logs_dir / config.logging.file_name, level)
    logger.debug("Logging initialised (level=%s, logs_dir=%s)", config.logging.level, logs_dir)
    return logger


def start_phase_timer(phase_name: str) -> float:
    """Start a timer for a given command and return the perf counter."""
    return time.perf_counter()


def end_phase_timer(phase_name: str, start_time: float, timing_dict: Dict[str, float], logger: logging.Logger) -> float:
    """End timer, record to ``timing_dict`` and log the elapsed time."""
    elapsed = time.perf_counter() - float(start_time)
    timing_dict[phase_name] = float(elapsed)
    logger.info("%s completed in %.2f seconds", phase_name, elapsed)
    return elapsed


def log_system_event(logger: logging.Logger, message: str):
    logger.info("[SYSTEM] %s", message)


def log_warning(logger: logging.Logger, message: str):
    logger.warning("[WARNING] %s", message)


def log_error(logger: logging.Logger, message: str):
    logger.error("[ERROR] %s", message)
