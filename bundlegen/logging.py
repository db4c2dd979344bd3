"""Logging for bundlegen builds.

Components log through ``get_logger("<stage>")``; the stage name is taken back
out of the logger name when records are formatted, so console lines read
``[bundlegen:writer] INFO Wrote dist/bundle.js ...``.
"""

from __future__ import annotations

import logging
from pathlib import Path

ROOT_LOGGER = "bundlegen"

CONSOLE_FORMAT = "[bundlegen:%(stage)s] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(stage)s: %(message)s"


def get_logger(stage: str | None = None) -> logging.Logger:
    """Return the logger for one pipeline stage (or the root bundlegen logger)."""
    return logging.getLogger(f"{ROOT_LOGGER}.{stage}" if stage else ROOT_LOGGER)


def stage_of(logger_name: str) -> str:
    """Map ``bundlegen.<stage>[.<child>]`` to ``<stage>``; other names map to themselves."""
    prefix = f"{ROOT_LOGGER}."
    if logger_name.startswith(prefix):
        return logger_name[len(prefix):].split(".", 1)[0]
    if logger_name == ROOT_LOGGER:
        return "build"
    return logger_name


class StageFormatter(logging.Formatter):
    """Formatter exposing ``%(stage)s`` for bundlegen records."""

    def format(self, record: logging.LogRecord) -> str:
        record.stage = stage_of(record.name)
        return super().format(record)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Send bundlegen records to stderr, and to ``log_file`` when given.

    Stage progress is logged at INFO and per-stage counts at DEBUG, so
    ``verbose`` is what surfaces the counts. The log file always records DEBUG.
    Calling this again replaces the previous handlers.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(StageFormatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        sink = logging.FileHandler(log_file, encoding="utf-8")
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(StageFormatter(FILE_FORMAT))
        logger.addHandler(sink)

    return logger


__all__ = ["StageFormatter", "configure_logging", "get_logger", "stage_of"]
