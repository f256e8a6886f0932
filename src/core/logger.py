"""Pipeline logging: one named logger with file + console output, and stage-tagged adapters."""

import logging
import os
from pathlib import Path
from typing import Any, MutableMapping, Tuple

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(module)s.%(funcName)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_LOG_FILE = "output/pipeline.log"


def _resolve_level() -> int:
    level = logging.getLevelName(os.getenv("PIPELINE_LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logger(name: str = "pipeline", log_file: str | None = None) -> logging.Logger:
    """
    Return the pipeline logger, attaching its handlers on first use only.

    Records go both to a UTF-8 log file and to stderr with the same format.

    Args:
        name (str): Logger name shared by every pipeline module.
        log_file (str | None): Log file path. Falls back to ``PIPELINE_LOG_FILE``,
            then ``output/pipeline.log``.

    Returns:
        logging.Logger: The configured logger.
    """
    pipeline_logger = logging.getLogger(name)
    if pipeline_logger.hasHandlers():
        return pipeline_logger

    log_path = Path(log_file or os.getenv("PIPELINE_LOG_FILE", DEFAULT_LOG_FILE))
    log_path.parent.mkdir(parents=True, exist_ok=True)

    pipeline_logger.setLevel(_resolve_level())
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    for handler in (logging.FileHandler(log_path, encoding="utf-8"), logging.StreamHandler()):
        handler.setFormatter(formatter)
        pipeline_logger.addHandler(handler)

    return pipeline_logger


class StageAdapter(logging.LoggerAdapter):
    """Prefix every message with a ``[stage]`` label such as ``[news:ai]``."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['stage']}] {msg}", kwargs


def stage_logger(label: str) -> StageAdapter:
    """Return an adapter over the pipeline logger tagged with ``label``."""
    return StageAdapter(logger, {"stage": label})


logger = setup_logger()
