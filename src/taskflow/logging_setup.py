# src/taskflow/logging_setup.py

from __future__ import annotations

import logging
import sys
from typing import Union


class _ThirdPartyNoiseFilter(logging.Filter):
    """
    Keep taskflow logs at the configured level, but only let other libraries
    (uvicorn access logs, httpx, asyncio) through at WARNING and above.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "taskflow" or record.name.startswith("taskflow."):
            return True
        return record.levelno >= logging.WARNING


def configure_logging(level: Union[str, int] = logging.INFO) -> None:
    """
    Install a single stderr handler on the root logger.

    Safe to call more than once: handlers installed by a previous call are
    replaced, not duplicated.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    for h in list(root.handlers):
        if getattr(h, "_taskflow_handler", False):
            root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(level)
    ch.setFormatter(fmt)
    ch.addFilter(_ThirdPartyNoiseFilter())
    ch._taskflow_handler = True  # type: ignore[attr-defined]
    root.addHandler(ch)

    logging.captureWarnings(True)
