"""Logging helpers shared by the reconcile actors, the demo and the tests."""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

LOG_LEVEL_ENV = "MEMBERSCALE_LOG_LEVEL"

_TAG = "_memberscale_stream_handler"
_RUNTIME_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

Level = Union[int, str, None]


def resolve_level(level: Level = None) -> int:
    """
    Turn ``level`` into a numeric logging level.

    ``None`` falls back to ``$MEMBERSCALE_LOG_LEVEL`` and then to ``INFO``.
    Level names are case-insensitive; an unknown name raises ``ValueError``.
    """
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    numeric = logging.getLevelName(str(level).strip().upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return numeric


def _stdout_handler(level: int, formatter: logging.Formatter) -> logging.StreamHandler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    setattr(handler, _TAG, True)
    return handler


def _tagged_handler(logger: logging.Logger) -> Optional[logging.Handler]:
    return next((handler for handler in logger.handlers if getattr(handler, _TAG, False)), None)


def configure_runtime_logging(level: Level = None, formatter: Optional[logging.Formatter] = None) -> int:
    """
    Route records of a reconcile actor process to stdout.

    Idempotent: the second call reconfigures the handler installed by the first
    one instead of adding another. Returns the level in effect.
    """
    numeric = resolve_level(level)
    formatter = formatter or logging.Formatter(_RUNTIME_FORMAT)
    root = logging.getLogger()

    handler = _tagged_handler(root)
    if handler is None:
        root.addHandler(_stdout_handler(numeric, formatter))
    else:
        handler.setLevel(numeric)
        handler.setFormatter(formatter)

    # only ever lower the root threshold
    if root.level == logging.NOTSET or root.level > numeric:
        root.setLevel(numeric)
    return numeric


def install_stdout_logger(
    level: Level = None, *, include_timestamp: bool = True, prefix: str = "memberscale"
) -> logging.Logger:
    """演示脚本使用：只给 ``prefix`` logger 挂一个 stdout handler。"""
    numeric = resolve_level(level)
    fmt = "%(levelname)s: %(message)s"
    if include_timestamp:
        fmt = "%(asctime)s " + fmt
    logger = logging.getLogger(prefix)
    logger.handlers.clear()
    logger.addHandler(_stdout_handler(numeric, logging.Formatter(fmt, datefmt="%H:%M:%S")))
    logger.setLevel(numeric)
    return logger


def demote_ray_logging(level: Level = logging.ERROR) -> None:
    """Keep Ray's own start-up chatter out of demo output."""
    numeric = resolve_level(level)
    for name in ("ray", "ray.ray_logger"):
        logging.getLogger(name).setLevel(numeric)
