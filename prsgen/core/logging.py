"""Logging helpers for the command-line entry points."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

from prsgen.config import get_config


def resolve_level(verbose: bool = False, default: int = logging.INFO) -> int:
    """DEBUG when asked for or when ``verbose_logging`` is configured, else ``default``."""
    if verbose or get_config().verbose_logging:
        return logging.DEBUG
    return default


def configure_logging(level: Optional[int] = None, log_path: Optional[Union[str, Path]] = None) -> None:
    """Configure default logging if no handlers are present."""
    root = logging.getLogger()
    if root.handlers:
        return
    if level is None:
        level = resolve_level()
    handlers: list = [logging.StreamHandler()]
    if log_path:
        path = Path(log_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )
