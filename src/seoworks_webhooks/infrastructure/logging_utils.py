"""Logging setup and tracing helpers."""

from __future__ import annotations

import sys
import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from seoworks_webhooks.config import Settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level> | <yellow>{extra}</yellow>"
)


def configure_logging(settings: Settings) -> None:
    """Replace loguru's default sink with the service's stderr and file sinks."""
    logger.remove()
    if sys.stderr:
        logger.add(sys.stderr, level=settings.log_level, format=LOG_FORMAT)
    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.log_file,
            level=settings.log_level,
            rotation="10 MB",
            retention="7 days",
            encoding="utf-8",
            backtrace=True,
            diagnose=False,
            serialize=True,
        )


@contextmanager
def log_step(step_name: str):
    """Log the start, duration and failure of a unit of work.

    Usage:
        with log_step("Processing webhook"):
            ...
    """
    logger.info(f"▶ {step_name}")
    start_time = time.perf_counter()

    try:
        yield
        elapsed = time.perf_counter() - start_time
        logger.info(f"✓ {step_name} completed in {elapsed:.3f}s")
    except Exception as e:
        elapsed = time.perf_counter() - start_time
        logger.error(
            f"✗ {step_name} failed after {elapsed:.3f}s: {e.__class__.__name__}: {e}"
        )
        raise
