"""Loguru logging configuration.

Components import ``from loguru import logger`` directly; this module only
decides where records go. Call ``setup_logger`` once from an entry point.

Sinks:
    - Console: human-readable, stderr
    - File (optional): rotating, JSON when ``json_logs`` is set
"""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message} | {extra}"


def setup_logger(
    level: str = "INFO",
    log_dir: Path | str | None = None,
    *,
    json_logs: bool = False,
    rotation: str = "10 MB",
    retention: str = "14 days",
) -> None:
    """Replace loguru's default handler with the stakepool sinks.

    Args:
        level: Minimum level for all sinks
        log_dir: Directory for the file sink; no file sink when None
        json_logs: Serialize file records as JSON lines
        rotation: Loguru rotation policy for the file sink
        retention: Loguru retention policy for the file sink
    """
    logger.remove()

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=level,
        colorize=None,
        backtrace=False,
        diagnose=False,
    )

    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        if json_logs:
            logger.add(
                log_path / "stakepool.json",
                level=level,
                serialize=True,
                rotation=rotation,
                retention=retention,
                enqueue=True,
            )
        else:
            logger.add(
                log_path / "stakepool.log",
                format=FILE_FORMAT,
                level=level,
                rotation=rotation,
                retention=retention,
                enqueue=True,
            )

    logger.debug("Logger initialized", level=level, log_dir=str(log_dir), json_logs=json_logs)
