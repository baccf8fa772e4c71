"""
Logging Configuration
loguru sinks for the claim engine: stderr always, an optional rotating file.
Source: https://github.com/Delgan/loguru
"""

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[name]}:{line} - {message}"

FILE_ROTATION = "100 MB"
FILE_RETENTION = "30 days"


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    json_logs: bool = False,
) -> None:
    """
    Replace loguru's default sink with the claim engine's.

    Args:
        level: Minimum level for every sink
        log_file: Rotating, zipped log file; stderr only when None
        json_logs: Serialize records as JSON (production)
    """
    logger.remove()
    logger.configure(extra={"name": "claim_engine"})

    logger.add(
        sys.stderr,
        level=level,
        format="{message}" if json_logs else CONSOLE_FORMAT,
        serialize=json_logs,
        colorize=not json_logs,
    )

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level,
            format=FILE_FORMAT,
            serialize=json_logs,
            rotation=FILE_ROTATION,
            retention=FILE_RETENTION,
            compression="zip",
        )

    logger.info(f"Logging at {level}" + (f", file {log_file}" if log_file else "") + (" (json)" if json_logs else ""))


def get_logger(name: str = "claim_engine"):  # type: ignore[no-untyped-def]
    """Logger tagged with the calling module, e.g. get_logger(__name__)."""
    return logger.bind(name=name)
