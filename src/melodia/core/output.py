"""
Logging setup using Loguru.
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}"


def setup_loguru(
    log_file: Optional[Path],
    level: str = "INFO",
    max_file_size_mb: int = 10,
    backup_count: int = 5,
    console_output: bool = False,
) -> None:
    """
    Configure loguru sinks.

    Args:
        log_file: Path to log file (None for no file sink)
        level: Minimum level (DEBUG, INFO, WARNING, ERROR)
        max_file_size_mb: Rotate the file after this size
        backup_count: Number of rotated files to keep
        console_output: Also log to stderr
    """
    # Remove default handler
    logger.remove()

    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation=f"{max_file_size_mb} MB",
            retention=backup_count,
            level=level,
            format=LOG_FORMAT,
            enqueue=False,  # Synchronous writes (thread-safe but blocking)
        )

    if console_output or log_file is None:
        logger.add(sys.stderr, level=level, format=LOG_FORMAT)

    logger.info(f"Loguru initialized: {log_file or 'stderr'} (level={level})")
