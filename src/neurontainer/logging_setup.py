"""
Logging setup for the neurontainer backend.

Console output always; optionally a full debug log and an error-only log
next to it, named with the process start time.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def log_file_names(started_at: Optional[datetime] = None) -> List[str]:
    """(full log, error log) file names for a given start time"""
    stamp = (started_at or datetime.now()).strftime("%Y-%m-%d_%H-%M-%S")
    return [
        f"neurontainer-full-log-{stamp}.log",
        f"neurontainer-error-log-{stamp}.log",
    ]


def configure_logging(
    level: Union[str, int] = "INFO",
    file_logs: bool = False,
    log_dir: Union[str, Path] = ".",
    started_at: Optional[datetime] = None,
) -> List[Path]:
    """
    Configure the root logger.

    Returns:
        Paths of the log files created (empty when file_logs is False)
    """
    logging.basicConfig(level=level, format=LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)

    if not file_logs:
        return []

    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    full_name, error_name = log_file_names(started_at)

    full_handler = logging.FileHandler(log_dir / full_name)
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    error_handler = logging.FileHandler(log_dir / error_name)
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root.addHandler(full_handler)
    root.addHandler(error_handler)
    return [log_dir / full_name, log_dir / error_name]
