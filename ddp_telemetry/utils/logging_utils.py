"""
Logging setup for multi-worker runs.

Every rank logs through the standard ``logging`` module. On non-master ranks a
``MasterOnlyFilter`` drops records below ERROR, so status lines appear once
while failures on any worker are still visible.
"""

import logging
import sys
from typing import Optional


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [rank %(rank)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class MasterOnlyFilter(logging.Filter):
    """Tags records with the rank and passes only master or error records."""

    def __init__(self, rank: int = 0):
        super().__init__()
        self.rank = rank

    def filter(self, record):
        record.rank = self.rank
        if self.rank == 0:
            return True
        return record.levelno >= logging.ERROR


def setup_logging(log_level: str = "INFO", rank: int = 0, stream=None) -> logging.Handler:
    """
    Setup logging configuration for the current rank.

    Args:
        log_level (str): Level name, e.g. "INFO" or "DEBUG".
        rank (int): Rank of this process; 0 is the master.
        stream: Output stream, defaults to stdout.

    Returns:
        logging.Handler: The installed handler.
    """
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(MasterOnlyFilter(rank))

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper()))
    return handler


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "ddp_telemetry")
