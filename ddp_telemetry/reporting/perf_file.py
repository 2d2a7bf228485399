"""
Reader for the per-run performance file.

The file starts with a ``# ``-prefixed, tab-separated header of field names
followed by one space-separated row per logging interval. Rows are loaded into
a ``pandas.DataFrame`` with columns named after the header.

Example:
    >>> df = read_perf_file("runs/exp1/001_perf")
    >>> df[["iter", "train-loss-total"]].plot(x="iter")
"""

import logging
from typing import List

import numpy as np
import pandas as pd

from ddp_telemetry.reporting.status import NOT_AVAILABLE


logger = logging.getLogger(__name__)

HEADER_MARKER = "#"


def read_perf_header(path: str) -> List[str]:
    with open(path, "r", encoding="utf-8") as f:
        first = f.readline().rstrip("\n")
    if not first.startswith(HEADER_MARKER):
        raise ValueError(f"Missing '#' header line in performance file {path}")
    return first[len(HEADER_MARKER):].strip().split("\t")


def read_perf_file(path: str) -> pd.DataFrame:
    """
    Load a performance file.

    Args:
        path (str): Path to the ``<run index>_perf`` file.

    Returns:
        pd.DataFrame: One row per logged interval. Numeric columns are parsed,
            ``n/a`` throughput cells become NaN, ``runtime`` and date/time
            columns stay strings.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the header line is missing or a row does not match it.
    """
    columns = read_perf_header(path)

    rows = []
    with open(path, "r", encoding="utf-8") as f:
        next(f)
        for lineno, line in enumerate(f, start=2):
            if not line.strip():
                continue
            cells = line.split()
            if len(cells) != len(columns):
                raise ValueError(
                    f"{path}:{lineno} has {len(cells)} fields, header declares {len(columns)}"
                )
            rows.append(cells)

    df = pd.DataFrame(rows, columns=columns).replace(NOT_AVAILABLE, np.nan)
    for column in df.columns:
        if column in ("runtime", "date", "time"):
            continue
        try:
            df[column] = pd.to_numeric(df[column])
        except (ValueError, TypeError):
            logger.debug(f"Column {column} in {path} kept as text")

    logger.debug(f"Loaded {len(df)} rows with {len(columns)} columns from {path}")
    return df
