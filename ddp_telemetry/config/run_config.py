"""
Run Configuration Module

This module contains the configuration surface read by the telemetry and
checkpointing code:
- Reserved meter names and config keys
- Audio front-end kinds used for throughput conversion
- Batch size, sample rate and frame stride settings
- Snapshot cadence ("save every interval" vs "overwrite last")

Configuration can be built in code or loaded from an external JSON file.
"""

import json
import logging
from enum import Enum
from typing import Any, Dict, Iterable, NamedTuple, Optional, Tuple


logger = logging.getLogger(__name__)


# Keys read from the per-call config mapping
EPOCH_KEY = "epoch"
ITERATION_KEY = "iteration"

# Reserved meter names
RUNTIME_TIMER = "runtime"
SAMPLE_TIMER = "timer"
TARGET_EDIT = "T"

# Slot order of the stats vector meter
STATS_SLOTS = ("input_total", "target_total", "target_sq_total", "target_max", "samples")
STATS_INPUT_TOTAL = 0
STATS_TARGET_TOTAL = 1
STATS_TARGET_SQ_TOTAL = 2
STATS_TARGET_MAX = 3
STATS_SAMPLES = 4


class FrontEnd(Enum):
    """Audio feature front-end. Spectral front-ends count frames, raw counts samples."""

    RAW = "raw"
    POW = "pow"
    MFCC = "mfcc"
    MFSC = "mfsc"

    @property
    def is_spectral(self) -> bool:
        return self in (FrontEnd.POW, FrontEnd.MFCC, FrontEnd.MFSC)


class RunContext(NamedTuple):
    """Immutable identity of a run, fixed when the controller is built."""

    run_index: int
    run_path: str
    is_master: bool
    log_on_epoch: bool


class TelemetryConfig:
    """
    Process-wide settings consumed by the status formatter and the
    checkpoint controller.

    Attributes:
        batch_size (int): Per-worker batch size
        sample_rate (int): Audio sample rate in Hz, used for the raw front-end
        frame_stride_ms (float): Frame stride in milliseconds, used for spectral front-ends
        front_end (FrontEnd): Feature front-end kind
        save_every_interval (bool): Save a step-tagged snapshot every interval
            instead of overwriting the "last" snapshot
        extra_fields (Tuple[str, ...]): Scalar fields (e.g. learning rate) that
            appear in every status line, in order
        perf_include_date (bool): Prefix performance rows and header with date/time
    """

    def __init__(
        self,
        batch_size: int = 1,
        sample_rate: int = 16000,
        frame_stride_ms: float = 10,
        front_end: FrontEnd = FrontEnd.RAW,
        save_every_interval: bool = False,
        extra_fields: Iterable[str] = ("lr",),
        perf_include_date: bool = False
    ):
        self.batch_size = batch_size
        self.sample_rate = sample_rate
        self.frame_stride_ms = frame_stride_ms
        self.front_end = FrontEnd(front_end)
        self.save_every_interval = save_every_interval
        self.extra_fields: Tuple[str, ...] = tuple(extra_fields)
        self.perf_include_date = perf_include_date

    def validate(self) -> None:
        """Validates the configuration parameters."""
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.frame_stride_ms <= 0:
            raise ValueError(f"frame_stride_ms must be positive, got {self.frame_stride_ms}")
        if len(set(self.extra_fields)) != len(self.extra_fields):
            raise ValueError(f"Duplicate names in extra_fields: {self.extra_fields}")

    def to_dict(self) -> Dict[str, Any]:
        """Returns configuration as a dictionary."""
        return {
            'batch_size': self.batch_size,
            'sample_rate': self.sample_rate,
            'frame_stride_ms': self.frame_stride_ms,
            'front_end': self.front_end.value,
            'save_every_interval': self.save_every_interval,
            'extra_fields': list(self.extra_fields),
            'perf_include_date': self.perf_include_date,
        }

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "TelemetryConfig":
        unknown = set(values) - set(cls().to_dict())
        if unknown:
            raise KeyError(f"Unknown telemetry config keys: {sorted(unknown)}")
        config = cls(**values)
        config.validate()
        return config

    def __repr__(self):
        return f"TelemetryConfig({self.to_dict()})"


def load_external_config(config_path: Optional[str] = "telemetry.json") -> TelemetryConfig:
    """
    Load telemetry configuration from a JSON file.

    Args:
        config_path (str): Path to the configuration JSON file

    Returns:
        TelemetryConfig: Parsed configuration, or defaults when the file is missing

    Raises:
        KeyError: If the file contains unknown keys
        ValueError: If a value fails validation or the JSON is malformed
    """
    try:
        with open(config_path, "r") as f:
            values = json.load(f)
    except FileNotFoundError:
        logger.warning(f"{config_path} not found. Using default telemetry config.")
        return TelemetryConfig()

    return TelemetryConfig.from_dict(values)
