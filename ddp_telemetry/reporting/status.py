"""
Status line rendering for training runs.

A status line is built from a fixed, ordered sequence of fields. The order is
relied on by tools that parse the performance file, so new fields must only
ever be appended to a group, never reordered:

1. ``date``, ``time`` (optional)
2. ``epoch`` or ``iter``
3. extra scalar fields such as the learning rate
4. ``runtime`` as HH:MM:SS
5. every other timer in milliseconds
6. losses then edit rates for the train split, then each validation subset
7. average input/target size and max target size
8. processed audio hours and throughput

Each field is rendered through a ``FieldSpec`` (printf-style format plus an
optional header suffix), so the verbose log and the performance file always
share the same precision.

Example:
    >>> formatter = StatusFormatter(context, TelemetryConfig(batch_size=8), world_size=4)
    >>> line = formatter.render(meters, 12, {"lr": 0.001}, separator=" ")
    >>> print(line.header)
    >>> print(line.status)
"""

import datetime
import logging
from typing import Dict, List, Mapping, NamedTuple, Optional

from ddp_telemetry.config.run_config import (
    RUNTIME_TIMER, SAMPLE_TIMER, STATS_INPUT_TOTAL, STATS_SAMPLES, STATS_TARGET_MAX,
    STATS_TARGET_TOTAL, RunContext, TelemetryConfig
)
from ddp_telemetry.training.meter_set import DatasetMeters, TrainMeters


logger = logging.getLogger(__name__)

NOT_AVAILABLE = "n/a"


class FieldSpec(NamedTuple):
    """Rendering rule for one kind of status field."""

    fmt: str
    unit_suffix: str = ""

    def header(self, name: str) -> str:
        return name + self.unit_suffix

    def render(self, value) -> str:
        return self.fmt % value


STEP_FIELD = FieldSpec("%8d")
EXTRA_FIELD = FieldSpec("%4.6f")
TIMER_FIELD = FieldSpec("%.2f", "(ms)")
LOSS_FIELD = FieldSpec("%10.5f")
EDIT_FIELD = FieldSpec("%5.2f", "ER")
SIZE_FIELD = FieldSpec("%03d")
HOURS_FIELD = FieldSpec("%7.2f")
THROUGHPUT_FIELD = FieldSpec("%.2f")


class StatusLine(NamedTuple):
    header: str
    status: str


class _LineBuilder:
    def __init__(self, verbose: bool):
        self.verbose = verbose
        self.names: List[str] = []
        self.values: List[str] = []

    def add(self, name: str, value: str) -> None:
        if self.verbose:
            value = f"{name}: {value}"
        self.names.append(name)
        self.values.append(value)

    def build(self, separator: str) -> StatusLine:
        return StatusLine(separator.join(self.names), separator.join(self.values))


def format_duration(seconds: float) -> str:
    """Render seconds as HH:MM:SS; hours are not wrapped at 24."""
    total = int(seconds)
    return "%02d:%02d:%02d" % (total // 3600, (total // 60) % 60, total % 60)


class StatusFormatter:
    """
    Renders a ``TrainMeters`` snapshot into a header and a status row.

    The formatter reads meters but never mutates them. Process-wide inputs
    (batch size, sample rate, front-end, world size) are fixed at construction.
    """

    def __init__(self, context: RunContext, config: TelemetryConfig, world_size: int = 1):
        self.context = context
        self.config = config
        self.world_size = max(int(world_size), 1)
        self._ignored_fields = set()

    def extra_field_names(self, log_fields: Optional[Mapping[str, float]]) -> List[str]:
        """Declared extra fields. Undeclared keys are dropped with a one-time warning."""
        names = list(self.config.extra_fields)
        for key in (log_fields or {}):
            if key not in names and key not in self._ignored_fields:
                self._ignored_fields.add(key)
                logger.warning(f"Ignoring undeclared log field '{key}'; add it to extra_fields to log it")
        return names

    def render(
        self,
        meters: TrainMeters,
        step: int,
        log_fields: Optional[Mapping[str, float]] = None,
        verbose: bool = False,
        include_date: bool = False,
        separator: str = " ",
        header_only: bool = False,
        now: Optional[datetime.datetime] = None
    ) -> StatusLine:
        """
        Render the header and the status row in one pass.

        Args:
            meters (TrainMeters): Synchronized meters to read
            step (int): Epoch or iteration counter, depending on the run cadence
            log_fields (Mapping[str, float]): Extra scalar values keyed by field name
            verbose (bool): Render values as ``name: value``
            include_date (bool): Prepend date and time fields
            separator (str): Field separator for both strings
            header_only (bool): Leave extra scalar cells empty, so a header can
                be produced before any value exists
            now (datetime): Timestamp for the date fields, defaults to the current time

        Returns:
            StatusLine: ``(header, status)``

        Raises:
            KeyError: If a declared extra field has no value and ``header_only`` is False
        """
        log_fields = log_fields or {}
        line = _LineBuilder(verbose)

        if include_date:
            now = now or datetime.datetime.now()
            line.add("date", now.strftime("%Y-%m-%d"))
            line.add("time", now.strftime("%H:%M:%S"))

        line.add("epoch" if self.context.log_on_epoch else "iter", STEP_FIELD.render(step))

        for name in self.extra_field_names(log_fields):
            line.add(EXTRA_FIELD.header(name), "" if header_only else EXTRA_FIELD.render(log_fields[name]))

        runtime = meters.timers.get(RUNTIME_TIMER)
        line.add(RUNTIME_TIMER, format_duration(runtime.value() if runtime is not None else 0))

        for name, timer in meters.timers.items():
            if name == RUNTIME_TIMER:
                continue
            line.add(TIMER_FIELD.header(name), TIMER_FIELD.render(timer.value() * 1000))

        self._add_dataset(line, meters.train, "train")
        for name, group in meters.valid.items():
            self._add_dataset(line, group, name)

        stats = meters.stats.value()
        samples = max(int(stats[STATS_SAMPLES]), 1)
        input_total = stats[STATS_INPUT_TOTAL]
        line.add("avg-isz", SIZE_FIELD.render(int(input_total) // samples))
        line.add("avg-tsz", SIZE_FIELD.render(int(stats[STATS_TARGET_TOTAL]) // samples))
        line.add("max-tsz", SIZE_FIELD.render(stats[STATS_TARGET_MAX]))

        audio_sec = self.processed_audio_seconds(input_total)
        time_taken = self.time_taken_seconds(meters, samples)
        line.add("hrs", HOURS_FIELD.render(audio_sec / 3600.0))
        line.add(
            "thrpt(sec/sec)",
            THROUGHPUT_FIELD.render(audio_sec / time_taken) if time_taken > 0.0 else NOT_AVAILABLE
        )
        return line.build(separator)

    def format(
        self,
        meters: TrainMeters,
        step: int,
        log_fields: Optional[Mapping[str, float]] = None,
        verbose: bool = False,
        include_date: bool = False,
        separator: str = " ",
        header_only: bool = False
    ) -> str:
        """Like ``render`` but returns the header when ``header_only``, else the status row."""
        line = self.render(meters, step, log_fields, verbose, include_date, separator, header_only)
        return line.header if header_only else line.status

    def processed_audio_seconds(self, input_total: float) -> float:
        # TODO: confirm frame vs sample units per front-end with the data pipeline owners
        audio_sec = input_total * self.config.batch_size
        if self.config.front_end.is_spectral:
            return audio_sec * self.config.frame_stride_ms / 1000.0
        return audio_sec / self.config.sample_rate

    def time_taken_seconds(self, meters: TrainMeters, samples: int) -> float:
        timer = meters.timers.get(SAMPLE_TIMER)
        if timer is None:
            return 0.0
        return timer.value() * samples / self.world_size

    @staticmethod
    def _add_dataset(line: _LineBuilder, meters: DatasetMeters, tag: str) -> None:
        for name, meter in meters.losses.items():
            line.add(f"{tag}-loss-{name}", LOSS_FIELD.render(meter.value()))
        for name, meter in meters.edits.items():
            line.add(EDIT_FIELD.header(f"{tag}-{name}"), EDIT_FIELD.render(meter.value()[0]))


def status_fields(line: StatusLine, separator: str) -> Dict[str, str]:
    """Split a rendered non-verbose line back into ``{name: value}``."""
    return dict(zip(line.header.split(separator), line.status.split(separator)))
