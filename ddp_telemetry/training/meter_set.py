"""
Grouped training meters.

A ``TrainMeters`` instance is created by the training loop once per run and
mutated in place between logging calls. It holds named timers, a stats vector
meter, one ``DatasetMeters`` group for the training split and one per
validation subset.
"""

from typing import Dict, Iterable, Iterator, Optional, Sequence, Tuple

from ddp_telemetry.config.run_config import RUNTIME_TIMER, SAMPLE_TIMER, STATS_SLOTS, TARGET_EDIT
from ddp_telemetry.training.meters import AverageValueMeter, CountMeter, EditDistanceMeter, Meter, TimeMeter


DEFAULT_TIMERS = (RUNTIME_TIMER, SAMPLE_TIMER, "sample", "fwd", "crit", "bwd", "optim")
DEFAULT_LOSSES = ("total",)
DEFAULT_EDITS = (TARGET_EDIT,)


class DatasetMeters:
    """Loss and edit-distance meters for one dataset split."""

    def __init__(
        self,
        loss_names: Sequence[str] = DEFAULT_LOSSES,
        edit_names: Sequence[str] = DEFAULT_EDITS
    ):
        self.losses: Dict[str, AverageValueMeter] = {name: AverageValueMeter() for name in loss_names}
        self.edits: Dict[str, EditDistanceMeter] = {name: EditDistanceMeter() for name in edit_names}

    def iter_meters(self, prefix: str = "") -> Iterator[Tuple[str, Meter]]:
        for name, meter in self.edits.items():
            yield f"{prefix}edits/{name}", meter
        for name, meter in self.losses.items():
            yield f"{prefix}losses/{name}", meter


class TrainMeters:
    """
    All meters of a training run.

    Attributes:
        timers (Dict[str, TimeMeter]): Named timers; ``runtime`` is total run time
        stats (CountMeter): Sample statistics in ``STATS_SLOTS`` order
        train (DatasetMeters): Meters for the training split
        valid (Dict[str, DatasetMeters]): Meters per validation subset
    """

    def __init__(
        self,
        timers: Optional[Dict[str, TimeMeter]] = None,
        train: Optional[DatasetMeters] = None,
        valid: Optional[Dict[str, DatasetMeters]] = None
    ):
        self.timers: Dict[str, TimeMeter] = timers if timers is not None else {RUNTIME_TIMER: TimeMeter()}
        self.stats = CountMeter(len(STATS_SLOTS))
        self.train = train if train is not None else DatasetMeters()
        self.valid: Dict[str, DatasetMeters] = valid if valid is not None else {}

    @classmethod
    def create(
        cls,
        valid_sets: Iterable[str] = (),
        loss_names: Sequence[str] = DEFAULT_LOSSES,
        edit_names: Sequence[str] = DEFAULT_EDITS,
        timer_names: Sequence[str] = DEFAULT_TIMERS
    ) -> "TrainMeters":
        """
        Build the standard meter layout.

        Args:
            valid_sets (Iterable[str]): Validation subset names, in display order
            loss_names (Sequence[str]): Loss meters per dataset group
            edit_names (Sequence[str]): Edit-distance kinds per dataset group
            timer_names (Sequence[str]): Timer names; ``runtime`` is always added first

        Returns:
            TrainMeters: Fresh meters with zero observations
        """
        timers = {RUNTIME_TIMER: TimeMeter()}
        for name in timer_names:
            if name != RUNTIME_TIMER:
                timers[name] = TimeMeter(use_unit=True)
        return cls(
            timers=timers,
            train=DatasetMeters(loss_names, edit_names),
            valid={name: DatasetMeters(loss_names, edit_names) for name in valid_sets},
        )

    def iter_meters(self) -> Iterator[Tuple[str, Meter]]:
        """Yields every meter with a qualified name in a fixed traversal order."""
        yield "stats", self.stats
        for name, meter in self.timers.items():
            yield f"timers/{name}", meter
        yield from self.train.iter_meters("train/")
        for name, group in self.valid.items():
            yield from group.iter_meters(f"valid/{name}/")


def reset_time_stat_meters(meters: TrainMeters) -> None:
    for meter in meters.timers.values():
        meter.reset()
    meters.stats.reset()


def stop_time_meters(meters: TrainMeters) -> None:
    """Freeze every timer, e.g. to keep logging overhead out of throughput."""
    for meter in meters.timers.values():
        meter.stop()


def resume_time_meters(meters: TrainMeters) -> None:
    for meter in meters.timers.values():
        meter.resume()


def reset_dataset_meters(meters: DatasetMeters) -> None:
    for meter in meters.edits.values():
        meter.reset()
    for meter in meters.losses.values():
        meter.reset()
