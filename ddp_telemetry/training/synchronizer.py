"""
Cross-worker synchronization of training meters.

``MeterSynchronizer.synchronize`` packs the reducible state of every meter in a
``TrainMeters`` set into one flat vector, reduces it with a single summing
all-reduce (plus one max all-reduce when the set holds max-kind meters) and
writes the run-wide totals back. Average-kind meters carry ``[sum, count]``,
so the result is a weighted average that does not depend on how samples were
split between workers.

Every rank must call ``synchronize`` at the same point of each logging
interval with an identically shaped meter set, otherwise the collective
blocks or mixes up values. Meters should be reset after each interval;
synchronizing the same accumulation twice counts it ``world_size`` times.
"""

import logging
from typing import Iterable, List, Tuple

from ddp_telemetry.config.run_config import RUNTIME_TIMER
from ddp_telemetry.errors import CollectiveFailure
from ddp_telemetry.training.distributed import Reducer, default_reducer
from ddp_telemetry.training.meter_set import DatasetMeters, TrainMeters
from ddp_telemetry.training.meters import Meter, MeterKind


logger = logging.getLogger(__name__)

_RUNTIME_NAME = f"timers/{RUNTIME_TIMER}"


class MeterSynchronizer:
    """
    Reduces meters across all workers through an injected ``Reducer``.

    Reducer errors are not caught; a failed collective leaves every meter
    with its local, unsynchronized state and the exception propagates.
    """

    def __init__(self, reducer: Reducer = None):
        self.reducer = reducer if reducer is not None else default_reducer()

    def synchronize(self, meters: TrainMeters) -> None:
        self._reduce(list(meters.iter_meters()))

    def synchronize_dataset(self, meters: DatasetMeters) -> None:
        self._reduce(list(meters.iter_meters()))

    def synchronize_meter(self, meter: Meter) -> None:
        self._reduce([("meter", meter)])

    def _reduce(self, named_meters: List[Tuple[str, Meter]]) -> None:
        if self.reducer.world_size() <= 1:
            return

        summed = [(n, m) for n, m in named_meters if m.kind is not MeterKind.MAX]
        maxed = [(n, m) for n, m in named_meters if m.kind is MeterKind.MAX]

        # All collectives complete before any meter is touched
        summed_packed = _pack(summed)
        maxed_packed = _pack(maxed)
        summed_values = self.reducer.all_reduce_sum(summed_packed)
        maxed_values = self.reducer.all_reduce_max(maxed_packed) if maxed else []
        for sent, received in ((summed_packed, summed_values), (maxed_packed, maxed_values)):
            if len(sent) != len(received):
                raise CollectiveFailure(f"Reduced vector has {len(received)} values, expected {len(sent)}")

        _unpack(summed, summed_values)
        _unpack(maxed, maxed_values)
        logger.debug(f"Synchronized {len(named_meters)} meters across {self.reducer.world_size()} workers")


def _pack(named_meters: Iterable[Tuple[str, Meter]]) -> List[float]:
    flat = []
    for _, meter in named_meters:
        flat.extend(meter.state())
    return flat


def _unpack(named_meters: Iterable[Tuple[str, Meter]], values: List[float]) -> None:
    offset = 0
    for name, meter in named_meters:
        size = meter.state_size()
        # runtime is wall-clock; every rank keeps its own reading
        if name != _RUNTIME_NAME:
            meter.set_state(values[offset:offset + size])
        offset += size
