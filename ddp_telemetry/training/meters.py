"""
Accumulating meters for training telemetry.

Each meter keeps a running accumulation and knows how it must be reduced
across workers. The reducible part of a meter is exposed as a flat list of
floats through ``state()`` / ``set_state()`` so that a synchronizer can pack
many meters into a single all-reduce call.

Example:
    >>> loss = AverageValueMeter()
    >>> loss.add(2.0, n=3)
    >>> loss.add(4.0)
    >>> loss.value()
    2.5
"""

import time
from enum import Enum
from typing import List, Sequence

import numpy as np


class MeterKind(Enum):
    """How a meter is reduced across workers."""

    SUM = "sum"
    AVERAGE = "average"
    MAX = "max"
    TIME = "time"


class Meter:
    """Base class for all meters."""

    kind = MeterKind.SUM

    def reset(self) -> None:
        raise NotImplementedError

    def value(self):
        raise NotImplementedError

    def state(self) -> List[float]:
        raise NotImplementedError

    def set_state(self, values: Sequence[float]) -> None:
        raise NotImplementedError

    def state_size(self) -> int:
        return len(self.state())

    def __repr__(self):
        return f"{type(self).__name__}(value={self.value()!r})"


class AverageValueMeter(Meter):
    """Weighted running average of a scalar, e.g. a loss."""

    kind = MeterKind.AVERAGE

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.sum = 0.0
        self.count = 0.0

    def add(self, value: float, n: float = 1) -> None:
        self.sum += float(value) * n
        self.count += n

    def value(self) -> float:
        if self.count <= 0:
            return 0.0
        return self.sum / self.count

    def state(self) -> List[float]:
        return [self.sum, self.count]

    def set_state(self, values: Sequence[float]) -> None:
        self.sum, self.count = float(values[0]), float(values[1])


class EditDistanceMeter(Meter):
    """
    Accumulates edit distances against reference lengths.

    ``value()`` returns ``[error rate %, reference length, deletion %,
    insertion %, substitution %]``; all zeros before the first ``add``.
    """

    kind = MeterKind.AVERAGE

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.n_edits = 0.0
        self.n_reference = 0.0
        self.n_deletions = 0.0
        self.n_insertions = 0.0
        self.n_substitutions = 0.0

    def add(
        self,
        n_edits: float,
        ref_length: float,
        n_deletions: float = 0,
        n_insertions: float = 0,
        n_substitutions: float = 0
    ) -> None:
        self.n_edits += n_edits
        self.n_reference += ref_length
        self.n_deletions += n_deletions
        self.n_insertions += n_insertions
        self.n_substitutions += n_substitutions

    def add_rate(self, rate: float, n: float = 1) -> None:
        """Add an already computed error rate (percent) over ``n`` reference units."""
        self.add(rate * n / 100.0, n)

    def value(self) -> np.ndarray:
        if self.n_reference <= 0:
            return np.zeros(5)
        scale = 100.0 / self.n_reference
        return np.array([
            self.n_edits * scale,
            self.n_reference,
            self.n_deletions * scale,
            self.n_insertions * scale,
            self.n_substitutions * scale,
        ])

    def state(self) -> List[float]:
        return [self.n_edits, self.n_reference, self.n_deletions, self.n_insertions, self.n_substitutions]

    def set_state(self, values: Sequence[float]) -> None:
        (self.n_edits, self.n_reference, self.n_deletions,
         self.n_insertions, self.n_substitutions) = (float(v) for v in values)


class CountMeter(Meter):
    """Fixed-size vector of running sums."""

    kind = MeterKind.SUM

    def __init__(self, num: int):
        self.num = num
        self.reset()

    def reset(self) -> None:
        self.counts = np.zeros(self.num, dtype=np.float64)

    def add(self, *values: float) -> None:
        if len(values) == 1 and np.ndim(values[0]) == 1:
            values = tuple(values[0])
        if len(values) != self.num:
            raise ValueError(f"CountMeter expects {self.num} values, got {len(values)}")
        self.counts += np.asarray(values, dtype=np.float64)

    def value(self) -> np.ndarray:
        return self.counts.copy()

    def state(self) -> List[float]:
        return self.counts.tolist()

    def set_state(self, values: Sequence[float]) -> None:
        self.counts = np.asarray(values, dtype=np.float64).copy()


class MaxMeter(Meter):
    """Largest value seen so far."""

    kind = MeterKind.MAX

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.max = None

    def add(self, value: float) -> None:
        value = float(value)
        if self.max is None or value > self.max:
            self.max = value

    def value(self) -> float:
        return 0.0 if self.max is None else self.max

    def state(self) -> List[float]:
        # -inf keeps empty meters neutral under a max reduction
        return [-np.inf if self.max is None else self.max]

    def set_state(self, values: Sequence[float]) -> None:
        self.max = None if np.isneginf(values[0]) else float(values[0])


class TimeMeter(Meter):
    """
    Wall-clock timer.

    The meter is created stopped unless ``start`` is True. ``stop()`` freezes
    the accumulated time without clearing it; ``resume()`` continues. With
    ``use_unit`` the value is seconds per unit counted through ``inc_unit``.
    """

    kind = MeterKind.TIME

    def __init__(self, use_unit: bool = False, start: bool = False):
        self.use_unit = use_unit
        self.reset()
        if start:
            self.resume()

    def reset(self) -> None:
        self.elapsed = 0.0
        self.units = 0.0
        self._start = None

    def resume(self) -> None:
        if self._start is None:
            self._start = time.perf_counter()

    def stop(self) -> None:
        if self._start is not None:
            self.elapsed += time.perf_counter() - self._start
            self._start = None

    @property
    def running(self) -> bool:
        return self._start is not None

    def inc_unit(self, n: float = 1) -> None:
        self.units += n

    def seconds(self) -> float:
        """Total accumulated seconds, including the currently running span."""
        if self._start is None:
            return self.elapsed
        return self.elapsed + time.perf_counter() - self._start

    def value(self) -> float:
        total = self.seconds()
        if not self.use_unit:
            return total
        return total / self.units if self.units > 0 else 0.0

    def state(self) -> List[float]:
        return [self.seconds(), self.units]

    def set_state(self, values: Sequence[float]) -> None:
        self.elapsed, self.units = float(values[0]), float(values[1])
        if self._start is not None:
            self._start = time.perf_counter()
