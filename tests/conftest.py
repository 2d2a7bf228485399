"""Shared fixtures for ddp_telemetry tests."""

import threading
from typing import Any, Callable, Dict, List, Sequence

import pytest

from ddp_telemetry.config.run_config import TelemetryConfig
from ddp_telemetry.errors import CollectiveFailure
from ddp_telemetry.training.distributed import Reducer
from ddp_telemetry.training.meter_set import TrainMeters
from ddp_telemetry.utils.checkpoint import BlobStore


class ThreadGroup:
    """In-process stand-in for a process group: one thread per rank."""

    def __init__(self, size: int, timeout: float = 10.0):
        self.size = size
        self.barrier = threading.Barrier(size, timeout=timeout)
        self.slots: List[List[float]] = [[] for _ in range(size)]
        self.calls = 0

    def reduce(self, rank: int, values: Sequence[float], op: Callable) -> List[float]:
        self.slots[rank] = [float(v) for v in values]
        self.barrier.wait()
        result = [op(column) for column in zip(*self.slots)]
        if rank == 0:
            self.calls += 1
        self.barrier.wait()
        return result


class ThreadGroupReducer(Reducer):
    def __init__(self, group: ThreadGroup, rank: int):
        self.group = group
        self._rank = rank

    def all_reduce_sum(self, values):
        return self.group.reduce(self._rank, values, sum)

    def all_reduce_max(self, values):
        return self.group.reduce(self._rank, values, max)

    def world_size(self):
        return self.group.size

    def rank(self):
        return self._rank


class FailingReducer(Reducer):
    """Reducer whose collectives always fail, as on a dead peer."""

    def __init__(self, world_size: int = 2):
        self._world_size = world_size

    def all_reduce_sum(self, values):
        raise CollectiveFailure("peer timed out")

    def all_reduce_max(self, values):
        raise CollectiveFailure("peer timed out")

    def world_size(self):
        return self._world_size


class RecordingBlobStore(BlobStore):
    """Keeps bundles in memory and records every put in order."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.blobs: Dict[str, Any] = {}
        self.puts: List[str] = []

    def put(self, path, bundle):
        if self.fail:
            raise OSError("disk full")
        self.puts.append(path)
        self.blobs[path] = bundle

    def get(self, path):
        return self.blobs[path]

    def exists(self, path):
        return path in self.blobs

    def tags(self) -> List[str]:
        return [p.rsplit("_model_", 1)[1][:-len(".bin")] for p in self.puts if "_model_" in p]


def _run_workers(size: int, fn: Callable[[int, Reducer], Any]) -> List[Any]:
    """Run ``fn(rank, reducer)`` on ``size`` threads sharing one ThreadGroup."""
    group = ThreadGroup(size)
    results: List[Any] = [None] * size
    errors: List[BaseException] = []

    def target(rank):
        try:
            results[rank] = fn(rank, ThreadGroupReducer(group, rank))
        except BaseException as e:
            errors.append(e)
            group.barrier.abort()

    threads = [threading.Thread(target=target, args=(rank,)) for rank in range(size)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    if errors:
        raise errors[0]
    return results


@pytest.fixture
def run_workers():
    return _run_workers


@pytest.fixture
def failing_reducer():
    return FailingReducer()


@pytest.fixture
def blob_store():
    return RecordingBlobStore()


@pytest.fixture
def telemetry_config():
    return TelemetryConfig(batch_size=2, sample_rate=16000, extra_fields=("lr",))


@pytest.fixture
def meters():
    """Meters with fixed values: runtime 125s, 0.5s per sample, 4 samples."""
    m = TrainMeters.create(valid_sets=["dev-clean", "dev-other"], timer_names=["runtime", "timer"])
    m.timers["runtime"].set_state([125.0, 0.0])
    m.timers["timer"].set_state([2.0, 4.0])
    m.stats.add(1600, 40, 420, 12, 4)
    m.train.losses["total"].add(1.25, 4)
    m.train.edits["T"].add(3, 40)
    m.valid["dev-clean"].losses["total"].add(1.5, 2)
    m.valid["dev-clean"].edits["T"].add(2, 20)
    m.valid["dev-other"].losses["total"].add(2.0, 2)
    m.valid["dev-other"].edits["T"].add(5, 20)
    return m


@pytest.fixture
def failing_blob_store():
    return RecordingBlobStore(fail=True)


@pytest.fixture
def blob_store_factory():
    return RecordingBlobStore
