"""
Collective reduction primitives for metric synchronization.

The synchronizer only needs a summing all-reduce, a max all-reduce and the
world size. This module provides two implementations of that interface:

- LocalReducer: single-process identity, world size 1
- TorchDistributedReducer: ``torch.distributed.all_reduce`` on a float64 tensor

Both calls block until every rank has arrived. A failure in the transport is
re-raised as ``CollectiveFailure``.

Example:
    >>> import torch.distributed as dist
    >>> from ddp_telemetry.training.distributed import default_reducer
    >>>
    >>> reducer = default_reducer()
    >>> totals = reducer.all_reduce_sum([10.0, 5.0, 1.0])
    >>> print(f"Reduced over {reducer.world_size()} workers: {totals}")
"""

from typing import List, Optional, Sequence

import torch
import torch.distributed as dist

from ddp_telemetry.errors import CollectiveFailure


class Reducer:
    """Interface of the injected all-reduce primitive."""

    def all_reduce_sum(self, values: Sequence[float]) -> List[float]:
        raise NotImplementedError

    def all_reduce_max(self, values: Sequence[float]) -> List[float]:
        raise NotImplementedError

    def world_size(self) -> int:
        raise NotImplementedError

    def rank(self) -> int:
        return 0


class LocalReducer(Reducer):
    """Reducer for single-process runs."""

    def all_reduce_sum(self, values: Sequence[float]) -> List[float]:
        return [float(v) for v in values]

    def all_reduce_max(self, values: Sequence[float]) -> List[float]:
        return [float(v) for v in values]

    def world_size(self) -> int:
        return 1


class TorchDistributedReducer(Reducer):
    """
    Reducer backed by an initialized ``torch.distributed`` process group.

    Attributes:
        group: Process group to reduce over, None for the default group
        device (torch.device): Device holding the reduction buffer. NCCL needs
            a CUDA device; GLOO works on CPU.
    """

    def __init__(self, group=None, device: Optional[torch.device] = None):
        if not dist.is_available() or not dist.is_initialized():
            raise RuntimeError("torch.distributed process group is not initialized")
        self.group = group
        if device is None:
            backend = dist.get_backend(group)
            device = torch.device("cuda", torch.cuda.current_device()) if backend == "nccl" else torch.device("cpu")
        self.device = device

    def _all_reduce(self, values: Sequence[float], op) -> List[float]:
        if len(values) == 0:
            return []
        tensor = torch.tensor(list(values), dtype=torch.float64, device=self.device)
        try:
            with torch.no_grad():
                dist.all_reduce(tensor, op=op, group=self.group)
        except Exception as e:
            raise CollectiveFailure(f"all_reduce of {len(values)} values failed: {e}") from e
        return tensor.cpu().tolist()

    def all_reduce_sum(self, values: Sequence[float]) -> List[float]:
        return self._all_reduce(values, dist.ReduceOp.SUM)

    def all_reduce_max(self, values: Sequence[float]) -> List[float]:
        return self._all_reduce(values, dist.ReduceOp.MAX)

    def world_size(self) -> int:
        return dist.get_world_size(self.group)

    def rank(self) -> int:
        return dist.get_rank(self.group)


def is_distributed_initialized() -> bool:
    return dist.is_available() and dist.is_initialized()


def get_rank() -> int:
    """
    Get the rank of the current process in distributed training.

    Returns:
        int: Current process rank, or 0 if not in distributed mode.
    """
    if is_distributed_initialized():
        return dist.get_rank()
    return 0


def get_world_size() -> int:
    """
    Get the total number of processes in distributed training.

    Returns:
        int: Total number of processes, or 1 if not in distributed mode.
    """
    if is_distributed_initialized():
        return dist.get_world_size()
    return 1


def is_master() -> bool:
    return get_rank() == 0


def default_reducer() -> Reducer:
    """Torch reducer when a process group is up, otherwise the local identity."""
    if is_distributed_initialized():
        return TorchDistributedReducer()
    return LocalReducer()
