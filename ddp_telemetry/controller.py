"""
Per-interval logging and checkpoint selection.

Once per logging interval the training loop calls
``controller.log_and_checkpoint(meters, config, model_objects, log_fields)``
on every rank. The controller then:

1. synchronizes all meters across workers (every rank participates),
2. on the master, appends a verbose line to the run log and a compact row to
   the performance file,
3. on the master, saves the rolling "last" snapshot (or a step-tagged one)
   and an extra snapshot for every validation subset whose target error
   reached a new minimum.

Master and worker behaviour live in two classes selected at construction by
``create_checkpoint_controller``; the worker variant only takes part in the
synchronization and never touches the filesystem.

Example:
    >>> controller = create_checkpoint_controller(
    ...     run_index=1, run_path="runs/exp1", is_master=get_rank() == 0,
    ...     log_on_epoch=True, config=TelemetryConfig(batch_size=8),
    ... )
    >>> controller.write_header(meters)
    >>> for epoch in range(1, num_epochs + 1):
    ...     train_one_epoch(meters)
    ...     stop_time_meters(meters)
    ...     controller.log_and_checkpoint(meters, {"epoch": str(epoch)}, models, {"lr": lr})
    ...     reset_time_stat_meters(meters)
    ...     resume_time_meters(meters)
"""

import contextlib
import logging
import os
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ddp_telemetry.config.run_config import (
    EPOCH_KEY, ITERATION_KEY, TARGET_EDIT, RunContext, TelemetryConfig
)
from ddp_telemetry.errors import FatalIOError, RecoverableLogError
from ddp_telemetry.reporting.status import StatusFormatter
from ddp_telemetry.training.distributed import Reducer, default_reducer
from ddp_telemetry.training.meter_set import TrainMeters
from ddp_telemetry.training.synchronizer import MeterSynchronizer
from ddp_telemetry.utils import checkpoint
from ddp_telemetry.utils.checkpoint import BlobStore, FileBlobStore


logger = logging.getLogger(__name__)

LAST_TAG = "last"
LOG_SEPARATOR = " | "
PERF_SEPARATOR = " "
PERF_HEADER_SEPARATOR = "\t"


class ControllerState(Enum):
    IDLE = "idle"
    SYNCHRONIZING = "synchronizing"
    FORMATTING = "formatting"
    PERSISTING = "persisting"


def select_improved(
    best: Mapping[str, float],
    errors: Mapping[str, float]
) -> Tuple[Dict[str, float], List[str]]:
    """
    Apply the best-so-far policy to one round of validation errors.

    Args:
        best (Mapping[str, float]): Lowest error recorded so far per subset.
        errors (Mapping[str, float]): Errors observed this interval per subset.

    Returns:
        Tuple[Dict[str, float], List[str]]: The updated minima and the subsets
            that were new or strictly improved, in ``errors`` order.
    """
    new_best = dict(best)
    improved = []
    for name, error in errors.items():
        if name not in new_best or error < new_best[name]:
            new_best[name] = error
            improved.append(name)
    return new_best, improved


class BestMetricTracker:
    """Lowest validation error per subset over the lifetime of a run."""

    def __init__(self):
        self._best: Dict[str, float] = {}

    def update(self, subset: str, error: float) -> bool:
        self._best, improved = select_improved(self._best, {subset: error})
        return bool(improved)

    def update_all(self, errors: Mapping[str, float]) -> List[str]:
        self._best, improved = select_improved(self._best, errors)
        return improved

    def best(self, subset: str) -> Optional[float]:
        return self._best.get(subset)

    def as_dict(self) -> Dict[str, float]:
        return dict(self._best)

    def state_dict(self) -> Dict[str, float]:
        return self.as_dict()

    def load_state_dict(self, state: Mapping[str, float]) -> None:
        self._best = {str(k): float(v) for k, v in state.items()}


def step_tag(step: int, log_on_epoch: bool) -> str:
    return "epoch_%04d" % step if log_on_epoch else "iter_%08d" % step


def validation_errors(meters: TrainMeters) -> Dict[str, float]:
    """Target-unit error rate per validation subset."""
    return {name: float(group.edits[TARGET_EDIT].value()[0]) for name, group in meters.valid.items()}


class CheckpointController:
    """
    Shared core of the master and worker controllers.

    Holds the run context, the synchronizer and the formatter, and drives the
    ``IDLE -> SYNCHRONIZING -> FORMATTING -> PERSISTING -> IDLE`` cycle.
    Subclasses decide what is written.
    """

    def __init__(
        self,
        context: RunContext,
        config: TelemetryConfig,
        reducer: Optional[Reducer] = None,
        blob_store: Optional[BlobStore] = None
    ):
        self.context = context
        self.config = config
        reducer = reducer if reducer is not None else default_reducer()
        self.synchronizer = MeterSynchronizer(reducer)
        self.formatter = StatusFormatter(context, config, reducer.world_size())
        self.blob_store = blob_store if blob_store is not None else FileBlobStore()
        self.best_metrics = BestMetricTracker()
        self.state = ControllerState.IDLE
        self.initialize()

    @property
    def is_master(self) -> bool:
        return self.context.is_master

    def run_file(self, name: str) -> str:
        return checkpoint.get_run_file(name, self.context.run_index, self.context.run_path)

    @contextlib.contextmanager
    def _interval(self):
        if self.state is not ControllerState.IDLE:
            raise RuntimeError(f"Logging call issued while controller is {self.state.value}")
        try:
            yield
        finally:
            self.state = ControllerState.IDLE

    def initialize(self) -> None:
        pass

    def save_config(self, config: Mapping[str, Any]) -> Optional[str]:
        return None

    def write_header(self, meters: TrainMeters) -> None:
        pass

    def log_status(
        self,
        meters: TrainMeters,
        step: int,
        log_fields: Optional[Mapping[str, float]] = None
    ) -> None:
        """Synchronize meters on every rank, then emit status on the master."""
        with self._interval():
            self._log_status(meters, step, log_fields)

    def _log_status(self, meters, step, log_fields) -> None:
        self.state = ControllerState.SYNCHRONIZING
        self.synchronizer.synchronize(meters)
        self.state = ControllerState.FORMATTING
        self._emit_status(meters, step, log_fields)

    def _emit_status(self, meters, step, log_fields) -> None:
        pass

    def save_snapshot(
        self,
        tag: str,
        config: Mapping[str, Any],
        model_objects: Mapping[str, Any]
    ) -> Optional[str]:
        return None

    def save_auxiliary_snapshot(
        self,
        config: Mapping[str, Any],
        model_objects: Mapping[str, Any]
    ) -> Optional[str]:
        return None

    def save_worker_auxiliary_snapshot(
        self,
        config: Mapping[str, Any],
        model_objects: Mapping[str, Any],
        worker_rank: int
    ) -> str:
        """
        Save a rank-specific auxiliary snapshot. Not gated on master status.

        Returns:
            str: Path of the written file, for exchange with other workers.

        Raises:
            FatalIOError: If the snapshot cannot be written.
        """
        path = self.run_file("prop_worker%03d.bin" % worker_rank)
        self._put(path, config, model_objects, "worker auxiliary snapshot")
        return path

    def current_step(self, config: Mapping[str, Any]) -> int:
        key = EPOCH_KEY if self.context.log_on_epoch else ITERATION_KEY
        return int(config[key])

    def log_and_checkpoint(
        self,
        meters: TrainMeters,
        config: Mapping[str, Any],
        model_objects: Mapping[str, Any],
        log_fields: Optional[Mapping[str, float]] = None
    ) -> List[str]:
        """
        Log one interval and persist the snapshots it calls for.

        Args:
            meters (TrainMeters): Meters populated since the last interval.
            config (Mapping[str, Any]): Run config; ``epoch`` or ``iteration``
                gives the current step.
            model_objects (Mapping[str, Any]): Objects bundled into each snapshot.
            log_fields (Mapping[str, float]): Extra scalar status fields.

        Returns:
            List[str]: Validation subsets that reached a new best error. Always
                empty on workers.

        Raises:
            CollectiveFailure: If meter synchronization fails.
            FatalIOError: If a snapshot cannot be written.
        """
        step = self.current_step(config)
        tag = step_tag(step, self.context.log_on_epoch) if self.config.save_every_interval else LAST_TAG

        with self._interval():
            self._log_status(meters, step, log_fields)
            self.state = ControllerState.PERSISTING
            return self._persist(tag, meters, config, model_objects)

    def _persist(self, tag, meters, config, model_objects) -> List[str]:
        return []

    def _put(self, path: str, config: Mapping[str, Any], model_objects: Mapping[str, Any], what: str) -> None:
        try:
            self.blob_store.put(path, checkpoint.snapshot_bundle(config, model_objects))
        except Exception as e:
            logger.critical(f"Error while saving {what} to {path}: {e}")
            raise FatalIOError(f"Failed to save {what} to {path}: {e}", path) from e


class WorkerCheckpointController(CheckpointController):
    """Non-master ranks: synchronize meters, write nothing."""


class MasterCheckpointController(CheckpointController):
    """Rank 0: owns the run directory, the log files and all snapshots."""

    def initialize(self) -> None:
        self.log_file = self.run_file("log")
        self.perf_file = self.run_file("perf")
        try:
            os.makedirs(self.context.run_path, exist_ok=True)
            for path in (self.log_file, self.perf_file):
                with open(path, "w", encoding="utf-8"):
                    pass
        except OSError as e:
            logger.critical(f"Failed to open run files in {self.context.run_path}: {e}")
            raise FatalIOError(f"Failed to open run files for writing: {e}", e.filename) from e
        logger.info(f"Logging run {self.context.run_index} to {self.context.run_path}")

    def save_config(self, config: Mapping[str, Any]) -> Optional[str]:
        try:
            return checkpoint.save_config(config, self.context.run_index, self.context.run_path)
        except OSError as e:
            logger.critical(f"Failed to write run config: {e}")
            raise FatalIOError(f"Failed to write run config: {e}", e.filename) from e

    def write_header(self, meters: TrainMeters) -> None:
        header = self.formatter.format(
            meters, 0, {},
            verbose=False,
            include_date=self.config.perf_include_date,
            separator=PERF_HEADER_SEPARATOR,
            header_only=True,
        )
        try:
            with open(self.perf_file, "w", encoding="utf-8") as f:
                f.write("# " + header + "\n")
        except OSError as e:
            logger.critical(f"Failed to write performance header to {self.perf_file}: {e}")
            raise FatalIOError(f"Failed to write performance header: {e}", self.perf_file) from e

    def _emit_status(self, meters, step, log_fields) -> None:
        try:
            log_line = self.formatter.format(
                meters, step, log_fields, verbose=True, include_date=False, separator=LOG_SEPARATOR
            )
            perf_line = self.formatter.format(
                meters, step, log_fields,
                verbose=False,
                include_date=self.config.perf_include_date,
                separator=PERF_SEPARATOR,
            )
            logger.info(log_line)
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(log_line + "\n")
            with open(self.perf_file, "a", encoding="utf-8") as f:
                f.write(perf_line + "\n")
        except Exception as e:
            error = RecoverableLogError(f"Error while writing logs: {e!r}")
            logger.error(str(error))

    def save_snapshot(
        self,
        tag: str,
        config: Mapping[str, Any],
        model_objects: Mapping[str, Any]
    ) -> Optional[str]:
        """
        Persist a snapshot named after ``tag``.

        Raises:
            FatalIOError: If the blob store rejects the write.
        """
        path = self.run_file(f"model_{checkpoint.clean_filepath(tag)}.bin")
        self._put(path, config, model_objects, f"snapshot '{tag}'")
        logger.info(f"Saved snapshot '{tag}' to {path}")
        return path

    def save_auxiliary_snapshot(
        self,
        config: Mapping[str, Any],
        model_objects: Mapping[str, Any]
    ) -> Optional[str]:
        path = self.run_file("prop.bin")
        self._put(path, config, model_objects, "auxiliary snapshot")
        return path

    def _persist(self, tag, meters, config, model_objects) -> List[str]:
        self.save_snapshot(tag, config, model_objects)

        improved = self.best_metrics.update_all(validation_errors(meters))
        for name in improved:
            logger.info(f"New best {TARGET_EDIT}ER on {name}: {self.best_metrics.best(name):.2f}")
            self.save_snapshot(name, config, model_objects)
        return improved


def create_checkpoint_controller(
    run_index: int,
    run_path: str,
    is_master: bool,
    log_on_epoch: bool,
    config: Optional[TelemetryConfig] = None,
    reducer: Optional[Reducer] = None,
    blob_store: Optional[BlobStore] = None
) -> CheckpointController:
    """
    Build the controller variant for this rank.

    Args:
        run_index (int): Index of the run, used as file name prefix.
        run_path (str): Run directory; created on the master.
        is_master (bool): Whether this rank writes logs and snapshots.
        log_on_epoch (bool): Count steps in epochs instead of iterations.
        config (Optional[TelemetryConfig]): Telemetry settings, defaults if None.
        reducer (Optional[Reducer]): All-reduce primitive; torch.distributed
            when a process group is initialized, local otherwise.
        blob_store (Optional[BlobStore]): Snapshot store; filesystem by default.

    Returns:
        CheckpointController: ``MasterCheckpointController`` or ``WorkerCheckpointController``.

    Raises:
        FatalIOError: On the master, if the run directory or files cannot be created.
    """
    config = config if config is not None else TelemetryConfig()
    config.validate()
    context = RunContext(run_index, run_path, is_master, log_on_epoch)
    cls = MasterCheckpointController if is_master else WorkerCheckpointController
    return cls(context, config, reducer=reducer, blob_store=blob_store)
