"""
ddp_telemetry: run-wide telemetry and checkpoint selection for distributed training

Collects per-worker meters (losses, error rates, timers, sample statistics),
reduces them across all workers, renders them as status lines and decides
which snapshots of a run are worth keeping.

Modules:
- config: Telemetry settings, reserved meter names, front-end kinds
- training: Meters, meter sets, reducers and the meter synchronizer
- reporting: Status line formatting and performance file reading
- utils: Snapshot persistence and logging setup
- controller: Per-interval logging and checkpoint selection
"""

__version__ = "0.1.0"
__author__ = "DDP Telemetry Team"
__email__ = "ddp_telemetry@example.com"

from .config.run_config import FrontEnd, RunContext, TelemetryConfig, load_external_config
from .controller import (
    BestMetricTracker,
    CheckpointController,
    ControllerState,
    MasterCheckpointController,
    WorkerCheckpointController,
    create_checkpoint_controller,
    select_improved,
)
from .errors import CollectiveFailure, FatalIOError, RecoverableLogError, TelemetryError
from .reporting.perf_file import read_perf_file
from .reporting.status import StatusFormatter, StatusLine
from .training.distributed import LocalReducer, Reducer, TorchDistributedReducer, default_reducer
from .training.meter_set import (
    DatasetMeters,
    TrainMeters,
    reset_dataset_meters,
    reset_time_stat_meters,
    resume_time_meters,
    stop_time_meters,
)
from .training.meters import AverageValueMeter, CountMeter, EditDistanceMeter, MaxMeter, TimeMeter
from .training.synchronizer import MeterSynchronizer
from .utils.logging_utils import setup_logging

__all__ = [
    # Configuration
    'FrontEnd',
    'RunContext',
    'TelemetryConfig',
    'load_external_config',

    # Meters
    'AverageValueMeter',
    'CountMeter',
    'EditDistanceMeter',
    'MaxMeter',
    'TimeMeter',
    'DatasetMeters',
    'TrainMeters',
    'reset_dataset_meters',
    'reset_time_stat_meters',
    'resume_time_meters',
    'stop_time_meters',

    # Synchronization
    'Reducer',
    'LocalReducer',
    'TorchDistributedReducer',
    'default_reducer',
    'MeterSynchronizer',

    # Reporting
    'StatusFormatter',
    'StatusLine',
    'read_perf_file',

    # Checkpointing
    'BestMetricTracker',
    'CheckpointController',
    'ControllerState',
    'MasterCheckpointController',
    'WorkerCheckpointController',
    'create_checkpoint_controller',
    'select_improved',

    # Errors
    'TelemetryError',
    'FatalIOError',
    'RecoverableLogError',
    'CollectiveFailure',

    'setup_logging',
]


def get_version():
    """Return the current version of ddp_telemetry."""
    return __version__


def get_info():
    """Return information about the ddp_telemetry package."""
    return {
        'version': __version__,
        'author': __author__,
        'email': __email__,
        'description': 'Run-wide telemetry and checkpoint selection for distributed training'
    }
