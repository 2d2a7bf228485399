"""
Training Module for ddp_telemetry

Meters filled by the training loop, the reduction primitives and the
synchronizer that turns per-worker meters into run-wide totals.
"""

from ddp_telemetry.training.meters import (
    AverageValueMeter,
    CountMeter,
    EditDistanceMeter,
    MaxMeter,
    Meter,
    MeterKind,
    TimeMeter,
)
from ddp_telemetry.training.meter_set import (
    DatasetMeters,
    TrainMeters,
    reset_dataset_meters,
    reset_time_stat_meters,
    resume_time_meters,
    stop_time_meters,
)
from ddp_telemetry.training.distributed import (
    LocalReducer,
    Reducer,
    TorchDistributedReducer,
    default_reducer,
    get_rank,
    get_world_size,
    is_master,
)
from ddp_telemetry.training.synchronizer import MeterSynchronizer

__all__ = [
    # Meters
    'Meter',
    'MeterKind',
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

    # Distributed
    'Reducer',
    'LocalReducer',
    'TorchDistributedReducer',
    'default_reducer',
    'get_rank',
    'get_world_size',
    'is_master',
    'MeterSynchronizer',
]
