"""
Configuration Module for ddp_telemetry

Telemetry settings, reserved meter names and the run context.
"""

from ddp_telemetry.config.run_config import (
    EPOCH_KEY,
    ITERATION_KEY,
    RUNTIME_TIMER,
    SAMPLE_TIMER,
    STATS_SLOTS,
    TARGET_EDIT,
    FrontEnd,
    RunContext,
    TelemetryConfig,
    load_external_config,
)

__all__ = [
    'EPOCH_KEY',
    'ITERATION_KEY',
    'RUNTIME_TIMER',
    'SAMPLE_TIMER',
    'STATS_SLOTS',
    'TARGET_EDIT',
    'FrontEnd',
    'RunContext',
    'TelemetryConfig',
    'load_external_config',
]
