"""
Utils Module for ddp_telemetry

Snapshot persistence and logging setup.
"""

from ddp_telemetry.utils.checkpoint import (
    BlobStore,
    FileBlobStore,
    clean_filepath,
    get_run_file,
    list_snapshots,
    load_config,
    load_snapshot,
    save_config,
)
from ddp_telemetry.utils.logging_utils import MasterOnlyFilter, get_logger, setup_logging

__all__ = [
    # Checkpoint utilities
    'BlobStore',
    'FileBlobStore',
    'clean_filepath',
    'get_run_file',
    'list_snapshots',
    'load_config',
    'load_snapshot',
    'save_config',

    # Logging
    'MasterOnlyFilter',
    'get_logger',
    'setup_logging',
]
