"""
Reporting Module for ddp_telemetry

Status line formatting and the performance file reader.
"""

from ddp_telemetry.reporting.status import (
    NOT_AVAILABLE,
    FieldSpec,
    StatusFormatter,
    StatusLine,
    format_duration,
    status_fields,
)
from ddp_telemetry.reporting.perf_file import read_perf_file, read_perf_header

__all__ = [
    'NOT_AVAILABLE',
    'FieldSpec',
    'StatusFormatter',
    'StatusLine',
    'format_duration',
    'status_fields',
    'read_perf_file',
    'read_perf_header',
]
