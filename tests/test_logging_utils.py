"""Tests for rank-aware logging setup."""

import io
import logging

import pytest

from ddp_telemetry.utils.logging_utils import MasterOnlyFilter, get_logger, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def _record(level):
    return logging.LogRecord("ddp_telemetry", level, __file__, 1, "msg", None, None)


def test_master_passes_everything():
    record = _record(logging.DEBUG)
    assert MasterOnlyFilter(0).filter(record)
    assert record.rank == 0


def test_worker_passes_only_errors():
    worker = MasterOnlyFilter(2)
    assert not worker.filter(_record(logging.INFO))
    assert not worker.filter(_record(logging.WARNING))
    assert worker.filter(_record(logging.ERROR))
    assert worker.filter(_record(logging.CRITICAL))


@pytest.mark.usefixtures("restore_root_logger")
class TestSetupLogging:

    def test_master_output(self):
        stream = io.StringIO()
        setup_logging("INFO", rank=0, stream=stream)
        get_logger().info("iter: 1")
        get_logger().debug("hidden")
        output = stream.getvalue()
        assert "[rank 0] iter: 1" in output
        assert "hidden" not in output

    def test_worker_output(self):
        stream = io.StringIO()
        setup_logging("DEBUG", rank=1, stream=stream)
        logger = get_logger("ddp_telemetry.controller")
        logger.info("status line")
        logger.error("peer lost")
        output = stream.getvalue()
        assert "status line" not in output
        assert "ERROR - [rank 1] peer lost" in output

    def test_replaces_existing_handlers(self):
        first = setup_logging("INFO", stream=io.StringIO())
        second = setup_logging("INFO", stream=io.StringIO())
        handlers = logging.getLogger().handlers
        assert second in handlers
        assert first not in handlers
