"""Tests for meters and meter sets."""

import numpy as np
import pytest

from ddp_telemetry.training import meters as meters_module
from ddp_telemetry.training.meter_set import (
    DatasetMeters,
    TrainMeters,
    reset_dataset_meters,
    reset_time_stat_meters,
    resume_time_meters,
    stop_time_meters,
)
from ddp_telemetry.training.meters import (
    AverageValueMeter,
    CountMeter,
    EditDistanceMeter,
    MaxMeter,
    MeterKind,
    TimeMeter,
)


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(meters_module.time, "perf_counter", fake)
    return fake


class TestNeutralValues:
    """Meters with zero observations return neutral values."""

    def test_average_meter_empty(self):
        assert AverageValueMeter().value() == 0.0

    def test_edit_meter_empty(self):
        assert np.array_equal(EditDistanceMeter().value(), np.zeros(5))

    def test_count_meter_empty(self):
        assert np.array_equal(CountMeter(5).value(), np.zeros(5))

    def test_max_meter_empty(self):
        assert MaxMeter().value() == 0.0

    def test_time_meter_empty(self):
        assert TimeMeter().value() == 0.0
        assert TimeMeter(use_unit=True).value() == 0.0

    def test_reset_returns_to_neutral(self):
        meter = AverageValueMeter()
        meter.add(3.0, 2)
        meter.reset()
        assert meter.value() == 0.0
        assert meter.count == 0


class TestAverageValueMeter:

    def test_weighted_average(self):
        meter = AverageValueMeter()
        meter.add(2.0, n=3)
        meter.add(4.0)
        assert meter.value() == pytest.approx(2.5)
        assert meter.state() == [10.0, 4]

    def test_kind(self):
        assert AverageValueMeter.kind is MeterKind.AVERAGE


class TestEditDistanceMeter:

    def test_error_rate_percent(self):
        meter = EditDistanceMeter()
        meter.add(3, 40, n_deletions=1, n_insertions=1, n_substitutions=1)
        value = meter.value()
        assert value[0] == pytest.approx(7.5)
        assert value[1] == 40
        assert value[2] == pytest.approx(2.5)

    def test_add_rate(self):
        meter = EditDistanceMeter()
        meter.add_rate(10.0, 20)
        meter.add_rate(30.0, 20)
        assert meter.value()[0] == pytest.approx(20.0)

    def test_set_state_round_trip(self):
        meter = EditDistanceMeter()
        meter.set_state([4, 50, 1, 2, 1])
        assert meter.value()[0] == pytest.approx(8.0)


class TestCountMeter:

    def test_elementwise_add(self):
        meter = CountMeter(3)
        meter.add(1, 2, 3)
        meter.add([10, 20, 30])
        assert meter.value().tolist() == [11, 22, 33]

    def test_wrong_size_raises(self):
        with pytest.raises(ValueError, match="expects 3 values"):
            CountMeter(3).add(1, 2)

    def test_value_is_a_copy(self):
        meter = CountMeter(2)
        meter.value()[0] = 99
        assert meter.value()[0] == 0


class TestMaxMeter:

    def test_keeps_maximum(self):
        meter = MaxMeter()
        for v in (3, 7, 5):
            meter.add(v)
        assert meter.value() == 7.0

    def test_empty_state_is_neutral_for_max(self):
        meter = MaxMeter()
        assert meter.state() == [-np.inf]
        meter.set_state([-np.inf])
        assert meter.value() == 0.0


class TestTimeMeter:

    def test_created_stopped(self, clock):
        meter = TimeMeter()
        clock.now += 5
        assert meter.value() == 0.0
        assert not meter.running

    def test_stop_freezes_without_clearing(self, clock):
        meter = TimeMeter(start=True)
        clock.now += 2
        meter.stop()
        clock.now += 10
        assert meter.value() == pytest.approx(2.0)
        meter.resume()
        clock.now += 1
        assert meter.value() == pytest.approx(3.0)

    def test_unit_timer(self, clock):
        meter = TimeMeter(use_unit=True, start=True)
        clock.now += 6
        meter.inc_unit(3)
        assert meter.value() == pytest.approx(2.0)

    def test_reset(self, clock):
        meter = TimeMeter(start=True)
        clock.now += 4
        meter.reset()
        assert meter.value() == 0.0
        assert not meter.running

    def test_set_state_while_running(self, clock):
        meter = TimeMeter(start=True)
        clock.now += 4
        meter.set_state([10.0, 0])
        clock.now += 1
        assert meter.value() == pytest.approx(11.0)


class TestTrainMeters:

    def test_create_layout(self):
        meters = TrainMeters.create(valid_sets=["dev-clean", "dev-other"])
        assert list(meters.timers)[0] == "runtime"
        assert "timer" in meters.timers
        assert meters.timers["timer"].use_unit
        assert not meters.timers["runtime"].use_unit
        assert list(meters.valid) == ["dev-clean", "dev-other"]
        assert list(meters.train.losses) == ["total"]
        assert list(meters.train.edits) == ["T"]
        assert meters.stats.num == 5

    def test_iter_meters_order(self):
        meters = TrainMeters.create(valid_sets=["dev"], timer_names=["runtime", "timer"])
        names = [name for name, _ in meters.iter_meters()]
        assert names == [
            "stats",
            "timers/runtime",
            "timers/timer",
            "train/edits/T",
            "train/losses/total",
            "valid/dev/edits/T",
            "valid/dev/losses/total",
        ]

    def test_reset_helpers(self, clock):
        meters = TrainMeters.create(valid_sets=["dev"])
        resume_time_meters(meters)
        clock.now += 3
        meters.stats.add(1, 1, 1, 1, 1)
        meters.valid["dev"].losses["total"].add(2.0)

        stop_time_meters(meters)
        assert all(not t.running for t in meters.timers.values())
        assert meters.timers["runtime"].value() == pytest.approx(3.0)

        reset_time_stat_meters(meters)
        assert meters.timers["runtime"].value() == 0.0
        assert meters.stats.value().sum() == 0

        reset_dataset_meters(meters.valid["dev"])
        assert meters.valid["dev"].losses["total"].value() == 0.0

    def test_dataset_meters_custom_names(self):
        group = DatasetMeters(loss_names=["ctc", "lm"], edit_names=["T", "W"])
        assert list(group.losses) == ["ctc", "lm"]
        assert list(group.edits) == ["T", "W"]
