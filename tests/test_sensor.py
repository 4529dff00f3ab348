import numpy as np
import pytest

from pysampler.host.sensor import NoiseSensor


def test_update_generates_samples_due(fixed_clock):
    sensor = NoiseSensor(sample_rate=1000.0, seed=0, clock=fixed_clock)
    assert sensor.update() == 0
    assert sensor.revision == 0

    fixed_clock.advance(0.5)
    appended = sensor.update()
    assert 0 < appended <= 500
    assert len(sensor) == appended
    assert sensor.revision == 1


def test_samples_are_time_ordered(fixed_clock):
    sensor = NoiseSensor(seed=0, clock=fixed_clock)
    fixed_clock.advance(0.2)
    sensor.update()
    fixed_clock.advance(0.2)
    sensor.update()
    stamps = np.array([x for x, _ in sensor.samples()])
    assert stamps.dtype == np.dtype("datetime64[ns]")
    assert np.all(np.diff(stamps) > np.timedelta64(0, "ns"))
    assert stamps[0] == fixed_clock.now - np.timedelta64(400, "ms")


def test_history_is_bounded(fixed_clock):
    sensor = NoiseSensor(sample_rate=1000.0, history=100, seed=0, clock=fixed_clock)
    fixed_clock.advance(1.0)
    sensor.update()
    assert len(sensor) == 100


def test_clipped_readings_are_dropped(fixed_clock):
    sensor = NoiseSensor(seed=7, clip_level=1.5, clock=fixed_clock)
    stamps, values = sensor.generate(sensor.first_frame, 50_000)
    assert len(stamps) == len(values) < 50_000
    assert np.all(np.abs(values) < sensor.clip_level)


def test_dropouts_read_zero(fixed_clock):
    sensor = NoiseSensor(seed=7, clock=fixed_clock)
    _, values = sensor.generate(sensor.first_frame, 50_000)
    assert np.count_nonzero(values == 0.0) > 0
    nonzero = values[values != 0.0]
    assert nonzero.min() > 0.3


def test_invalid_configuration():
    with pytest.raises(ValueError):
        NoiseSensor(sample_rate=0)
    with pytest.raises(ValueError):
        NoiseSensor(history=0)
