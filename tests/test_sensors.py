import math
import threading

import numpy as np
import pytest

from horizon_capture.fusion import CrossProductFusion
from horizon_capture.models import RawSample
from horizon_capture.sensors import (
    ReplaySensorSource, SimulatedSensorSource, ThreadedSensorSource, load_sample_log,
    save_sample_log,
)

from conftest import wait_until


def test_simulated_vectors_have_expected_magnitudes(simulated):
    sample = simulated(azimuth=33.0, altitude=-12.0).sample_at(0.0)
    assert np.linalg.norm(sample.gravity) == pytest.approx(1.0)
    assert np.linalg.norm(sample.magnetic) == pytest.approx(50.0)
    assert sample.heading == pytest.approx(33.0)
    assert sample.rotation == (pytest.approx(33.0), pytest.approx(-12.0), 0.0)


def test_simulated_sweep_advances_azimuth(simulated):
    source = simulated(azimuth=350.0, sweep_rate=10.0, interval_ms=100)
    samples = source.generate(31, start_time=100.0)

    assert samples[0].timestamp == pytest.approx(100.0)
    assert samples[-1].timestamp == pytest.approx(103.0)
    assert samples[-1].heading == pytest.approx(20.0)


def test_simulated_noise_is_seeded():
    a = SimulatedSensorSource(pointing_noise=2.0, seed=7).generate(5)
    b = SimulatedSensorSource(pointing_noise=2.0, seed=7).generate(5)
    assert [s.gravity for s in a] == [s.gravity for s in b]
    assert a[0].gravity != a[1].gravity


def test_simulated_source_pushes_from_thread(simulated):
    received = []
    source = simulated(interval_ms=5)
    assert source.start(received.append)
    try:
        assert wait_until(lambda: len(received) >= 3)
        assert source.is_running
    finally:
        source.stop()
    assert not source.is_running


def test_unavailable_source_does_not_start(simulated):
    source = simulated(available=False)
    assert not source.start(lambda sample: None)
    assert not source.is_running


def test_callback_errors_do_not_stop_the_stream(simulated):
    calls = []

    def flaky(sample):
        calls.append(sample)
        if len(calls) == 1:
            raise ValueError("boom")

    source = simulated(interval_ms=5)
    source.start(flaky)
    try:
        assert wait_until(lambda: len(calls) >= 3)
    finally:
        source.stop()


def test_replay_delivers_all_samples_then_stops(simulated):
    samples = simulated().generate(20)
    received = []
    source = ReplaySensorSource(samples)
    source.start(received.append)
    source.join(timeout=2.0)

    assert received == samples
    assert not source.is_running
    assert source.samples_delivered == 20


def test_replay_of_nothing_is_unavailable():
    assert not ReplaySensorSource([]).is_available


def test_sample_log_round_trip(tmp_path, simulated):
    samples = simulated(azimuth=42.0, altitude=8.0).generate(4, start_time=10.0)
    samples[1].heading = None
    samples[2].magnetic = None
    path = tmp_path / "log.csv"

    save_sample_log(samples, path)
    loaded = load_sample_log(path)

    assert len(loaded) == 4
    assert loaded[0].timestamp == pytest.approx(10.0)
    assert loaded[1].heading is None
    assert loaded[2].magnetic is None
    np.testing.assert_allclose(loaded[3].gravity, samples[3].gravity, atol=1e-6)

    az, alt = CrossProductFusion().update(loaded[0])
    assert az == pytest.approx(42.0, abs=1e-3)
    assert alt == pytest.approx(8.0, abs=1e-3)


def test_sample_log_with_partial_columns(tmp_path):
    path = tmp_path / "heading.csv"
    path.write_text("timestamp,heading,yaw,pitch,roll\n1.0,90.0,0,10,0\n2.0,nan,45,5,0\n")

    samples = load_sample_log(path)
    assert samples[0].gravity is None
    assert samples[0].heading == 90.0
    assert samples[1].heading is None
    assert samples[1].rotation == (45.0, 5.0, 0.0)


def test_sample_log_requires_timestamp(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("gx,gy,gz\n0,1,0\n")
    with pytest.raises(ValueError):
        load_sample_log(path)


def test_invalid_interval():
    with pytest.raises(ValueError):
        SimulatedSensorSource(interval_ms=-1)
    assert math.isfinite(SimulatedSensorSource().sample_at(0.0).timestamp)


class StuckReaderSource(ThreadedSensorSource):
    """The first reader thread hangs in _next_sample until released."""

    stop_timeout = 0.05

    def __init__(self):
        super().__init__(interval_ms=1)
        self.release = threading.Event()
        self.first_reader = None

    def _next_sample(self):
        if self.first_reader is None:
            self.first_reader = threading.current_thread()
        if threading.current_thread() is self.first_reader:
            self.release.wait(2.0)
        return RawSample(timestamp=0.0)


def test_stale_reader_does_not_stop_restarted_stream():
    source = StuckReaderSource()
    received = []

    source.start(received.append)
    assert wait_until(lambda: source.first_reader is not None)
    source.stop()  # join times out; the first reader is still stuck
    assert source.first_reader.is_alive()

    source.start(received.append)
    assert wait_until(lambda: len(received) > 0)

    source.release.set()
    assert wait_until(lambda: not source.first_reader.is_alive())
    assert source.is_running

    count = len(received)
    assert wait_until(lambda: len(received) > count)
    source.stop()
    assert not source.is_running
