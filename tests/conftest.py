"""Shared fixtures: point factories, synthetic samples, configuration."""

import threading
import time
from typing import Callable, List

import pytest

from horizon_capture.config import Config
from horizon_capture.models import HorizonPoint, RawSample
from horizon_capture.sensors import SimulatedSensorSource


@pytest.fixture
def make_points() -> Callable[..., List[HorizonPoint]]:
    """Build points from (azimuth, altitude) pairs."""

    def _make(pairs, session_id: str = "session-1") -> List[HorizonPoint]:
        return [
            HorizonPoint(azimuth=az, altitude=alt, session_id=session_id, timestamp=1_700_000_000.0 + i)
            for i, (az, alt) in enumerate(pairs)
        ]

    return _make


@pytest.fixture
def simulated() -> Callable[..., SimulatedSensorSource]:
    """Noise-free simulated device factory."""

    def _make(azimuth: float = 180.0, altitude: float = 10.0, **kwargs) -> SimulatedSensorSource:
        kwargs.setdefault("seed", 42)
        return SimulatedSensorSource(azimuth=azimuth, altitude=altitude, **kwargs)

    return _make


@pytest.fixture
def still_sample(simulated) -> RawSample:
    """One sample of a device held still at az=120°, alt=15°."""
    return simulated(azimuth=120.0, altitude=15.0).sample_at(0.0, timestamp=0.0)


@pytest.fixture
def fast_config() -> Config:
    """Default configuration with a short calibration window."""
    cfg = Config()
    cfg.calibration.duration_ms = 300
    cfg.sensor.update_interval_ms = 10
    return cfg


@pytest.fixture
def feeder():
    """
    Feed a sample to a callback from a background thread until stopped.

    Usage: stop = feeder(callback, sample); ...; stop()
    """
    threads = []

    def _start(callback, sample: RawSample, interval: float = 0.01):
        stop_event = threading.Event()

        def run():
            while not stop_event.is_set():
                callback(sample)
                time.sleep(interval)

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        threads.append((stop_event, thread))

        def stop():
            stop_event.set()
            thread.join(timeout=1.0)

        return stop

    yield _start

    for stop_event, thread in threads:
        stop_event.set()
        thread.join(timeout=1.0)


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005) -> bool:
    """Poll predicate until true or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
