"""
Sensor sources.

A SensorSource pushes RawSample objects to a callback from a background
thread at a fixed interval. Absence of hardware is a state, not an error:
is_available reports it and start() returns False.

SimulatedSensorSource synthesizes gravity/magnetic vectors for a device
pointed at a given azimuth/altitude, so the whole pipeline can run without
hardware. ReplaySensorSource plays back a recorded sample log.

Sample log format (CSV with header):
    timestamp,gx,gy,gz,mx,my,mz,yaw,pitch,roll,heading
Empty or "nan" fields mark an input the sample does not carry.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence
import logging
import math
import threading
import time

import numpy as np

from .angles import clamp_altitude, normalize_azimuth
from .models import RawSample

logger = logging.getLogger(__name__)


SampleCallback = Callable[[RawSample], None]

LOG_COLUMNS = ("timestamp", "gx", "gy", "gz", "mx", "my", "mz", "yaw", "pitch", "roll", "heading")


class SensorSource(ABC):
    """
    Abstract push-based sensor source.
    """

    @property
    def is_available(self) -> bool:
        return True

    @property
    def permission_granted(self) -> bool:
        return True

    @property
    @abstractmethod
    def is_running(self) -> bool:
        pass

    @abstractmethod
    def start(self, callback: SampleCallback) -> bool:
        """Begin delivering samples to callback. Returns False if unavailable."""
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


class ThreadedSensorSource(SensorSource):
    """
    Base for sources that produce samples on a daemon thread.

    Subclasses implement _next_sample(); returning None ends the stream.
    """

    stop_timeout = 1.0  # seconds stop() waits for the reader thread

    def __init__(self, interval_ms: int = 100):
        if interval_ms < 0:
            raise ValueError(f"interval_ms must be >= 0, got {interval_ms}")
        self.interval_ms = interval_ms
        self._callback: Optional[SampleCallback] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.samples_delivered = 0

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    def start(self, callback: SampleCallback) -> bool:
        """Start delivering samples in a background thread."""
        if not self.is_available:
            logger.warning(f"{type(self).__name__} is not available")
            return False
        with self._lock:
            if self._running:
                return True
            self._running = True
            self._callback = callback
            thread = threading.Thread(target=self._read_loop, daemon=True)
            self._thread = thread
        thread.start()
        return True

    def stop(self) -> None:
        """Stop delivering samples."""
        with self._lock:
            self._running = False
            thread = self._thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout=self.stop_timeout)

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for a finite stream to run out."""
        if self._thread:
            self._thread.join(timeout=timeout)

    def _owns_stream(self) -> bool:
        """True while running and the calling thread is the current reader."""
        with self._lock:
            return self._running and self._thread is threading.current_thread()

    @abstractmethod
    def _next_sample(self) -> Optional[RawSample]:
        pass

    def _read_loop(self):
        """Background thread delivering samples."""
        while self._owns_stream():
            sample = self._next_sample()
            if sample is None or not self._owns_stream():
                break
            try:
                self._callback(sample)
                self.samples_delivered += 1
            except Exception as e:
                if self.is_running:
                    logger.warning(f"Sample callback error: {e}")
            if self.interval_ms:
                time.sleep(self.interval_ms / 1000.0)

        with self._lock:
            # A restarted source owns the flag now
            if self._thread is threading.current_thread():
                self._running = False
        logger.debug(f"{type(self).__name__} stopped after {self.samples_delivered} samples")


def device_basis(azimuth: float, altitude: float) -> np.ndarray:
    """
    Rotation from world (East, North, Up) to device (x right, y up along the
    screen, z out of the screen) for a camera pointed at azimuth/altitude
    with no roll. Rows are the device axes in world coordinates.
    """
    az = math.radians(azimuth)
    alt = math.radians(altitude)
    camera = np.array([math.sin(az) * math.cos(alt), math.cos(az) * math.cos(alt), math.sin(alt)])
    z_axis = -camera
    y_axis = np.array([-math.sin(az) * math.sin(alt), -math.cos(az) * math.sin(alt), math.cos(alt)])
    x_axis = np.cross(y_axis, z_axis)
    return np.vstack([x_axis, y_axis, z_axis])


class SimulatedSensorSource(ThreadedSensorSource):
    """
    Simulated device for testing without hardware.

    The device points at (azimuth, altitude), optionally sweeping in azimuth
    at sweep_rate degrees per second. Noise is Gaussian, in degrees for the
    pointing and in g for the acceleration magnitude.
    """

    def __init__(
        self,
        azimuth: float = 180.0,
        altitude: float = 10.0,
        sweep_rate: float = 0.0,
        pointing_noise: float = 0.0,
        acceleration_noise: float = 0.0,
        field_strength: float = 50.0,
        dip_deg: float = 60.0,
        gravity: float = 1.0,
        emit_heading: bool = True,
        interval_ms: int = 100,
        seed: Optional[int] = None,
        available: bool = True,
    ):
        super().__init__(interval_ms=interval_ms)
        self.azimuth = azimuth
        self.altitude = altitude
        self.sweep_rate = sweep_rate
        self.pointing_noise = pointing_noise
        self.acceleration_noise = acceleration_noise
        self.field_strength = field_strength
        self.dip_deg = dip_deg
        self.gravity = gravity
        self.emit_heading = emit_heading
        self._available = available
        self._rng = np.random.default_rng(seed)
        self._step = 0

    @property
    def is_available(self) -> bool:
        return self._available

    def point_at(self, azimuth: float, altitude: float) -> None:
        """Move the simulated device."""
        with self._lock:
            self.azimuth = azimuth
            self.altitude = altitude

    def sample_at(self, elapsed: float, timestamp: Optional[float] = None) -> RawSample:
        """Synthesize the sample seen `elapsed` seconds into the trajectory."""
        with self._lock:
            azimuth = self.azimuth + self.sweep_rate * elapsed
            altitude = self.altitude

        if self.pointing_noise > 0:
            azimuth += self._rng.normal(0.0, self.pointing_noise)
            altitude += self._rng.normal(0.0, self.pointing_noise)
        azimuth = normalize_azimuth(azimuth)
        # Keep clear of the zenith, where azimuth is undefined
        altitude = max(-89.0, min(89.0, clamp_altitude(altitude)))

        basis = device_basis(azimuth, altitude)
        up = np.array([0.0, 0.0, 1.0])
        dip = math.radians(self.dip_deg)
        field = self.field_strength * np.array([0.0, math.cos(dip), -math.sin(dip)])

        magnitude = self.gravity
        if self.acceleration_noise > 0:
            magnitude *= 1.0 + self._rng.normal(0.0, self.acceleration_noise)

        gravity = basis @ up * magnitude
        magnetic = basis @ field

        return RawSample(
            timestamp=time.time() if timestamp is None else timestamp,
            gravity=tuple(float(v) for v in gravity),
            magnetic=tuple(float(v) for v in magnetic),
            rotation=(azimuth, altitude, 0.0),
            heading=azimuth if self.emit_heading else None,
        )

    def generate(self, count: int, start_time: float = 0.0) -> List[RawSample]:
        """A finite list of samples spaced by the source interval."""
        step = self.interval_ms / 1000.0
        return [self.sample_at(i * step, timestamp=start_time + i * step) for i in range(count)]

    def _next_sample(self) -> Optional[RawSample]:
        sample = self.sample_at(self._step * self.interval_ms / 1000.0)
        self._step += 1
        return sample


class ReplaySensorSource(ThreadedSensorSource):
    """Plays back recorded samples, optionally looping."""

    def __init__(self, samples: Sequence[RawSample], interval_ms: int = 0, loop: bool = False):
        super().__init__(interval_ms=interval_ms)
        self.samples = list(samples)
        self.loop = loop
        self._index = 0

    @classmethod
    def from_file(cls, path: Path, interval_ms: int = 0, loop: bool = False) -> "ReplaySensorSource":
        return cls(load_sample_log(path), interval_ms=interval_ms, loop=loop)

    @property
    def is_available(self) -> bool:
        return len(self.samples) > 0

    def _next_sample(self) -> Optional[RawSample]:
        if self._index >= len(self.samples):
            if not self.loop:
                return None
            self._index = 0
        sample = self.samples[self._index]
        self._index += 1
        return sample


def _vector_or_none(row, names) -> Optional[tuple]:
    values = [float(row[n]) for n in names]
    if not all(math.isfinite(v) for v in values):
        return None
    return tuple(values)


def load_sample_log(path: Path) -> List[RawSample]:
    """
    Load a recorded sample log.

    Missing columns are treated as absent inputs. Raises ValueError if the
    file has no timestamp column.
    """
    data = np.genfromtxt(path, delimiter=",", names=True, dtype=float, encoding="utf-8")
    names = data.dtype.names or ()
    if "timestamp" not in names:
        raise ValueError(f"Sample log {path} has no timestamp column")

    samples = []
    for row in np.atleast_1d(data):
        heading = float(row["heading"]) if "heading" in names else math.nan
        timestamp = float(row["timestamp"])
        samples.append(RawSample(
            timestamp=timestamp if math.isfinite(timestamp) else 0.0,
            gravity=_vector_or_none(row, ("gx", "gy", "gz")) if {"gx", "gy", "gz"} <= set(names) else None,
            magnetic=_vector_or_none(row, ("mx", "my", "mz")) if {"mx", "my", "mz"} <= set(names) else None,
            rotation=(_vector_or_none(row, ("yaw", "pitch", "roll"))
                      if {"yaw", "pitch", "roll"} <= set(names) else None),
            heading=heading if math.isfinite(heading) else None,
        ))

    logger.info(f"Loaded {len(samples)} samples from {path}")
    return samples


def save_sample_log(samples: Iterable[RawSample], path: Path) -> None:
    """Write samples in the sample log format; absent inputs become nan."""
    rows = []
    for s in samples:
        gravity = s.gravity if s.gravity is not None else (math.nan,) * 3
        magnetic = s.magnetic if s.magnetic is not None else (math.nan,) * 3
        rotation = s.rotation if s.rotation is not None else (math.nan,) * 3
        heading = s.heading if s.heading is not None else math.nan
        rows.append([s.timestamp, *gravity, *magnetic, *rotation, heading])

    table = np.array(rows, dtype=float).reshape(-1, len(LOG_COLUMNS))
    np.savetxt(path, table, delimiter=",", header=",".join(LOG_COLUMNS), comments="", fmt="%.6f")
    logger.info(f"Saved {len(table)} samples to {path}")
