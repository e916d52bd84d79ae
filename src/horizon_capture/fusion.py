"""
Orientation fusion: raw sensor samples to camera azimuth/altitude.

Two strategies share one interface:
- CrossProductFusion: low-passed gravity and magnetic vectors, East = M x G,
  North = G x East, azimuth of the camera axis (-z) projected on the horizon.
- HeadingFusion: absolute compass heading when the platform has one,
  otherwise a tilt-compensated heading from yaw/pitch/roll plus magnetometer.

OrientationFilter wraps a strategy and applies declination, the manual
azimuth offset, the optional tilt baseline and the optional moving average,
and annotates each reading with the stability score.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Literal, Optional, Tuple
import logging
import math
import threading

import numpy as np

from .angles import arithmetic_mean, circular_mean, clamp_altitude, normalize_azimuth
from .models import OrientationReading, RawSample, Vector3
from .stability import StabilityScorer

logger = logging.getLogger(__name__)


AltitudeReference = Literal["absolute", "baseline"]


def _as_vector(values: Optional[Vector3]) -> Optional[np.ndarray]:
    """Convert to a float 3-vector; non-finite components become 0."""
    if values is None:
        return None
    vec = np.asarray(values, dtype=float).reshape(-1)
    if vec.size != 3:
        return None
    return np.nan_to_num(vec, nan=0.0, posinf=0.0, neginf=0.0)


def _normalize(vec: np.ndarray) -> Optional[np.ndarray]:
    norm = float(np.linalg.norm(vec))
    if norm < 1e-12 or not math.isfinite(norm):
        return None
    return vec / norm


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def tilt_compensated_heading(magnetic: Vector3, pitch_deg: float, roll_deg: float) -> Optional[float]:
    """
    Compass heading of the camera axis from a magnetometer vector and tilt.

    The magnetometer vector is in the device frame (x right, y up along the
    screen, z out of the screen). Pitch is the elevation of the camera axis
    (-z), roll the rotation about it (positive with the right edge down).

    Returns None when the horizontal field components vanish.
    """
    mag = _as_vector(magnetic)
    if mag is None:
        return None
    # Body frame: forward = -z, right = x, down = -y
    forward, right, down = -mag[2], mag[0], -mag[1]
    pitch = math.radians(_finite_or_none(pitch_deg) or 0.0)
    roll = math.radians(_finite_or_none(roll_deg) or 0.0)

    # Undo roll, then pitch
    level_right = right * math.cos(roll) - down * math.sin(roll)
    level_down = right * math.sin(roll) + down * math.cos(roll)
    level_forward = forward * math.cos(pitch) + level_down * math.sin(pitch)
    if abs(level_forward) < 1e-12 and abs(level_right) < 1e-12:
        return None
    return normalize_azimuth(math.degrees(math.atan2(-level_right, level_forward)))


def altitude_from_gravity(gravity: Vector3) -> Optional[float]:
    """Elevation of the camera axis (-z) from a gravity (up) vector."""
    vec = _as_vector(gravity)
    if vec is None:
        return None
    unit = _normalize(vec)
    if unit is None:
        return None
    angle = math.degrees(math.acos(max(-1.0, min(1.0, -unit[2]))))
    return clamp_altitude(90.0 - angle)


def estimate_magnetic_declination(latitude: float, longitude: float) -> float:
    """
    Coarse regional magnetic declination in degrees (east positive).

    A rough table; use a geomagnetic model for anything precise.
    """
    if 30 < latitude < 60 and -130 < longitude < -60:
        return -15.0  # North America
    if 35 < latitude < 70 and -10 < longitude < 40:
        return 2.0  # Europe
    if -40 < latitude < 10 and 110 < longitude < 160:
        return 8.0  # Australia
    return 0.0


class FusionStrategy(ABC):
    """
    Abstract fusion strategy.

    update() consumes one sample and returns (azimuth, altitude) in degrees
    once enough state has accumulated, else None. It never raises on
    out-of-range input.
    """

    name: str = ""

    @abstractmethod
    def update(self, sample: RawSample) -> Optional[Tuple[float, float]]:
        pass

    @abstractmethod
    def reset(self) -> None:
        pass


class CrossProductFusion(FusionStrategy):
    """Gravity/magnetic cross-product fusion with exponential smoothing."""

    name = "cross_product"

    def __init__(self, gravity_alpha: float = 0.2, magnetic_alpha: float = 0.1):
        for label, alpha in (("gravity_alpha", gravity_alpha), ("magnetic_alpha", magnetic_alpha)):
            if not 0.0 < alpha <= 1.0:
                raise ValueError(f"{label} must be in (0, 1], got {alpha}")
        self.gravity_alpha = gravity_alpha
        self.magnetic_alpha = magnetic_alpha
        self.reset()

    def reset(self) -> None:
        self.gravity: Optional[np.ndarray] = None
        self.magnetic: Optional[np.ndarray] = None

    @staticmethod
    def _smooth(state: Optional[np.ndarray], sample: np.ndarray, alpha: float) -> np.ndarray:
        if state is None:
            return sample
        return state + alpha * (sample - state)

    def update(self, sample: RawSample) -> Optional[Tuple[float, float]]:
        g = _as_vector(sample.gravity)
        m = _as_vector(sample.magnetic)
        if g is not None:
            self.gravity = self._smooth(self.gravity, g, self.gravity_alpha)
        if m is not None:
            self.magnetic = self._smooth(self.magnetic, m, self.magnetic_alpha)

        if self.gravity is None or self.magnetic is None:
            return None

        G = _normalize(self.gravity)
        M = _normalize(self.magnetic)
        if G is None or M is None:
            return None

        # Camera tilted up => positive
        altitude = -math.degrees(math.atan2(G[2], G[1]))

        east = _normalize(np.cross(M, G))
        if east is None:
            # Field parallel to gravity: heading undefined
            return None
        north = _normalize(np.cross(G, east))
        if north is None:
            return None

        # Camera looks along -z; project it onto East/North
        azimuth = math.degrees(math.atan2(-east[2], -north[2]))

        return normalize_azimuth(azimuth), clamp_altitude(altitude)


class HeadingFusion(FusionStrategy):
    """
    Absolute heading passthrough with a tilt-compensated fallback.

    Azimuth source, in order: sample.heading, tilt-compensated heading from
    rotation + magnetometer, raw yaw. Altitude source: gravity vector,
    else rotation pitch. The latest value of each is held so that heading
    and motion streams may arrive in separate samples.
    """

    name = "heading"

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.azimuth: Optional[float] = None
        self.altitude: Optional[float] = None
        self.magnetic: Optional[np.ndarray] = None

    def update(self, sample: RawSample) -> Optional[Tuple[float, float]]:
        magnetic = _as_vector(sample.magnetic)
        if magnetic is not None:
            self.magnetic = magnetic

        yaw = pitch = roll = None
        if sample.rotation is not None:
            rotation = _as_vector(sample.rotation)
            if rotation is not None:
                yaw, pitch, roll = (float(v) for v in rotation)

        altitude = altitude_from_gravity(sample.gravity) if sample.gravity is not None else None
        if altitude is None and pitch is not None:
            altitude = clamp_altitude(pitch)
        if altitude is not None:
            self.altitude = altitude

        heading = _finite_or_none(sample.heading)
        if heading is not None:
            self.azimuth = normalize_azimuth(heading)
        elif pitch is not None and self.magnetic is not None:
            compensated = tilt_compensated_heading(self.magnetic, pitch, roll)
            if compensated is not None:
                self.azimuth = compensated
            elif yaw is not None:
                self.azimuth = normalize_azimuth(yaw)
        elif yaw is not None:
            self.azimuth = normalize_azimuth(yaw)

        if self.azimuth is None or self.altitude is None:
            return None
        return self.azimuth, self.altitude


def create_fusion_strategy(
    name: str = "cross_product",
    gravity_alpha: float = 0.2,
    magnetic_alpha: float = 0.1,
) -> FusionStrategy:
    """
    Factory function to create a fusion strategy by name.

    Args:
        name: "cross_product" or "heading"
        gravity_alpha: Gravity smoothing factor (cross_product only)
        magnetic_alpha: Magnetometer smoothing factor (cross_product only)
    """
    if name == "cross_product":
        return CrossProductFusion(gravity_alpha=gravity_alpha, magnetic_alpha=magnetic_alpha)
    elif name == "heading":
        return HeadingFusion()
    raise ValueError(f"Unknown fusion strategy: {name}")


class OrientationFilter:
    """
    Turns the raw sample stream into the single current OrientationReading.

    Altitude convention: range [-90, 90]. With altitude_reference="absolute"
    the measured altitude is reported as-is. With "baseline" the tilt
    recorded by the last successful calibration is subtracted until
    clear_baseline() (called at session end).

    With average_window > 0 the reported reading is the mean of the last
    average_window fused readings: circular mean for azimuth, arithmetic
    mean for altitude.
    """

    def __init__(
        self,
        strategy: Optional[FusionStrategy] = None,
        scorer: Optional[StabilityScorer] = None,
        declination_deg: float = 0.0,
        azimuth_offset_deg: float = 0.0,
        altitude_reference: AltitudeReference = "absolute",
        auto_declination: bool = False,
        average_window: int = 0,
    ):
        if altitude_reference not in ("absolute", "baseline"):
            raise ValueError(f"Unknown altitude reference: {altitude_reference}")
        if average_window < 0:
            raise ValueError(f"average_window must be >= 0, got {average_window}")

        self.strategy = strategy or CrossProductFusion()
        self.scorer = scorer
        self.declination_deg = declination_deg
        self.azimuth_offset_deg = azimuth_offset_deg
        self.altitude_reference = altitude_reference
        self.auto_declination = auto_declination
        self.average_window = average_window
        self._azimuths: deque = deque(maxlen=max(average_window, 1))
        self._altitudes: deque = deque(maxlen=max(average_window, 1))

        self.baseline: Optional[float] = None
        self.raw_altitude: Optional[float] = None
        self._current: Optional[OrientationReading] = None
        self._lock = threading.Lock()

    @property
    def current(self) -> Optional[OrientationReading]:
        with self._lock:
            return self._current

    def update(self, sample: RawSample) -> Optional[OrientationReading]:
        """
        Fuse one sample. Returns the new current reading, or None while the
        strategy still lacks state. A None result leaves the previous reading.
        """
        with self._lock:
            result = self.strategy.update(sample)
            if result is None:
                return None

            raw_azimuth, raw_altitude = result
            azimuth = normalize_azimuth(raw_azimuth + self.declination_deg + self.azimuth_offset_deg)
            self.raw_altitude = raw_altitude
            altitude = raw_altitude
            if self.altitude_reference == "baseline" and self.baseline is not None:
                altitude = clamp_altitude(raw_altitude - self.baseline)

            if self.average_window > 0:
                self._azimuths.append(azimuth)
                self._altitudes.append(altitude)
                azimuth = circular_mean(self._azimuths)
                altitude = clamp_altitude(arithmetic_mean(self._altitudes))

            accuracy = self.scorer.observe(azimuth, altitude).overall if self.scorer else 0.0

            timestamp = sample.timestamp if sample.timestamp is not None else 0.0
            self._current = OrientationReading(
                azimuth=azimuth,
                altitude=altitude,
                accuracy=accuracy,
                timestamp=timestamp,
            )
            logger.debug(f"az={azimuth:.1f} alt={altitude:.1f} stability={accuracy:.2f}")
            return self._current

    def set_baseline(self, altitude: Optional[float] = None) -> float:
        """
        Record the tilt baseline (defaults to the latest measured altitude).

        Only meaningful in "baseline" mode; raises RuntimeError otherwise.
        """
        if self.altitude_reference != "baseline":
            raise RuntimeError("Tilt baseline requires altitude_reference='baseline'")
        with self._lock:
            if altitude is None:
                altitude = self.raw_altitude
            if altitude is None:
                raise RuntimeError("No altitude measured yet")
            self.baseline = clamp_altitude(altitude)
        logger.info(f"Tilt baseline set to {self.baseline:.1f}°")
        return self.baseline

    def clear_baseline(self) -> None:
        with self._lock:
            self.baseline = None

    def set_location(self, latitude: float, longitude: float) -> None:
        """Apply a GPS fix; with auto_declination the declination is re-estimated."""
        if not self.auto_declination:
            return
        self.declination_deg = estimate_magnetic_declination(latitude, longitude)
        logger.info(f"Magnetic declination estimated at {self.declination_deg:+.1f}°")

    def reset_stability(self) -> None:
        """Clear the stability history without touching fusion state."""
        with self._lock:
            if self.scorer is not None:
                self.scorer.reset()

    def reset(self) -> None:
        """Drop fusion state, the current reading and the stability history."""
        with self._lock:
            self.strategy.reset()
            if self.scorer is not None:
                self.scorer.reset()
            self._azimuths.clear()
            self._altitudes.clear()
            self._current = None
            self.raw_altitude = None
