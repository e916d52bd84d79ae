"""
Orientation stability scoring.

Scores consecutive readings by how much they moved. A device held still
scores 1.0; one that moves more than the sensitivity (degrees per step, on
average over the buffer) scores 0.0.
"""

from collections import deque
from typing import Deque, Iterable, Literal, Optional, Tuple
import logging
import math

import numpy as np

from .angles import angular_distance, clamp_altitude, normalize_azimuth
from .models import AccuracyScore, Vector3

logger = logging.getLogger(__name__)


# Default sensitivity per fusion strategy. The cross-product fusion has a
# tighter noise floor than raw device heading.
DEFAULT_SENSITIVITY = {
    "cross_product": 5.0,
    "heading": 30.0,
}

AccuracyLevel = Literal["excellent", "good", "fair", "poor"]


class StabilityScorer:
    """
    Ring buffer of per-step orientation deltas.

    Not thread-safe; the owning session serializes calls.
    """

    def __init__(self, buffer_size: int = 12, sensitivity: float = 5.0):
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be >= 1, got {buffer_size}")
        if not sensitivity or sensitivity <= 0 or not math.isfinite(sensitivity):
            raise ValueError(f"sensitivity must be a positive number, got {sensitivity}")

        self.buffer_size = buffer_size
        self.sensitivity = float(sensitivity)
        self.deltas: Deque[float] = deque(maxlen=buffer_size)
        self._last: Optional[Tuple[float, float]] = None
        self.score = AccuracyScore()

    @classmethod
    def for_strategy(
        cls,
        strategy: str,
        buffer_size: int = 12,
        sensitivity: Optional[float] = None,
    ) -> "StabilityScorer":
        """Create a scorer with the default sensitivity of a fusion strategy."""
        if sensitivity is None:
            if strategy not in DEFAULT_SENSITIVITY:
                raise ValueError(f"Unknown fusion strategy: {strategy}")
            sensitivity = DEFAULT_SENSITIVITY[strategy]
        return cls(buffer_size=buffer_size, sensitivity=sensitivity)

    def observe(self, azimuth: float, altitude: float) -> AccuracyScore:
        """
        Record a reading and return the updated score.

        The first reading after construction or reset only stores state and
        returns a zero score.
        """
        azimuth = normalize_azimuth(azimuth)
        altitude = clamp_altitude(altitude)

        if self._last is None:
            self._last = (azimuth, altitude)
            self.score = AccuracyScore()
            return self.score

        last_az, last_alt = self._last
        delta = angular_distance(azimuth, last_az) + abs(altitude - last_alt)
        self.deltas.append(delta)
        self._last = (azimuth, altitude)

        avg_delta = float(np.mean(self.deltas))
        stability = float(np.clip(1.0 - avg_delta / self.sensitivity, 0.0, 1.0))
        self.score = AccuracyScore.uniform(stability)
        return self.score

    def reset(self) -> None:
        """Drop all history. The next observe() starts from scratch."""
        self.deltas.clear()
        self._last = None
        self.score = AccuracyScore()
        logger.debug("Stability buffer reset")

    @property
    def stability(self) -> float:
        return self.score.overall

    @property
    def is_primed(self) -> bool:
        return len(self.deltas) > 0


def accelerometer_accuracy(
    acceleration: Vector3,
    standard_gravity: float = 1.0,
    deviation_scale: float = 5.0,
) -> float:
    """
    Accuracy in [0, 1] from how far |a| is from one standard gravity.

    With the default scale a 0.2 g deviation yields 0.
    """
    vec = np.nan_to_num(np.asarray(acceleration, dtype=float), nan=0.0, posinf=0.0, neginf=0.0)
    magnitude = float(np.linalg.norm(vec)) / standard_gravity
    return float(np.clip(1.0 - abs(magnitude - 1.0) * deviation_scale, 0.0, 1.0))


def mean_accelerometer_accuracy(
    samples: Iterable[Vector3],
    standard_gravity: float = 1.0,
    deviation_scale: float = 5.0,
) -> Optional[float]:
    """Accuracy from the average |a| deviation over several samples; None if empty."""
    vectors = [np.asarray(s, dtype=float) for s in samples]
    if not vectors:
        return None
    stacked = np.nan_to_num(np.stack(vectors), nan=0.0, posinf=0.0, neginf=0.0)
    magnitudes = np.linalg.norm(stacked, axis=1) / standard_gravity
    deviation = float(np.mean(np.abs(magnitudes - 1.0)))
    return float(np.clip(1.0 - deviation * deviation_scale, 0.0, 1.0))


def accuracy_degrees(stability: float) -> float:
    """Map a stability score to an approximate accuracy in degrees (0.5 to 10)."""
    stability = float(np.clip(np.nan_to_num(stability), 0.0, 1.0))
    return 10.0 - stability * 9.5


def accuracy_level(stability: float) -> AccuracyLevel:
    degrees = accuracy_degrees(stability)
    if degrees <= 1.0:
        return "excellent"
    if degrees <= 3.0:
        return "good"
    if degrees <= 5.0:
        return "fair"
    return "poor"
