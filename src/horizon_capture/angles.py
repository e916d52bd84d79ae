"""
Angle helpers for azimuth/altitude arithmetic.

All functions are total: NaN and infinite inputs are mapped to 0 or to the
nearest valid boundary instead of propagating.
"""

import math
from typing import Iterable

import numpy as np
from scipy.stats import circmean


FULL_CIRCLE = 360.0
MIN_ALTITUDE = -90.0
MAX_ALTITUDE = 90.0


def _finite(value: float, default: float = 0.0) -> float:
    """Return value as float, or default if it is NaN/Infinity or not a number."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return value if math.isfinite(value) else default


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (0.5 -> 1, -0.5 -> 0)."""
    return int(math.floor(_finite(value) + 0.5))


def normalize_azimuth(azimuth: float) -> float:
    """
    Normalize an azimuth into [0, 360).

    Non-finite input maps to 0. Values that land within float noise of 360
    are folded back to 0.
    """
    result = _finite(azimuth) % FULL_CIRCLE
    if math.isclose(result, FULL_CIRCLE, abs_tol=1e-9):
        return 0.0
    return result


def clamp_altitude(altitude: float) -> float:
    """Clamp an altitude into [-90, 90]. NaN maps to 0, +/-Infinity to the bound."""
    if altitude is None:
        return 0.0
    try:
        altitude = float(altitude)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(altitude):
        return 0.0
    return max(MIN_ALTITUDE, min(MAX_ALTITUDE, altitude))


def angular_distance(a: float, b: float) -> float:
    """Smallest absolute difference between two azimuths, in [0, 180]."""
    diff = abs(normalize_azimuth(a) - normalize_azimuth(b))
    return min(diff, FULL_CIRCLE - diff)


def forward_gap(start: float, end: float) -> float:
    """Clockwise angular distance from start to end, in [0, 360)."""
    return normalize_azimuth(normalize_azimuth(end) - normalize_azimuth(start))


def circular_mean(degrees: Iterable[float]) -> float:
    """Mean direction of a set of azimuths, in [0, 360). Empty input gives 0."""
    values = np.array([_finite(d) for d in degrees], dtype=float)
    if values.size == 0:
        return 0.0
    return normalize_azimuth(circmean(values, high=FULL_CIRCLE, low=0.0))


def arithmetic_mean(values: Iterable[float]) -> float:
    values = [_finite(v) for v in values]
    if not values:
        return 0.0
    return float(np.mean(values))


def bucket_azimuth(azimuth: float, resolution: float) -> float:
    """Snap an azimuth to the nearest multiple of resolution, modulo 360."""
    return normalize_azimuth(round_half_up(normalize_azimuth(azimuth) / resolution) * resolution)


def bucket_count(resolution: float) -> int:
    """Number of buckets of the given width in a full circle."""
    return int(round(FULL_CIRCLE / resolution))


def is_valid_resolution(resolution: float) -> bool:
    """True if resolution is positive and divides 360 into a whole number of buckets."""
    resolution = _finite(resolution)
    if resolution <= 0 or resolution > FULL_CIRCLE:
        return False
    count = FULL_CIRCLE / resolution
    return math.isclose(count, round(count), abs_tol=1e-9)


def to_sexagesimal(value: float, precision: int = 1) -> str:
    """
    Format an angle as degrees, minutes and seconds.

    Example:
        to_sexagesimal(12.5) -> "12°30'00.0\""
    """
    value = _finite(value)
    sign = "-" if value < 0 else ""
    total_seconds = round(abs(value) * 3600.0, precision)
    degrees = int(total_seconds // 3600)
    minutes = int((total_seconds - degrees * 3600) // 60)
    seconds = total_seconds - degrees * 3600 - minutes * 60
    width = 3 + precision if precision > 0 else 2
    return f"{sign}{degrees}°{minutes:02d}'{seconds:0{width}.{precision}f}\""
