"""
Horizon profile building and serialization.

Fill policies
-------------
carry_forward
    Bucket i covers azimuth i * resolution. A point falls in the bucket of
    round_half_up(azimuth / resolution) modulo the bucket count. A bucket
    with points takes the minimum altitude among them (obstruction-safe).
    Empty buckets take the nearest filled value before them; empty buckets
    at the start of the circle take the first filled value after them.
    With no points every bucket is 0.

nearest_neighbor
    Each bucket center takes the altitude of the single point with the
    smallest absolute azimuth difference (no wrap across north); ties go
    to the smaller azimuth.
    With no points every bucket is 0.

Formats
-------
hzn
    "# Azimuth Altitude" then exactly 360 lines "<azimuth> <altitude>",
    one per integer degree, altitude floored at 0.
csv
    "Azimuth<d>Altitude[<d>Timestamp]" then one row per captured point,
    ascending azimuth, no gap filling, altitude floored at 0, values to one
    decimal (or degrees/minutes/seconds).
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional, Sequence
import logging

from .angles import (
    bucket_count, is_valid_resolution, normalize_azimuth, round_half_up, to_sexagesimal,
)
from .errors import ExportError
from .models import HorizonPoint

logger = logging.getLogger(__name__)


FillPolicy = Literal["carry_forward", "nearest_neighbor"]
ExportFormat = Literal["hzn", "csv"]

FILL_POLICIES = ("carry_forward", "nearest_neighbor")
EXPORT_FORMATS = ("hzn", "csv")
DELIMITERS = (",", ";")
COORDINATE_FORMATS = ("decimal", "dms")

HZN_HEADER = "# Azimuth Altitude"
FILE_EXTENSIONS = {"hzn": ".hzn", "csv": ".csv"}


def _carry_forward(points: Sequence[HorizonPoint], resolution: float) -> List[float]:
    count = bucket_count(resolution)
    profile: List[Optional[float]] = [None] * count

    for point in points:
        index = round_half_up(normalize_azimuth(point.azimuth) / resolution) % count
        current = profile[index]
        profile[index] = point.altitude if current is None else min(current, point.altitude)

    if all(v is None for v in profile):
        return [0.0] * count

    last = None
    for i in range(count):
        if profile[i] is None:
            profile[i] = last
        else:
            last = profile[i]

    # Leading entries are still empty; fill them backward from the first value
    for i in range(count - 1, -1, -1):
        if profile[i] is None:
            profile[i] = profile[(i + 1) % count]

    return [float(v) for v in profile]


def _nearest_neighbor(points: Sequence[HorizonPoint], resolution: float) -> List[float]:
    count = bucket_count(resolution)
    if not points:
        return [0.0] * count

    profile = []
    for i in range(count):
        center = i * resolution
        nearest = min(points, key=lambda p: (abs(p.azimuth - center), p.azimuth))
        profile.append(float(nearest.altitude))
    return profile


def _format_profile_value(altitude: float) -> str:
    value = round(max(0.0, altitude), 1)
    if value.is_integer():
        return str(int(value))
    return f"{value:.1f}"


class HorizonExporter:
    """
    Build complete profiles from sparse points and serialize them.

    Pure: never touches files. Hand the returned text to an ExportSink.
    """

    def __init__(
        self,
        policy: FillPolicy = "carry_forward",
        delimiter: str = ",",
        include_timestamp: bool = False,
        coordinate_format: str = "decimal",
        filename: str = "horizon_nina",
    ):
        if policy not in FILL_POLICIES:
            raise ExportError(f"Unknown fill policy: {policy}")
        if delimiter not in DELIMITERS:
            raise ExportError(f"Delimiter must be ',' or ';', got {delimiter!r}")
        if coordinate_format not in COORDINATE_FORMATS:
            raise ExportError(f"Unknown coordinate format: {coordinate_format}")

        self.policy = policy
        self.delimiter = delimiter
        self.include_timestamp = include_timestamp
        self.coordinate_format = coordinate_format
        self.filename = filename

    def build_profile(
        self,
        points: Sequence[HorizonPoint],
        resolution: float = 1.0,
        policy: Optional[FillPolicy] = None,
    ) -> List[float]:
        """
        Complete altitude profile, one entry per bucket, bucket i at
        azimuth i * resolution.
        """
        policy = policy or self.policy
        if not is_valid_resolution(resolution):
            raise ExportError(f"Resolution must divide 360 evenly, got {resolution}")

        points = list(points)
        if policy == "carry_forward":
            return _carry_forward(points, resolution)
        elif policy == "nearest_neighbor":
            return _nearest_neighbor(points, resolution)
        raise ExportError(f"Unknown fill policy: {policy}")

    def serialize_profile(self, profile: Sequence[float]) -> str:
        """Plain .hzn text for a whole-degree profile."""
        if len(profile) != 360:
            raise ExportError(f"Plain profile needs 360 whole-degree entries, got {len(profile)}")
        lines = [HZN_HEADER]
        lines.extend(f"{az} {_format_profile_value(alt)}" for az, alt in enumerate(profile))
        return "\n".join(lines)

    def _format_coordinate(self, value: float) -> str:
        if self.coordinate_format == "dms":
            return to_sexagesimal(value)
        return f"{value:.1f}"

    def serialize_points(self, points: Sequence[HorizonPoint]) -> str:
        """Tabular text: one row per captured point, ascending azimuth."""
        headers = ["Azimuth", "Altitude"]
        if self.include_timestamp:
            headers.append("Timestamp")

        rows = [self.delimiter.join(headers)]
        for point in sorted(points, key=lambda p: p.azimuth):
            fields = [
                self._format_coordinate(point.azimuth),
                self._format_coordinate(max(0.0, point.altitude)),
            ]
            if self.include_timestamp:
                fields.append(datetime.fromtimestamp(point.timestamp, tz=timezone.utc).isoformat())
            rows.append(self.delimiter.join(fields))
        return "\n".join(rows)

    def serialize(self, data, format: ExportFormat = "hzn") -> str:
        """
        Serialize a profile ("hzn") or a point list ("csv").
        """
        if format == "hzn":
            return self.serialize_profile(data)
        elif format == "csv":
            return self.serialize_points(data)
        raise ExportError(f"Unknown export format: {format}")

    def export(self, points: Sequence[HorizonPoint], format: ExportFormat = "hzn") -> str:
        """
        Export a point set. Raises ExportError before producing any text if
        there are no points or the format is unknown.
        """
        if format not in EXPORT_FORMATS:
            raise ExportError(f"Unknown export format: {format}")
        points = list(points)
        if not points:
            raise ExportError("No points to export")

        if format == "hzn":
            text = self.serialize_profile(self.build_profile(points, resolution=1.0))
        else:
            text = self.serialize_points(points)

        logger.info(f"Exported {len(points)} points as {format} ({self.policy})")
        return text

    def suggested_filename(self, format: ExportFormat = "hzn") -> str:
        if format not in FILE_EXTENSIONS:
            raise ExportError(f"Unknown export format: {format}")
        return f"{self.filename}{FILE_EXTENSIONS[format]}"
