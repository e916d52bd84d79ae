"""
Captured point set and coverage analysis.

CoverageAnalyzer holds only thresholds; every metric is a pure function of
the point list passed in. HorizonPointStore owns the points of one capture
session and delegates to its analyzer.
"""

from typing import Dict, Iterable, List, Literal, Optional
import logging
import math

import numpy as np

from .angles import (
    arithmetic_mean, bucket_azimuth, bucket_count, forward_gap, is_valid_resolution,
    normalize_azimuth,
)
from .models import CoverageReport, Gap, HorizonPoint

logger = logging.getLogger(__name__)


ProgressState = Literal["complete", "almost", "incomplete"]


class CoverageAnalyzer:
    """
    Coverage, gap and completion metrics for a set of horizon points.
    """

    def __init__(
        self,
        resolution: float = 5.0,
        complete_threshold: float = 80.0,
        almost_threshold: float = 60.0,
        gap_threshold: float = 15.0,
        recommended_points: int = 12,
    ):
        if not is_valid_resolution(resolution):
            raise ValueError(f"Resolution must divide 360 evenly, got {resolution}")
        if not 0.0 <= almost_threshold <= 100.0 or not 0.0 <= complete_threshold <= 100.0:
            raise ValueError("Coverage thresholds must be percentages in [0, 100]")

        self.resolution = float(resolution)
        self.complete_threshold = complete_threshold
        self.almost_threshold = almost_threshold
        self.gap_threshold = gap_threshold
        self.recommended_points = recommended_points

    @property
    def total_buckets(self) -> int:
        return bucket_count(self.resolution)

    def occupied_buckets(self, points: Iterable[HorizonPoint]) -> set:
        return {bucket_azimuth(p.azimuth, self.resolution) for p in points}

    def coverage(self, points: Iterable[HorizonPoint]) -> float:
        """Percentage of azimuth buckets holding at least one point."""
        occupied = self.occupied_buckets(points)
        return 100.0 * len(occupied) / self.total_buckets

    def is_complete(self, points: Iterable[HorizonPoint]) -> bool:
        return self.coverage(points) >= self.complete_threshold

    def is_almost_complete(self, points: Iterable[HorizonPoint]) -> bool:
        return self.coverage(points) >= self.almost_threshold

    def progress(self, points: Iterable[HorizonPoint]) -> ProgressState:
        points = list(points)
        if self.is_complete(points):
            return "complete"
        if self.is_almost_complete(points):
            return "almost"
        return "incomplete"

    def gaps(self, points: Iterable[HorizonPoint]) -> List[Gap]:
        """
        Spans between adjacent distinct azimuths wider than the gap threshold,
        in ascending order, followed by the wrap-around span (last -> first).
        """
        azimuths = sorted({normalize_azimuth(p.azimuth) for p in points})
        if not azimuths:
            return []

        gaps = []
        for start, end in zip(azimuths, azimuths[1:]):
            size = forward_gap(start, end)
            if size > self.gap_threshold:
                gaps.append(Gap(start=start, end=end, size=size))

        # A single azimuth leaves the whole circle open
        wrap = 360.0 - azimuths[-1] + azimuths[0]
        if wrap > self.gap_threshold:
            gaps.append(Gap(start=azimuths[-1], end=azimuths[0], size=wrap))

        return gaps

    def largest_gap(self, points: Iterable[HorizonPoint]) -> Optional[Gap]:
        gaps = self.gaps(points)
        return max(gaps, key=lambda g: g.size) if gaps else None

    def warning(self, points: Iterable[HorizonPoint]) -> Optional[str]:
        """A short hint for the operator, or None if coverage looks fine."""
        points = list(points)
        largest = self.largest_gap(points)
        if largest is not None:
            return f"Coverage has gaps of up to {largest.size:.1f}°"
        if len(points) < self.recommended_points:
            return f"At least {self.recommended_points} points are recommended for good coverage"
        return None

    def report(self, points: Iterable[HorizonPoint]) -> CoverageReport:
        """Coverage metrics plus altitude statistics."""
        points = list(points)
        gaps = self.gaps(points)
        if not points:
            return CoverageReport(
                total_points=0,
                coverage=0.0,
                min_altitude=0.0,
                max_altitude=0.0,
                avg_altitude=0.0,
                min_azimuth=0.0,
                max_azimuth=0.0,
                azimuth_range=0.0,
                gaps=[],
                is_complete=False,
                progress="incomplete",
                warning=self.warning(points),
            )

        altitudes = np.array([p.altitude for p in points], dtype=float)
        azimuths = np.array([p.azimuth for p in points], dtype=float)
        coverage = self.coverage(points)

        return CoverageReport(
            total_points=len(points),
            coverage=round(coverage, 1),
            min_altitude=float(altitudes.min()),
            max_altitude=float(altitudes.max()),
            avg_altitude=round(arithmetic_mean(altitudes), 1),
            min_azimuth=float(azimuths.min()),
            max_azimuth=float(azimuths.max()),
            azimuth_range=float(azimuths.max() - azimuths.min()),
            gaps=gaps,
            is_complete=coverage >= self.complete_threshold,
            progress=self.progress(points),
            warning=self.warning(points),
        )

    def generate_report(self, points: Iterable[HorizonPoint]) -> str:
        """
        Generate a text report of coverage results.
        """
        report = self.report(points)

        lines = ["=" * 60]
        lines.append("HORIZON COVERAGE REPORT")
        lines.append("=" * 60)
        lines.append("")

        lines.append(f"Total points: {report.total_points}")
        lines.append(f"Coverage: {report.coverage:.1f}% "
                     f"({self.total_buckets} buckets of {self.resolution:g}°)")
        lines.append(f"Status: {report.progress}")
        lines.append("")

        if report.total_points > 0:
            lines.append(f"Altitude range: {report.min_altitude:.1f}° - {report.max_altitude:.1f}°")
            lines.append(f"Mean altitude: {report.avg_altitude:.1f}°")
            lines.append(f"Azimuth range: {report.min_azimuth:.1f}° - {report.max_azimuth:.1f}°")
            lines.append("")

        if report.gaps:
            lines.append(f"Gaps wider than {self.gap_threshold:g}°:")
            for gap in report.gaps:
                lines.append(f"  {gap.start:6.1f}° -> {gap.end:6.1f}°  ({gap.size:.1f}°)")
            lines.append("")

        if report.warning:
            lines.append(f"Warning: {report.warning}")
            lines.append("")

        lines.append("=" * 60)

        return "\n".join(lines)


def validate_point_values(azimuth: float, altitude: float) -> None:
    """Raise ValueError unless azimuth is in [0, 360] and altitude in [-90, 90]."""
    for label, value in (("Azimuth", azimuth), ("Altitude", altitude)):
        if value is None or not math.isfinite(float(value)):
            raise ValueError(f"{label} must be a finite number, got {value}")
    if not 0.0 <= azimuth <= 360.0:
        raise ValueError(f"Azimuth must be between 0 and 360 degrees, got {azimuth}")
    if not -90.0 <= altitude <= 90.0:
        raise ValueError(f"Altitude must be between -90 and 90 degrees, got {altitude}")


class HorizonPointStore:
    """
    In-memory point set of one capture session, in insertion order.
    """

    def __init__(self, session_id: str = "", analyzer: Optional[CoverageAnalyzer] = None):
        self.session_id = session_id
        self.analyzer = analyzer or CoverageAnalyzer()
        self._points: Dict[str, HorizonPoint] = {}

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self):
        return iter(list(self._points.values()))

    @property
    def points(self) -> List[HorizonPoint]:
        return list(self._points.values())

    def add_point(self, point: HorizonPoint) -> HorizonPoint:
        """Add a point, binding it to this session. Returns the stored point."""
        if point.session_id != self.session_id:
            point = point.with_changes(session_id=self.session_id)
        if point.id in self._points:
            raise ValueError(f"Point {point.id} already exists")
        self._points[point.id] = point
        logger.debug(f"Stored point {point.id} az={point.azimuth:.1f} alt={point.altitude:.1f}")
        return point

    def get_point(self, point_id: str) -> HorizonPoint:
        try:
            return self._points[point_id]
        except KeyError:
            raise KeyError(f"Point not found: {point_id}") from None

    def update_point(
        self,
        point_id: str,
        azimuth: Optional[float] = None,
        altitude: Optional[float] = None,
        notes: Optional[str] = None,
    ) -> HorizonPoint:
        """Edit a point. Values are validated, not clamped; blank notes clear them."""
        point = self.get_point(point_id)
        new_azimuth = point.azimuth if azimuth is None else float(azimuth)
        new_altitude = point.altitude if altitude is None else float(altitude)
        validate_point_values(new_azimuth, new_altitude)

        new_notes = point.notes
        if notes is not None:
            new_notes = notes.strip() or None

        updated = point.with_changes(azimuth=new_azimuth, altitude=new_altitude, notes=new_notes)
        self._points[point_id] = updated
        return updated

    def delete_point(self, point_id: str) -> None:
        self.get_point(point_id)
        del self._points[point_id]

    def clear(self) -> None:
        self._points.clear()

    def coverage(self) -> float:
        return self.analyzer.coverage(self._points.values())

    def gaps(self) -> List[Gap]:
        return self.analyzer.gaps(self._points.values())

    def is_complete(self) -> bool:
        return self.analyzer.is_complete(self._points.values())

    def is_almost_complete(self) -> bool:
        return self.analyzer.is_almost_complete(self._points.values())

    def report(self) -> CoverageReport:
        return self.analyzer.report(self._points.values())
