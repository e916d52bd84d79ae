"""
Capture session: the object a front end talks to.

Wires a sensor source through the orientation filter and stability scorer,
feeds the calibration window, gates point capture on stability, and hands
the point set to the exporter and the storage collaborator.

Lifecycle:
    start() -> samples / calibrate() -> capture() / edit / delete
    -> end() -> save()
"""

from concurrent.futures import Future
from typing import List, Optional
import logging
import threading
import time

from .calibration import CalibrationController
from .config import Config
from .coverage import CoverageAnalyzer, HorizonPointStore
from .errors import StorageError
from .exporter import HorizonExporter
from .fusion import OrientationFilter, create_fusion_strategy
from .models import (
    CalibrationResult, CaptureSessionRecord, CoverageReport, Gap, HorizonPoint,
    OrientationReading, RawSample, SensorStatus,
)
from .sensors import SensorSource
from .sinks import ExportSink
from .stability import StabilityScorer, accuracy_level
from .storage import SessionStore

logger = logging.getLogger(__name__)


class CaptureSession:
    """
    One horizon capture session at a time.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        source: Optional[SensorSource] = None,
        storage: Optional[SessionStore] = None,
    ):
        """
        Initialize the session components.

        Args:
            config: Configuration (defaults used if None)
            source: Sensor source pushing samples
            storage: Collaborator used by save()
        """
        self.config = config or Config()
        self.source = source
        self.storage = storage

        fusion = self.config.fusion
        self.scorer = StabilityScorer.for_strategy(
            fusion.strategy,
            buffer_size=self.config.stability.buffer_size,
            sensitivity=self.config.stability.sensitivity,
        )
        self.filter = OrientationFilter(
            strategy=create_fusion_strategy(
                fusion.strategy,
                gravity_alpha=fusion.gravity_alpha,
                magnetic_alpha=fusion.magnetic_alpha,
            ),
            scorer=self.scorer,
            declination_deg=fusion.declination_deg,
            azimuth_offset_deg=fusion.azimuth_offset_deg,
            altitude_reference=fusion.altitude_reference,
            auto_declination=fusion.auto_declination,
            average_window=fusion.average_window,
        )

        cal = self.config.calibration
        self.calibrator = CalibrationController(
            self.filter,
            duration_ms=cal.duration_ms,
            min_accuracy=cal.min_accuracy,
            snapshot_min_stability=cal.snapshot_min_stability,
            standard_gravity=cal.standard_gravity,
            deviation_scale=cal.deviation_scale,
            timeout_slack_ms=cal.timeout_slack_ms,
        )

        capture = self.config.capture
        self.analyzer = CoverageAnalyzer(
            resolution=capture.resolution_deg,
            complete_threshold=capture.complete_threshold,
            almost_threshold=capture.almost_threshold,
            gap_threshold=capture.gap_threshold_deg,
            recommended_points=capture.recommended_points,
        )

        export = self.config.export
        self.exporter = HorizonExporter(
            policy=export.policy,
            delimiter=export.delimiter,
            include_timestamp=export.include_timestamp,
            coordinate_format=export.coordinate_format,
            filename=export.filename,
        )

        self.record: Optional[CaptureSessionRecord] = None
        self.store = HorizonPointStore("", self.analyzer)
        self._lock = threading.Lock()

    # Lifecycle

    @property
    def is_active(self) -> bool:
        return self.record is not None and self.record.is_open

    def start(
        self,
        location_name: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> CaptureSessionRecord:
        """Open a new session and start the sensor source if there is one."""
        if self.is_active:
            raise RuntimeError("A capture session is already active")

        self.record = CaptureSessionRecord(location_name=location_name)
        self.store = HorizonPointStore(self.record.id, self.analyzer)
        self.filter.reset()
        if latitude is not None and longitude is not None:
            self.set_location(latitude, longitude)

        logger.info(f"Capture session {self.record.id} started")
        if self.source is not None:
            self.start_sensors()
        return self.record

    def end(self) -> CaptureSessionRecord:
        """Close the session. Clears the tilt baseline and resets fusion state."""
        if self.record is None:
            raise RuntimeError("No capture session to end")

        self.stop_sensors()
        self.filter.clear_baseline()
        self.filter.reset()
        if self.record.end_time is None:
            self.record.end_time = time.time()
        self.record.total_points = len(self.store)
        logger.info(f"Capture session {self.record.id} ended with {len(self.store)} points")
        return self.record

    def set_location(self, latitude: float, longitude: float, name: Optional[str] = None) -> None:
        if self.record is not None:
            self.record.latitude = latitude
            self.record.longitude = longitude
            if name is not None:
                self.record.location_name = name
        self.filter.set_location(latitude, longitude)

    # Sensors

    def start_sensors(self) -> bool:
        if self.source is None or not self.source.is_available:
            logger.warning("No sensor source available; orientation will stay empty")
            return False
        return self.source.start(self.process)

    def stop_sensors(self) -> None:
        """Halt the sample stream; a running calibration is cancelled."""
        if self.source is not None:
            self.source.stop()
        self.calibrator.cancel()

    def process(self, sample: RawSample) -> Optional[OrientationReading]:
        """Sample callback: fuse, score, and feed the calibration window."""
        reading = self.filter.update(sample)
        self.calibrator.feed(sample)
        return reading

    @property
    def current(self) -> Optional[OrientationReading]:
        return self.filter.current

    @property
    def status(self) -> SensorStatus:
        reading = self.current
        if self.source is None:
            return SensorStatus(has_reading=reading is not None, message="No sensor source")

        available = self.source.is_available
        permission = self.source.permission_granted
        message = None
        if not available:
            message = "Sensors not available on this device"
        elif not permission:
            message = "Sensor permission denied"
        elif reading is None:
            message = "Waiting for sensor data"

        return SensorStatus(
            available=available,
            permission_granted=permission,
            listening=self.source.is_running,
            has_reading=reading is not None,
            calibrated=self.calibrator.is_calibrated,
            message=message,
        )

    # Calibration

    def calibrate(self, duration_ms: Optional[int] = None) -> CalibrationResult:
        """
        Run the timed calibration window and block until it resolves.

        Samples must keep arriving on another thread (the sensor source);
        never call this from the sample callback. Use calibrate_async()
        from an event loop or UI thread.
        """
        return self.calibrator.calibrate(duration_ms)

    def calibrate_async(self, duration_ms: Optional[int] = None) -> Future:
        """Timed calibration on a background thread; the Future always resolves."""
        return self.calibrator.calibrate_async(duration_ms)

    def calibrate_snapshot(self) -> CalibrationResult:
        return self.calibrator.snapshot()

    # Points

    @property
    def points(self) -> List[HorizonPoint]:
        return self.store.points

    def capture(self, notes: Optional[str] = None) -> HorizonPoint:
        """
        Capture the current reading as a point.

        Raises RuntimeError without an active session, without a reading,
        or when the stability is below the capture minimum.
        """
        if not self.is_active:
            raise RuntimeError("No active capture session")
        reading = self.current
        if reading is None:
            raise RuntimeError("No orientation reading available")
        minimum = self.config.capture.min_capture_stability
        if reading.accuracy < minimum:
            raise RuntimeError(f"Stability {reading.accuracy:.2f} below {minimum:.2f}; hold the device still")

        point = HorizonPoint(
            azimuth=reading.azimuth,
            altitude=reading.altitude,
            session_id=self.record.id,
            accuracy=reading.accuracy,
            notes=notes.strip() if notes and notes.strip() else None,
        )
        with self._lock:
            point = self.store.add_point(point)
            self.record.total_points = len(self.store)
        logger.info(f"Captured point az={point.azimuth:.1f}° alt={point.altitude:.1f}° "
                    f"[{accuracy_level(point.accuracy)}] ({len(self.store)} total)")
        return point

    def update_point(self, point_id: str, azimuth=None, altitude=None, notes=None) -> HorizonPoint:
        with self._lock:
            return self.store.update_point(point_id, azimuth=azimuth, altitude=altitude, notes=notes)

    def delete_point(self, point_id: str) -> None:
        with self._lock:
            self.store.delete_point(point_id)
            if self.record is not None:
                self.record.total_points = len(self.store)

    # Coverage

    def coverage(self) -> float:
        return self.store.coverage()

    def gaps(self) -> List[Gap]:
        return self.store.gaps()

    def is_complete(self) -> bool:
        return self.store.is_complete()

    @property
    def has_minimum_points(self) -> bool:
        return len(self.store) >= self.config.capture.min_points

    def report(self) -> CoverageReport:
        return self.store.report()

    def generate_report(self) -> str:
        return self.analyzer.generate_report(self.store.points)

    # Export and persistence

    def export(self, format: Optional[str] = None) -> str:
        return self.exporter.export(self.store.points, format or self.config.export.format)

    def export_to(self, sink: ExportSink, format: Optional[str] = None) -> str:
        format = format or self.config.export.format
        text = self.exporter.export(self.store.points, format)
        return sink.write(text, self.exporter.suggested_filename(format))

    def save(self, storage: Optional[SessionStore] = None) -> CaptureSessionRecord:
        """
        Persist the session record and its points.

        StorageError propagates unchanged; captured points stay in memory.
        """
        storage = storage or self.storage
        if storage is None:
            raise RuntimeError("No storage configured")
        if self.record is None:
            raise RuntimeError("No capture session to save")

        record = self.record
        points = self.store.points
        record.total_points = len(points)
        try:
            if storage.has_session(record.id):
                saved = storage.update_session(
                    record.id,
                    end_time=record.end_time,
                    location_name=record.location_name,
                    latitude=record.latitude,
                    longitude=record.longitude,
                    total_points=record.total_points,
                )
            else:
                saved = storage.create_session(record)
            storage.save_points(record.id, points)
        except StorageError as e:
            logger.warning(f"Saving session {record.id} failed: {e}")
            raise

        logger.info(f"Saved session {record.id} with {len(points)} points")
        return saved
