"""
Sensor calibration.

Two procedures:
- snapshot(): judge the current stability score, no waiting.
- calibrate(): open a sampling window (default 3 s) while the live sample
  stream keeps flowing through feed(), then score the average deviation of
  |acceleration| from one standard gravity against a minimum accuracy.

calibrate() never raises and always returns within the window duration
plus a small slack. cancel() (called when the sample source is halted)
ends the window early with a failed result and leaves the stability
buffer reset.

In "baseline" altitude mode a successful calibration records the current
measured altitude as the tilt baseline of the OrientationFilter.
"""

from concurrent.futures import Future
from typing import List, Optional
import logging
import threading
import time

from .fusion import OrientationFilter
from .models import AccuracyScore, CalibrationResult, RawSample, Vector3
from .stability import mean_accelerometer_accuracy

logger = logging.getLogger(__name__)


class CalibrationController:
    """
    Runs calibration procedures against a live OrientationFilter.
    """

    def __init__(
        self,
        orientation_filter: OrientationFilter,
        duration_ms: int = 3000,
        min_accuracy: float = 0.7,
        snapshot_min_stability: float = 0.6,
        standard_gravity: float = 1.0,
        deviation_scale: float = 5.0,
        timeout_slack_ms: int = 500,
    ):
        if duration_ms < 0:
            raise ValueError(f"duration_ms must be >= 0, got {duration_ms}")
        if standard_gravity <= 0:
            raise ValueError(f"standard_gravity must be positive, got {standard_gravity}")

        self.filter = orientation_filter
        self.duration_ms = duration_ms
        self.min_accuracy = min_accuracy
        self.snapshot_min_stability = snapshot_min_stability
        self.standard_gravity = standard_gravity
        self.deviation_scale = deviation_scale
        self.timeout_slack_ms = timeout_slack_ms

        self._lock = threading.Lock()
        self._window_open = False
        self._cancelled = False
        self._done = threading.Event()
        self._accelerations: List[Vector3] = []

        self.last_result: Optional[CalibrationResult] = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._window_open

    @property
    def is_calibrated(self) -> bool:
        return self.last_result is not None and self.last_result.success

    @property
    def max_wait_seconds(self) -> float:
        """Upper bound on how long a calibrate() call may take."""
        return (self.duration_ms + self.timeout_slack_ms) / 1000.0

    def _current_score(self) -> AccuracyScore:
        scorer = self.filter.scorer
        return scorer.score if scorer is not None else AccuracyScore()

    def feed(self, sample: RawSample) -> None:
        """Hand a live sample to the open window. No-op when idle."""
        if sample.gravity is None:
            return
        with self._lock:
            if self._window_open:
                self._accelerations.append(tuple(sample.gravity))

    def cancel(self) -> None:
        """Abort a running window; the pending calibrate() returns a failure."""
        with self._lock:
            if not self._window_open:
                return
            self._cancelled = True
        self._done.set()
        logger.info("Calibration cancelled")

    def snapshot(self) -> CalibrationResult:
        """Judge the current stability score without sampling."""
        score = self._current_score()
        success = score.overall > self.snapshot_min_stability
        if success:
            message = "Sensors active"
        else:
            message = f"Low stability ({score.overall:.2f}); hold the device still and try again"
        return self._finish(CalibrationResult(success=success, accuracy=score, message=message))

    def calibrate(self, duration_ms: Optional[int] = None) -> CalibrationResult:
        """
        Sample for the window duration and evaluate.

        Blocks the calling thread; samples must arrive through feed() from
        the sensor source thread.
        """
        duration_ms = self.duration_ms if duration_ms is None else duration_ms

        with self._lock:
            if self._window_open:
                return CalibrationResult(
                    success=False,
                    accuracy=AccuracyScore(),
                    message="Calibration already in progress",
                )
            self._window_open = True
            self._cancelled = False
            self._accelerations = []
            self._done.clear()

        logger.info(f"Calibration started ({duration_ms} ms window)")
        started = time.monotonic()
        try:
            self._done.wait(timeout=max(0, duration_ms) / 1000.0)
        finally:
            with self._lock:
                self._window_open = False
                cancelled = self._cancelled
                accelerations = list(self._accelerations)

        if cancelled:
            self.filter.reset_stability()
            return self._finish(CalibrationResult(
                success=False,
                accuracy=AccuracyScore(),
                message="Calibration cancelled",
                sample_count=len(accelerations),
            ))

        try:
            result = self._evaluate(accelerations)
        except Exception as e:
            logger.exception("Calibration evaluation failed")
            result = CalibrationResult(
                success=False,
                accuracy=AccuracyScore(),
                message=f"Calibration failed: {e}",
                sample_count=len(accelerations),
            )

        elapsed_ms = (time.monotonic() - started) * 1000.0
        logger.info(f"Calibration finished in {elapsed_ms:.0f} ms: {result.message}")
        return self._finish(result)

    def calibrate_async(self, duration_ms: Optional[int] = None) -> Future:
        """Run calibrate() on a background thread; the Future always resolves."""
        future: Future = Future()

        def run():
            future.set_result(self.calibrate(duration_ms))

        threading.Thread(target=run, daemon=True).start()
        return future

    def _evaluate(self, accelerations: List[Vector3]) -> CalibrationResult:
        accuracy = mean_accelerometer_accuracy(
            accelerations,
            standard_gravity=self.standard_gravity,
            deviation_scale=self.deviation_scale,
        )
        if accuracy is None:
            return CalibrationResult(
                success=False,
                accuracy=AccuracyScore(),
                message="No sensor samples received; check that the sensors are running",
            )

        score = AccuracyScore(
            motion=accuracy,
            orientation=self._current_score().overall,
            overall=accuracy,
        )
        if accuracy < self.min_accuracy:
            return CalibrationResult(
                success=False,
                accuracy=score,
                message=f"Accuracy {accuracy:.2f} below {self.min_accuracy:.2f}; hold the device still",
                sample_count=len(accelerations),
            )

        return CalibrationResult(
            success=True,
            accuracy=score,
            message="Calibration successful",
            sample_count=len(accelerations),
        )

    def _finish(self, result: CalibrationResult) -> CalibrationResult:
        if result.success and self.filter.altitude_reference == "baseline":
            try:
                result.baseline_deg = self.filter.set_baseline()
            except RuntimeError as e:
                logger.warning(f"Tilt baseline not recorded: {e}")
        self.last_result = result
        return result
