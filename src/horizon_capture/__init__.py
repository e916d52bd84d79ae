"""
Horizon Capture
===============

Build a 360° horizon obstruction profile (altitude above the horizon as a
function of compass azimuth) from handheld orientation sensors, for use by
astronomical imaging automation.

Main components:
- fusion: Gravity/magnetic and heading-based orientation fusion
- stability: Ring-buffer stability scoring of consecutive readings
- calibration: Snapshot and timed accelerometer calibration, tilt baseline
- coverage: Captured point set, coverage percentage and gap detection
- exporter: Gap-free profile building, .hzn and CSV serialization
- session: Capture session wiring sensors to points and storage
- sensors: Simulated and replayed sensor sources
"""

__version__ = "0.1.0"

from .config import Config
from .models import HorizonPoint, OrientationReading, RawSample, CalibrationResult
from .fusion import OrientationFilter, create_fusion_strategy
from .stability import StabilityScorer
from .calibration import CalibrationController
from .coverage import CoverageAnalyzer, HorizonPointStore
from .exporter import HorizonExporter
from .errors import ExportError, StorageError
from .session import CaptureSession

__all__ = [
    "Config",
    "HorizonPoint",
    "OrientationReading",
    "RawSample",
    "CalibrationResult",
    "OrientationFilter",
    "create_fusion_strategy",
    "StabilityScorer",
    "CalibrationController",
    "CoverageAnalyzer",
    "HorizonPointStore",
    "HorizonExporter",
    "ExportError",
    "StorageError",
    "CaptureSession",
    "__version__",
]
