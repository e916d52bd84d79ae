"""
Data models for horizon capture.

Angles are in degrees throughout. Timestamps are Unix seconds.
"""

import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple

from .angles import clamp_altitude, normalize_azimuth


Vector3 = Tuple[float, float, float]


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class RawSample:
    """
    One push from the sensor source. Any of the inputs may be absent.

    Vectors are in the device frame (x right, y up along the screen,
    z out of the screen; the camera looks along -z).
    """
    timestamp: float = field(default_factory=time.time)
    gravity: Optional[Vector3] = None    # gravity/acceleration (reaction, "up"), g or m/s²
    magnetic: Optional[Vector3] = None   # magnetic field, μT
    rotation: Optional[Vector3] = None   # (yaw, pitch, roll) in degrees
    heading: Optional[float] = None      # absolute compass heading in degrees


@dataclass
class AccuracyScore:
    """Stability facets in [0, 1]. All three carry the same scalar today."""
    motion: float = 0.0
    orientation: float = 0.0
    overall: float = 0.0

    @classmethod
    def uniform(cls, value: float) -> "AccuracyScore":
        return cls(motion=value, orientation=value, overall=value)


@dataclass
class OrientationReading:
    """The current fused orientation."""
    azimuth: float          # [0, 360)
    altitude: float         # [-90, 90]
    accuracy: float = 0.0   # stability score [0, 1]
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        self.azimuth = normalize_azimuth(self.azimuth)
        self.altitude = clamp_altitude(self.altitude)


@dataclass(frozen=True)
class HorizonPoint:
    """A captured point. Immutable; edits produce a new instance."""
    azimuth: float
    altitude: float
    session_id: str = ""
    accuracy: float = 0.0
    timestamp: float = field(default_factory=time.time)
    notes: Optional[str] = None
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        object.__setattr__(self, "azimuth", normalize_azimuth(self.azimuth))
        object.__setattr__(self, "altitude", clamp_altitude(self.altitude))

    def with_changes(self, **changes) -> "HorizonPoint":
        return replace(self, **changes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "azimuth": float(self.azimuth),
            "altitude": float(self.altitude),
            "accuracy": float(self.accuracy),
            "timestamp": float(self.timestamp),
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HorizonPoint":
        return cls(
            id=data.get("id") or new_id(),
            session_id=data.get("session_id", ""),
            azimuth=data["azimuth"],
            altitude=data["altitude"],
            accuracy=data.get("accuracy", 0.0),
            timestamp=data.get("timestamp", time.time()),
            notes=data.get("notes"),
        )


@dataclass
class CaptureSessionRecord:
    """Session metadata as handed to the storage collaborator."""
    id: str = field(default_factory=new_id)
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    location_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    total_points: int = 0

    @property
    def is_open(self) -> bool:
        return self.end_time is None


@dataclass
class CalibrationResult:
    """Outcome of one calibration call. Never persisted."""
    success: bool
    accuracy: AccuracyScore
    message: str
    sample_count: int = 0
    baseline_deg: Optional[float] = None


@dataclass(frozen=True)
class Gap:
    """An azimuth span without captured points, measured clockwise."""
    start: float
    end: float
    size: float


@dataclass
class CoverageReport:
    """Coverage metrics and altitude statistics for a point set."""
    total_points: int
    coverage: float             # percentage, rounded to 0.1
    min_altitude: float
    max_altitude: float
    avg_altitude: float         # rounded to 0.1
    min_azimuth: float
    max_azimuth: float
    azimuth_range: float
    gaps: list = field(default_factory=list)
    is_complete: bool = False
    progress: str = "incomplete"
    warning: Optional[str] = None


@dataclass
class SensorStatus:
    """Sensor availability as reported to the caller; absence is not an error."""
    available: bool = False
    permission_granted: bool = True
    listening: bool = False
    has_reading: bool = False
    calibrated: bool = False
    message: Optional[str] = None
