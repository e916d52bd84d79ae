"""
Configuration management for horizon capture.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional
import yaml


@dataclass
class FusionConfig:
    """Orientation fusion configuration."""

    strategy: Literal["cross_product", "heading"] = "cross_product"
    gravity_alpha: float = 0.2   # Low-pass factor for the gravity vector
    magnetic_alpha: float = 0.1  # Smoother for compass

    # Heading corrections
    declination_deg: float = 0.0
    azimuth_offset_deg: float = 0.0  # Manual correction if 0° is not true north
    auto_declination: bool = False   # Estimate declination from a GPS fix

    # "absolute": altitude as measured; "baseline": minus the calibrated tilt
    altitude_reference: Literal["absolute", "baseline"] = "absolute"

    # Moving average over the last N readings (0 = off)
    average_window: int = 0


@dataclass
class StabilityConfig:
    """Stability scoring configuration."""

    buffer_size: int = 12
    # Degrees of average per-step change that drive the score to 0.
    # None picks a default for the fusion strategy (5 cross_product, 30 heading).
    sensitivity: Optional[float] = None


@dataclass
class CalibrationConfig:
    """Calibration procedure configuration."""

    duration_ms: int = 3000
    min_accuracy: float = 0.7
    snapshot_min_stability: float = 0.6
    standard_gravity: float = 1.0  # 1 g in the sample unit (9.80665 for m/s²)
    deviation_scale: float = 5.0   # 0.2 g deviation gives accuracy 0
    timeout_slack_ms: int = 500


@dataclass
class CaptureConfig:
    """Capture session and coverage configuration."""

    resolution_deg: float = 5.0
    complete_threshold: float = 80.0  # Coverage % to call a session complete
    almost_threshold: float = 60.0    # Coverage % for the "almost there" signal
    gap_threshold_deg: float = 15.0
    min_capture_stability: float = 0.6
    min_points: int = 8
    recommended_points: int = 12


@dataclass
class ExportConfig:
    """Profile export configuration."""

    policy: Literal["carry_forward", "nearest_neighbor"] = "carry_forward"
    format: Literal["hzn", "csv"] = "hzn"
    delimiter: Literal[",", ";"] = ","
    include_timestamp: bool = False
    coordinate_format: Literal["decimal", "dms"] = "decimal"
    filename: str = "horizon_nina"


@dataclass
class SensorConfig:
    """Sensor source configuration."""

    update_interval_ms: int = 100


@dataclass
class Config:
    """Main configuration container."""

    fusion: FusionConfig = field(default_factory=FusionConfig)
    stability: StabilityConfig = field(default_factory=StabilityConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    sensor: SensorConfig = field(default_factory=SensorConfig)

    verbose: bool = False

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """
        Create Config from dictionary.

        Raises ValueError on unknown sections or keys.
        """
        config = cls()

        sections = {
            "fusion": FusionConfig,
            "stability": StabilityConfig,
            "calibration": CalibrationConfig,
            "capture": CaptureConfig,
            "export": ExportConfig,
            "sensor": SensorConfig,
        }
        unknown = set(data) - set(sections) - {"verbose"}
        if unknown:
            raise ValueError(f"Unknown configuration section(s): {', '.join(sorted(unknown))}")

        for name, section_cls in sections.items():
            if name in data:
                try:
                    setattr(config, name, section_cls(**(data[name] or {})))
                except TypeError as e:
                    raise ValueError(f"Invalid '{name}' configuration: {e}") from e

        config.verbose = data.get("verbose", False)

        return config

    def to_yaml(self, path: Path) -> None:
        """Save configuration to YAML file."""
        import dataclasses

        data = dataclasses.asdict(self)
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
