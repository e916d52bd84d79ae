"""
Export sinks and point file loading.

The exporter only produces text; a sink decides where it goes.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional
import logging
import math

import numpy as np

from .models import HorizonPoint

logger = logging.getLogger(__name__)


class ExportSink(ABC):
    """Accepts generated text plus a suggested filename."""

    @abstractmethod
    def write(self, text: str, filename: str) -> str:
        """Deliver the text. Returns where it went."""
        pass


class FileExportSink(ExportSink):
    """Writes exports into a directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def write(self, text: str, filename: str) -> str:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / filename
        path.write_text(text + "\n", encoding="utf-8")
        logger.info(f"Wrote {path}")
        return str(path)


class MemoryExportSink(ExportSink):
    """Keeps exports in a dict keyed by filename."""

    def __init__(self):
        self.files: Dict[str, str] = {}

    def write(self, text: str, filename: str) -> str:
        self.files[filename] = text
        return filename


def _detect_delimiter(header: str) -> str:
    return ";" if header.count(";") > header.count(",") else ","


def load_points_csv(path: Path, delimiter: Optional[str] = None, session_id: str = "") -> List[HorizonPoint]:
    """
    Load points from a tabular file with Azimuth and Altitude columns.

    The delimiter is detected from the header when not given. Coordinates
    must be decimal degrees.
    """
    path = Path(path)
    if delimiter is None:
        with open(path, "r", encoding="utf-8") as f:
            delimiter = _detect_delimiter(f.readline())

    data = np.genfromtxt(path, delimiter=delimiter, names=True, dtype=float, encoding="utf-8")
    names = data.dtype.names or ()
    if "Azimuth" not in names or "Altitude" not in names:
        raise ValueError(f"{path} needs Azimuth and Altitude columns, found {list(names)}")

    points = []
    for i, row in enumerate(np.atleast_1d(data), start=1):
        azimuth = float(row["Azimuth"])
        altitude = float(row["Altitude"])
        if not (math.isfinite(azimuth) and math.isfinite(altitude)):
            raise ValueError(f"{path}: row {i} is not a decimal azimuth/altitude pair")
        points.append(HorizonPoint(azimuth=azimuth, altitude=altitude, session_id=session_id))

    logger.info(f"Loaded {len(points)} points from {path}")
    return points
