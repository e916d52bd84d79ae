"""
Storage collaborator for capture sessions and their points.

The core never retries: StorageError propagates to the caller and the
in-memory session is left as it was.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, List, Sequence
import logging
import threading

from .errors import StorageError
from .models import CaptureSessionRecord, HorizonPoint

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """
    CRUD over session and point records keyed by opaque id.
    """

    @abstractmethod
    def create_session(self, record: CaptureSessionRecord) -> CaptureSessionRecord:
        pass

    @abstractmethod
    def has_session(self, session_id: str) -> bool:
        pass

    @abstractmethod
    def get_session(self, session_id: str) -> CaptureSessionRecord:
        pass

    @abstractmethod
    def list_sessions(self) -> List[CaptureSessionRecord]:
        pass

    @abstractmethod
    def update_session(self, session_id: str, **changes) -> CaptureSessionRecord:
        pass

    @abstractmethod
    def delete_session(self, session_id: str) -> None:
        """Delete a session and all of its points."""
        pass

    @abstractmethod
    def save_points(self, session_id: str, points: Sequence[HorizonPoint]) -> None:
        """Replace the stored points of a session."""
        pass

    @abstractmethod
    def list_points(self, session_id: str) -> List[HorizonPoint]:
        pass

    @abstractmethod
    def update_point(self, point_id: str, **changes) -> HorizonPoint:
        pass

    @abstractmethod
    def delete_point(self, point_id: str) -> None:
        pass


class InMemorySessionStore(SessionStore):
    """Dictionary-backed store. Records are copied in and out."""

    def __init__(self):
        self._sessions: Dict[str, CaptureSessionRecord] = {}
        self._points: Dict[str, HorizonPoint] = {}
        self._lock = threading.Lock()

    def _require_session(self, session_id: str) -> CaptureSessionRecord:
        if session_id not in self._sessions:
            raise StorageError(f"Session not found: {session_id}")
        return self._sessions[session_id]

    def create_session(self, record: CaptureSessionRecord) -> CaptureSessionRecord:
        with self._lock:
            if record.id in self._sessions:
                raise StorageError(f"Session already exists: {record.id}")
            self._sessions[record.id] = replace(record)
            return replace(record)

    def has_session(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def get_session(self, session_id: str) -> CaptureSessionRecord:
        with self._lock:
            return replace(self._require_session(session_id))

    def list_sessions(self) -> List[CaptureSessionRecord]:
        """Newest first."""
        with self._lock:
            records = sorted(self._sessions.values(), key=lambda r: r.start_time, reverse=True)
            return [replace(r) for r in records]

    def update_session(self, session_id: str, **changes) -> CaptureSessionRecord:
        with self._lock:
            record = self._require_session(session_id)
            try:
                updated = replace(record, **changes)
            except TypeError as e:
                raise StorageError(f"Invalid session update: {e}") from e
            self._sessions[session_id] = updated
            return replace(updated)

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            self._require_session(session_id)
            del self._sessions[session_id]
            self._points = {pid: p for pid, p in self._points.items() if p.session_id != session_id}

    def save_points(self, session_id: str, points: Sequence[HorizonPoint]) -> None:
        with self._lock:
            record = self._require_session(session_id)
            kept = {pid: p for pid, p in self._points.items() if p.session_id != session_id}
            for point in points:
                if point.session_id != session_id:
                    point = point.with_changes(session_id=session_id)
                kept[point.id] = point
            self._points = kept
            self._sessions[session_id] = replace(record, total_points=len(points))
        logger.debug(f"Stored {len(points)} points for session {session_id}")

    def list_points(self, session_id: str) -> List[HorizonPoint]:
        """Points of a session in ascending azimuth."""
        with self._lock:
            self._require_session(session_id)
            points = [p for p in self._points.values() if p.session_id == session_id]
        return sorted(points, key=lambda p: p.azimuth)

    def update_point(self, point_id: str, **changes) -> HorizonPoint:
        with self._lock:
            if point_id not in self._points:
                raise StorageError(f"Point not found: {point_id}")
            try:
                updated = self._points[point_id].with_changes(**changes)
            except TypeError as e:
                raise StorageError(f"Invalid point update: {e}") from e
            self._points[point_id] = updated
            return updated

    def delete_point(self, point_id: str) -> None:
        with self._lock:
            point = self._points.pop(point_id, None)
            if point is None:
                raise StorageError(f"Point not found: {point_id}")
            record = self._sessions.get(point.session_id)
            if record is not None:
                self._sessions[point.session_id] = replace(record, total_points=max(0, record.total_points - 1))
