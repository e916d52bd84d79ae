"""
Exceptions raised across the capture/export boundary.
"""


class ExportError(ValueError):
    """Export rejected before any text was produced (no points, bad settings)."""


class StorageError(RuntimeError):
    """Raised by storage collaborators; propagated to the caller without retry."""
