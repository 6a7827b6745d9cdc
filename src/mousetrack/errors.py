"""
Error types shared by the tracking pipeline, the frame sources and the batch
scheduler.
"""


class MouseTrackError(Exception):
    """Base class for all tracking errors."""


class ConfigurationError(MouseTrackError, ValueError):
    """Invalid parameter value, rejected before a run starts."""


class SourceReadFailure(MouseTrackError, IOError):
    """A frame source could not be opened or decoded."""


class TrackingCancelled(MouseTrackError):
    """A run was stopped between two frames."""
