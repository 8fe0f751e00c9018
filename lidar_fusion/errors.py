# lidar_fusion/errors.py
"""
Exception hierarchy for the fusion core.

Every error raised here is scoped to a single frame: the pipeline catches it,
logs a diagnostic, and moves on to the next synchronized triple.
"""


class FusionError(Exception):
    """Base class for all fusion errors."""


class NotReadyError(FusionError):
    """Camera intrinsics have not been received yet."""


class TransformLookupError(FusionError):
    """A transform provider could not resolve the requested frame pair."""


class TransformUnavailableError(FusionError):
    """The point cloud could not be brought into the camera frame."""

    def __init__(self, source_frame: str, target_frame: str, reason: str = ""):
        self.source_frame = source_frame
        self.target_frame = target_frame
        self.reason = reason
        message = f"Could not transform {source_frame} to {target_frame}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ImageDecodeError(FusionError):
    """The input image could not be converted to a drawable BGR surface."""


class ConfigurationError(FusionError):
    """Invalid configuration values."""
