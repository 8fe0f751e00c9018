# lidar_fusion/__init__.py
"""
LiDAR/camera fusion: 3D positions for 2D detections.
"""

from lidar_fusion.errors import (
    ConfigurationError,
    FusionError,
    ImageDecodeError,
    NotReadyError,
    TransformLookupError,
    TransformUnavailableError,
)
from lidar_fusion.types import (
    BoundingBoxAccumulator,
    CameraIntrinsics,
    Detection,
    FusionResult,
    ImageFrame,
    ObjectCloud,
    ObjectPose,
    PointCloud,
    PoseArray,
    ProjectedPoints,
    RawDetection,
    RigidTransform,
)

__version__ = "0.1.0"
