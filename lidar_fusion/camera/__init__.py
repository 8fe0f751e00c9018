# lidar_fusion/camera/__init__.py
"""
Camera intrinsics and readiness gating.
"""

from lidar_fusion.camera.camera_model import CameraModel, CameraState

__all__ = ['CameraModel', 'CameraState']
