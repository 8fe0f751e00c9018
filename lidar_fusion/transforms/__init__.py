# lidar_fusion/transforms/__init__.py
"""
Reference-frame transforms for point clouds.
"""

from lidar_fusion.transforms.transform_provider import TransformProvider, TransformBuffer
from lidar_fusion.transforms.frame_transformer import FrameTransformer

__all__ = ['TransformProvider', 'TransformBuffer', 'FrameTransformer']
