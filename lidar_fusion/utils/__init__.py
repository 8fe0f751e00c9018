# lidar_fusion/utils/__init__.py
"""
Utility functions for the fusion system.
"""

from lidar_fusion.utils.visualization import FusionVisualizer, decode_image, draw_projected_points

__all__ = ['FusionVisualizer', 'decode_image', 'draw_projected_points']
