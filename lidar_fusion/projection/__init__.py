# lidar_fusion/projection/__init__.py
"""
Pinhole projection of 3D points onto the image plane.
"""

from lidar_fusion.projection.projector import Projector, project_points

__all__ = ['Projector', 'project_points']
