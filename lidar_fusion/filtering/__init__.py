# lidar_fusion/filtering/__init__.py
"""
Region-of-interest filtering of raw point clouds.
"""

from lidar_fusion.filtering.spatial_filter import RegionOfInterest, SpatialFilter, pass_through

__all__ = ['RegionOfInterest', 'SpatialFilter', 'pass_through']
