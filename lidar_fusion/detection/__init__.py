# lidar_fusion/detection/__init__.py
"""
Conversion of detector output into pixel-space boxes.
"""

from lidar_fusion.detection.detection_parser import parse_detection_id, parse_detections

__all__ = ['parse_detection_id', 'parse_detections']
