# lidar_fusion/association/__init__.py
"""
Association of projected points with detection boxes and per-object reduction.
"""

from lidar_fusion.association.associator import AssociationResult, Associator, associate
from lidar_fusion.association.aggregator import Aggregator, aggregate

__all__ = ['AssociationResult', 'Associator', 'associate', 'Aggregator', 'aggregate']
