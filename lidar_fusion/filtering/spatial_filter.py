# lidar_fusion/filtering/spatial_filter.py
"""Axis-aligned region-of-interest crop for raw point clouds."""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from lidar_fusion.errors import ConfigurationError
from lidar_fusion.types import PointCloud

logger = logging.getLogger(__name__)

AXES = {'x': 0, 'y': 1, 'z': 2}


@dataclass(frozen=True)
class RegionOfInterest:
    """Inclusive bounds in meters, expressed in the point cloud's own frame."""

    min_x: float = -10.0
    max_x: float = 10.0
    min_y: float = -10.0
    max_y: float = 10.0
    min_z: float = -2.0
    max_z: float = 2.0

    def __post_init__(self):
        for axis in AXES:
            lo = getattr(self, f"min_{axis}")
            hi = getattr(self, f"max_{axis}")
            if lo > hi:
                raise ConfigurationError(f"min_{axis} ({lo}) is greater than max_{axis} ({hi})")

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> "RegionOfInterest":
        """Build from a dict; unknown keys are ignored and missing ones use defaults."""
        config = config or {}
        values = {}
        for name in cls.__dataclass_fields__:
            if name in config:
                try:
                    values[name] = float(config[name])
                except (TypeError, ValueError):
                    raise ConfigurationError(f"{name} must be a number, got {config[name]!r}")
        return cls(**values)

    def bounds(self, axis: str):
        return getattr(self, f"min_{axis}"), getattr(self, f"max_{axis}")


def pass_through(cloud: PointCloud, axis: str, lo: float, hi: float) -> PointCloud:
    """
    Keep the points whose coordinate on one axis lies within [lo, hi].

    Args:
        cloud: Input cloud
        axis: 'x', 'y' or 'z'
        lo: Lower bound (inclusive)
        hi: Upper bound (inclusive)

    Returns:
        New cloud; original indices are carried along
    """
    if axis not in AXES:
        raise ValueError(f"Unknown axis: {axis}")
    values = cloud.points[:, AXES[axis]]
    mask = (values >= lo) & (values <= hi)
    return cloud.subset(mask)


class SpatialFilter:
    """
    Crops a cloud to a region of interest.

    The crop runs as three independent pass-through filters, x then y then z.
    """

    def __init__(self, roi: Optional[RegionOfInterest] = None):
        self.roi = roi or RegionOfInterest()

    @classmethod
    def from_config(cls, config: Optional[Dict] = None) -> "SpatialFilter":
        return cls(RegionOfInterest.from_config(config))

    def filter(self, cloud: PointCloud) -> PointCloud:
        filtered = cloud
        for axis in ('x', 'y', 'z'):
            lo, hi = self.roi.bounds(axis)
            filtered = pass_through(filtered, axis, lo, hi)

        logger.debug(f"Spatial filter kept {len(filtered)}/{len(cloud)} points")
        return filtered
