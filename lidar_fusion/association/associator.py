# lidar_fusion/association/associator.py

import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from lidar_fusion.types import BoundingBoxAccumulator, Detection, Pixel, ProjectedPoints

logger = logging.getLogger(__name__)


@dataclass
class AssociationResult:
    """
    Per-frame association output.

    Attributes:
        accumulators: One accumulator per detection, in detection order
        matched_pixels: (u, v) of every point/box match, point-major order.
            A point inside two boxes appears twice.
    """

    accumulators: List[BoundingBoxAccumulator] = field(default_factory=list)
    matched_pixels: List[Pixel] = field(default_factory=list)

    @property
    def total_matches(self) -> int:
        return len(self.matched_pixels)


def associate(projected: ProjectedPoints, detections: Sequence[Detection]) -> AssociationResult:
    """
    Assign projected points to every detection box that contains them.

    Containment is inclusive on all four edges. Boxes are not exclusive:
    a point inside overlapping boxes is counted once for each of them.

    Args:
        projected: Points that landed inside the image
        detections: Detection boxes for the same frame

    Returns:
        AssociationResult with fresh accumulators
    """
    accumulators = [BoundingBoxAccumulator(detection) for detection in detections]
    matched_pixels: List[Pixel] = []

    if not accumulators:
        return AssociationResult(accumulators, matched_pixels)

    for i in range(len(projected)):
        u = int(projected.u[i])
        v = int(projected.v[i])
        x, y, z = (float(c) for c in projected.xyz[i])

        for accumulator in accumulators:
            if accumulator.detection.contains(u, v):
                matched_pixels.append((u, v))
                accumulator.add(x, y, z, i)

    logger.debug(
        f"Associated {len(matched_pixels)} point/box matches "
        f"across {len(accumulators)} detections"
    )
    return AssociationResult(accumulators, matched_pixels)


class Associator:
    """Stateless wrapper around :func:`associate`."""

    def associate(self, projected: ProjectedPoints,
                  detections: Sequence[Detection]) -> AssociationResult:
        return associate(projected, detections)
