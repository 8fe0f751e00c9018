# lidar_fusion/detection/detection_parser.py

import logging
import re
from typing import Iterable, List, Optional

from lidar_fusion.types import Detection, RawDetection

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
_INT32_MIN = -2 ** 31
_INT32_MAX = 2 ** 31 - 1


def parse_detection_id(raw: str) -> Optional[int]:
    """
    Parse a detector id string into an integer.

    Leading whitespace and an optional sign are accepted, anything after the
    leading digits is ignored ("12abc" -> 12). The value must fit a signed
    32-bit integer.

    Args:
        raw: Id string as delivered by the detector

    Returns:
        Parsed id, or None if the string does not start with an integer
    """
    if not isinstance(raw, str):
        raw = str(raw)
    match = _LEADING_INT.match(raw)
    if match is None:
        return None
    value = int(match.group(1))
    if value < _INT32_MIN or value > _INT32_MAX:
        return None
    return value


def parse_detections(raw_detections: Iterable[RawDetection]) -> List[Detection]:
    """
    Convert center/size detections into corner boxes.

    A detection whose id cannot be parsed is skipped; the others are kept
    in their original order.
    """
    detections = []
    for raw in raw_detections:
        detection_id = parse_detection_id(raw.id)
        if detection_id is None:
            logger.error(f"Failed to convert detection ID to integer: {raw.id!r}")
            continue
        detections.append(Detection.from_center(
            detection_id, raw.center_x, raw.center_y, raw.size_x, raw.size_y
        ))
    return detections
