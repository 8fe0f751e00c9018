# lidar_fusion/utils/visualization.py

import colorsys
import logging
from typing import Dict, Iterable, Sequence, Tuple

import cv2
import numpy as np

from lidar_fusion.errors import ImageDecodeError
from lidar_fusion.types import Detection, ImageFrame, Pixel, PoseArray

logger = logging.getLogger(__name__)

# Overlay marker for associated points: filled red circle (BGR)
POINT_RADIUS = 5
POINT_COLOR = (0, 0, 255)

# encoding -> (dtype, channels, conversion to BGR or None)
_ENCODINGS = {
    'bgr8': (np.uint8, 3, None),
    'rgb8': (np.uint8, 3, cv2.COLOR_RGB2BGR),
    'bgra8': (np.uint8, 4, cv2.COLOR_BGRA2BGR),
    'rgba8': (np.uint8, 4, cv2.COLOR_RGBA2BGR),
    'mono8': (np.uint8, 1, cv2.COLOR_GRAY2BGR),
    'mono16': (np.uint16, 1, cv2.COLOR_GRAY2BGR),
}


def decode_image(frame: ImageFrame) -> np.ndarray:
    """
    Convert an encoded image into a drawable BGR8 array.

    The result is always a fresh copy; the input buffer is never modified.

    Args:
        frame: Encoded image

    Returns:
        (height, width, 3) uint8 BGR image

    Raises:
        ImageDecodeError: If the encoding is unsupported or the buffer size is wrong
    """
    encoding = (frame.encoding or '').lower()
    if encoding not in _ENCODINGS:
        raise ImageDecodeError(f"Unsupported image encoding: {frame.encoding!r}")
    dtype, channels, conversion = _ENCODINGS[encoding]

    try:
        if isinstance(frame.data, np.ndarray):
            pixels = frame.data.astype(dtype, copy=False)
        else:
            pixels = np.frombuffer(frame.data, dtype=dtype)
        shape = (frame.height, frame.width) if channels == 1 else (frame.height, frame.width, channels)
        pixels = pixels.reshape(shape)
    except (TypeError, ValueError) as e:
        raise ImageDecodeError(
            f"Image buffer does not match {frame.width}x{frame.height} {encoding}: {e}"
        ) from e

    if dtype == np.uint16:
        pixels = (pixels >> 8).astype(np.uint8)

    if conversion is None:
        return pixels.copy()
    return cv2.cvtColor(pixels, conversion)


def draw_projected_points(image: np.ndarray, pixels: Iterable[Pixel],
                          radius: int = POINT_RADIUS,
                          color: Tuple[int, int, int] = POINT_COLOR) -> np.ndarray:
    """
    Draw a filled circle at each pixel, in place.

    Args:
        image: BGR image to draw on
        pixels: (u, v) pixel coordinates

    Returns:
        The same image
    """
    for u, v in pixels:
        cv2.circle(image, (int(u), int(v)), radius, color, -1)
    return image


class FusionVisualizer:
    """
    Debug overlays for fusion results: detection outlines and centroid labels.

    Not part of the published output; the CLI uses it when displaying frames.
    """

    def __init__(self, config: Dict = None):
        """
        Initialize the visualizer.

        Args:
            config: Configuration dictionary with visualization parameters
        """
        self.config = {
            'text_color': (255, 255, 255),  # BGR white
            'text_scale': 0.5,
            'text_thickness': 1,
            'box_thickness': 2,
            **(config or {})
        }

    def draw_detections(self, frame: np.ndarray, detections: Sequence[Detection],
                        poses: PoseArray = None) -> np.ndarray:
        """
        Draw detection boxes and, where available, the centroid of each object.

        Args:
            frame: BGR frame, drawn on in place
            detections: Detection boxes
            poses: Object poses from the same frame (optional)

        Returns:
            Frame with boxes drawn
        """
        positions = {}
        if poses is not None:
            positions = {pose.detection_id: pose.position for pose in poses.poses}

        for det in detections:
            color = self.get_color_by_id(det.id)
            x1, y1 = int(det.x_min), int(det.y_min)
            x2, y2 = int(det.x_max), int(det.y_max)
            cv2.rectangle(frame, (x1, y1), (x2, y2), color, self.config['box_thickness'])

            label = f"ID:{det.id}"
            if det.id in positions:
                x, y, z = positions[det.id]
                label += f" ({x:.1f}, {y:.1f}, {z:.1f})"

            text_size, _ = cv2.getTextSize(
                label,
                cv2.FONT_HERSHEY_SIMPLEX,
                self.config['text_scale'],
                self.config['text_thickness']
            )
            cv2.rectangle(
                frame,
                (x1, y1 - text_size[1] - 5),
                (x1 + text_size[0], y1),
                color,
                -1
            )
            cv2.putText(
                frame,
                label,
                (x1, y1 - 5),
                cv2.FONT_HERSHEY_SIMPLEX,
                self.config['text_scale'],
                self.config['text_color'],
                self.config['text_thickness']
            )

        return frame

    def get_color_by_id(self, id_value: int) -> Tuple[int, int, int]:
        """
        Generate a consistent color based on an ID.

        Args:
            id_value: Numeric ID

        Returns:
            BGR color tuple
        """
        # Golden ratio spreads consecutive ids around the hue circle
        golden_ratio = 0.618033988749895
        h = (id_value * golden_ratio) % 1.0
        r, g, b = colorsys.hsv_to_rgb(h, 0.8, 0.9)
        return (int(b * 255), int(g * 255), int(r * 255))
