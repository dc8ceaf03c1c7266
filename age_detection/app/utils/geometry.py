"""Geometry helper utilities for bounding boxes."""
from __future__ import annotations

from typing import Sequence

import numpy as np

BBox = Sequence[float]


def bbox_area(bbox: BBox) -> float:
    """Return the area of a bounding box in xyxy format."""

    x1, y1, x2, y2 = bbox
    return float(max(0.0, x2 - x1) * max(0.0, y2 - y1))


def intersection_area(first: BBox, second: BBox) -> float:
    width = min(first[2], second[2]) - max(first[0], second[0])
    height = min(first[3], second[3]) - max(first[1], second[1])
    return float(max(0.0, width) * max(0.0, height))


def smaller_area_overlap(first: BBox, second: BBox) -> float:
    """Return intersection divided by the area of the smaller box.

    This is not IoU: a box fully inside a larger one scores 1.0.
    """

    smaller = min(bbox_area(first), bbox_area(second))
    if smaller <= 0:
        return 0.0
    return intersection_area(first, second) / smaller


def smaller_area_overlaps(box: np.ndarray, others: np.ndarray) -> np.ndarray:
    """Vectorised :func:`smaller_area_overlap` of one box against an (N, 4) array."""

    box = np.asarray(box, dtype=np.float64)
    others = np.asarray(others, dtype=np.float64).reshape(-1, 4)
    if others.size == 0:
        return np.empty((0,), dtype=np.float64)
    inter_w = np.maximum(0.0, np.minimum(box[2], others[:, 2]) - np.maximum(box[0], others[:, 0]))
    inter_h = np.maximum(0.0, np.minimum(box[3], others[:, 3]) - np.maximum(box[1], others[:, 1]))
    inter_area = inter_w * inter_h

    box_area = max(0.0, float(box[2] - box[0])) * max(0.0, float(box[3] - box[1]))
    other_areas = np.maximum(0.0, others[:, 2] - others[:, 0]) * np.maximum(0.0, others[:, 3] - others[:, 1])
    smaller = np.minimum(box_area, other_areas)

    ratios = np.zeros(inter_area.shape, dtype=np.float64)
    np.divide(inter_area, smaller, out=ratios, where=smaller > 0)
    return ratios


def scale_bounds(x: int, y: int, width: int, height: int, scale: float) -> tuple[int, int, int, int]:
    """Map a level-local rectangle to original-image xyxy coordinates."""

    x1 = int(x * scale)
    y1 = int(y * scale)
    return x1, y1, x1 + int(width * scale), y1 + int(height * scale)
