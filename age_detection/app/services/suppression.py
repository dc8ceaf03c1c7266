"""Greedy non-maximum suppression using the smaller-box overlap ratio."""
from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np

from ..models import Detection
from ..utils.geometry import smaller_area_overlaps

LOGGER = logging.getLogger(__name__)

DEFAULT_OVERLAP_THRESHOLD = 0.3


class NonMaxSuppressor:
    """Collapse overlapping candidates into a non-overlapping subset.

    Overlap is intersection over the area of the smaller box, not IoU. A candidate
    is dropped when its overlap with an already selected box reaches the threshold.
    """

    def __init__(self, overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD) -> None:
        self.overlap_threshold = overlap_threshold

    def suppress(self, candidates: Sequence[Detection]) -> List[Detection]:
        if not candidates:
            return []

        boxes = np.asarray([detection.bbox for detection in candidates], dtype=np.float64)
        scores = np.asarray([detection.confidence for detection in candidates], dtype=np.float64)
        # Stable sort keeps discovery order for equal confidences.
        order = np.argsort(-scores, kind="stable")
        keep: List[int] = []

        while order.size > 0:
            idx = int(order[0])
            keep.append(idx)
            rest = order[1:]
            overlaps = smaller_area_overlaps(boxes[idx], boxes[rest])
            order = rest[overlaps < self.overlap_threshold]

        LOGGER.debug("Suppression kept %d of %d candidates", len(keep), len(candidates))
        return [candidates[idx] for idx in keep]


def non_max_suppression(
    candidates: Sequence[Detection],
    overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD,
) -> List[Detection]:
    return NonMaxSuppressor(overlap_threshold).suppress(candidates)
