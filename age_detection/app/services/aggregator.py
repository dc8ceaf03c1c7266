"""Convert classifier results into scored boxes in original-image coordinates."""
from __future__ import annotations

import logging
from typing import Iterable, List

from ..models import ClassificationResult, Detection
from ..utils.geometry import scale_bounds

LOGGER = logging.getLogger(__name__)


class DetectionAggregator:
    """Keep results at or above the acceptance threshold and rescale their windows."""

    def __init__(self, threshold: float) -> None:
        if threshold < 0.0:
            raise ValueError(f"Acceptance threshold must not be negative, got {threshold}")
        self.threshold = threshold

    def aggregate(self, results: Iterable[ClassificationResult], scale: float) -> List[Detection]:
        """Return detections for one level, in window discovery order."""

        detections: List[Detection] = []
        ordered = sorted(results, key=lambda result: result.window.index)
        for result in ordered:
            if result.confidence < self.threshold:
                continue
            window = result.window
            bbox = scale_bounds(window.x, window.y, window.width, window.height, scale)
            detections.append(Detection(bbox=bbox, confidence=result.confidence, label=result.label))
        LOGGER.debug(
            "Accepted %d of %d windows at threshold %.2f (scale %.3f)",
            len(detections),
            len(ordered),
            self.threshold,
            scale,
        )
        return detections
