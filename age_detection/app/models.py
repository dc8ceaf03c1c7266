"""Shared data models for age window detection."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

import numpy as np

BBox = Tuple[int, int, int, int]


class AgeGroup(str, Enum):
    """Fixed label set returned by the remote classifier."""

    KID = "Kid"
    YOUNG_ADULT = "Young Adult"
    ADULT = "Adult"
    ELDERLY = "Elderly"

    @property
    def index(self) -> int:
        """Position of this label in the classifier's score vector."""

        return list(AgeGroup).index(self)

    @property
    def age_range(self) -> str:
        return AGE_RANGES[self]

    @classmethod
    def from_label(cls, label: Optional[str]) -> Optional["AgeGroup"]:
        try:
            return cls(label)
        except ValueError:
            return None


AGE_RANGES = {
    AgeGroup.KID: "6-20",
    AgeGroup.YOUNG_ADULT: "21-35",
    AgeGroup.ADULT: "36-59",
    AgeGroup.ELDERLY: "60+",
}


@dataclass(frozen=True)
class Window:
    """Sliding window rectangle in level-local pixel coordinates."""

    x: int
    y: int
    width: int
    height: int
    index: int = 0

    def bounds(self) -> BBox:
        return self.x, self.y, self.x + self.width, self.y + self.height


@dataclass(frozen=True)
class PyramidLevel:
    image: np.ndarray
    # Factor mapping level-local coordinates back to the source image.
    scale: float
    index: int = 0

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


@dataclass(frozen=True)
class Prediction:
    """Oracle answer for a single image."""

    label: Optional[AgeGroup]
    confidence: float

    @property
    def age_range(self) -> str:
        return self.label.age_range if self.label else ""


@dataclass(frozen=True)
class ClassificationResult:
    window: Window
    label: Optional[AgeGroup]
    confidence: float


@dataclass(frozen=True)
class Detection:
    """Represents a single accepted box in original-image coordinates."""

    bbox: BBox
    confidence: float
    label: Optional[AgeGroup] = None

    @property
    def area(self) -> int:
        x1, y1, x2, y2 = self.bbox
        return max(0, x2 - x1) * max(0, y2 - y1)


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Running:
    attempt: int
    threshold: float


@dataclass(frozen=True)
class Success:
    detections: List[Detection]
    attempt: int
    threshold: float


@dataclass(frozen=True)
class Exhausted:
    attempts: int
    last_threshold: float
    detections: List[Detection] = field(default_factory=list)


RetryState = Union[Idle, Running, Success, Exhausted]


@dataclass
class DetectionReport:
    """Everything the presentation layer needs after one submitted image."""

    prediction: Prediction
    annotated: np.ndarray
    outcome: Optional[RetryState] = None
    thresholds: List[float] = field(default_factory=list)

    @property
    def age_group(self) -> str:
        return self.prediction.age_range

    @property
    def detections(self) -> List[Detection]:
        if isinstance(self.outcome, Success):
            return list(self.outcome.detections)
        return []

    def to_dict(self) -> dict:
        return {
            "age_group": self.age_group,
            "label": self.prediction.label.value if self.prediction.label else None,
            "confidence": self.prediction.confidence,
            "status": type(self.outcome).__name__.lower() if self.outcome is not None else "skipped",
            "thresholds": list(self.thresholds),
            "detections": [
                {
                    "bbox": list(detection.bbox),
                    "confidence": detection.confidence,
                    "label": detection.label.value if detection.label else None,
                }
                for detection in self.detections
            ],
        }
