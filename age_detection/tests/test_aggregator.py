from __future__ import annotations

import pytest

from age_detection.app.models import AgeGroup, ClassificationResult, Window
from age_detection.app.services.aggregator import DetectionAggregator


def _result(index: int, x: int, y: int, confidence: float) -> ClassificationResult:
    window = Window(x=x, y=y, width=150, height=150, index=index)
    return ClassificationResult(window=window, label=AgeGroup.ELDERLY, confidence=confidence)


def test_aggregate_filters_and_rescales() -> None:
    results = [
        _result(2, 30, 60, 0.95),
        _result(0, 0, 0, 0.5),
        _result(1, 150, 150, 0.93),
    ]
    detections = DetectionAggregator(threshold=0.93).aggregate(results, scale=1.25)

    assert [detection.bbox for detection in detections] == [
        (187, 187, 374, 374),
        (37, 75, 224, 262),
    ]
    assert [detection.confidence for detection in detections] == [0.93, 0.95]
    assert all(detection.label is AgeGroup.ELDERLY for detection in detections)


def test_aggregate_identity_scale() -> None:
    detections = DetectionAggregator(threshold=0.0).aggregate([_result(0, 10, 20, 0.0)], scale=1.0)
    assert detections[0].bbox == (10, 20, 160, 170)


def test_negative_threshold_rejected() -> None:
    with pytest.raises(ValueError):
        DetectionAggregator(threshold=-0.01)
