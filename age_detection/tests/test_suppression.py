from __future__ import annotations

from typing import List

import numpy as np
import pytest

from age_detection.app.models import Detection
from age_detection.app.services.suppression import NonMaxSuppressor, non_max_suppression
from age_detection.app.utils.geometry import smaller_area_overlap, smaller_area_overlaps


def _random_detections(seed: int, count: int = 40) -> List[Detection]:
    rng = np.random.default_rng(seed)
    detections = []
    for _ in range(count):
        x1, y1 = rng.integers(0, 200, size=2)
        w, h = rng.integers(10, 80, size=2)
        confidence = float(np.round(rng.uniform(0.5, 1.0), 2))
        detections.append(Detection(bbox=(int(x1), int(y1), int(x1 + w), int(y1 + h)), confidence=confidence))
    return detections


def test_overlap_uses_smaller_box_area() -> None:
    outer = (0, 0, 100, 100)
    inner = (10, 10, 60, 60)
    assert smaller_area_overlap(outer, inner) == pytest.approx(1.0)
    assert smaller_area_overlap((0, 0, 10, 10), (5, 0, 20, 10)) == pytest.approx(0.5)
    assert smaller_area_overlap((0, 0, 10, 10), (20, 20, 30, 30)) == 0.0
    assert smaller_area_overlap((0, 0, 0, 10), (0, 0, 10, 10)) == 0.0

    ratios = smaller_area_overlaps(np.array(outer), np.array([inner, (90, 90, 110, 110)]))
    assert ratios == pytest.approx([1.0, 0.25])


def test_contained_box_is_suppressed_even_with_low_iou() -> None:
    candidates = [
        Detection(bbox=(0, 0, 100, 100), confidence=0.9),
        Detection(bbox=(10, 10, 60, 60), confidence=0.95),
        Detection(bbox=(200, 200, 260, 260), confidence=0.8),
    ]
    kept = NonMaxSuppressor(0.3).suppress(candidates)
    assert kept == [candidates[1], candidates[2]]


def test_overlap_equal_to_threshold_is_suppressed() -> None:
    candidates = [
        Detection(bbox=(0, 0, 10, 10), confidence=0.9),
        Detection(bbox=(7, 0, 17, 10), confidence=0.8),
    ]
    assert non_max_suppression(candidates, overlap_threshold=0.3) == [candidates[0]]


def test_ties_keep_discovery_order() -> None:
    candidates = [
        Detection(bbox=(0, 0, 50, 50), confidence=0.9),
        Detection(bbox=(5, 5, 55, 55), confidence=0.9),
    ]
    assert non_max_suppression(candidates) == [candidates[0]]


def test_empty_input() -> None:
    assert non_max_suppression([]) == []


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_suppression_is_idempotent(seed: int) -> None:
    suppressor = NonMaxSuppressor(0.3)
    kept = suppressor.suppress(_random_detections(seed))
    assert suppressor.suppress(kept) == kept


@pytest.mark.parametrize("seed", [3, 4, 5])
def test_suppression_is_sound(seed: int) -> None:
    threshold = 0.3
    candidates = _random_detections(seed)
    kept = non_max_suppression(candidates, threshold)

    for i, first in enumerate(kept):
        for second in kept[i + 1 :]:
            assert smaller_area_overlap(first.bbox, second.bbox) < threshold

    removed = [candidate for candidate in candidates if candidate not in kept]
    for candidate in removed:
        assert any(
            smaller_area_overlap(candidate.bbox, survivor.bbox) >= threshold
            and survivor.confidence >= candidate.confidence
            for survivor in kept
        )
