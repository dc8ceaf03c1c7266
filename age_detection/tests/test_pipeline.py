from __future__ import annotations

import threading
from typing import List

import numpy as np
import pytest

from age_detection.app.config.settings import DetectionSettings
from age_detection.app.models import AgeGroup, Exhausted, Prediction, Success
from age_detection.app.services.classifier_client import ClassifierError
from age_detection.app.services.dispatcher import DetectionCancelled
from age_detection.app.services.pipeline import DetectionPipeline, DetectionSession


class BrightnessClassifier:
    """Confidence is the share of white pixels in the crop."""

    def __init__(self) -> None:
        self.calls = 0
        self._lock = threading.Lock()

    def classify(self, image: np.ndarray) -> Prediction:
        with self._lock:
            self.calls += 1
        return Prediction(label=AgeGroup.KID, confidence=float(image.mean()) / 255.0)


class FailingClassifier:
    def classify(self, image: np.ndarray) -> Prediction:
        raise ClassifierError("unreachable")


@pytest.fixture()
def settings(tmp_path) -> DetectionSettings:
    return DetectionSettings(
        window_size=(150, 150),
        window_step=30,
        pyramid_scale=1.25,
        min_size=(150, 150),
        max_concurrent_requests=8,
        output_dir=tmp_path / "results",
    )


def _patch_image() -> np.ndarray:
    image = np.zeros((300, 300, 3), dtype=np.uint8)
    image[0:150, 0:150] = 255
    return image


def test_run_attempt_finds_bright_patch(settings: DetectionSettings) -> None:
    classifier = BrightnessClassifier()
    pipeline = DetectionPipeline(settings, classifier)
    try:
        detections = pipeline.run_attempt(_patch_image(), threshold=0.93)
    finally:
        pipeline.close()

    assert [detection.bbox for detection in detections] == [(0, 0, 150, 150)]
    assert detections[0].confidence == pytest.approx(1.0)
    # 36 + 16 + 9 + 4 windows over the four pyramid levels.
    assert classifier.calls == 65


def test_process_reports_prediction_and_annotation(settings: DetectionSettings) -> None:
    image = _patch_image()
    pipeline = DetectionPipeline(settings, BrightnessClassifier())
    try:
        report = pipeline.process(image)
    finally:
        pipeline.close()

    assert report.age_group == "6-20"
    assert isinstance(report.outcome, Success)
    assert report.thresholds == [0.93]
    assert len(report.detections) == 1
    assert report.annotated.shape == image.shape
    assert not np.array_equal(report.annotated, image)
    assert report.to_dict()["status"] == "success"


def test_blank_image_exhausts_retries(settings: DetectionSettings) -> None:
    image = np.zeros((300, 300, 3), dtype=np.uint8)
    classifier = BrightnessClassifier()
    pipeline = DetectionPipeline(settings, classifier)
    try:
        report = pipeline.process(image)
    finally:
        pipeline.close()

    assert isinstance(report.outcome, Exhausted)
    assert report.detections == []
    assert len(report.thresholds) == settings.max_attempts + 1
    assert report.thresholds[-1] == pytest.approx(0.73)
    assert np.array_equal(report.annotated, image)
    assert classifier.calls == 1 + 65 * (settings.max_attempts + 1)


def test_oracle_failures_degrade_to_empty_result(settings: DetectionSettings) -> None:
    settings.max_attempts = 1
    pipeline = DetectionPipeline(settings, FailingClassifier())
    try:
        report = pipeline.process(_patch_image())
    finally:
        pipeline.close()

    assert report.prediction.label is None
    assert report.age_group == ""
    assert isinstance(report.outcome, Exhausted)


def test_detection_can_be_disabled(settings: DetectionSettings) -> None:
    settings.detect_objects = False
    classifier = BrightnessClassifier()
    pipeline = DetectionPipeline(settings, classifier)
    try:
        report = pipeline.process(_patch_image())
    finally:
        pipeline.close()

    assert report.outcome is None
    assert classifier.calls == 1
    assert report.to_dict()["status"] == "skipped"


def test_session_reports_loading_state(settings: DetectionSettings) -> None:
    loading: List[bool] = []
    pipeline = DetectionPipeline(settings, BrightnessClassifier())
    try:
        report = DetectionSession(pipeline, on_loading=loading.append).submit(_patch_image())
    finally:
        pipeline.close()

    assert loading == [True, False]
    assert isinstance(report.outcome, Success)


def test_cancelled_run_is_discarded_and_stops_loading(settings: DetectionSettings) -> None:
    loading: List[bool] = []
    holder: List[DetectionSession] = []

    class CancellingClassifier:
        def classify(self, image: np.ndarray) -> Prediction:
            holder[0].cancel()
            return Prediction(label=AgeGroup.ADULT, confidence=0.99)

    pipeline = DetectionPipeline(settings, CancellingClassifier())
    session = DetectionSession(pipeline, on_loading=loading.append)
    holder.append(session)
    try:
        with pytest.raises(DetectionCancelled):
            session.submit(_patch_image())
    finally:
        pipeline.close()

    assert loading == [True, False]


def test_superseding_run_owns_loading_state(settings: DetectionSettings) -> None:
    loading: List[bool] = []
    holder: List[DetectionSession] = []
    reports = []

    class ResubmittingClassifier:
        def __init__(self) -> None:
            self.resubmitted = False

        def classify(self, image: np.ndarray) -> Prediction:
            if not self.resubmitted:
                self.resubmitted = True
                reports.append(holder[0].submit(image))
            return Prediction(label=AgeGroup.ADULT, confidence=0.99)

    settings.detect_objects = False
    pipeline = DetectionPipeline(settings, ResubmittingClassifier())
    session = DetectionSession(pipeline, on_loading=loading.append)
    holder.append(session)
    try:
        with pytest.raises(DetectionCancelled):
            session.submit(_patch_image())
    finally:
        pipeline.close()

    # The first run ends after the newer one and must not touch the indicator.
    assert loading == [True, True, False]
    assert len(reports) == 1
    assert reports[0].age_group == "36-59"


def test_unexpected_classifier_error_yields_empty_prediction(settings: DetectionSettings) -> None:
    class BrokenClassifier:
        def classify(self, image: np.ndarray) -> Prediction:
            raise RuntimeError("malformed response")

    settings.detect_objects = False
    pipeline = DetectionPipeline(settings, BrokenClassifier())
    try:
        report = pipeline.process(_patch_image())
    finally:
        pipeline.close()

    assert report.prediction.label is None
    assert report.prediction.confidence == 0.0
    assert report.age_group == ""
