"""Coordinate classification, multiscale window detection and annotation for one image."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Iterator, List, Optional

import numpy as np

from ..config.settings import DetectionSettings
from ..models import Detection, DetectionReport, Prediction, PyramidLevel, RetryState, Success
from ..utils.image import crop, draw_detections
from .aggregator import DetectionAggregator
from .dispatcher import CancellationToken, Classifier, ClassificationDispatcher, WindowRequest
from .pyramid import image_pyramid
from .retry import RetryController
from .suppression import NonMaxSuppressor
from .windows import sliding_window

LOGGER = logging.getLogger(__name__)


class DetectionPipeline:
    """Run the pyramid / sliding window / classify / suppress flow with retries."""

    def __init__(
        self,
        settings: DetectionSettings,
        classifier: Classifier,
        dispatcher: Optional[ClassificationDispatcher] = None,
    ) -> None:
        self.settings = settings
        self.classifier = classifier
        self.dispatcher = dispatcher or ClassificationDispatcher(classifier, settings.max_concurrent_requests)
        self.suppressor = NonMaxSuppressor(settings.overlap_threshold)

    def classify_image(self, image: np.ndarray) -> Prediction:
        """Classify the whole image; failures yield an empty prediction."""

        try:
            prediction = self.classifier.classify(image)
        except Exception as exc:  # oracle failures degrade to an empty prediction
            LOGGER.warning("Whole-image classification failed: %s", exc)
            return Prediction(label=None, confidence=0.0)
        LOGGER.info(
            "Whole-image prediction: %s (%.3f)",
            prediction.label.value if prediction.label else "unknown",
            prediction.confidence,
        )
        return prediction

    def _window_requests(self, level: PyramidLevel, window_size: tuple[int, int]) -> Iterator[WindowRequest]:
        for window in sliding_window(level.width, level.height, window_size, self.settings.window_step):
            yield window, crop(level.image, window)

    def run_attempt(
        self,
        image: np.ndarray,
        threshold: float,
        token: Optional[CancellationToken] = None,
    ) -> List[Detection]:
        """One full pass over every pyramid level, returning suppressed detections."""

        window_size = self.settings.resolve_window_size(image.shape[1])
        aggregator = DetectionAggregator(threshold)
        candidates: List[Detection] = []
        for level in image_pyramid(image, self.settings.pyramid_scale, self.settings.min_size):
            if token is not None:
                token.raise_if_cancelled()
            results = self.dispatcher.run(self._window_requests(level, window_size), token=token)
            candidates.extend(aggregator.aggregate(results, level.scale))
            LOGGER.debug("Level %d (%dx%d): %d windows", level.index, level.width, level.height, len(results))
        return self.suppressor.suppress(candidates)

    def detect(self, image: np.ndarray, token: Optional[CancellationToken] = None) -> RetryController:
        """Retry full attempts with a relaxing threshold until something survives."""

        controller = RetryController(
            lambda threshold: self.run_attempt(image, threshold, token),
            initial_threshold=self.settings.initial_threshold,
            decay=self.settings.threshold_decay,
            max_attempts=self.settings.max_attempts,
        )
        controller.run()
        return controller

    def annotate(self, image: np.ndarray, outcome: Optional[RetryState]) -> np.ndarray:
        if not isinstance(outcome, Success):
            return image.copy()
        return draw_detections(
            image,
            outcome.detections,
            color_bgr=self.settings.box_color_bgr,
            thickness=self.settings.box_thickness,
        )

    def process(self, image: np.ndarray, token: Optional[CancellationToken] = None) -> DetectionReport:
        prediction = self.classify_image(image)
        if not self.settings.detect_objects:
            return DetectionReport(prediction=prediction, annotated=image.copy())
        controller = self.detect(image, token)
        return DetectionReport(
            prediction=prediction,
            annotated=self.annotate(image, controller.state),
            outcome=controller.state,
            thresholds=list(controller.thresholds),
        )

    def close(self) -> None:
        self.dispatcher.close()


class DetectionSession:
    """Caller-owned context for successive submissions.

    Submitting a new image cancels the previous run, whose results are then discarded.
    """

    def __init__(
        self,
        pipeline: DetectionPipeline,
        on_loading: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self.pipeline = pipeline
        self._on_loading = on_loading
        self._lock = threading.Lock()
        self._token: Optional[CancellationToken] = None

    def _issue_token(self) -> CancellationToken:
        with self._lock:
            if self._token is not None:
                self._token.cancel()
            self._token = CancellationToken()
            return self._token

    def cancel(self) -> None:
        with self._lock:
            if self._token is not None:
                self._token.cancel()

    def submit(self, image: np.ndarray) -> DetectionReport:
        token = self._issue_token()
        self._set_loading(True)
        try:
            report = self.pipeline.process(image, token)
            token.raise_if_cancelled()
            return report
        finally:
            # A superseding run owns the loading indicator.
            with self._lock:
                current = self._token is token
            if current:
                self._set_loading(False)

    def _set_loading(self, loading: bool) -> None:
        if self._on_loading is not None:
            self._on_loading(loading)
