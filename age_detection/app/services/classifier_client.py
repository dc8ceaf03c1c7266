"""HTTP client for the remote age-group classifier."""
from __future__ import annotations

import logging
from typing import Any, List, Optional

import numpy as np
import requests
from pydantic import BaseModel, Field, ValidationError

from ..config.settings import DetectionSettings
from ..models import AgeGroup, Prediction
from ..utils.image import encode_jpeg_base64

LOGGER = logging.getLogger(__name__)


class ClassifierError(RuntimeError):
    """Raised when the classifier cannot be reached or answers with an error status."""


class ClassifierResponse(BaseModel):
    predicted_label: str = ""
    score: List[float] = Field(default_factory=list)

    def to_prediction(self) -> Prediction:
        label = AgeGroup.from_label(self.predicted_label)
        if label is None:
            return Prediction(label=None, confidence=0.0)
        if label.index >= len(self.score):
            return Prediction(label=label, confidence=0.0)
        confidence = float(self.score[label.index])
        if not 0.0 <= confidence <= 1.0:
            return Prediction(label=label, confidence=0.0)
        return Prediction(label=label, confidence=confidence)


def parse_prediction(payload: Any) -> Prediction:
    """Convert a raw JSON payload into a prediction; malformed payloads score zero."""

    if not isinstance(payload, dict):
        return Prediction(label=None, confidence=0.0)
    try:
        response = ClassifierResponse.model_validate(payload)
    except ValidationError as exc:
        LOGGER.debug("Malformed classifier payload: %s", exc)
        return Prediction(label=AgeGroup.from_label(payload.get("predicted_label")), confidence=0.0)
    return response.to_prediction()


class ClassifierClient:
    """Send JPEG/base64 encoded images to the classifier and parse its answers."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        jpeg_quality: int = 10,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.jpeg_quality = jpeg_quality
        self._session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: DetectionSettings, session: Optional[requests.Session] = None) -> "ClassifierClient":
        return cls(
            settings.classifier_url,
            timeout=settings.request_timeout_seconds,
            jpeg_quality=settings.jpeg_quality,
            session=session,
        )

    def classify(self, image: np.ndarray) -> Prediction:
        """Classify one image; raises :class:`ClassifierError` on transport failure."""

        body = encode_jpeg_base64(image, self.jpeg_quality)
        try:
            response = self._session.post(self.url, data=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ClassifierError(f"Classifier request failed: {exc}") from exc
        if response.status_code >= 400:
            raise ClassifierError(f"Classifier returned status {response.status_code}")
        try:
            payload = response.json()
        except ValueError:
            LOGGER.debug("Classifier returned a non-JSON body")
            return Prediction(label=None, confidence=0.0)
        return parse_prediction(payload)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "ClassifierClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
