"""Image utilities: loading, cropping, resizing, transport encoding and annotation."""
from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Iterable, Sequence

try:  # pragma: no cover - import guarded for optional dependency
    import cv2
    import numpy as np
except ImportError as exc:  # pragma: no cover
    raise ImportError(
        "opencv-python-headless and numpy are required for image utilities. Install the project "
        "dependencies via `pip install -e .`."
    ) from exc

from ..models import Detection, Window

LOGGER = logging.getLogger(__name__)


def load_image_bgr(path: Path) -> np.ndarray:
    image = cv2.imread(str(path))
    if image is None:
        raise ValueError(f"Failed to read image: {path}")
    return image


def save_image_bgr(path: Path, image: np.ndarray) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(path), image):
        raise ValueError(f"Failed to write image: {path}")


def crop(image: np.ndarray, window: Window) -> np.ndarray:
    """Return a copy of the region covered by the window."""

    x1, y1, x2, y2 = window.bounds()
    return image[y1:y2, x1:x2].copy()


def resize(image: np.ndarray, width: int, height: int) -> np.ndarray:
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)


def encode_jpeg_base64(image: np.ndarray, quality: int) -> bytes:
    """JPEG-compress an image and return its base64 representation."""

    ok, buffer = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ValueError("Failed to JPEG-encode image")
    return base64.b64encode(buffer.tobytes())


def draw_detections(
    image: np.ndarray,
    detections: Iterable[Detection],
    color_bgr: Sequence[int] = (0, 255, 0),
    thickness: int = 2,
) -> np.ndarray:
    """Draw detection rectangles on a copy of the image."""

    output = image.copy()
    color = tuple(int(channel) for channel in color_bgr)
    count = 0
    for detection in detections:
        x1, y1, x2, y2 = map(int, detection.bbox)
        cv2.rectangle(output, (x1, y1), (x2, y2), color, thickness)
        count += 1
    LOGGER.debug("Drew %d detection boxes", count)
    return output
