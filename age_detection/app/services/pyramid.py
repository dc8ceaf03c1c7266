"""Image pyramid generation for multiscale detection."""
from __future__ import annotations

import logging
from typing import Iterator, Tuple

import numpy as np

from ..models import PyramidLevel
from ..utils.image import resize

LOGGER = logging.getLogger(__name__)


def iter_pyramid_sizes(
    width: int,
    height: int,
    scale: float = 1.25,
    min_size: Tuple[int, int] = (150, 150),
) -> Iterator[Tuple[int, int]]:
    """Yield (width, height) of each level, starting with the source size.

    Stops before the first level whose width or height would fall below ``min_size``.
    """

    if scale <= 1.0:
        raise ValueError(f"Pyramid scale must be greater than 1, got {scale}")
    min_width, min_height = min_size
    if min_width <= 0 or min_height <= 0:
        raise ValueError(f"Pyramid min_size must be positive, got {min_size}")
    if width < min_width or height < min_height:
        return

    while True:
        yield width, height
        width = int(width / scale)
        height = int(height / scale)
        if width < min_width or height < min_height:
            break


def image_pyramid(
    image: np.ndarray,
    scale: float = 1.25,
    min_size: Tuple[int, int] = (150, 150),
) -> Iterator[PyramidLevel]:
    """Lazily yield progressively downscaled copies of ``image``.

    Each level is resized from the previous one, so calling again with the same
    inputs reproduces the same sequence.
    """

    source_width = image.shape[1]
    current = image
    for index, (width, height) in enumerate(iter_pyramid_sizes(image.shape[1], image.shape[0], scale, min_size)):
        if index > 0:
            current = resize(current, width, height)
        LOGGER.debug("Pyramid level %d: %dx%d", index, width, height)
        yield PyramidLevel(image=current, scale=source_width / float(width), index=index)
