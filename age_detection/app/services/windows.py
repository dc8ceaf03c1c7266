"""Sliding window enumeration over a single pyramid level."""
from __future__ import annotations

from typing import Iterator, List, Tuple

from ..models import Window


def _axis_positions(extent: int, window: int, step: int) -> List[int]:
    """Offsets along one axis; the last window is anchored flush to the far edge."""

    if window > extent:
        return []
    last = extent - window
    positions = list(range(0, last + 1, step))
    if positions[-1] != last:
        positions.append(last)
    return positions


def sliding_window(
    width: int,
    height: int,
    window_size: Tuple[int, int],
    step: int,
) -> Iterator[Window]:
    """Yield fixed-size windows covering a ``width`` x ``height`` image, row by row.

    Windows never extend past the image; a level smaller than the window yields nothing.
    """

    window_width, window_height = window_size
    if window_width <= 0 or window_height <= 0:
        raise ValueError(f"Window size must be positive, got {window_size}")
    if step <= 0:
        raise ValueError(f"Window step must be positive, got {step}")

    xs = _axis_positions(width, window_width, step)
    index = 0
    for y in _axis_positions(height, window_height, step):
        for x in xs:
            yield Window(x=x, y=y, width=window_width, height=window_height, index=index)
            index += 1
