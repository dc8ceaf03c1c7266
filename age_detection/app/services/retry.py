"""Threshold-relaxing retry loop around full detection attempts."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from ..models import Detection, Exhausted, Idle, RetryState, Running, Success

LOGGER = logging.getLogger(__name__)

AttemptFn = Callable[[float], Sequence[Detection]]


class RetryController:
    """Drive attempts with a decaying acceptance threshold.

    ``Idle -> Running(0, t0)``; an empty attempt moves to ``Running(n + 1, t - delta)``
    until ``max_attempts`` is reached or the threshold would go negative, which ends in
    ``Exhausted``. The first non-empty attempt ends in ``Success``.
    """

    def __init__(
        self,
        attempt: AttemptFn,
        initial_threshold: float = 0.93,
        decay: float = 0.02,
        max_attempts: int = 10,
    ) -> None:
        if decay <= 0:
            raise ValueError(f"Threshold decay must be positive, got {decay}")
        if max_attempts < 0:
            raise ValueError(f"max_attempts must not be negative, got {max_attempts}")
        if initial_threshold < 0:
            raise ValueError(f"Initial threshold must not be negative, got {initial_threshold}")
        self._attempt = attempt
        self.initial_threshold = initial_threshold
        self.decay = decay
        self.max_attempts = max_attempts
        self.state: RetryState = Idle()
        self.thresholds: List[float] = []

    def threshold_for(self, attempt: int) -> float:
        return round(self.initial_threshold - attempt * self.decay, 6)

    @property
    def finished(self) -> bool:
        return isinstance(self.state, (Success, Exhausted))

    def step(self) -> RetryState:
        """Perform one transition and return the new state."""

        state = self.state
        if isinstance(state, Idle):
            self.state = Running(attempt=0, threshold=self.threshold_for(0))
            return self.state
        if not isinstance(state, Running):
            return state

        self.thresholds.append(state.threshold)
        LOGGER.info("Detection attempt %d at threshold %.2f", state.attempt, state.threshold)
        detections = list(self._attempt(state.threshold))
        if detections:
            LOGGER.info("Attempt %d produced %d detections", state.attempt, len(detections))
            self.state = Success(detections=detections, attempt=state.attempt, threshold=state.threshold)
            return self.state

        next_threshold = self.threshold_for(state.attempt + 1)
        # A decay lost to rounding would repeat the threshold.
        if state.attempt >= self.max_attempts or next_threshold < 0 or next_threshold >= state.threshold:
            LOGGER.info("No detections after %d attempts", state.attempt + 1)
            self.state = Exhausted(attempts=state.attempt + 1, last_threshold=state.threshold)
            return self.state

        self.state = Running(attempt=state.attempt + 1, threshold=next_threshold)
        return self.state

    def run(self, max_steps: Optional[int] = None) -> RetryState:
        """Step until a terminal state is reached."""

        steps = 0
        while not self.finished:
            if max_steps is not None and steps >= max_steps:
                break
            self.step()
            steps += 1
        return self.state
