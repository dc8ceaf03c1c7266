"""Concurrent fan-out of window crops to the classifier with a counting join."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, Protocol, Tuple

import numpy as np

from ..models import ClassificationResult, Prediction, Window

LOGGER = logging.getLogger(__name__)

WindowRequest = Tuple[Window, np.ndarray]
CompletionCallback = Callable[[List[ClassificationResult]], None]


class Classifier(Protocol):
    def classify(self, image: np.ndarray) -> Prediction:
        ...


class DetectionCancelled(RuntimeError):
    """Raised when a run is superseded before its results are delivered."""


class CancellationToken:
    """Per-attempt flag that invalidates in-flight work once set."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise DetectionCancelled("Detection run was superseded")


class BatchJoin:
    """Count outstanding requests and fire the continuation once the count hits zero.

    The count starts at one for the dispatching side, which calls :meth:`seal`
    after the last submission so an early completion cannot fire the continuation.
    """

    def __init__(self, on_complete: Optional[CompletionCallback] = None, token: Optional[CancellationToken] = None) -> None:
        self._lock = threading.Lock()
        self._pending = 1
        self._results: List[ClassificationResult] = []
        self._on_complete = on_complete
        self._token = token
        self._fired = False
        self._aborted = False
        self.done = threading.Event()

    def enter(self) -> None:
        with self._lock:
            if self._fired:
                raise RuntimeError("Cannot enter a batch that has already completed")
            self._pending += 1

    def leave(self, result: Optional[ClassificationResult] = None) -> None:
        with self._lock:
            if result is not None:
                self._results.append(result)
            self._pending -= 1
            if self._pending > 0 or self._fired:
                return
            self._fired = True
            results = list(self._results)
        try:
            if self._on_complete is not None and not self._aborted and not (self._token and self._token.cancelled):
                self._on_complete(results)
        finally:
            self.done.set()

    def seal(self) -> None:
        self.leave()

    def abort(self) -> None:
        """Withhold the continuation; a dispatch error leaves the batch incomplete."""

        with self._lock:
            self._aborted = True

    @property
    def aborted(self) -> bool:
        with self._lock:
            return self._aborted

    @property
    def pending(self) -> int:
        with self._lock:
            return self._pending

    def results(self) -> List[ClassificationResult]:
        with self._lock:
            return list(self._results)


class ClassificationDispatcher:
    """Issue one classification request per window on a bounded thread pool."""

    def __init__(self, classifier: Classifier, max_workers: int = 16) -> None:
        self.classifier = classifier
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="classify")

    def dispatch(
        self,
        requests: Iterable[WindowRequest],
        on_complete: Optional[CompletionCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> BatchJoin:
        """Submit every request and return the join without waiting for completion."""

        join = BatchJoin(on_complete, token)
        submitted = 0
        try:
            for window, crop in requests:
                if token is not None and token.cancelled:
                    LOGGER.info("Dispatch cancelled after %d submissions", submitted)
                    break
                join.enter()
                try:
                    future = self._executor.submit(self.classifier.classify, crop)
                except RuntimeError:
                    join.abort()
                    join.leave(ClassificationResult(window=window, label=None, confidence=0.0))
                    raise
                future.add_done_callback(self._recorder(join, window))
                submitted += 1
        finally:
            join.seal()
        LOGGER.debug("Dispatched %d classification requests", submitted)
        return join

    def run(self, requests: Iterable[WindowRequest], token: Optional[CancellationToken] = None) -> List[ClassificationResult]:
        """Dispatch a batch and block until every request has reported."""

        join = self.dispatch(requests, token=token)
        join.done.wait()
        if token is not None:
            token.raise_if_cancelled()
        return join.results()

    @staticmethod
    def _recorder(join: BatchJoin, window: Window) -> Callable[[Future], None]:
        def _record(future: Future) -> None:
            try:
                prediction = future.result()
                result = ClassificationResult(window=window, label=prediction.label, confidence=prediction.confidence)
            except Exception as exc:  # oracle failures degrade to zero confidence
                LOGGER.warning("Classification failed for window %s: %s", window.bounds(), exc)
                result = ClassificationResult(window=window, label=None, confidence=0.0)
            join.leave(result)

        return _record

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "ClassificationDispatcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
