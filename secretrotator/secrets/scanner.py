"""Classify every secret under a prefix against the rotation due-check."""

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Dict, Iterable, Iterator, Optional, TypeVar

from ..utils.errors import AuthenticationError, BackendConnectionError, RotatorError
from .metadata import (
    DEFAULT_PERIOD_MONTHS,
    DecisionStatus,
    RotationDecision,
    evaluate_rotation,
    utc_now,
)

if TYPE_CHECKING:
    from ..backends.base import SecretBackend, SecretRef

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def process_in_order(
    items: Iterable[T],
    func: Callable[[T, threading.Event], R],
    workers: int = 1,
    timeout: Optional[float] = None,
    on_timeout: Optional[Callable[[T, BackendConnectionError], R]] = None,
) -> Iterator[R]:
    """
    Apply ``func`` to each item, yielding results in input order.

    ``func`` receives the item and an "abandoned" event. With ``workers > 1``
    items run on a thread pool with at most ``2 * workers`` in flight.
    ``func`` must not raise for per-item failures; it returns a result
    describing them. When ``timeout`` expires while waiting for an item, its
    event is set and ``on_timeout`` builds that item's result from a
    ``BackendConnectionError``. A running thread cannot be interrupted, so
    ``func`` is expected to check the event before every side effect.
    """
    if workers <= 1:
        for item in items:
            yield func(item, threading.Event())
        return

    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rotator")
    pending = deque()

    def collect(item, abandoned, future):
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            abandoned.set()
            future.cancel()
            error = BackendConnectionError(
                f"Timed out after {timeout}s processing {item}",
                path=str(item),
                operation="batch",
            )
            if on_timeout is None:
                raise error from None
            logger.warning("%s", error.message)
            return on_timeout(item, error)

    try:
        for item in items:
            abandoned = threading.Event()
            pending.append((item, abandoned, executor.submit(func, item, abandoned)))
            if len(pending) >= workers * 2:
                yield collect(*pending.popleft())
        while pending:
            yield collect(*pending.popleft())
    finally:
        for _, abandoned, _ in pending:
            abandoned.set()
        executor.shutdown(wait=False, cancel_futures=True)


def batch_exit_code(errors: Iterable[Optional[Exception]]) -> int:
    """Non-zero only when some secret failed on credentials or transport."""
    for error in errors:
        if isinstance(error, (AuthenticationError, BackendConnectionError)):
            return 1
    return 0


@dataclass(frozen=True)
class ScanResult:
    """Decision for one listed secret, or the error that prevented it."""

    ref: "SecretRef"
    decision: Optional[RotationDecision] = None
    error: Optional[RotatorError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Scanner:
    """Enumerates secrets through a backend and classifies each one."""

    def __init__(
        self,
        backend: "SecretBackend",
        default_period_months: int = DEFAULT_PERIOD_MONTHS,
        clock: Callable[[], datetime] = utc_now,
        workers: int = 1,
        timeout: Optional[float] = None,
    ):
        """
        Initialize scanner.

        Args:
            backend: Secret backend handle
            default_period_months: Period for records that carry none
            clock: Source of the reference instant
            workers: Concurrent metadata reads (1 keeps it sequential)
            timeout: Per-secret timeout when ``workers > 1``
        """
        self.backend = backend
        self.default_period_months = default_period_months
        self.clock = clock
        self.workers = workers
        self.timeout = timeout

    def classify(self, ref: "SecretRef", now: datetime) -> ScanResult:
        """Read metadata for one secret and evaluate it, capturing backend errors."""
        try:
            metadata = self.backend.read_metadata(ref.path)
        except RotatorError as e:
            logger.warning("Failed to read metadata for %s: %s", ref.path, e.message)
            return ScanResult(ref=ref, error=e)
        return ScanResult(ref=ref, decision=evaluate_rotation(metadata, now, self.default_period_months))

    def scan(self, prefix: str = "") -> Iterator[ScanResult]:
        """
        Lazily classify every secret under ``prefix``.

        Results follow the backend's listing order, which is not necessarily
        sorted. A single reference instant is used for the whole scan. An
        error raised by the listing itself propagates to the caller.
        """
        now = self.clock()
        logger.info(
            "Scanning for secrets needing rotation in %s (%s)",
            prefix or "/",
            self.backend.display_name,
        )
        yield from process_in_order(
            self.backend.list(prefix),
            lambda ref, abandoned: self.classify(ref, now),
            workers=self.workers,
            timeout=self.timeout,
            on_timeout=lambda ref, error: ScanResult(ref=ref, error=error),
        )


def summarize(results: Iterable[ScanResult]) -> Dict[str, int]:
    """Count scan results per decision status plus failures."""
    counts = {status.value: 0 for status in DecisionStatus}
    counts["failed"] = 0
    for result in results:
        if result.error is not None:
            counts["failed"] += 1
        elif result.decision is not None:
            counts[result.decision.status.value] += 1
    return counts
