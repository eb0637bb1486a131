"""
Scheduler - background execution of mapping and geofence computations.

Author: Vítor Eulálio Reis <vitor.reis@proton.me>
Copyright (c) 2025

The algorithmic core is pure and CPU-bound; this module is the calling layer
that keeps it off the interactive thread.

Key Classes:
    RequestSequencer: Monotonically increasing request sequence numbers
    Debouncer: Coalesces bursts of triggers into one delayed call
    BackgroundComputation: Runs one kind of computation on a worker pool
    ComputationOutcome: Discriminated READY / ERROR result of a computation

Supersession Policy:
    Every submission is tagged with a new sequence number. When a result
    arrives it is delivered only if no newer request has been issued in the
    meantime (last-requested-wins, never first-completed-wins). Superseded
    results are dropped silently.

State Machine:
    IDLE -> COMPUTING -> READY | ERROR -> COMPUTING -> ...

Threading Model:
    Computations run on a concurrent.futures thread pool. Outcome callbacks
    are invoked from the worker thread while the computation's delivery lock
    is held, so callbacks of one computation never interleave.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .config import DEFAULT_COMPUTATION_BUDGET_SEC
from .errors import ShowConsoleError, StaleComputationError

logger = logging.getLogger(__name__)


class ComputationState(Enum):
    IDLE = "idle"
    COMPUTING = "computing"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class ComputationOutcome:
    """Result of one computation: either a value (READY) or an error (ERROR)"""

    name: str
    sequence: int
    state: ComputationState
    result: Any = None
    error: Optional[BaseException] = None
    duration_sec: float = 0.0

    @property
    def ok(self) -> bool:
        return self.state is ComputationState.READY


class RequestSequencer:
    """Thread-safe source of request sequence numbers"""

    def __init__(self):
        self._lock = threading.Lock()
        self._latest = 0

    @property
    def latest(self) -> int:
        with self._lock:
            return self._latest

    def next(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def is_current(self, sequence: int) -> bool:
        with self._lock:
            return sequence == self._latest

    def ensure_current(self, sequence: int):
        """Raise StaleComputationError if a newer request has been issued"""
        with self._lock:
            latest = self._latest
        if sequence != latest:
            raise StaleComputationError(sequence, latest)


class Debouncer:
    """
    Delay a callback until triggers have stopped for `delay` seconds.

    Each trigger() replaces the pending arguments and restarts the timer;
    only the last arguments are used when the callback finally runs.
    """

    def __init__(self, delay: float, callback: Callable):
        self.delay = delay
        self.callback = callback
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def trigger(self, *args, **kwargs):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._pending = (args, kwargs)
            self._timer = threading.Timer(self.delay, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()

    def _take_pending(self):
        pending = self._pending
        self._pending = None
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        return pending

    def _fire(self, generation: int):
        with self._lock:
            # A newer trigger restarted the timer after this one expired
            if generation != self._generation:
                return
            pending = self._take_pending()

        if pending is not None:
            args, kwargs = pending
            self.callback(*args, **kwargs)

    def flush(self) -> bool:
        """Run the pending call immediately on the calling thread"""
        with self._lock:
            pending = self._take_pending()

        if pending is None:
            return False

        args, kwargs = pending
        self.callback(*args, **kwargs)
        return True

    def cancel(self):
        with self._lock:
            self._take_pending()


class BackgroundComputation:
    """
    Runs a pure function on a worker thread and delivers the latest outcome.

    Args:
        name: Label used in logs and outcomes ("mapping", "geofence", ...)
        func: Function computing the result from the submitted arguments
        on_outcome: Called with every non-stale ComputationOutcome
        executor: Shared thread pool; a private single-thread pool if omitted
        budget_sec: Log a warning when a computation takes longer than this
    """

    def __init__(
        self,
        name: str,
        func: Callable,
        on_outcome: Optional[Callable[[ComputationOutcome], None]] = None,
        executor: Optional[ThreadPoolExecutor] = None,
        budget_sec: float = DEFAULT_COMPUTATION_BUDGET_SEC,
    ):
        self.name = name
        self.func = func
        self.on_outcome = on_outcome
        self.budget_sec = budget_sec

        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)

        self.sequencer = RequestSequencer()
        self._lock = threading.RLock()
        self._latest_future: Optional[Future] = None

        self.state = ComputationState.IDLE
        self.last_outcome: Optional[ComputationOutcome] = None

    @property
    def is_busy(self) -> bool:
        return self.state is ComputationState.COMPUTING

    def submit(self, *args, **kwargs) -> int:
        """Schedule a computation; returns its sequence number"""
        with self._lock:
            sequence = self.sequencer.next()
            self.state = ComputationState.COMPUTING
            self._latest_future = self.executor.submit(self._run, sequence, args, kwargs)

        logger.debug(f"Submitted {self.name} computation #{sequence}")
        return sequence

    def invalidate(self):
        """Discard the results of all computations submitted so far"""
        with self._lock:
            self.sequencer.next()
            self._latest_future = None
            self.state = ComputationState.IDLE

    def _run(self, sequence: int, args: tuple, kwargs: dict) -> Optional[ComputationOutcome]:
        start = time.monotonic()
        try:
            result = self.func(*args, **kwargs)
            state, error = ComputationState.READY, None
        except ShowConsoleError as e:
            logger.warning(f"{self.name} computation #{sequence} failed: {e}")
            result, state, error = None, ComputationState.ERROR, e
        except Exception as e:
            logger.error(f"Unexpected error in {self.name} computation #{sequence}: {e}", exc_info=True)
            result, state, error = None, ComputationState.ERROR, e

        duration = time.monotonic() - start
        if duration > self.budget_sec:
            logger.warning(
                f"{self.name} computation #{sequence} took {duration:.2f}s "
                f"(budget {self.budget_sec:.2f}s)"
            )

        outcome = ComputationOutcome(
            name=self.name,
            sequence=sequence,
            state=state,
            result=result,
            error=error,
            duration_sec=duration,
        )
        return self._deliver(outcome)

    def _deliver(self, outcome: ComputationOutcome) -> Optional[ComputationOutcome]:
        with self._lock:
            try:
                self.sequencer.ensure_current(outcome.sequence)
            except StaleComputationError as e:
                logger.debug(f"Dropping {self.name} result: {e}")
                return None

            self.state = outcome.state
            self.last_outcome = outcome

            if self.on_outcome is not None:
                try:
                    self.on_outcome(outcome)
                except Exception as e:
                    logger.error(f"Error handling {self.name} outcome: {e}", exc_info=True)

        return outcome

    def wait(self, timeout: Optional[float] = None) -> Optional[ComputationOutcome]:
        """
        Block until the most recent submission has been delivered.

        Raises:
            concurrent.futures.TimeoutError: not finished within timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            with self._lock:
                future = self._latest_future
            if future is None:
                return self.last_outcome

            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            future.result(timeout=remaining)

            with self._lock:
                if future is self._latest_future:
                    return self.last_outcome

    def shutdown(self):
        self.invalidate()
        if self._owns_executor:
            self.executor.shutdown(wait=True)
