# ============================================================================
# FAN-IN MERGER - Per-worker streams into one consumer stream
# ============================================================================
# STATUS: Core - assignment pipeline
# PURPOSE: Multiplex N bounded worker output queues into one bounded queue,
#          closing it only after every worker stream is exhausted
# EXPORTS: END_OF_STREAM, AbortSignal, CountdownLatch, FanInMerger,
#          put_unless_aborted, get_unless_aborted
# ============================================================================
"""
Fan-In Merger.

Completion is tracked with a countdown latch initialised to the number of
sources. Each reader thread drains one source and counts the latch down when
it sees END_OF_STREAM. A completion thread waits on the latch and only then
puts END_OF_STREAM on the shared output, so the consumer can never observe
completion while a worker still has events in flight.

Every blocking put/get polls a shared AbortSignal. When any stage fails the
signal is set, and blocked producers, readers and the consumer stop waiting
instead of deadlocking on a full or empty queue.

Usage:
    from core.fan_in import FanInMerger, AbortSignal

    abort = AbortSignal()
    merger = FanInMerger(pool.output_queues, capacity=2048, abort=abort)
    merger.start()
    while True:
        item = get_unless_aborted(merger.output, abort)
        if item is END_OF_STREAM:
            break
        ...

Exports:
    END_OF_STREAM: Stream terminator sentinel
    AbortSignal: Shared abort flag carrying the first failure
    CountdownLatch: Blocks until counted down to zero
    FanInMerger: Reader threads + completion thread
"""

import logging
import queue
import threading
from typing import List, Optional, Any

logger = logging.getLogger(__name__)

# Poll interval for abortable queue operations (seconds)
POLL_INTERVAL = 0.1


class _EndOfStream:
    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = _EndOfStream()


class AbortSignal:
    """
    Shared abort flag for one run.

    Only the first trigger is recorded; later failures are usually fallout
    of the first one.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self.phase: Optional[str] = None
        self.key: Optional[str] = None
        self.error: Optional[BaseException] = None

    def trigger(self, phase: str, key: Optional[str], error: BaseException) -> bool:
        """Record a failure and set the flag. Returns True for the first trigger."""
        with self._lock:
            if self._event.is_set():
                return False
            self.phase = phase
            self.key = key
            self.error = error
            self._event.set()
        logger.error(f"❌ Abort requested in {phase} phase (key={key}): {error}")
        return True

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


def put_unless_aborted(target: queue.Queue, item: Any, abort: AbortSignal) -> bool:
    """
    Blocking put that gives up once the run is aborted.

    Returns:
        True if the item was queued, False if the run was aborted first
    """
    while not abort.is_set():
        try:
            target.put(item, timeout=POLL_INTERVAL)
            return True
        except queue.Full:
            continue
    return False


def get_unless_aborted(source: queue.Queue, abort: AbortSignal) -> Any:
    """
    Blocking get that gives up once the run is aborted.

    Returns:
        The next item, or END_OF_STREAM if the run was aborted first
    """
    while not abort.is_set():
        try:
            return source.get(timeout=POLL_INTERVAL)
        except queue.Empty:
            continue
    return END_OF_STREAM


class CountdownLatch:
    """Blocks waiters until count_down() has been called `count` times."""

    def __init__(self, count: int):
        if count < 0:
            raise ValueError("count must be >= 0")
        self._count = count
        self._condition = threading.Condition()

    @property
    def count(self) -> int:
        with self._condition:
            return self._count

    def count_down(self) -> None:
        with self._condition:
            if self._count > 0:
                self._count -= 1
                if self._count == 0:
                    self._condition.notify_all()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for zero. Returns False if the timeout expired first."""
        with self._condition:
            return self._condition.wait_for(lambda: self._count == 0, timeout=timeout)


class FanInMerger:
    """
    Merges N source queues into one bounded output queue.

    Parameters:
    ----------
    sources: Worker output queues, each terminated by END_OF_STREAM
    capacity: Capacity of the shared output queue
    abort: Shared abort signal
    """

    def __init__(self, sources: List[queue.Queue], capacity: int, abort: AbortSignal):
        self.sources = sources
        self.output: queue.Queue = queue.Queue(maxsize=capacity)
        self.abort = abort
        self.latch = CountdownLatch(len(sources))
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        for index, source in enumerate(self.sources):
            thread = threading.Thread(
                target=self._read,
                args=(index, source),
                name=f"fan-in-reader-{index}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

        completion = threading.Thread(
            target=self._complete,
            name="fan-in-completion",
            daemon=True,
        )
        self._threads.append(completion)
        completion.start()
        logger.debug(f"Fan-in merger started with {len(self.sources)} readers")

    def _read(self, index: int, source: queue.Queue) -> None:
        while True:
            item = get_unless_aborted(source, self.abort)
            if item is END_OF_STREAM:
                break
            if not put_unless_aborted(self.output, item, self.abort):
                break
        self.latch.count_down()
        logger.debug(f"Fan-in reader {index} drained")

    def _complete(self) -> None:
        while not self.latch.wait(timeout=POLL_INTERVAL):
            if self.abort.is_set():
                return
        if self.abort.is_set():
            return
        put_unless_aborted(self.output, END_OF_STREAM, self.abort)
        logger.debug("Fan-in output closed")

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in self._threads:
            thread.join(timeout)


__all__ = [
    'END_OF_STREAM',
    'AbortSignal',
    'CountdownLatch',
    'FanInMerger',
    'put_unless_aborted',
    'get_unless_aborted',
]
