# ============================================================================
# PARTITION WORKER POOL
# ============================================================================
# STATUS: Core - assignment pipeline
# PURPOSE: Turn points into (zoom, quadkey, point_id) membership events on
#          W concurrent workers with bounded input and output queues
# EXPORTS: PartitionWorkerPool
# DEPENDENCIES: core.quadkey, core.fan_in
# ============================================================================
"""
Partition Worker Pool.

Points are assigned to workers round-robin by submission index. Each worker
walks the quadkey encoder once per point and emits one MembershipEvent per
zoom in [min_zoom, max_zoom) into its own output queue. Queues are bounded,
so submit() blocks when a worker falls behind.

Shutdown: close() puts END_OF_STREAM on every input queue; each worker
forwards it to its output queue after its last event, which is what the
fan-in merger counts.

Usage:
    abort = AbortSignal()
    pool = PartitionWorkerPool(worker_count=4, min_zoom=10, max_zoom=16,
                               queue_capacity=512, abort=abort)
    pool.start()
    for point in points:
        if not pool.submit(point):
            break  # aborted
    pool.close()
"""

import queue
import threading
from typing import List, Optional

from core.fan_in import (
    END_OF_STREAM,
    AbortSignal,
    get_unless_aborted,
    put_unless_aborted,
)
from core.models.geo import GeoPoint, GeoRect, MembershipEvent, WORLD_BOUNDS
from core.quadkey import iter_quadkeys
from exceptions import ContractViolationError
from util_logger import LoggerFactory, ComponentType


class PartitionWorkerPool:
    """
    W workers mapping points to membership events.

    Parameters:
    ----------
    worker_count: Number of worker threads (W)
    min_zoom, max_zoom: Half-open zoom range
    queue_capacity: Capacity of every input and output queue
    abort: Shared abort signal
    bounds: Root rectangle for the encoder
    """

    def __init__(
        self,
        worker_count: int,
        min_zoom: int,
        max_zoom: int,
        queue_capacity: int,
        abort: AbortSignal,
        bounds: GeoRect = WORLD_BOUNDS,
    ):
        if worker_count < 1:
            raise ValueError("worker_count must be >= 1")
        if not 1 <= min_zoom < max_zoom:
            raise ValueError(f"invalid zoom range [{min_zoom}, {max_zoom})")

        self.worker_count = worker_count
        self.min_zoom = min_zoom
        self.max_zoom = max_zoom
        self.bounds = bounds
        self.abort = abort
        self.logger = LoggerFactory.create_logger(ComponentType.PIPELINE, "PartitionWorkerPool")

        self.input_queues: List[queue.Queue] = [
            queue.Queue(maxsize=queue_capacity) for _ in range(worker_count)
        ]
        self.output_queues: List[queue.Queue] = [
            queue.Queue(maxsize=queue_capacity) for _ in range(worker_count)
        ]
        self._threads: List[threading.Thread] = []
        self._submitted = 0
        self._started = False
        self._closed = False

    @property
    def submitted(self) -> int:
        return self._submitted

    def start(self) -> None:
        for worker_id in range(self.worker_count):
            thread = threading.Thread(
                target=self._run_worker,
                args=(worker_id,),
                name=f"partition-worker-{worker_id}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()
        self._started = True
        self.logger.debug(
            f"Started {self.worker_count} partition workers for zooms "
            f"[{self.min_zoom}, {self.max_zoom})"
        )

    def submit(self, point: GeoPoint) -> bool:
        """
        Hand a point to the next worker (round-robin). Blocks while that
        worker's input queue is full.

        Returns:
            False if the run was aborted before the point was queued
        """
        if not self._started or self._closed:
            raise ContractViolationError("submit() called on a pool that is not running")
        target = self.input_queues[self._submitted % self.worker_count]
        if not put_unless_aborted(target, point, self.abort):
            return False
        self._submitted += 1
        return True

    def close(self) -> None:
        """Signal end of input to every worker."""
        if self._closed:
            return
        self._closed = True
        for input_queue in self.input_queues:
            if not put_unless_aborted(input_queue, END_OF_STREAM, self.abort):
                break

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in self._threads:
            thread.join(timeout)

    def _run_worker(self, worker_id: int) -> None:
        source = self.input_queues[worker_id]
        sink = self.output_queues[worker_id]
        point = None
        try:
            while True:
                point = get_unless_aborted(source, self.abort)
                if point is END_OF_STREAM:
                    break
                for zoom, quadkey in iter_quadkeys(point, self.min_zoom, self.max_zoom, self.bounds):
                    event = MembershipEvent(zoom=zoom, quadkey=quadkey, point_id=point.id)
                    if not put_unless_aborted(sink, event, self.abort):
                        return
            put_unless_aborted(sink, END_OF_STREAM, self.abort)
        except Exception as e:
            key = str(getattr(point, "id", None))
            self.abort.trigger("assignment", f"point {key}", e)


__all__ = ['PartitionWorkerPool']
