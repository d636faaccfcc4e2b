"""
Cluster Index Builder Service.

Drives one batch run of the cluster index:

    1. Staging + assignment (one pass over the point source)
       driver thread     reads points, stages their coordinates in the store,
                         submits them round-robin to the worker pool
       W workers         point -> MembershipEvent per zoom
       fan-in merger     W reader threads + completion thread
       consumer thread   batches events into store.add_members(), collects
                         the observed key set, sets the completion event
    2. Barrier: the driver waits on the consumer's completion event
    3. Aggregation over the observed keys (ClusterAggregator)

Failures anywhere trigger the shared AbortSignal; every blocked thread gives
up its wait and the builder raises a single ClusterIndexBuildError naming the
phase and key. Recovery is rerunning the whole batch: membership inserts are
idempotent and aggregates are overwritten.

Exports:
    ClusterIndexBuilder: Run driver
"""

import threading
import time
import uuid
from typing import Optional, Set, Tuple

from config import ClusterConfig
from core.aggregation import ClusterAggregator
from core.fan_in import (
    END_OF_STREAM,
    POLL_INTERVAL,
    AbortSignal,
    FanInMerger,
    get_unless_aborted,
)
from core.models import AssignmentSummary, AggregationSummary, BuildSummary
from core.partition import PartitionWorkerPool
from exceptions import ClusterIndexBuildError
from infrastructure.interface_repository import IClusterStore, IPointSource, iter_batches
from util_logger import LoggerFactory, ComponentType

# Seconds to wait for pipeline threads after completion or abort
THREAD_JOIN_TIMEOUT = 5.0


class ClusterIndexBuilder:
    """
    Batch builder for the quadkey cluster index.

    Parameters:
    ----------
    store: Backing store (membership buckets + geo index)
    config: Cluster configuration (zoom range, pool sizing, strategy)
    """

    def __init__(self, store: IClusterStore, config: Optional[ClusterConfig] = None):
        self.store = store
        self.config = config or ClusterConfig()
        self.run_id = uuid.uuid4().hex[:12]
        self.logger = LoggerFactory.create_with_context(
            ComponentType.SERVICE,
            "ClusterIndexBuilder",
            run_id=self.run_id,
        )

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    def build(self, source: IPointSource) -> BuildSummary:
        """
        Full run: staging + assignment, barrier, aggregation.

        Raises:
            ClusterIndexBuildError: first unrecoverable failure
        """
        start = time.monotonic()
        self.logger.info(
            f"🚀 Cluster index run {self.run_id}: zooms [{self.config.min_zoom}, "
            f"{self.config.max_zoom}), {self.config.worker_count} workers, "
            f"strategy={self.config.aggregation_strategy}"
        )
        assignment, observed = self.assign(source)
        aggregation = self.aggregate(observed)
        summary = BuildSummary(
            points_staged=assignment.points_processed,
            assignment=assignment,
            aggregation=aggregation,
            elapsed_seconds=time.monotonic() - start,
        )
        self.logger.info(
            f"✅ Cluster index run {self.run_id} complete: {summary.points_staged} points, "
            f"{aggregation.keys_processed} clusters in {summary.elapsed_seconds:.2f}s"
        )
        return summary

    def assign(self, source: IPointSource) -> Tuple[AssignmentSummary, Set[str]]:
        """
        Staging + assignment phase.

        Returns:
            (summary, observed quadkeys)
        """
        start = time.monotonic()
        cfg = self.config
        abort = AbortSignal()

        try:
            total_points = source.count()
        except Exception as e:
            raise ClusterIndexBuildError("staging", None, e) from e
        self.logger.info(f"📊 Assigning {total_points} points")

        pool = PartitionWorkerPool(
            worker_count=cfg.worker_count,
            min_zoom=cfg.min_zoom,
            max_zoom=cfg.max_zoom,
            queue_capacity=cfg.queue_capacity,
            abort=abort,
            bounds=cfg.bounds,
        )
        merger = FanInMerger(pool.output_queues, capacity=cfg.merge_capacity, abort=abort)

        observed: Set[str] = set()
        consumed = {"events": 0}
        completed = threading.Event()
        expected_events = total_points * len(cfg.zoom_levels)
        consumer = threading.Thread(
            target=self._consume,
            args=(merger, abort, observed, consumed, completed, expected_events),
            name="cluster-consumer",
            daemon=True,
        )

        pool.start()
        merger.start()
        consumer.start()

        self._drive(source, pool, abort)

        # Barrier: consumer sets `completed` after the merged stream closes
        while not completed.wait(POLL_INTERVAL):
            if abort.is_set():
                break

        pool.join(THREAD_JOIN_TIMEOUT)
        merger.join(THREAD_JOIN_TIMEOUT)
        consumer.join(THREAD_JOIN_TIMEOUT)

        if abort.is_set():
            self.logger.error(
                f"❌ Run {self.run_id} aborted in {abort.phase} phase at {abort.key}: {abort.error}"
            )
            raise ClusterIndexBuildError(abort.phase, abort.key, abort.error) from abort.error

        summary = AssignmentSummary(
            points_processed=pool.submitted,
            events_inserted=consumed["events"],
            keys_observed=len(observed),
            elapsed_seconds=time.monotonic() - start,
        )
        self.logger.info(
            f"✅ Assignment complete: {summary.points_processed} points, "
            f"{summary.events_inserted} memberships, {summary.keys_observed} clusters "
            f"in {summary.elapsed_seconds:.2f}s"
        )
        return summary, observed

    def aggregate(self, observed_keys: Optional[Set[str]] = None) -> AggregationSummary:
        """
        Aggregation phase. With observed_keys=None the key set is read from
        the store (aggregate-only run over an already populated store).
        """
        if observed_keys is None:
            try:
                observed_keys = self.store.observed_keys()
            except Exception as e:
                raise ClusterIndexBuildError("aggregation", None, e) from e
            self.logger.info(f"📊 Loaded {len(observed_keys)} observed clusters from store")

        aggregator = ClusterAggregator(
            self.store,
            strategy=self.config.aggregation_strategy,
            aggregate_workers=self.config.aggregate_workers,
            progress_interval=self.config.progress_interval,
        )
        return aggregator.aggregate(observed_keys)

    # ========================================================================
    # PIPELINE THREADS
    # ========================================================================

    def _drive(self, source: IPointSource, pool: PartitionWorkerPool, abort: AbortSignal) -> None:
        """Read, stage and submit every point, then close the pool."""
        batch_key = None
        try:
            for batch in iter_batches(source.iter_points(), self.config.insert_batch_size):
                if abort.is_set():
                    break
                batch_key = f"point {batch[0].id}"
                try:
                    self.store.stage_points(batch)
                except Exception as e:
                    abort.trigger("staging", getattr(e, "key", None) or batch_key, e)
                    break
                for point in batch:
                    if not pool.submit(point):
                        break
        except Exception as e:
            abort.trigger("staging", batch_key, e)
        finally:
            pool.close()

    def _consume(self, merger: FanInMerger, abort: AbortSignal, observed: Set[str],
                 consumed: dict, completed: threading.Event, expected_events: int) -> None:
        """Single consumer: merged stream -> batched store inserts."""
        batch_size = self.config.insert_batch_size
        report_every = max(1, self.config.progress_interval) * batch_size
        next_report = report_every
        batch = []

        def flush() -> bool:
            if not batch:
                return True
            try:
                self.store.add_members(batch)
            except Exception as e:
                abort.trigger("assignment", getattr(e, "key", None) or batch[0].quadkey, e)
                return False
            consumed["events"] += len(batch)
            batch.clear()
            return True

        try:
            while True:
                event = get_unless_aborted(merger.output, abort)
                if event is END_OF_STREAM:
                    if not abort.is_set():
                        flush()
                    break
                observed.add(event.quadkey)
                batch.append(event)
                if len(batch) >= batch_size:
                    if not flush():
                        break
                    if consumed["events"] >= next_report:
                        next_report += report_every
                        percent = 100.0 * consumed["events"] / expected_events if expected_events else 100.0
                        self.logger.info(
                            f"📊 Inserted {consumed['events']}/{expected_events} memberships ({percent:.1f}%)"
                        )
        except Exception as e:
            abort.trigger("assignment", batch[0].quadkey if batch else None, e)
        finally:
            completed.set()


__all__ = ['ClusterIndexBuilder']
