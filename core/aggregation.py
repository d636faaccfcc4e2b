# ============================================================================
# CLUSTER AGGREGATOR
# ============================================================================
# STATUS: Core - aggregation phase
# PURPOSE: Reduce every observed bucket to centroid + size and upsert it into
#          the per-zoom geo index
# EXPORTS: ClusterAggregator, merge_children, AGGREGATION_STRATEGIES
# DEPENDENCIES: core.quadkey, infrastructure.interface_repository
# ============================================================================
"""
Cluster Aggregator.

Runs after the assignment barrier, over the observed key set sorted by key
length descending, then lexicographically.

Strategies:
    full       Every key goes through the store's atomic read-reduce
               primitive. Keys are independent, so aggregate_workers > 1
               spreads them over a thread pool.
    bottom_up  Keys with computed children are derived from them
               (size = sum of child sizes, centroid = size-weighted mean of
               child centroids). Keys without computed children, i.e. the
               deepest zoom, fall back to the atomic primitive. Deepest-first
               order guarantees children are done before their parent.

An observed key whose bucket turns out empty raises InvariantViolationError
and nothing is written for it. Any failure aborts the phase with a
ClusterIndexBuildError naming the key.
"""

import time
from concurrent.futures import ThreadPoolExecutor, FIRST_EXCEPTION, wait
from typing import Dict, Iterable, List, Optional, Sequence

from core.models import ClusterAggregate, AggregationSummary
from core.quadkey import child_quadkeys, sort_deepest_first
from exceptions import ClusterIndexBuildError, InvariantViolationError
from infrastructure.interface_repository import IClusterStore
from util_logger import LoggerFactory, ComponentType

AGGREGATION_STRATEGIES = ("full", "bottom_up")

PHASE = "aggregation"


def merge_children(quadkey: str, children: Sequence[ClusterAggregate]) -> ClusterAggregate:
    """
    Parent aggregate from child aggregates.

    Because children partition the parent's members, the size-weighted mean
    of child centroids equals the mean over all members.
    """
    size = sum(child.size for child in children)
    longitude = sum(child.longitude * child.size for child in children) / size
    latitude = sum(child.latitude * child.size for child in children) / size
    return ClusterAggregate(
        zoom=len(quadkey),
        quadkey=quadkey,
        longitude=longitude,
        latitude=latitude,
        size=size,
    )


class ClusterAggregator:
    """
    Parameters:
    ----------
    store: Backing store (membership buckets + geo index)
    strategy: "full" or "bottom_up"
    aggregate_workers: Thread count for the full strategy
    progress_interval: Log progress every N keys
    """

    def __init__(self, store: IClusterStore, strategy: str = "full",
                 aggregate_workers: int = 1, progress_interval: int = 500):
        if strategy not in AGGREGATION_STRATEGIES:
            raise ValueError(f"unknown aggregation strategy: {strategy}")
        self.store = store
        self.strategy = strategy
        self.aggregate_workers = max(1, aggregate_workers)
        self.progress_interval = max(1, progress_interval)
        self.logger = LoggerFactory.create_logger(ComponentType.PIPELINE, "ClusterAggregator")
        self._done = 0
        self._total = 0

    def aggregate(self, observed_keys: Iterable[str]) -> AggregationSummary:
        """
        Aggregate every observed key.

        Raises:
            ClusterIndexBuildError: phase="aggregation", key = failing key
        """
        start = time.monotonic()
        keys = sort_deepest_first(set(observed_keys))
        self._total = len(keys)
        self._done = 0

        self.logger.info(
            f"📊 Aggregating {self._total} clusters (strategy={self.strategy}, "
            f"workers={self.aggregate_workers})"
        )

        if self.strategy == "bottom_up":
            aggregates = self._aggregate_bottom_up(keys)
        elif self.aggregate_workers > 1:
            aggregates = self._aggregate_full_parallel(keys)
        else:
            aggregates = [self._reduce_and_write(key) for key in keys]

        summary = self._summarize(aggregates, time.monotonic() - start)
        self.logger.info(
            f"✅ Aggregation complete: {summary.keys_processed} clusters in "
            f"{summary.elapsed_seconds:.2f}s"
        )
        return summary

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def _reduce_and_write(self, quadkey: str) -> ClusterAggregate:
        zoom = len(quadkey)
        try:
            aggregate = self.store.reduce_cluster(zoom, quadkey)
            if aggregate is None:
                raise InvariantViolationError(
                    f"observed cluster {quadkey} (zoom {zoom}) has no members",
                    zoom=zoom,
                    quadkey=quadkey,
                )
            self.store.write_aggregate(aggregate)
        except ClusterIndexBuildError:
            raise
        except Exception as e:
            self.logger.error(f"❌ Aggregation failed at {quadkey}: {type(e).__name__}: {e}")
            raise ClusterIndexBuildError(PHASE, quadkey, e) from e
        self._tick()
        return aggregate

    def _aggregate_full_parallel(self, keys: List[str]) -> List[ClusterAggregate]:
        executor = ThreadPoolExecutor(
            max_workers=self.aggregate_workers,
            thread_name_prefix="cluster-aggregate",
        )
        try:
            futures = [executor.submit(self._reduce_and_write, key) for key in keys]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            for future in futures:
                if future in done and future.exception() is not None:
                    raise future.exception()
            return [future.result() for future in futures]
        finally:
            executor.shutdown(wait=True, cancel_futures=True)

    def _aggregate_bottom_up(self, keys: List[str]) -> List[ClusterAggregate]:
        computed: Dict[str, ClusterAggregate] = {}
        for quadkey in keys:
            children = [computed[c] for c in child_quadkeys(quadkey) if c in computed]
            if not children:
                computed[quadkey] = self._reduce_and_write(quadkey)
                continue
            try:
                aggregate = merge_children(quadkey, children)
                self.store.write_aggregate(aggregate)
            except Exception as e:
                self.logger.error(f"❌ Aggregation failed at {quadkey}: {type(e).__name__}: {e}")
                raise ClusterIndexBuildError(PHASE, quadkey, e) from e
            computed[quadkey] = aggregate
            self._tick()
        return list(computed.values())

    # ------------------------------------------------------------------
    # Progress + summary
    # ------------------------------------------------------------------

    def _tick(self) -> None:
        # Approximate under the thread pool; only used for progress logging
        self._done += 1
        if self._done % self.progress_interval == 0:
            percent = 100.0 * self._done / self._total if self._total else 100.0
            self.logger.info(f"📊 Aggregated {self._done}/{self._total} clusters ({percent:.1f}%)")

    def _summarize(self, aggregates: List[ClusterAggregate], elapsed: float) -> AggregationSummary:
        per_zoom: Dict[int, int] = {}
        for aggregate in aggregates:
            per_zoom[aggregate.zoom] = per_zoom.get(aggregate.zoom, 0) + 1
        coarsest: Optional[int] = min(per_zoom) if per_zoom else None
        covered = sum(a.size for a in aggregates if a.zoom == coarsest)
        return AggregationSummary(
            strategy=self.strategy,
            keys_processed=len(aggregates),
            clusters_per_zoom=dict(sorted(per_zoom.items())),
            points_covered=covered,
            elapsed_seconds=elapsed,
        )


__all__ = [
    'AGGREGATION_STRATEGIES',
    'ClusterAggregator',
    'merge_children',
]
