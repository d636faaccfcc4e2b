"""
ClusterIndexBuilder end-to-end tests against the in-memory store.

Worker count independence, idempotent reruns, aggregate-only runs, abort
propagation without deadlock and per-run log correlation.
"""

import logging
import threading
from unittest.mock import MagicMock

import pytest

from config import ClusterConfig
from core.models import GeoPoint
from core.quadkey import encode
from exceptions import ClusterIndexBuildError, StoreIOError
from infrastructure.memory_store import InMemoryClusterStore
from infrastructure.point_source import IterablePointSource
from services.cluster_index_builder import ClusterIndexBuilder


def _config(**overrides) -> ClusterConfig:
    values = dict(
        min_zoom=2,
        max_zoom=8,
        worker_count=2,
        queue_capacity=4,
        merge_capacity=8,
        insert_batch_size=5,
        progress_interval=2,
    )
    values.update(overrides)
    return ClusterConfig(**values)


def _grid_points(n=60):
    return [
        GeoPoint(id=i, longitude=-170.0 + (i * 37) % 340, latitude=-80.0 + (i * 53) % 160)
        for i in range(1, n + 1)
    ]


def _assert_same_index(expected, actual):
    assert expected.keys() == actual.keys()
    for zoom, cells in expected.items():
        assert cells.keys() == actual[zoom].keys()
        for key, aggregate in cells.items():
            other = actual[zoom][key]
            assert other.size == aggregate.size
            assert other.longitude == pytest.approx(aggregate.longitude)
            assert other.latitude == pytest.approx(aggregate.latitude)


def _build(points, **overrides):
    store = InMemoryClusterStore()
    summary = ClusterIndexBuilder(store, _config(**overrides)).build(IterablePointSource(points))
    return store, summary


class TestBuild:

    def test_every_point_in_one_bucket_per_zoom(self, sample_points):
        store, _ = _build(sample_points)
        members = store.snapshot_members()
        for zoom in range(2, 8):
            owners = [pid for (z, _), ids in members.items() if z == zoom for pid in ids]
            assert sorted(owners) == sorted(p.id for p in sample_points)

    def test_buckets_match_encoder(self, sample_points):
        store, _ = _build(sample_points)
        for point in sample_points:
            for zoom in range(2, 8):
                assert point.id in store.get_members(zoom, encode(point, zoom))

    def test_summary_counts(self, sample_points):
        store, summary = _build(sample_points)
        assert summary.points_staged == len(sample_points)
        assert summary.assignment.events_inserted == len(sample_points) * 6
        assert summary.assignment.keys_observed == len(store.observed_keys())
        assert summary.aggregation.points_covered == len(sample_points)

    def test_aggregates_match_members(self, sample_points):
        store, _ = _build(sample_points)
        for (zoom, key), ids in store.snapshot_members().items():
            aggregate = store.get_aggregate(zoom, key)
            assert aggregate.size == len(ids)
            lon = sum(p.longitude for p in sample_points if p.id in ids) / len(ids)
            assert aggregate.longitude == pytest.approx(lon)

    def test_worker_count_does_not_change_result(self):
        points = _grid_points()
        single, _ = _build(points, worker_count=1)
        many, _ = _build(points, worker_count=4)
        assert single.snapshot_members() == many.snapshot_members()
        _assert_same_index(single.snapshot_index(), many.snapshot_index())

    def test_bottom_up_matches_full(self):
        points = _grid_points()
        full, _ = _build(points)
        bottom_up, _ = _build(points, aggregation_strategy="bottom_up")
        _assert_same_index(full.snapshot_index(), bottom_up.snapshot_index())

    def test_rerun_is_idempotent(self, sample_points):
        store = InMemoryClusterStore()
        builder = ClusterIndexBuilder(store, _config())
        builder.build(IterablePointSource(sample_points))
        first = store.snapshot_index()
        builder.build(IterablePointSource(sample_points))
        assert store.snapshot_index() == first

    def test_empty_source(self):
        store, summary = _build([])
        assert summary.points_staged == 0
        assert summary.aggregation.keys_processed == 0
        assert store.snapshot_index() == {}

    def test_aggregate_only_reads_observed_keys(self, sample_points):
        store, _ = _build(sample_points)
        expected = store.snapshot_index()
        summary = ClusterIndexBuilder(store, _config()).aggregate()
        assert summary.keys_processed == len(store.observed_keys())
        assert store.snapshot_index() == expected


class TestAbort:

    def _assert_no_pipeline_threads(self):
        prefixes = ("partition-worker", "fan-in", "cluster-consumer")
        alive = [t.name for t in threading.enumerate() if t.name.startswith(prefixes)]
        assert alive == []

    def test_insert_failure_aborts_assignment(self):
        store = InMemoryClusterStore()
        store.add_members = MagicMock(side_effect=StoreIOError("insert refused", key="32"))
        builder = ClusterIndexBuilder(store, _config())

        with pytest.raises(ClusterIndexBuildError) as excinfo:
            builder.build(IterablePointSource(_grid_points(200)))

        assert excinfo.value.phase == "assignment"
        assert excinfo.value.key == "32"
        assert isinstance(excinfo.value.cause, StoreIOError)
        self._assert_no_pipeline_threads()

    def test_staging_failure_aborts(self):
        store = InMemoryClusterStore()
        store.stage_points = MagicMock(side_effect=StoreIOError("staging refused"))
        with pytest.raises(ClusterIndexBuildError) as excinfo:
            ClusterIndexBuilder(store, _config()).build(IterablePointSource(_grid_points(20)))
        assert excinfo.value.phase == "staging"
        assert excinfo.value.key == "point 1"
        self._assert_no_pipeline_threads()

    def test_source_count_failure(self):
        source = MagicMock()
        source.count.side_effect = RuntimeError("no table")
        with pytest.raises(ClusterIndexBuildError) as excinfo:
            ClusterIndexBuilder(InMemoryClusterStore(), _config()).build(source)
        assert excinfo.value.phase == "staging"

    def test_aggregation_failure_is_reported_once(self, sample_points):
        store = InMemoryClusterStore()
        store.write_aggregate = MagicMock(side_effect=StoreIOError("index offline"))
        with pytest.raises(ClusterIndexBuildError) as excinfo:
            ClusterIndexBuilder(store, _config()).build(IterablePointSource(sample_points))
        assert excinfo.value.phase == "aggregation"
        assert str(excinfo.value).startswith("cluster index build failed in aggregation phase at key")


class TestRunLogging:

    def _run_ids(self, records):
        return {
            r.custom_dimensions.get("run_id")
            for r in records
            if r.name == "service.ClusterIndexBuilder"
        }

    def test_each_run_logs_its_own_run_id(self, sample_points, caplog):
        run_ids = []
        for _ in range(2):
            builder = ClusterIndexBuilder(InMemoryClusterStore(), _config())
            caplog.clear()
            with caplog.at_level(logging.INFO):
                builder.build(IterablePointSource(sample_points))
            run_ids.append(builder.run_id)
            assert self._run_ids(caplog.records) == {builder.run_id}
        assert run_ids[0] != run_ids[1]
