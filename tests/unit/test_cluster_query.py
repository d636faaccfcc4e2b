"""
ClusterQueryService tests.

Validation outcomes (404 / 400) and successful lookups over a built
in-memory index.
"""

from unittest.mock import MagicMock

import pytest

from config import ClusterConfig
from core.errors import ErrorCode
from core.models import LookupStatus
from core.quadkey import encode
from exceptions import StoreIOError
from infrastructure.memory_store import InMemoryClusterStore
from infrastructure.point_source import IterablePointSource
from services.cluster_index_builder import ClusterIndexBuilder
from services.cluster_query import ClusterQueryService


@pytest.fixture
def built_store(sample_points):
    store = InMemoryClusterStore()
    config = ClusterConfig(min_zoom=1, max_zoom=10, worker_count=2, insert_batch_size=7)
    ClusterIndexBuilder(store, config).build(IterablePointSource(sample_points))
    return store


@pytest.fixture
def service(built_store):
    return ClusterQueryService(built_store, max_zoom=10)


class TestValidation:

    @pytest.mark.parametrize("quadkey", ["", None])
    def test_empty_key_is_not_found(self, service, quadkey):
        result = service.get_cluster(quadkey)
        assert result.status == LookupStatus.NOT_FOUND
        assert result.http_status == 404

    def test_too_long_is_bad_request(self, service):
        result = service.get_cluster("0" * 11)
        assert result.status == LookupStatus.BAD_REQUEST
        assert result.error_code == ErrorCode.INVALID_PARAMETER

    def test_bad_digit_is_bad_request(self, service):
        result = service.get_branch("3204")
        assert result.status == LookupStatus.BAD_REQUEST
        assert result.http_status == 400

    def test_members_bad_digit(self, service):
        assert service.get_members("x").status == LookupStatus.BAD_REQUEST

    def test_non_string_key_is_bad_request(self, service):
        result = service.get_cluster(123)
        assert result.status == LookupStatus.BAD_REQUEST
        assert result.error_code == ErrorCode.INVALID_PARAMETER


class TestQuadkeyLookups:

    def test_get_cluster_found(self, service, moscow_point):
        result = service.get_cluster(encode(moscow_point, 4))
        assert result.ok
        assert result.data.quadkey == "3203"
        assert result.data.size >= 1

    def test_get_cluster_unknown_key(self, service):
        result = service.get_cluster("0000000000")
        assert result.status == LookupStatus.NOT_FOUND
        assert result.error_code == ErrorCode.RESOURCE_NOT_FOUND

    def test_get_branch_strict_descendants(self, service):
        result = service.get_branch("3")
        assert result.ok
        assert all(a.quadkey.startswith("3") and a.zoom > 1 for a in result.data)

    def test_get_branch_leaf_is_not_found(self, service, moscow_point):
        leaf = encode(moscow_point, 9)
        assert service.get_branch(leaf).status == LookupStatus.NOT_FOUND

    def test_get_members_sorted(self, service, moscow_point):
        result = service.get_members(encode(moscow_point, 4))
        assert result.ok
        assert result.data == sorted(result.data)
        assert moscow_point.id in result.data

    def test_store_failure_propagates(self):
        store = MagicMock()
        store.get_aggregate.side_effect = StoreIOError("down")
        with pytest.raises(StoreIOError):
            ClusterQueryService(store, max_zoom=10).get_cluster("3")


class TestCoordinateLookups:

    def test_quadkey_for_coordinate(self, service, moscow_point):
        result = service.quadkey_for_coordinate(moscow_point.longitude, moscow_point.latitude, zoom=6)
        assert result.ok
        assert result.data["quadkey"] == "320310"
        assert result.data["zoom"] == 6
        min_lon, min_lat, max_lon, max_lat = result.data["bbox"]
        assert min_lon <= moscow_point.longitude <= max_lon
        assert min_lat <= moscow_point.latitude <= max_lat

    def test_zoom_defaults_to_max(self, service):
        assert service.quadkey_for_coordinate("10.5", "20.5").data["zoom"] == 10

    def test_missing_coordinate(self, service):
        result = service.quadkey_for_coordinate(None, 10.0)
        assert result.status == LookupStatus.BAD_REQUEST
        assert result.error_code == ErrorCode.MISSING_PARAMETER

    @pytest.mark.parametrize("zoom", [0, 11, "abc", 2.5, True, False])
    def test_invalid_zoom(self, service, zoom):
        assert service.quadkey_for_coordinate(0.0, 0.0, zoom=zoom).status == LookupStatus.BAD_REQUEST

    def test_clusters_in_bounds(self, service, moscow_point):
        result = service.clusters_in_bounds(4, 30.0, 50.0, 45.0, 60.0)
        assert result.ok
        assert [a.quadkey for a in result.data] == ["3203"]

    def test_empty_bounds_is_found(self, service):
        result = service.clusters_in_bounds(4, -10.0, -80.0, -9.0, -79.0)
        assert result.ok
        assert result.data == []

    def test_inverted_bounds(self, service):
        assert service.clusters_in_bounds(4, 10.0, 0.0, -10.0, 5.0).status == LookupStatus.BAD_REQUEST

    def test_clusters_near(self, service, moscow_point):
        result = service.clusters_near(9, moscow_point.longitude, moscow_point.latitude, 50_000)
        assert result.ok
        assert result.data
        assert result.data[0].quadkey == encode(moscow_point, 9)

    @pytest.mark.parametrize("radius", [0, -5])
    def test_non_positive_radius(self, service, radius):
        assert service.clusters_near(5, 0.0, 0.0, radius).status == LookupStatus.BAD_REQUEST
