"""
Cluster / database / app configuration tests.

Defaults, environment overrides, range validation and masking.
"""

import pytest
from pydantic import ValidationError

from config import AppConfig, ClusterConfig, DatabaseConfig, debug_config, get_config, reset_config
from exceptions import ConfigurationError


class TestClusterConfigDefaults:

    def test_defaults(self, clean_env):
        config = ClusterConfig.from_environment()
        assert config.zoom_levels == range(10, 16)
        assert config.worker_count == 4
        assert config.aggregation_strategy == "full"
        assert config.aggregate_function == "cluster_aggregate"
        assert config.source_schema == "public"
        assert config.source_table == "points"

    def test_world_bounds(self):
        assert ClusterConfig().bounds.as_bbox() == (-180.0, -85.0, 180.0, 85.0)


class TestClusterConfigEnvironment:

    def test_overrides(self, clean_env):
        clean_env.setenv("CLUSTER_MIN_ZOOM", "3")
        clean_env.setenv("CLUSTER_MAX_ZOOM", "9")
        clean_env.setenv("CLUSTER_WORKER_COUNT", "8")
        clean_env.setenv("CLUSTER_AGGREGATION_STRATEGY", "bottom_up")
        clean_env.setenv("CLUSTER_SOURCE_TABLE", "facilities")
        clean_env.setenv("CLUSTER_SOURCE_SCHEMA", "gis")
        config = ClusterConfig.from_environment()
        assert config.zoom_levels == range(3, 9)
        assert config.worker_count == 8
        assert config.aggregation_strategy == "bottom_up"
        assert config.source_table == "facilities"
        assert config.source_schema == "gis"

    def test_inverted_zoom_range_rejected(self, clean_env):
        clean_env.setenv("CLUSTER_MIN_ZOOM", "12")
        clean_env.setenv("CLUSTER_MAX_ZOOM", "12")
        with pytest.raises(ValidationError):
            ClusterConfig.from_environment()


class TestClusterConfigValidation:

    def test_min_zoom_must_be_positive(self):
        with pytest.raises(ValidationError):
            ClusterConfig(min_zoom=0, max_zoom=4)

    def test_unknown_strategy(self):
        with pytest.raises(ValidationError):
            ClusterConfig(aggregation_strategy="sideways")

    @pytest.mark.parametrize("name", ["Cluster", "drop table", "1fn", "fn;--"])
    def test_function_name_must_be_identifier(self, name):
        with pytest.raises(ValidationError):
            ClusterConfig(aggregate_function=name)

    def test_degenerate_bounds(self):
        with pytest.raises(ValidationError):
            ClusterConfig(min_lon=10.0, max_lon=10.0)


class TestDatabaseConfig:

    def test_connection_string_from_components(self, clean_env):
        clean_env.setenv("POSTGIS_HOST", "db.internal")
        clean_env.setenv("POSTGIS_USER", "builder")
        clean_env.setenv("POSTGIS_PASSWORD", "secret")
        clean_env.setenv("POSTGIS_DATABASE", "clusters")
        conn = DatabaseConfig.from_environment().connection_string
        assert "host=db.internal" in conn
        assert "dbname=clusters" in conn
        assert "password=secret" in conn

    def test_override_wins(self, clean_env):
        clean_env.setenv("POSTGRESQL_CONNECTION_STRING", "postgresql://u:p@h/db")
        assert DatabaseConfig.from_environment().connection_string == "postgresql://u:p@h/db"

    def test_missing_user(self, clean_env):
        with pytest.raises(ConfigurationError):
            DatabaseConfig.from_environment().connection_string

    def test_password_masked(self, clean_env):
        clean_env.setenv("POSTGIS_PASSWORD", "secret")
        assert DatabaseConfig.from_environment().debug_dict()["password"] == "***MASKED***"


class TestAppConfig:

    def test_singleton(self, clean_env):
        assert get_config() is get_config()
        reset_config()
        assert get_config() is not None

    def test_invalid_environment_is_configuration_error(self, clean_env):
        clean_env.setenv("CLUSTER_WORKER_COUNT", "zero")
        with pytest.raises(ConfigurationError):
            AppConfig.from_environment()

    def test_debug_config_masks(self, clean_env):
        clean_env.setenv("POSTGIS_PASSWORD", "secret")
        info = debug_config()
        assert info["database"]["password"] == "***MASKED***"
        assert info["cluster"]["min_zoom"] == 10
