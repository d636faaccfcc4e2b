"""
Root conftest.py: sys.path, env vars, shared fixtures.

Sets up the test environment so all production code can be imported
without a database connection.
"""

import os
import sys

import pytest

# Add project root to sys.path so 'core', 'config', 'infrastructure', etc. are importable
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


@pytest.fixture(autouse=True, scope="session")
def set_minimal_env_vars():
    """
    Set minimal environment variables so config loads without a real
    PostgreSQL host.
    """
    defaults = {
        "POSTGIS_HOST": "localhost",
        "POSTGIS_DATABASE": "testdb",
        "CLUSTER_SCHEMA": "cluster",
        "ENVIRONMENT": "dev",
    }
    for key, value in defaults.items():
        os.environ.setdefault(key, value)


@pytest.fixture(autouse=True)
def fresh_config():
    """Every test sees a config singleton rebuilt from its own environment."""
    from config import reset_config
    reset_config()
    yield
    reset_config()


@pytest.fixture
def moscow_point():
    """Point with known quadkeys: '3203' at zoom 4, '320310' at zoom 6."""
    from core.models import GeoPoint
    return GeoPoint(id=1, longitude=37.61776, latitude=55.75577)


@pytest.fixture
def sample_points():
    """A spread of points over several quadrants, including exact midpoints."""
    from core.models import GeoPoint
    coords = [
        (37.61776, 55.75577),
        (37.62, 55.76),
        (-73.9857, 40.7484),
        (-0.1276, 51.5072),
        (151.2093, -33.8688),
        (0.0, 0.0),
        (-0.0001, 0.0),
        (0.0, -1e-9),
        (139.6917, 35.6895),
        (-58.3816, -34.6037),
        (2.3522, 48.8566),
        (2.3530, 48.8570),
    ]
    return [GeoPoint(id=i + 1, longitude=lon, latitude=lat) for i, (lon, lat) in enumerate(coords)]
