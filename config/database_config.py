"""
PostgreSQL/PostGIS Database Configuration.

Provides configuration for the backing store of the cluster index:
    - points           (staged point coordinates)
    - cluster_members  (membership buckets)
    - cluster_index    (per-zoom geo index of aggregates)

Exports:
    DatabaseConfig: Backing store configuration
"""

import os
from typing import Optional
from pydantic import BaseModel, Field

from exceptions import ConfigurationError
from .defaults import DatabaseDefaults


# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================

class DatabaseConfig(BaseModel):
    """
    PostgreSQL/PostGIS configuration.

    Password-based authentication only. A complete connection string in
    POSTGRESQL_CONNECTION_STRING overrides the individual components.
    """

    # Connection settings
    host: str = Field(
        ...,
        description="PostgreSQL server hostname",
        examples=["localhost"]
    )

    port: int = Field(
        default=DatabaseDefaults.PORT,
        description="PostgreSQL server port number"
    )

    user: Optional[str] = Field(
        default=None,
        description="PostgreSQL username (POSTGIS_USER)"
    )

    password: Optional[str] = Field(
        default=None,
        repr=False,
        description="PostgreSQL password (POSTGIS_PASSWORD)"
    )

    database: str = Field(
        ...,
        description="PostgreSQL database name",
        examples=["clusters"]
    )

    connection_string_override: Optional[str] = Field(
        default=None,
        repr=False,
        description="Complete connection string (POSTGRESQL_CONNECTION_STRING); wins over components"
    )

    # Schema names
    cluster_schema: str = Field(
        default=DatabaseDefaults.CLUSTER_SCHEMA,
        description="PostgreSQL schema holding points, cluster_members and cluster_index"
    )

    # Connection pooling
    min_connections: int = Field(
        default=DatabaseDefaults.MIN_CONNECTIONS,
        ge=1,
        description="Minimum connections in pool"
    )

    max_connections: int = Field(
        default=DatabaseDefaults.MAX_CONNECTIONS,
        ge=1,
        description="Maximum connections in pool"
    )

    connection_timeout_seconds: int = Field(
        default=DatabaseDefaults.CONNECTION_TIMEOUT_SECONDS,
        description="Connection timeout in seconds"
    )

    @property
    def connection_string(self) -> str:
        """
        Build PostgreSQL connection string.

        Returns the override verbatim when set, otherwise a libpq keyword string.
        """
        if self.connection_string_override:
            return self.connection_string_override
        if not self.user:
            raise ConfigurationError("POSTGIS_USER is required for password authentication")
        password_part = f" password={self.password}" if self.password else ""
        return (
            f"host={self.host} port={self.port} dbname={self.database} "
            f"user={self.user}{password_part} connect_timeout={self.connection_timeout_seconds}"
        )

    def debug_dict(self) -> dict:
        """Debug output with masked password."""
        return {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "database": self.database,
            "password": "***MASKED***" if self.password else None,
            "connection_string_override": "***MASKED***" if self.connection_string_override else None,
            "cluster_schema": self.cluster_schema,
            "min_connections": self.min_connections,
            "max_connections": self.max_connections,
        }

    @classmethod
    def from_environment(cls):
        """Load from environment variables."""
        return cls(
            host=os.environ.get("POSTGIS_HOST", "localhost"),
            port=int(os.environ.get("POSTGIS_PORT", str(DatabaseDefaults.PORT))),
            user=os.environ.get("POSTGIS_USER"),
            password=os.environ.get("POSTGIS_PASSWORD"),
            database=os.environ.get("POSTGIS_DATABASE", "postgres"),
            connection_string_override=os.environ.get("POSTGRESQL_CONNECTION_STRING"),
            cluster_schema=os.environ.get("CLUSTER_SCHEMA", DatabaseDefaults.CLUSTER_SCHEMA),
            min_connections=int(os.environ.get("POSTGIS_MIN_CONNECTIONS", str(DatabaseDefaults.MIN_CONNECTIONS))),
            max_connections=int(os.environ.get("POSTGIS_MAX_CONNECTIONS", str(DatabaseDefaults.MAX_CONNECTIONS))),
            connection_timeout_seconds=int(
                os.environ.get("POSTGIS_CONNECTION_TIMEOUT", str(DatabaseDefaults.CONNECTION_TIMEOUT_SECONDS))
            ),
        )
