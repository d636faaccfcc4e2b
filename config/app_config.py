"""
Main Application Configuration.

Composes domain-specific configuration modules:
    - DatabaseConfig (PostgreSQL/PostGIS backing store)
    - ClusterConfig (zoom range, worker pool, aggregation strategy)

Exports:
    AppConfig: Main configuration class

Dependencies:
    pydantic: BaseModel for configuration validation
    config.database_config: DatabaseConfig
    config.cluster_config: ClusterConfig
    config.defaults: Default value constants

Pattern:
    Composition over inheritance - domain configs are composed, not inherited.
"""

import os
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from exceptions import ConfigurationError
from .database_config import DatabaseConfig
from .cluster_config import ClusterConfig
from .defaults import AppDefaults, parse_bool


# ============================================================================
# APPLICATION CONFIGURATION
# ============================================================================

class AppConfig(BaseModel):
    """
    Application configuration - composition of domain configs.
    """

    # ========================================================================
    # Core Application Settings
    # ========================================================================

    debug_mode: bool = Field(
        default=AppDefaults.DEBUG_MODE,
        description="Enable debug mode for verbose diagnostics. "
                    "WARNING: per-batch progress is logged at DEBUG level, which "
                    "increases log volume on large runs. "
                    "Set DEBUG_MODE=true in environment to enable.",
        examples=[True, False]
    )

    environment: str = Field(
        default=AppDefaults.ENVIRONMENT,
        description="Environment name (dev, qa, prod)",
        examples=["dev", "qa", "prod"]
    )

    log_level: str = Field(
        default=AppDefaults.LOG_LEVEL,
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        examples=["DEBUG", "INFO"]
    )

    # ========================================================================
    # Domain Configurations
    # ========================================================================

    database: DatabaseConfig = Field(
        ...,
        description="PostgreSQL/PostGIS backing store configuration"
    )

    cluster: ClusterConfig = Field(
        default_factory=ClusterConfig,
        description="Cluster index builder configuration"
    )

    @classmethod
    def from_environment(cls):
        """
        Load all configs from environment.

        Raises:
            ConfigurationError: Any section fails validation
        """
        try:
            return cls(
                debug_mode=parse_bool(os.environ.get("DEBUG_MODE", str(AppDefaults.DEBUG_MODE))),
                environment=os.environ.get("ENVIRONMENT", AppDefaults.ENVIRONMENT),
                log_level=os.environ.get("LOG_LEVEL", AppDefaults.LOG_LEVEL),

                # Domain configs
                database=DatabaseConfig.from_environment(),
                cluster=ClusterConfig.from_environment(),
            )
        except (PydanticValidationError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e
