# ============================================================================
# CLUSTER INDEX CONFIGURATION
# ============================================================================
# STATUS: Configuration - quadkey cluster index builder settings
# PURPOSE: Zoom range, worker pool sizing, queue capacities, aggregation strategy
# ============================================================================
"""
Cluster index configuration.

Quadkey Overview:
-----------------
The world rectangle (lon -180..180, lat -85..85) is recursively split into
four quadrants. Every split appends one digit to the quadkey:

    0 = south-west    1 = south-east
    2 = north-west    3 = north-east

A zoom-z quadkey has exactly z digits. A run covers zooms in the half-open
range [min_zoom, max_zoom), so with the defaults (10, 16) six zoom levels
(10..15) are built.

Pipeline sizing:
----------------
- worker_count partition workers, each with a bounded input and output queue
  (queue_capacity items). Producers block when a queue is full, which bounds
  memory independent of dataset size.
- The fan-in merger forwards into one shared queue of merge_capacity items.
- The consumer inserts membership events in batches of insert_batch_size.

Aggregation:
------------
- "full": every observed key is reduced by the backing store's atomic
  read-reduce primitive (server-side SQL function for PostgreSQL).
- "bottom_up": only leaf keys are reduced by the store; parents are derived
  from their four children (size-weighted centroid, summed size).

Example Usage:
-------------
```python
from config import get_config

config = get_config()
print(config.cluster.zoom_levels)        # range(10, 16)
print(config.cluster.aggregate_function) # "cluster_aggregate"
```
"""

import os
from typing import Literal
from pydantic import BaseModel, Field, model_validator

from core.models.geo import GeoRect
from .defaults import ClusterDefaults


class ClusterConfig(BaseModel):
    """
    Cluster index builder configuration.

    Configuration Fields:
    ---------------------
    min_zoom / max_zoom: Half-open zoom range. min_zoom >= 1 so no empty
        quadkey is ever recorded.

    worker_count: Partition worker threads (default 4).

    queue_capacity: Capacity of each worker input/output queue (default 512).

    merge_capacity: Capacity of the shared fan-in queue (default 2048).

    insert_batch_size: Membership events per store insert (default 1000).

    aggregation_strategy: "full" or "bottom_up" (default "full").

    aggregate_workers: Threads for "full" aggregation (default 1).

    aggregate_function: Name of the server-side reduction function. Passed
        explicitly into the store; there is no global script registry.

    progress_interval: Log progress every N processed items.
    """

    min_zoom: int = Field(
        default=ClusterDefaults.MIN_ZOOM,
        ge=1,
        le=30,
        description="Coarsest zoom level built (inclusive). Zoom-z keys have z digits."
    )

    max_zoom: int = Field(
        default=ClusterDefaults.MAX_ZOOM,
        ge=2,
        le=31,
        description="Finest zoom bound (exclusive). Also the longest quadkey accepted by queries."
    )

    worker_count: int = Field(
        default=ClusterDefaults.WORKER_COUNT,
        ge=1,
        description="Number of partition worker threads"
    )

    queue_capacity: int = Field(
        default=ClusterDefaults.QUEUE_CAPACITY,
        ge=1,
        description="Capacity of each worker input and output queue"
    )

    merge_capacity: int = Field(
        default=ClusterDefaults.MERGE_CAPACITY,
        ge=1,
        description="Capacity of the shared fan-in output queue"
    )

    insert_batch_size: int = Field(
        default=ClusterDefaults.INSERT_BATCH_SIZE,
        ge=1,
        description="Membership events per store insert call"
    )

    progress_interval: int = Field(
        default=ClusterDefaults.PROGRESS_INTERVAL,
        ge=1,
        description="Log progress every N processed points / clusters"
    )

    aggregation_strategy: Literal["full", "bottom_up"] = Field(
        default=ClusterDefaults.AGGREGATION_STRATEGY,
        description="full = atomic reduction per key; bottom_up = derive parents from children"
    )

    aggregate_workers: int = Field(
        default=ClusterDefaults.AGGREGATE_WORKERS,
        ge=1,
        description="Thread count for full aggregation (ignored by bottom_up)"
    )

    aggregate_function: str = Field(
        default=ClusterDefaults.AGGREGATE_FUNCTION,
        pattern=r"^[a-z_][a-z0-9_]*$",
        description="Server-side reduction function name inside the cluster schema"
    )

    source_schema: str = Field(
        default=ClusterDefaults.SOURCE_SCHEMA,
        description="Schema holding the point source table"
    )

    source_table: str = Field(
        default=ClusterDefaults.SOURCE_TABLE,
        description="Point source table (id, longitude, latitude, hidden)"
    )

    min_lon: float = Field(default=ClusterDefaults.MIN_LON)
    max_lon: float = Field(default=ClusterDefaults.MAX_LON)
    min_lat: float = Field(default=ClusterDefaults.MIN_LAT)
    max_lat: float = Field(default=ClusterDefaults.MAX_LAT)

    @model_validator(mode="after")
    def _check_ranges(self) -> "ClusterConfig":
        if self.min_zoom >= self.max_zoom:
            raise ValueError(
                f"min_zoom ({self.min_zoom}) must be less than max_zoom ({self.max_zoom})"
            )
        if self.min_lon >= self.max_lon or self.min_lat >= self.max_lat:
            raise ValueError("world bounds must have min < max on both axes")
        return self

    @property
    def zoom_levels(self) -> range:
        """Zoom levels built by a run."""
        return range(self.min_zoom, self.max_zoom)

    @property
    def bounds(self) -> GeoRect:
        """World rectangle used by the quadkey encoder."""
        return GeoRect(
            min_lon=self.min_lon,
            max_lon=self.max_lon,
            min_lat=self.min_lat,
            max_lat=self.max_lat,
        )

    @classmethod
    def from_environment(cls) -> "ClusterConfig":
        """
        Load cluster configuration from environment variables.

        Environment Variables:
        ---------------------
        CLUSTER_MIN_ZOOM (default 10), CLUSTER_MAX_ZOOM (default 16)
        CLUSTER_WORKER_COUNT (default 4)
        CLUSTER_QUEUE_CAPACITY (default 512), CLUSTER_MERGE_CAPACITY (default 2048)
        CLUSTER_INSERT_BATCH_SIZE (default 1000)
        CLUSTER_PROGRESS_INTERVAL (default 500)
        CLUSTER_AGGREGATION_STRATEGY (default "full")
        CLUSTER_AGGREGATE_WORKERS (default 1)
        CLUSTER_AGGREGATE_FUNCTION (default "cluster_aggregate")
        CLUSTER_SOURCE_SCHEMA (default "public")
        CLUSTER_SOURCE_TABLE (default "points")
        """
        return cls(
            min_zoom=int(os.environ.get("CLUSTER_MIN_ZOOM", str(ClusterDefaults.MIN_ZOOM))),
            max_zoom=int(os.environ.get("CLUSTER_MAX_ZOOM", str(ClusterDefaults.MAX_ZOOM))),
            worker_count=int(os.environ.get("CLUSTER_WORKER_COUNT", str(ClusterDefaults.WORKER_COUNT))),
            queue_capacity=int(os.environ.get("CLUSTER_QUEUE_CAPACITY", str(ClusterDefaults.QUEUE_CAPACITY))),
            merge_capacity=int(os.environ.get("CLUSTER_MERGE_CAPACITY", str(ClusterDefaults.MERGE_CAPACITY))),
            insert_batch_size=int(
                os.environ.get("CLUSTER_INSERT_BATCH_SIZE", str(ClusterDefaults.INSERT_BATCH_SIZE))
            ),
            progress_interval=int(
                os.environ.get("CLUSTER_PROGRESS_INTERVAL", str(ClusterDefaults.PROGRESS_INTERVAL))
            ),
            aggregation_strategy=os.environ.get(
                "CLUSTER_AGGREGATION_STRATEGY", ClusterDefaults.AGGREGATION_STRATEGY
            ),
            aggregate_workers=int(
                os.environ.get("CLUSTER_AGGREGATE_WORKERS", str(ClusterDefaults.AGGREGATE_WORKERS))
            ),
            aggregate_function=os.environ.get(
                "CLUSTER_AGGREGATE_FUNCTION", ClusterDefaults.AGGREGATE_FUNCTION
            ),
            source_schema=os.environ.get("CLUSTER_SOURCE_SCHEMA", ClusterDefaults.SOURCE_SCHEMA),
            source_table=os.environ.get("CLUSTER_SOURCE_TABLE", ClusterDefaults.SOURCE_TABLE),
        )

    def debug_dict(self) -> dict:
        """
        Return debug-friendly configuration dictionary.
        """
        return {
            "min_zoom": self.min_zoom,
            "max_zoom": self.max_zoom,
            "worker_count": self.worker_count,
            "queue_capacity": self.queue_capacity,
            "merge_capacity": self.merge_capacity,
            "insert_batch_size": self.insert_batch_size,
            "aggregation_strategy": self.aggregation_strategy,
            "aggregate_workers": self.aggregate_workers,
            "aggregate_function": self.aggregate_function,
            "source_schema": self.source_schema,
            "source_table": self.source_table,
            "bounds": [self.min_lon, self.min_lat, self.max_lon, self.max_lat],
        }


# Export
__all__ = ["ClusterConfig"]
