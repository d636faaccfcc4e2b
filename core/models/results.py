"""
Result Data Models.

Outcomes of a cluster index run and of query-service lookups.
No business logic - pure data structures.

Exports:
    LookupStatus: Query outcome status (HTTP-shaped)
    LookupResult: Structured query outcome
    AssignmentSummary: Result of the assignment phase
    AggregationSummary: Result of the aggregation phase
    BuildSummary: Result of a complete run
"""

from enum import IntEnum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, ConfigDict

from core.errors import ErrorCode, get_http_status_code


class LookupStatus(IntEnum):
    """Query outcome; values are the status a handler would send."""

    FOUND = 200
    BAD_REQUEST = 400
    NOT_FOUND = 404


class LookupResult(BaseModel):
    """
    Outcome of a query-service call.

    Validation failures are reported here, never raised.
    """

    model_config = ConfigDict(frozen=True)

    status: LookupStatus = Field(..., description="FOUND / BAD_REQUEST / NOT_FOUND")
    data: Optional[Any] = Field(default=None, description="Payload when FOUND")
    error_code: Optional[ErrorCode] = Field(default=None, description="Set when not FOUND")
    message: Optional[str] = Field(default=None, description="Human-readable reason")

    @property
    def ok(self) -> bool:
        return self.status == LookupStatus.FOUND

    @property
    def http_status(self) -> int:
        return int(self.status)

    @classmethod
    def found(cls, data: Any) -> "LookupResult":
        return cls(status=LookupStatus.FOUND, data=data)

    @classmethod
    def rejected(cls, message: str, error_code: ErrorCode) -> "LookupResult":
        """
        Rejection whose status follows get_http_status_code(error_code).

        Only query-boundary codes (404 / 400) are valid here.
        """
        return cls(
            status=LookupStatus(get_http_status_code(error_code)),
            error_code=error_code,
            message=message,
        )

    @classmethod
    def not_found(cls, message: str) -> "LookupResult":
        return cls.rejected(message, ErrorCode.RESOURCE_NOT_FOUND)

    @classmethod
    def bad_request(cls, message: str,
                    error_code: ErrorCode = ErrorCode.INVALID_PARAMETER) -> "LookupResult":
        return cls.rejected(message, error_code)


class AssignmentSummary(BaseModel):
    """Result of the assignment phase."""

    points_processed: int = Field(default=0, ge=0)
    events_inserted: int = Field(default=0, ge=0, description="Membership events handed to the store")
    keys_observed: int = Field(default=0, ge=0)
    elapsed_seconds: float = Field(default=0.0, ge=0)


class AggregationSummary(BaseModel):
    """Result of the aggregation phase."""

    strategy: str = Field(..., description="full or bottom_up")
    keys_processed: int = Field(default=0, ge=0)
    clusters_per_zoom: Dict[int, int] = Field(default_factory=dict)
    points_covered: int = Field(
        default=0,
        ge=0,
        description="Sum of aggregate sizes at the coarsest zoom (each point counted once)"
    )
    elapsed_seconds: float = Field(default=0.0, ge=0)


class BuildSummary(BaseModel):
    """Result of a complete cluster index run."""

    points_staged: int = Field(default=0, ge=0)
    assignment: Optional[AssignmentSummary] = None
    aggregation: AggregationSummary
    elapsed_seconds: float = Field(default=0.0, ge=0)
