# ============================================================================
# CLAUDE CONTEXT - EXCEPTIONS
# ============================================================================
# STATUS: Shared - used by core, infrastructure and services
# PURPOSE: Exception hierarchy separating contract violations, fatal run
#          failures and structured (non-fatal) validation rejections
# EXPORTS: ContractViolationError, BusinessLogicError, DatabaseError,
#          StoreIOError, InvariantViolationError, ValidationError,
#          PointSourceError, QuadKeyValidationError, ConfigurationError,
#          ClusterIndexBuildError, error_code_for
# DEPENDENCIES: core.errors (ErrorCode only)
# ============================================================================

"""
Custom Exception Hierarchy

Distinguishes between:
1. Contract Violations (programming bugs that need fixing)
2. Fatal run failures (store I/O, broken invariants) - abort the batch
3. Validation rejections (bad quadkey from a caller) - reported, never fatal

Fatal failures carry enough context (phase + key) for the single fatal
message the CLI prints before exiting. The prescribed recovery for any
fatal failure is rerunning the whole batch: bucket inserts are idempotent.
"""

from typing import Optional

from core.errors import ErrorCode


class ContractViolationError(TypeError):
    """
    Raised when component contracts are violated (programming bugs).

    These should NEVER be caught and handled - they indicate bugs
    that need to be fixed in the code.

    Examples:
        - Store returns a dict instead of ClusterAggregate
        - Worker pool submitted to after close()
    """
    pass


class BusinessLogicError(Exception):
    """
    Base class for expected runtime failures.
    """
    pass


class DatabaseError(BusinessLogicError):
    """
    Database operation failures.

    Examples:
        - Connection lost
        - Query timeout
        - Transaction rollback
    """
    pass


class StoreIOError(DatabaseError):
    """
    Any failure talking to the backing store during assignment or aggregation.

    Fatal for a run. Not retried: aggregation's read-reduce is not safe to
    retry blindly once another process may have mutated the buckets.
    """

    def __init__(self, message: str, operation: Optional[str] = None,
                 key: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
        self.key = key


class InvariantViolationError(BusinessLogicError):
    """
    A recorded cluster key has no members.

    Keys are only ever recorded together with a member, so this means a bug
    in the assignment phase or concurrent external mutation of the store.
    Never skipped silently.
    """

    def __init__(self, message: str, zoom: Optional[int] = None,
                 quadkey: Optional[str] = None):
        super().__init__(message)
        self.zoom = zoom
        self.quadkey = quadkey


class PointSourceError(BusinessLogicError):
    """
    Upstream point source could not be opened or read.
    """
    pass


class ValidationError(BusinessLogicError):
    """
    Business validation failed.

    Note: This is different from ContractViolationError.
    This is for caller-supplied values, not type contracts.
    """
    pass


class QuadKeyValidationError(ValidationError):
    """
    Externally supplied quadkey (or coordinate) rejected at the query boundary.

    error_code decides the outcome: RESOURCE_NOT_FOUND maps to "not found",
    INVALID_PARAMETER / MISSING_PARAMETER map to "bad request".
    """

    def __init__(self, message: str, error_code: ErrorCode,
                 quadkey: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code
        self.quadkey = quadkey


class ConfigurationError(Exception):
    """
    System configuration error.

    Examples:
        - min_zoom >= max_zoom
        - Unknown aggregation strategy
        - Missing database host
    """
    pass


class ClusterIndexBuildError(Exception):
    """
    A cluster index run aborted.

    Raised once by the builder, wrapping the first unrecoverable error.
    str() gives the single fatal message: phase, offending key, cause.
    """

    def __init__(self, phase: str, key: Optional[str], cause: BaseException):
        self.phase = phase
        self.key = key
        self.cause = cause
        key_part = f" at key '{key}'" if key is not None else ""
        super().__init__(
            f"cluster index build failed in {phase} phase{key_part}: "
            f"{type(cause).__name__}: {cause}"
        )

    @property
    def error_code(self) -> ErrorCode:
        """Code of the wrapped cause."""
        return error_code_for(self.cause)


def error_code_for(error: BaseException) -> ErrorCode:
    """
    Map an exception to its ErrorCode.

    Example:
        >>> error_code_for(StoreIOError("connection reset"))
        <ErrorCode.STORE_IO_ERROR: 'STORE_IO_ERROR'>
    """
    if isinstance(error, ClusterIndexBuildError):
        return error.error_code
    if isinstance(error, QuadKeyValidationError):
        return error.error_code
    if isinstance(error, ValidationError):
        return ErrorCode.INVALID_PARAMETER
    if isinstance(error, StoreIOError):
        return ErrorCode.STORE_IO_ERROR
    if isinstance(error, InvariantViolationError):
        return ErrorCode.INVARIANT_VIOLATION
    if isinstance(error, PointSourceError):
        return ErrorCode.SOURCE_ERROR
    if isinstance(error, ConfigurationError):
        return ErrorCode.CONFIG_ERROR
    return ErrorCode.UNEXPECTED_ERROR
