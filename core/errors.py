"""
Error Code Definitions and Classification.

Centralized error code management for the cluster index builder and the
query boundary.

Key Features:
    - Explicit error codes for all failure modes
    - Classification (PERMANENT, TRANSIENT)
    - HTTP status mapping behind LookupResult rejections
    - Error response dicts attached to the CLI fatal log line

Exports:
    ErrorCode: Standardized error codes enum
    ErrorClassification: Error category enum
    is_retryable: Helper to check if error should be retried
    get_http_status_code: ErrorCode -> HTTP status
    create_error_response: Standard error dict
"""

from enum import Enum
from typing import Dict, Any


class ErrorCode(str, Enum):
    """
    Standardized error codes for all application errors.
    """

    # ========================================================================
    # QUERY BOUNDARY ERRORS - CLIENT ERRORS (HTTP 404/400)
    # ========================================================================

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"  # Empty key or no aggregate for key
    INVALID_PARAMETER = "INVALID_PARAMETER"  # Too-long key, bad digit, bad zoom
    MISSING_PARAMETER = "MISSING_PARAMETER"  # Missing longitude/latitude

    # ========================================================================
    # RUN ERRORS - FATAL FOR A BUILD
    # ========================================================================

    CONFIG_ERROR = "CONFIG_ERROR"  # Invalid configuration
    STORE_IO_ERROR = "STORE_IO_ERROR"  # Backing store failure
    INVARIANT_VIOLATION = "INVARIANT_VIOLATION"  # Recorded key with no members
    SOURCE_ERROR = "SOURCE_ERROR"  # Point source failure

    # ========================================================================
    # GENERIC ERRORS
    # ========================================================================

    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"  # Unexpected exception


class ErrorClassification(str, Enum):
    """
    Error classification for retry logic.
    """

    PERMANENT = "PERMANENT"  # Never retry
    TRANSIENT = "TRANSIENT"  # Retry is safe


# Store failures are PERMANENT: a failed run is rerun as a whole batch.
_ERROR_CLASSIFICATION: Dict[ErrorCode, ErrorClassification] = {
    ErrorCode.RESOURCE_NOT_FOUND: ErrorClassification.PERMANENT,
    ErrorCode.INVALID_PARAMETER: ErrorClassification.PERMANENT,
    ErrorCode.MISSING_PARAMETER: ErrorClassification.PERMANENT,
    ErrorCode.CONFIG_ERROR: ErrorClassification.PERMANENT,
    ErrorCode.STORE_IO_ERROR: ErrorClassification.PERMANENT,
    ErrorCode.INVARIANT_VIOLATION: ErrorClassification.PERMANENT,
    ErrorCode.SOURCE_ERROR: ErrorClassification.PERMANENT,
    ErrorCode.UNEXPECTED_ERROR: ErrorClassification.TRANSIENT,
}


def is_retryable(error_code: ErrorCode) -> bool:
    """
    Determine if an error code should trigger a retry.

    Example:
        >>> is_retryable(ErrorCode.INVALID_PARAMETER)
        False
    """
    classification = _ERROR_CLASSIFICATION.get(error_code, ErrorClassification.TRANSIENT)
    return classification != ErrorClassification.PERMANENT


def get_http_status_code(error_code: ErrorCode) -> int:
    """
    Get the appropriate HTTP status code for an error code.

    Example:
        >>> get_http_status_code(ErrorCode.RESOURCE_NOT_FOUND)
        404
        >>> get_http_status_code(ErrorCode.INVALID_PARAMETER)
        400
    """
    if error_code == ErrorCode.RESOURCE_NOT_FOUND:
        return 404

    if error_code in {
        ErrorCode.INVALID_PARAMETER,
        ErrorCode.MISSING_PARAMETER,
    }:
        return 400

    return 500


def create_error_response(
    error_code: ErrorCode,
    message: str,
    **kwargs: Any
) -> Dict[str, Any]:
    """
    Create a standardized error response dictionary.

    Example:
        >>> create_error_response(ErrorCode.INVALID_PARAMETER, "bad digit", quadkey="0125")
        {
            "success": False,
            "error": "INVALID_PARAMETER",
            "error_type": "ValidationError",
            "message": "bad digit",
            "retryable": False,
            "http_status": 400,
            "quadkey": "0125"
        }
    """
    response = {
        "success": False,
        "error": error_code.value,
        "error_type": kwargs.pop("error_type", "ValidationError"),
        "message": message,
        "retryable": is_retryable(error_code),
        "http_status": get_http_status_code(error_code),
        **kwargs
    }

    return response
