"""
Error classification, fatal messages and JSON log formatting.
"""

import json
import logging

import pytest

from core.errors import ErrorCode, create_error_response, get_http_status_code, is_retryable
from core.models import LookupResult, LookupStatus
from exceptions import (
    ClusterIndexBuildError,
    ConfigurationError,
    InvariantViolationError,
    PointSourceError,
    QuadKeyValidationError,
    StoreIOError,
    error_code_for,
)
from util_logger import ComponentType, JSONFormatter, LoggerFactory, log_exceptions


class TestClusterIndexBuildError:

    def test_message_names_phase_and_key(self):
        error = ClusterIndexBuildError("aggregation", "3203", StoreIOError("timeout"))
        assert str(error) == (
            "cluster index build failed in aggregation phase at key '3203': StoreIOError: timeout"
        )

    def test_message_without_key(self):
        error = ClusterIndexBuildError("staging", None, RuntimeError("no table"))
        assert str(error) == "cluster index build failed in staging phase: RuntimeError: no table"

    @pytest.mark.parametrize("cause, code", [
        (StoreIOError("timeout"), ErrorCode.STORE_IO_ERROR),
        (InvariantViolationError("empty bucket"), ErrorCode.INVARIANT_VIOLATION),
        (PointSourceError("no table"), ErrorCode.SOURCE_ERROR),
        (RuntimeError("boom"), ErrorCode.UNEXPECTED_ERROR),
    ])
    def test_error_code_follows_cause(self, cause, code):
        assert ClusterIndexBuildError("assignment", "32", cause).error_code == code


class TestErrorCodeFor:

    def test_configuration(self):
        assert error_code_for(ConfigurationError("bad zoom")) == ErrorCode.CONFIG_ERROR

    def test_validation_keeps_its_code(self):
        error = QuadKeyValidationError("empty", ErrorCode.RESOURCE_NOT_FOUND)
        assert error_code_for(error) == ErrorCode.RESOURCE_NOT_FOUND

    def test_store_failures_are_not_retried(self):
        assert not is_retryable(error_code_for(StoreIOError("reset")))
        assert is_retryable(error_code_for(RuntimeError("boom")))


class TestErrorCodes:

    def test_http_status_mapping(self):
        assert get_http_status_code(ErrorCode.RESOURCE_NOT_FOUND) == 404
        assert get_http_status_code(ErrorCode.INVALID_PARAMETER) == 400
        assert get_http_status_code(ErrorCode.MISSING_PARAMETER) == 400

    def test_lookup_result_http_status(self):
        assert LookupResult.found([]).http_status == 200
        assert LookupResult.not_found("gone").http_status == 404
        bad = LookupResult.bad_request("nope")
        assert bad.status == LookupStatus.BAD_REQUEST
        assert bad.error_code == ErrorCode.INVALID_PARAMETER

    def test_rejection_status_follows_code(self):
        assert LookupResult.rejected("gone", ErrorCode.RESOURCE_NOT_FOUND).status == LookupStatus.NOT_FOUND
        missing = LookupResult.rejected("no latitude", ErrorCode.MISSING_PARAMETER)
        assert missing.status == LookupStatus.BAD_REQUEST
        assert missing.http_status == 400

    def test_error_response_carries_code(self):
        response = create_error_response(ErrorCode.INVALID_PARAMETER, "bad quadkey")
        assert ErrorCode.INVALID_PARAMETER.value in json.dumps(response, default=str)


class TestJSONFormatter:

    def test_output_is_json_with_component(self):
        record = logging.LogRecord("cli.test", logging.INFO, __file__, 1, "hello", None, None)
        record.custom_dimensions = {"component_type": "cli", "component_name": "test"}
        payload = json.loads(JSONFormatter().format(record))
        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"


class TestLogExceptions:

    def test_reraises_and_logs(self, caplog):
        @log_exceptions(ComponentType.SERVICE, "Probe")
        def explode():
            raise ValueError("boom")

        with caplog.at_level(logging.ERROR):
            with pytest.raises(ValueError):
                explode()
        assert any("explode" in r.getMessage() for r in caplog.records)

    def test_logger_is_reused(self):
        first = LoggerFactory.create_logger(ComponentType.PIPELINE, "Reuse")
        second = LoggerFactory.create_logger(ComponentType.PIPELINE, "Reuse")
        assert first is second
        assert len(first.handlers) == 1
