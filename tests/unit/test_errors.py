"""Tests for structured error codes and error handling.

Tests the error code system including:
- ErrorCode enum values and categories
- ErrorDetails structure
- RolloutGuardError and its subclasses
- Rollout ID validation at the API boundary
- Error logging and response utilities
"""

from __future__ import annotations

import logging

import pytest

from rolloutguard.utils.errors import (
    ERROR_MESSAGES,
    ConfigurationError,
    ErrorCode,
    ErrorDetails,
    IntegrationError,
    RolloutGuardError,
    ValidationError,
    create_error_response,
    get_http_status_for_error,
    log_error,
    require_rollout_id,
)


class TestErrorCode:
    """Tests for ErrorCode enum."""

    def test_error_code_values(self) -> None:
        assert ErrorCode.E101_EMPTY_ROLLOUT_ID.value == "E101"
        assert ErrorCode.E701_CACHE_UNAVAILABLE.value == "E701"
        assert ErrorCode.E803_CONFIG_VALIDATION_FAILED.value == "E803"
        assert ErrorCode.E905_NOT_FOUND.value == "E905"

    def test_every_code_has_a_message(self) -> None:
        assert set(ERROR_MESSAGES) == set(ErrorCode)

    def test_categories(self) -> None:
        categories = {code.value[:2] for code in ErrorCode}
        assert categories == {"E1", "E7", "E8", "E9"}

    def test_codes_are_unique(self) -> None:
        values = [code.value for code in ErrorCode]
        assert len(values) == len(set(values))


class TestErrorDetails:
    def test_to_dict_omits_empty_sections(self) -> None:
        details = ErrorDetails(code=ErrorCode.E100_VALIDATION_ERROR, message="bad")
        assert details.to_dict() == {
            "error_code": "E100",
            "message": "bad",
            "recoverable": False,
        }

    def test_to_log_dict_flattens(self) -> None:
        details = ErrorDetails(
            code=ErrorCode.E701_CACHE_UNAVAILABLE,
            message="down",
            details={"host": "cache"},
            context={"rollout_id": "checkout"},
            recoverable=True,
        )
        log_dict = details.to_log_dict()
        assert log_dict["error_code"] == "E701"
        assert log_dict["detail_host"] == "cache"
        assert log_dict["ctx_rollout_id"] == "checkout"
        assert log_dict["recoverable"] is True


class TestRolloutGuardError:
    def test_default_message(self) -> None:
        error = RolloutGuardError(ErrorCode.E905_NOT_FOUND)
        assert error.message == "Resource not found"
        assert str(error) == "[E905] Resource not found"

    def test_custom_message_and_details(self) -> None:
        error = RolloutGuardError(
            ErrorCode.E103_INVALID_PARTIAL_UPDATE,
            "percentage must be a number",
            details={"field": "percentage"},
        )
        assert error.error_details.details == {"field": "percentage"}
        assert "percentage must be a number" in str(error)

    def test_validation_error_defaults(self) -> None:
        error = ValidationError("nope")
        assert error.code is ErrorCode.E100_VALIDATION_ERROR
        assert isinstance(error, RolloutGuardError)

    def test_configuration_error(self) -> None:
        error = ConfigurationError(ErrorCode.E802_MISSING_REQUIRED_CONFIG, "missing url")
        assert error.code is ErrorCode.E802_MISSING_REQUIRED_CONFIG
        assert error.message == "missing url"

    def test_integration_error_is_recoverable(self) -> None:
        error = IntegrationError(ErrorCode.E702_NOTIFICATION_FAILED, "webhook 500", action="notify")
        assert error.error_details.recoverable is True
        assert error.error_details.details == {"action": "notify"}


class TestRequireRolloutId:
    def test_accepts_non_blank(self) -> None:
        assert require_rollout_id("checkout") == "checkout"

    @pytest.mark.parametrize("rollout_id", ["", "  ", "\t\n", None, 42])
    def test_rejects_blank_or_non_string(self, rollout_id: object) -> None:
        with pytest.raises(ValidationError) as exc_info:
            require_rollout_id(rollout_id)  # type: ignore[arg-type]
        assert exc_info.value.code is ErrorCode.E101_EMPTY_ROLLOUT_ID


class TestLogError:
    def test_logs_rolloutguard_error_with_context(self, caplog: pytest.LogCaptureFixture) -> None:
        error = IntegrationError(ErrorCode.E703_AUDIT_WRITE_FAILED, "disk full")
        with caplog.at_level(logging.ERROR):
            log_error(error, rollout_id="checkout", additional_context={"attempt": 1})

        assert error.error_details.context == {"rollout_id": "checkout", "attempt": 1}
        record = caplog.records[-1]
        assert record.error_code == "E703"
        assert record.ctx_rollout_id == "checkout"

    def test_logs_plain_exception_with_code(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR):
            log_error(TimeoutError("read timed out"), "checkout", code=ErrorCode.E701_CACHE_UNAVAILABLE)

        record = caplog.records[-1]
        assert record.error_code == "E701"
        assert record.error_type == "TimeoutError"
        assert record.rollout_id == "checkout"
        assert "Config cache unavailable" in record.getMessage()


class TestErrorResponses:
    def test_rolloutguard_error_response(self) -> None:
        error = ValidationError(details={"field": "percentage"})
        response = create_error_response(error)
        assert response["error"]["error_code"] == "E100"
        assert response["error"]["details"] == {"field": "percentage"}

    def test_details_can_be_hidden(self) -> None:
        error = ValidationError(details={"field": "percentage"})
        assert "details" not in create_error_response(error, include_details=False)["error"]

    def test_generic_exception_response(self) -> None:
        response = create_error_response(RuntimeError("kaboom"), include_details=False)
        assert response["error"]["error_code"] == "E700"
        assert "kaboom" not in response["error"]["message"]

    @pytest.mark.parametrize(
        ("code", "status"),
        [
            (ErrorCode.E101_EMPTY_ROLLOUT_ID, 400),
            (ErrorCode.E701_CACHE_UNAVAILABLE, 503),
            (ErrorCode.E801_INVALID_CONFIG_FILE, 500),
            (ErrorCode.E904_BAD_REQUEST, 400),
            (ErrorCode.E905_NOT_FOUND, 404),
            (ErrorCode.E900_API_ERROR, 500),
        ],
    )
    def test_http_status(self, code: ErrorCode, status: int) -> None:
        assert get_http_status_for_error(RolloutGuardError(code)) == status
