"""Tests for error normalization."""

from __future__ import annotations

import pytest

from provisioner.errors import (
    UNKNOWN_ERROR_MESSAGE,
    UNKNOWN_SERVICE_ERROR_MESSAGE,
    ApiError,
    ErrorKind,
    OperationError,
    ServiceErrorPayload,
    make_service_error,
    normalize_client_error,
)


def service(description: str = "", error_code: str = "", status_code: int = 400) -> ApiError:
    return ApiError(
        "boom",
        kind=ErrorKind.SERVICE,
        status_code=status_code,
        payload=ServiceErrorPayload(error_code=error_code, description=description),
    )


class TestNormalizeClientError:
    """Tests for normalize_client_error."""

    def test_description_wins(self) -> None:
        """Test that a service description is used verbatim."""
        error = service(description="quota exceeded", error_code="insufficient_resources")

        assert str(normalize_client_error(error)) == "quota exceeded"

    def test_code_when_no_description(self) -> None:
        """Test fallback to the error code."""
        assert str(normalize_client_error(service(error_code="db_not_exist"))) == "db_not_exist"

    def test_empty_payload(self) -> None:
        """Test fallback to the generic service message."""
        assert str(normalize_client_error(service())) == UNKNOWN_SERVICE_ERROR_MESSAGE

    def test_service_without_payload(self) -> None:
        """Test that a service error missing its payload does not blow up."""
        error = ApiError("boom", kind=ErrorKind.SERVICE, status_code=500)

        assert str(normalize_client_error(error)) == UNKNOWN_SERVICE_ERROR_MESSAGE

    def test_transport_error(self) -> None:
        """Test that a transport failure is reported as unknown."""
        error = ApiError("connection refused", kind=ErrorKind.TRANSPORT)

        assert str(normalize_client_error(error)) == UNKNOWN_ERROR_MESSAGE

    def test_unknown_kind(self) -> None:
        """Test that an unclassified client failure is reported as unknown."""
        error = ApiError("garbled", kind=ErrorKind.UNKNOWN, status_code=502)

        assert str(normalize_client_error(error)) == UNKNOWN_ERROR_MESSAGE

    @pytest.mark.parametrize("error", [RuntimeError("x"), ValueError(), KeyError("k")])
    def test_foreign_exceptions(self, error: Exception) -> None:
        """Test that non-client exceptions never raise during normalization."""
        assert str(normalize_client_error(error)) == UNKNOWN_ERROR_MESSAGE


class TestMakeServiceError:
    """Tests for make_service_error."""

    def test_ladder(self) -> None:
        """Test description, then code, then generic message."""
        assert str(make_service_error(ServiceErrorPayload("c", "d"))) == "d"
        assert str(make_service_error(ServiceErrorPayload("c", ""))) == "c"
        assert str(make_service_error(ServiceErrorPayload())) == UNKNOWN_SERVICE_ERROR_MESSAGE


class TestApiError:
    """Tests for ApiError helpers."""

    def test_404_is_not_found(self) -> None:
        """Test that HTTP 404 means not found."""
        assert ApiError("x", kind=ErrorKind.SERVICE, status_code=404).is_not_found

    def test_db_not_exist_is_not_found(self) -> None:
        """Test that the db_not_exist code means not found."""
        assert service(error_code="db_not_exist").is_not_found

    def test_transport_is_not_not_found(self) -> None:
        """Test that transport failures are never mistaken for absence."""
        assert not ApiError("x", kind=ErrorKind.TRANSPORT).is_not_found


class TestOperationError:
    """Tests for OperationError messages."""

    def test_with_resource_id(self) -> None:
        """Test the message carries operation and id."""
        error = OperationError("updating", "quota exceeded", "3")

        assert str(error) == "error updating database 3: quota exceeded"
        assert error.reason == "quota exceeded"

    def test_without_resource_id(self) -> None:
        """Test the create form without an id."""
        assert str(OperationError("creating", "quota exceeded")) == (
            "error creating database: quota exceeded"
        )
