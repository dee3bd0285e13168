import pytest
from fastapi import HTTPException
from core.exceptions import (
    GalleryAPIException,
    StoreReadError,
    StoreWriteError,
    CaptionCreationError,
    ValidationError,
    AuthenticationError,
    IdentityProviderError,
    DatabaseConnectionError,
    to_http_exception,
)


class TestCustomExceptions:
    """Test custom exception classes."""

    def test_store_read_error(self):
        error = StoreReadError("fetch_displayable", "connection refused")
        assert error.error_code == "STORE_READ_ERROR"
        assert error.status_code == 503
        assert error.details == {
            "operation": "fetch_displayable",
            "reason": "connection refused",
        }
        assert "connection refused" in str(error)

    def test_store_write_error(self):
        error = StoreWriteError("insert_image", "disk full")
        assert error.error_code == "STORE_WRITE_ERROR"
        assert error.status_code == 503

    def test_caption_creation_error_without_orphan(self):
        error = CaptionCreationError("image", "disk full")
        assert error.stage == "image"
        assert error.orphaned_image_id is None
        assert "orphaned_image_id" not in error.details
        assert error.status_code == 502

    def test_caption_creation_error_with_orphan(self):
        error = CaptionCreationError("caption", "constraint", orphaned_image_id="img-9")
        assert error.details["orphaned_image_id"] == "img-9"
        assert error.message == "Could not save the caption: constraint"

    def test_validation_error(self):
        error = ValidationError("content", "", "Caption text is required")
        assert error.status_code == 400
        assert error.details["field"] == "content"
        assert error.message == "Validation failed for field 'content': Caption text is required"

    def test_authentication_error(self):
        error = AuthenticationError("Token has expired")
        assert error.status_code == 401
        assert error.error_code == "AUTHENTICATION_ERROR"

    def test_identity_provider_error(self):
        error = IdentityProviderError("google", "invalid_grant")
        assert error.status_code == 502
        assert error.details["provider"] == "google"

    def test_database_connection_error(self):
        assert DatabaseConnectionError("create_all", "locked").status_code == 500

    def test_unknown_code_is_server_error(self):
        error = GalleryAPIException("Something odd", "SOMETHING_ODD")
        assert error.status_code == 500
        assert error.details == {}

    def test_hierarchy(self):
        for error in (
            StoreReadError("a", "b"),
            CaptionCreationError("image", "b"),
            AuthenticationError("b"),
        ):
            assert isinstance(error, GalleryAPIException)


class TestHTTPConversion:
    """Test conversion to FastAPI HTTPException."""

    def test_to_http_exception(self):
        http_exc = to_http_exception(ValidationError("image_url", "ftp://x", "bad scheme"))

        assert isinstance(http_exc, HTTPException)
        assert http_exc.status_code == 400
        assert http_exc.detail["error_code"] == "VALIDATION_ERROR"
        assert http_exc.detail["details"]["field"] == "image_url"

    @pytest.mark.parametrize(
        "error,status",
        [
            (StoreReadError("count_displayable", "x"), 503),
            (CaptionCreationError("caption", "x", "img-1"), 502),
            (AuthenticationError("x"), 401),
        ],
    )
    def test_status_mapping(self, error, status):
        assert to_http_exception(error).status_code == status
