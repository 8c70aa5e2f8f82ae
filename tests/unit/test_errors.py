"""Unit tests for the application error taxonomy."""

import pytest

from src.errors import (
    AppError,
    AuthError,
    ConflictError,
    InternalError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)


class TestErrorTaxonomy:

    @pytest.mark.parametrize(
        "error_cls, status_code, code",
        [
            (ValidationError, 400, "VALIDATION_ERROR"),
            (ConflictError, 409, "CONFLICT"),
            (AuthError, 401, "AUTH_ERROR"),
            (NotFoundError, 404, "NOT_FOUND"),
        ],
    )
    def test_status_and_code(self, error_cls, status_code, code):
        error = error_cls("boom")

        assert isinstance(error, AppError)
        assert error.status_code == status_code
        assert error.to_dict() == {"code": code, "detail": "boom", "details": {}}

    def test_invalid_token_is_an_auth_error(self):
        error = InvalidTokenError()

        assert isinstance(error, AuthError)
        assert error.status_code == 401
        assert error.code == "INVALID_TOKEN"
        assert error.message == "Invalid token"

    def test_internal_error_has_generic_message(self):
        error = InternalError()

        assert error.status_code == 500
        assert error.to_dict()["detail"] == "Internal server error"

    def test_explicit_code_and_details(self):
        error = NotFoundError("User not found", code="USER_NOT_FOUND", details={"user_id": 3})

        assert error.to_dict() == {
            "code": "USER_NOT_FOUND",
            "detail": "User not found",
            "details": {"user_id": 3},
        }
