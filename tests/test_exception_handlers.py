"""Tests for global exception handlers.

Validates that limiter errors map to the right HTTP status codes with a
consistent error body and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from site_limiter.core.errors import (
    AppError,
    AuthenticationAppError,
    ErrorDetails,
    RateLimitBackendError,
    UnknownLimitClassError,
)
from site_limiter.core.exception_handlers import general_exception_handler, setup_exception_handlers
from site_limiter.core.policies import DEFAULT_POLICIES


@pytest.fixture
def app_with_handlers() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_unknown_limit_class_returns_500_without_details(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/test-config")
        async def test_endpoint():
            DEFAULT_POLICIES.lookup("contactForm")

        response = client.get("/test-config")

        assert response.status_code == 500
        data = response.json()
        assert data["error"]["code"] == "unknown_limit_class"
        assert "details" not in data["error"]
        assert "request_id" in data["error"]

    def test_authentication_error_returns_403(self, client: TestClient, app_with_handlers: FastAPI):
        @app_with_handlers.get("/test-auth")
        async def test_endpoint():
            raise AuthenticationAppError(code="invalid_api_key", message="Invalid or missing API key")

        response = client.get("/test-auth")

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "invalid_api_key"

    def test_other_app_errors_return_400_with_details(
        self, client: TestClient, app_with_handlers: FastAPI
    ):
        @app_with_handlers.get("/test-backend")
        async def test_endpoint():
            raise RateLimitBackendError(
                code="rate_limit_backend_error",
                message="backend said no",
                details={"operation": "GET"},
            )

        response = client.get("/test-backend")

        assert response.status_code == 400
        assert response.json()["error"]["details"] == {"operation": "GET"}

    def test_unknown_limit_class_error_str_is_message(self) -> None:
        exc = UnknownLimitClassError(code="unknown_limit_class", message="Unknown rate limit class: 'x'")

        assert str(exc) == "Unknown rate limit class: 'x'"


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_general_exception_handler_hides_internals(self):
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        exc = RuntimeError("Redis token abc123 rejected")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "abc123" not in json.dumps(data)
        assert "RuntimeError" not in json.dumps(data)


def test_setup_exception_handlers_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers


def test_error_details_cover_the_raised_shapes():
    with pytest.raises(UnknownLimitClassError) as excinfo:
        DEFAULT_POLICIES.lookup("contactForm")

    assert set(excinfo.value.details) <= ErrorDetails.__optional_keys__
    assert ErrorDetails.__optional_keys__ == {"hint", "limit_class", "known_classes", "operation"}
