"""Tests for request ID middleware."""

import uuid
from unittest.mock import patch

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from buttonsynth.app.middleware import request_id as request_id_module
from buttonsynth.app.middleware.request_id import RequestIdMiddleware, get_request_id


class TestRequestIdMiddleware:
    """Test RequestIdMiddleware."""

    @pytest.fixture
    def client(self):
        app = FastAPI()
        app.add_middleware(RequestIdMiddleware)

        @app.get("/test")
        async def test_endpoint(request: Request):
            return {"request_id": get_request_id(request)}

        return TestClient(app)

    def test_request_id_generation(self, client):
        response = client.get("/test")

        request_id = response.json()["request_id"]
        assert uuid.UUID(request_id).version == 4
        assert response.headers["X-Request-ID"] == request_id

    def test_request_id_from_header(self, client):
        response = client.get("/test", headers={"X-Request-ID": "custom-request-id-123"})

        assert response.json()["request_id"] == "custom-request-id-123"
        assert response.headers["X-Request-ID"] == "custom-request-id-123"

    @pytest.mark.parametrize("bad", ["has space", "<script>", "a" * 129, "semi;colon"])
    def test_malformed_request_id_replaced(self, client, bad):
        response = client.get("/test", headers={"X-Request-ID": bad})

        request_id = response.json()["request_id"]
        assert request_id != bad
        assert uuid.UUID(request_id)

    def test_request_is_logged(self, client):
        with patch.object(request_id_module.logger, "info") as mock_info:
            client.get("/test", headers={"X-Request-ID": "logged-id"})

        mock_info.assert_called_once()
        extra = mock_info.call_args.kwargs["extra"]
        assert extra["request_id"] == "logged-id"
        assert extra["method"] == "GET"
        assert extra["path"] == "/test"
        assert extra["status_code"] == 200
        assert extra["duration_ms"] >= 0


def test_get_request_id_without_middleware():
    request = Request({"type": "http", "method": "GET", "path": "/", "headers": []})
    assert get_request_id(request) == "unknown"
