"""Unit tests for request middleware (focusflow/core/middleware.py)."""

import logging
from unittest.mock import MagicMock

import pytest
from starlette.requests import Request
from starlette.responses import Response

from focusflow.core.middleware import (
    CorrelationIDMiddleware,
    RequestLoggingMiddleware,
    bind_request_user,
    get_correlation_id,
    get_request_user_id,
)


def _request(headers: dict = None) -> MagicMock:
    request = MagicMock(spec=Request)
    request.state = MagicMock()
    request.headers = headers or {}
    request.method = "GET"
    request.url.path = "/api/v1/leaderboard"
    return request


class TestCorrelationIDMiddleware:
    @pytest.fixture
    def middleware(self):
        return CorrelationIDMiddleware(MagicMock())

    @pytest.mark.unit
    async def test_uses_request_id_header(self, middleware):
        seen = {}

        async def call_next(req):
            seen["id"] = get_correlation_id()
            return Response(status_code=200)

        response = await middleware.dispatch(_request({"X-Request-ID": "abc-123"}), call_next)

        assert seen["id"] == "abc-123"
        assert response.headers["X-Request-ID"] == "abc-123"

    @pytest.mark.unit
    async def test_falls_back_to_correlation_id_header(self, middleware):
        async def call_next(req):
            return Response(status_code=200)

        response = await middleware.dispatch(
            _request({"X-Correlation-ID": "corr-9"}), call_next
        )

        assert response.headers["X-Request-ID"] == "corr-9"

    @pytest.mark.unit
    async def test_generates_id_and_resets_context(self, middleware):
        request = _request()

        async def call_next(req):
            return Response(status_code=200)

        response = await middleware.dispatch(request, call_next)

        assert len(response.headers["X-Request-ID"]) == 36
        assert request.state.correlation_id == response.headers["X-Request-ID"]
        assert get_correlation_id() == ""


class TestRequestLoggingMiddleware:
    @pytest.fixture
    def middleware(self):
        return RequestLoggingMiddleware(MagicMock())

    @pytest.mark.unit
    async def test_passes_response_through(self, middleware):
        async def call_next(req):
            return Response(status_code=204)

        response = await middleware.dispatch(_request(), call_next)

        assert response.status_code == 204

    @pytest.mark.unit
    async def test_logs_method_path_and_status(self, middleware, caplog):
        async def call_next(req):
            return Response(status_code=200)

        with caplog.at_level(logging.DEBUG, logger="focusflow.core.middleware"):
            await middleware.dispatch(_request(), call_next)

        record = caplog.records[-1]
        assert "GET /api/v1/leaderboard -> 200" in record.getMessage()
        assert record.status_code == 200
        assert record.duration_ms >= 0


class TestRequestUser:
    @pytest.mark.unit
    async def test_bound_user_is_visible_to_later_reads(self):
        bind_request_user("user-7")

        assert get_request_user_id() == "user-7"
