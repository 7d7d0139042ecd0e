"""Tests for logging correlation, request ids, and HTTP metrics."""
import uuid

from fastapi import FastAPI
from fastapi.testclient import TestClient

from stagehand_gateway.observability import metrics_text, request_id_ctx, session_id_ctx
from stagehand_gateway.observability.logging import _add_correlation_ids
from stagehand_gateway.observability.metrics import HTTP_REQUESTS_TOTAL
from stagehand_gateway.observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    _normalize_path,
)


def _app():
    app = FastAPI()
    app.add_middleware(MetricsMiddleware, stream_paths=('/sse',))
    app.add_middleware(RequestIdMiddleware)

    @app.get('/health')
    async def health():
        return {'rid': request_id_ctx.get()}

    return app


class TestCorrelationProcessor:

    def test_adds_ids_from_context(self):
        rtoken = request_id_ctx.set('req-12345678')
        stoken = session_id_ctx.set('sess-1')
        try:
            event = _add_correlation_ids(None, 'info', {'event': 'x'})
        finally:
            session_id_ctx.reset(stoken)
            request_id_ctx.reset(rtoken)
        assert event['request_id'] == 'req-12345678'
        assert event['session_id'] == 'sess-1'

    def test_explicit_session_id_wins(self):
        token = session_id_ctx.set('from-context')
        try:
            event = _add_correlation_ids(None, 'info', {'session_id': 'explicit'})
        finally:
            session_id_ctx.reset(token)
        assert event['session_id'] == 'explicit'

    def test_nothing_outside_context(self):
        assert _add_correlation_ids(None, 'info', {'event': 'x'}) == {'event': 'x'}


class TestRequestIdMiddleware:

    def test_generates_id(self):
        response = TestClient(_app()).get('/health')
        rid = response.headers['x-request-id']
        uuid.UUID(rid)
        assert response.json()['rid'] == rid

    def test_accepts_valid_incoming_id(self):
        response = TestClient(_app()).get('/health', headers={'X-Request-ID': 'abcdef12-3456'})
        assert response.headers['x-request-id'] == 'abcdef12-3456'

    def test_replaces_malformed_incoming_id(self):
        response = TestClient(_app()).get('/health', headers={'X-Request-ID': 'bad id!'})
        assert response.headers['x-request-id'] != 'bad id!'


class TestMetrics:

    def test_path_normalization(self):
        assert _normalize_path('/health') == '/health'
        assert _normalize_path('/sse', frozenset({'/sse'})) == '/sse'
        assert _normalize_path('/wp-admin/login.php') == '/{unmatched}'

    def test_request_counted(self):
        counter = HTTP_REQUESTS_TOTAL.labels(method='GET', path='/health', status='200')
        before = counter._value.get()
        TestClient(_app()).get('/health')
        assert counter._value.get() == before + 1

    def test_exposition_contains_gateway_metrics(self):
        body, content_type = metrics_text()
        assert content_type.startswith('text/plain')
        text = body.decode()
        assert 'gateway_sessions_active' in text
        assert 'http_server_requests' in text
