"""Pytest configuration for gateway tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest
from starlette.requests import Request

from stagehand_gateway.api.config import GatewayConfig
from stagehand_gateway.api.errors import BackendError
from stagehand_gateway.api.modules.artifacts import InMemoryArtifactStore
from stagehand_gateway.api.modules.sessions import (
    MessageRouter,
    SessionRegistry,
    StreamLifecycleController,
)

FULL_QUERY = {
    'browserbase_api_key': 'bb_live_key_123456',
    'browserbase_project_id': 'proj-123',
    'openai_api_key': 'sk-test-abcdef',
}


def make_request(
    path: str = '/sse',
    *,
    method: str = 'GET',
    query: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
    body: bytes = b'',
) -> Request:
    """Build a Starlette request without a running server."""
    from urllib.parse import urlencode

    scope = {
        'type': 'http',
        'http_version': '1.1',
        'method': method,
        'scheme': 'http',
        'path': path,
        'raw_path': path.encode(),
        'root_path': '',
        'query_string': urlencode(query or {}).encode(),
        'headers': [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        'client': ('127.0.0.1', 50000),
        'server': ('testserver', 80),
    }
    sent = False

    async def receive():
        nonlocal sent
        if sent:
            return {'type': 'http.disconnect'}
        sent = True
        return {'type': 'http.request', 'body': body, 'more_body': False}

    return Request(scope, receive)


class FakeSessionServer:
    """Protocol server double that records what it receives."""

    def __init__(self, context, *, fail_connect: bool = False, skip_handshake: bool = False):
        self.context = context
        self.fail_connect = fail_connect
        self.skip_handshake = skip_handshake
        self.received: list = []
        self.handle = None
        self.closed = False

    async def connect(self, handle) -> None:
        if self.fail_connect:
            raise RuntimeError('upstream refused connection')
        self.handle = handle

        async def on_message(payload):
            if isinstance(payload, dict) and payload.get('explode'):
                raise ValueError('cannot handle this payload')
            self.received.append(payload)

        handle.set_message_handler(on_message)
        if not self.skip_handshake:
            await handle.start()

    async def close(self) -> None:
        self.closed = True


class FakeServerFactory:
    def __init__(self, **server_kwargs):
        self.server_kwargs = server_kwargs
        self.servers: list[FakeSessionServer] = []

    def __call__(self, context) -> FakeSessionServer:
        server = FakeSessionServer(context, **self.server_kwargs)
        self.servers.append(server)
        return server


class FakeBackend:
    """Backend pool double recording release calls."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.closed: list = []

    async def close(self, credentials) -> bool:
        self.closed.append(credentials)
        if self.fail:
            raise BackendError('release failed')
        return True

    async def aclose(self) -> None:
        pass


@pytest.fixture
def config():
    return GatewayConfig(ping_interval=5.0)


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.fixture
def artifacts():
    return InMemoryArtifactStore(max_per_session=5)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def server_factory():
    return FakeServerFactory()


@pytest.fixture
def controller(registry, config, server_factory, backend, artifacts):
    return StreamLifecycleController(
        registry,
        config,
        server_factory,
        backend=backend,
        artifacts=artifacts,
    )


@pytest.fixture
def message_router(registry):
    return MessageRouter(registry)


@pytest.fixture
def request_factory():
    return make_request


@pytest.fixture
def full_query():
    return dict(FULL_QUERY)


@pytest.fixture
def failing_backend():
    return FakeBackend(fail=True)
