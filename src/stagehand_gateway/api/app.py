"""Application factory for the gateway API."""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import PlainTextResponse, Response

from ..observability import configure_logging, get_logger, metrics_text
from ..observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
)
from .config import GatewayConfig
from .modules.artifacts import InMemoryArtifactStore
from .modules.backend import BrowserbaseClient, BrowserSessionPool
from .modules.protocol import ServerFactory, create_mcp_server
from .modules.sessions import (
    MessageRouter,
    SessionRegistry,
    StreamLifecycleController,
    create_session_router,
)

logger = get_logger(__name__)


def create_app(
    config: GatewayConfig | None = None,
    *,
    registry: SessionRegistry | None = None,
    backend: BrowserSessionPool | None = None,
    artifacts: InMemoryArtifactStore | None = None,
    server_factory: ServerFactory | None = None,
) -> FastAPI:
    """Create a pre-wired FastAPI application.

    All collaborators are injectable so tests can run several independent
    gateways in one process.

    Args:
        config: Gateway configuration. Defaults to environment-driven values.
        registry: Session registry. A fresh one per app by default.
        backend: Browser backend pool. Defaults to a Browserbase-backed pool.
        artifacts: Artifact store. Defaults to an in-memory store.
        server_factory: Builds the protocol server for each stream.
            Defaults to the MCP server.

    Returns:
        Configured FastAPI application. The registry and controller are
        reachable as ``app.state.registry`` and ``app.state.controller``.
    """
    configure_logging()

    if config is None:
        config = GatewayConfig()
    try:
        config.validate_startup()
    except ValueError as e:
        logger.error('config_validation_failed', error=str(e))
        raise

    if registry is None:
        registry = SessionRegistry()
    if artifacts is None:
        artifacts = InMemoryArtifactStore(max_per_session=config.artifact_max_per_session)
    if backend is None:
        backend = BrowserSessionPool(
            BrowserbaseClient(
                config.browserbase_api_url,
                timeout=config.backend_timeout_seconds,
            )
        )

    controller = StreamLifecycleController(
        registry,
        config,
        server_factory or create_mcp_server,
        backend=backend,
        artifacts=artifacts,
    )
    message_router = MessageRouter(registry)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            'gateway_started',
            sse_endpoint=config.sse_path,
            message_endpoint=f'{config.message_path}?sessionId={{sessionId}}',
        )
        yield
        await controller.shutdown()
        await backend.aclose()
        logger.info('gateway_stopped')

    app = FastAPI(
        title='Stagehand SSE Gateway',
        description='MCP over server-sent events with per-session routing',
        version=config.server_version,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.registry = registry
    app.state.controller = controller
    app.state.artifacts = artifacts
    app.state.backend = backend

    # Middleware chain executes in reverse order of addition.
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        MetricsMiddleware,
        stream_paths=(config.sse_path, config.message_path),
    )
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=False,
        allow_methods=['*'],
        allow_headers=['*'],
    )

    app.include_router(create_session_router(config, controller, message_router))

    @app.get('/health', response_class=PlainTextResponse)
    async def health():
        """Liveness check. Independent of session state."""
        return 'ok'

    @app.get('/metrics')
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    return app
