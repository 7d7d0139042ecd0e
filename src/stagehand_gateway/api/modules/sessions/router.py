"""SSE session routes: stream open, message post, and session listing."""
from __future__ import annotations

from fastapi import APIRouter, Request
from starlette.responses import Response

from ....observability import get_logger
from ...config import GatewayConfig
from ...errors import GatewayError, error_response
from .lifecycle import StreamLifecycleController
from .messages import MessageRouter

logger = get_logger(__name__)


def create_session_router(
    config: GatewayConfig,
    controller: StreamLifecycleController,
    message_router: MessageRouter,
) -> APIRouter:
    """Create the session router.

    Args:
        config: Gateway configuration; supplies the route paths.
        controller: Lifecycle controller for stream-open requests.
        message_router: Router for message-post requests.

    Returns:
        FastAPI router with the stream, message, and listing endpoints.
    """
    router = APIRouter(tags=['sessions'])

    @router.get(config.sse_path, response_model=None)
    async def open_stream(request: Request) -> Response:
        try:
            return await controller.open_stream(request)
        except GatewayError as exc:
            return error_response(exc)
        except Exception as exc:
            logger.exception('sse_connection_failed')
            return Response(
                f'Error handling SSE connection: {exc}',
                status_code=500,
                media_type='text/plain',
            )

    # The body is read raw by the stream handle, so no body model here.
    @router.post(config.message_path, response_model=None)
    async def post_message(request: Request) -> Response:
        try:
            return await message_router.post_message(request)
        except GatewayError as exc:
            return error_response(exc)

    @router.get('/sessions')
    async def list_sessions():
        return {
            'count': controller.registry.count(),
            'sessions': controller.registry.snapshot(),
        }

    return router
