"""Message router: forwards posted messages to the owning stream."""
from __future__ import annotations

from starlette.requests import Request
from starlette.responses import Response

from ....observability import get_logger
from ....observability.metrics import MESSAGES_ROUTED_TOTAL
from ...errors import HandlerError, MalformedRequestError, UnknownSessionError
from .registry import SessionRegistry

logger = get_logger(__name__)

SESSION_ID_PARAM = 'sessionId'


class MessageRouter:
    """Routes ``POST /messages?sessionId=...`` to the session's stream handle.

    A failing handler is reported to the poster only. The session stays
    registered and keeps accepting messages.
    """

    def __init__(self, registry: SessionRegistry) -> None:
        self.registry = registry

    async def post_message(self, request: Request) -> Response:
        """Forward one message.

        Raises:
            MalformedRequestError: No session id was supplied.
            UnknownSessionError: No open session has that id.
            HandlerError: The session's handle failed on this message.
        """
        session_id = request.query_params.get(SESSION_ID_PARAM, '')
        if not session_id:
            MESSAGES_ROUTED_TOTAL.labels(outcome='missing_id').inc()
            raise MalformedRequestError('Missing sessionId parameter', operation='messages.post')

        session = self.registry.lookup(session_id)
        if session is None or not session.is_routable:
            MESSAGES_ROUTED_TOTAL.labels(outcome='unknown_session').inc()
            raise UnknownSessionError(
                f'No active SSE connection for session {session_id}',
                session_id=session_id,
                operation='messages.post',
            )

        logger.debug('sse_message_forwarded', session_id=session_id)
        try:
            response = await session.handle.handle_post_message(request)
        except Exception as exc:
            MESSAGES_ROUTED_TOTAL.labels(outcome='handler_error').inc()
            logger.error(
                'sse_message_handler_failed',
                session_id=session_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise HandlerError(
                'Internal server error',
                session_id=session_id,
                operation='messages.post',
            ) from exc

        MESSAGES_ROUTED_TOTAL.labels(outcome='forwarded').inc()
        return response
