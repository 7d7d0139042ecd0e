"""Stream lifecycle controller.

Drives one ``GET /sse`` connection end to end:

1. resolve credentials; reject with 401 if any is missing,
2. build a stream handle and connect a protocol server to it (handshake),
3. register the session under the id the handshake produced,
4. await the session's completion signal in a dedicated task,
5. tear down exactly once: backend release, registry removal, artifact
   cleanup, then protocol server and handle shutdown.

Each teardown step catches and logs its own failure so the remaining
steps still run. Before the first step the session is already CLOSING,
so the message router stops forwarding to it.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from starlette.requests import Request
from starlette.responses import Response, StreamingResponse

from ....observability import get_logger, session_id_ctx
from ....observability.metrics import (
    SESSION_TEARDOWNS_TOTAL,
    SESSIONS_OPENED_TOTAL,
    SESSIONS_REJECTED_TOTAL,
    TEARDOWN_STEP_FAILURES_TOTAL,
)
from ...config import GatewayConfig
from ...credentials import (
    MISSING_CREDENTIALS_MESSAGE,
    credential_sources,
    extract_credentials,
)
from ...errors import (
    AuthenticationMissingError,
    GatewayError,
    SessionSetupError,
    TeardownError,
)
from ...signals import CompletionSignal, TerminalEvent
from ..artifacts import ArtifactStore
from ..backend import BackendResourcePool
from ..protocol import ServerFactory, SessionContext, SessionServer
from ..transport import SSEStreamHandle
from .registry import Session, SessionRegistry

logger = get_logger(__name__)

SSE_HEADERS = {
    'Cache-Control': 'no-cache',
    'Connection': 'keep-alive',
    # Disable proxy buffering (nginx) so events reach the client immediately.
    'X-Accel-Buffering': 'no',
}


class StreamLifecycleController:
    """Opens streams, registers sessions, and tears them down once.

    Args:
        registry: Session table shared with the message router.
        config: Gateway configuration (message path, ping interval).
        server_factory: Builds the protocol server for each stream.
        backend: Browser backend released on teardown. Optional.
        artifacts: Per-session artifact store cleaned on teardown. Optional.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        config: GatewayConfig,
        server_factory: ServerFactory,
        *,
        backend: BackendResourcePool | None = None,
        artifacts: ArtifactStore | None = None,
    ) -> None:
        self.registry = registry
        self.config = config
        self.server_factory = server_factory
        self.backend = backend
        self.artifacts = artifacts
        self._servers: dict[str, SessionServer] = {}
        self._teardown_tasks: dict[str, asyncio.Task] = {}
        self.teardown_count = 0

    # ------------------------------------------------------------------
    # Stream open
    # ------------------------------------------------------------------

    async def open_stream(self, request: Request) -> Response:
        """Handle a stream-open request.

        Raises:
            AuthenticationMissingError: A credential is missing. Nothing
                was created.
            SessionSetupError: The handshake failed. The half-open handle
                and server were released.
        """
        client = request.client.host if request.client else 'unknown'
        logger.info('sse_connection_requested', client=client)

        credentials = extract_credentials(request.headers, request.query_params)
        logger.info(
            'sse_credential_sources',
            **credential_sources(request.headers, request.query_params),
        )
        if not credentials.is_complete:
            SESSIONS_REJECTED_TOTAL.labels(reason='auth_missing').inc()
            raise AuthenticationMissingError(
                MISSING_CREDENTIALS_MESSAGE,
                operation='sse.open',
            )

        signal = CompletionSignal()
        handle = SSEStreamHandle(
            self.config.message_path,
            signal=signal,
            ping_interval=self.config.ping_interval,
        )
        server: SessionServer | None = None
        try:
            server = self.server_factory(
                SessionContext(
                    credentials=credentials,
                    backend=self.backend,
                    artifacts=self.artifacts,
                    server_name=self.config.server_name,
                    server_version=self.config.server_version,
                )
            )
            await server.connect(handle)
            session_id = handle.session_id
            if not session_id:
                raise SessionSetupError('Failed to obtain session ID from SSE transport', operation='sse.handshake')

            response = StreamingResponse(
                handle.events(),
                media_type='text/event-stream',
                headers=SSE_HEADERS,
            )
            session = self.registry.register(
                session_id,
                handle,
                response,
                credentials=credentials,
                signal=signal,
            )
        except Exception as exc:
            SESSIONS_REJECTED_TOTAL.labels(reason='setup_failed').inc()
            logger.error('sse_setup_failed', error=str(exc), error_type=type(exc).__name__)
            await self._release_half_open(handle, server)
            if isinstance(exc, GatewayError):
                raise SessionSetupError(
                    f'Error connecting to server: {exc.message}',
                    session_id=handle.session_id,
                    operation='sse.open',
                ) from exc
            raise SessionSetupError(
                f'Error connecting to server: {exc}',
                session_id=handle.session_id,
                operation='sse.open',
            ) from exc

        self._servers[session_id] = server
        self._teardown_tasks[session_id] = asyncio.create_task(
            self._await_terminal(session),
            name=f'session-teardown-{session_id}',
        )
        SESSIONS_OPENED_TOTAL.inc()
        logger.info(
            'sse_session_opened',
            session_id=session_id,
            active=self.registry.count(),
        )
        return response

    async def _release_half_open(self, handle: SSEStreamHandle, server: SessionServer | None) -> None:
        handle.close()
        if server is not None:
            try:
                await server.close()
            except Exception as exc:
                logger.warning('half_open_server_close_failed', error=str(exc))
        handle.signal.mark_closed()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _await_terminal(self, session: Session) -> None:
        token = session_id_ctx.set(session.id)
        try:
            event = await session.signal.wait()
            if event is TerminalEvent.ERROR:
                logger.error('sse_session_error', error=str(session.signal.error))
            else:
                logger.info('sse_session_terminal', trigger=event.value)
            await self.teardown(session)
        finally:
            session_id_ctx.reset(token)
            self._teardown_tasks.pop(session.id, None)

    async def teardown(self, session: Session) -> bool:
        """Release everything tied to a session. Runs at most once per session.

        Returns True if this call performed the teardown.
        """
        # Makes teardown callable directly too, not only via the signal.
        session.signal.publish(TerminalEvent.CLOSE)
        if session.teardown_started:
            return False
        session.teardown_started = True

        trigger = session.signal.event.value if session.signal.event else 'close'
        credentials = session.credentials

        if self.backend is not None and credentials is not None:
            await self._teardown_step('backend_release', session.id, self.backend.close(credentials))

        self.registry.remove(session.id)

        if self.artifacts is not None:
            await self._teardown_step('artifact_cleanup', session.id, _maybe_await(self.artifacts.cleanup, session.id))

        server = self._servers.pop(session.id, None)
        if server is not None:
            await self._teardown_step('server_close', session.id, server.close())

        session.handle.close()
        session.signal.mark_closed()

        self.teardown_count += 1
        SESSION_TEARDOWNS_TOTAL.labels(trigger=trigger).inc()
        logger.info(
            'sse_session_torn_down',
            session_id=session.id,
            trigger=trigger,
            active=self.registry.count(),
        )
        return True

    async def _teardown_step(self, step: str, session_id: str, awaitable: Awaitable[Any]) -> None:
        try:
            await awaitable
        except Exception as exc:
            TEARDOWN_STEP_FAILURES_TOTAL.labels(step=step).inc()
            error = TeardownError(f'{step} failed: {exc}', session_id=session_id, operation=step)
            logger.warning(
                'session_teardown_step_failed',
                step=step,
                session_id=session_id,
                error=error.message,
            )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Close every live session and wait for their teardowns."""
        for session in self.registry.sessions():
            session.signal.publish(TerminalEvent.SHUTDOWN)
        tasks = list(self._teardown_tasks.values())
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)
        logger.info('sse_sessions_shutdown', remaining=self.registry.count())


async def _maybe_await(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if asyncio.iscoroutine(result):
        result = await result
    return result
