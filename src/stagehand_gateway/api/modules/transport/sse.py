"""Server-sent event stream handle.

One ``SSEStreamHandle`` backs one ``GET /sse`` connection. It owns the
outbound event queue drained by the ``StreamingResponse`` and accepts
inbound messages posted to the message route.

Handshake: ``start()`` assigns the session id and queues an ``endpoint``
event whose data is the URL the client must post messages to::

    event: endpoint
    data: /messages?sessionId=5f1c...

Every outbound protocol message follows as an ``event: message`` whose
data is one JSON document.

Terminal events are never reported by callback. The handle publishes
them to its ``CompletionSignal``:

- ``close()``  -> CLOSE  (protocol layer shut the stream down)
- ``fail()``   -> ERROR  (protocol layer failed)
- generator torn down by the server -> DISCONNECT (client went away)
"""
from __future__ import annotations

import asyncio
import json
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable
from urllib.parse import quote

from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from ...errors import MessageHandlerError
from ...signals import CompletionSignal, TerminalEvent

MessageHandler = Callable[[Any], Awaitable[None]]

DEFAULT_PING_INTERVAL = 15.0

_CLOSE = object()


def format_event(data: str, event: str | None = None) -> str:
    """Frame one SSE event. Multi-line data becomes multiple data lines."""
    lines = []
    if event:
        lines.append(f'event: {event}')
    for line in data.splitlines() or ['']:
        lines.append(f'data: {line}')
    return '\n'.join(lines) + '\n\n'


class SSEStreamHandle:
    """Outbound event stream plus inbound message entry point for one client.

    Args:
        endpoint: Path clients post messages to (e.g. ``/messages``).
        signal: Completion signal shared with the session. A fresh one is
            created when omitted.
        ping_interval: Seconds of idle time before a keep-alive comment.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        signal: CompletionSignal | None = None,
        ping_interval: float = DEFAULT_PING_INTERVAL,
    ) -> None:
        self._endpoint = endpoint
        self.signal = signal or CompletionSignal()
        self._ping_interval = ping_interval
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._message_handler: MessageHandler | None = None
        self._started = False
        self._finished = False
        self.session_id: str | None = None

    @property
    def endpoint_url(self) -> str:
        if self.session_id is None:
            raise RuntimeError('Stream handle has not been started')
        return f'{self._endpoint}?sessionId={quote(self.session_id)}'

    @property
    def is_finished(self) -> bool:
        return self._finished

    def set_message_handler(self, handler: MessageHandler) -> None:
        """Install the coroutine that receives parsed inbound payloads."""
        self._message_handler = handler

    async def start(self) -> None:
        """Run the handshake: assign the session id and queue the endpoint event."""
        if self._started:
            raise RuntimeError('Stream handle already started')
        self._started = True
        self.session_id = uuid.uuid4().hex
        await self._queue.put(format_event(self.endpoint_url, event='endpoint'))

    async def send(self, message: Any) -> None:
        """Queue one outbound protocol message."""
        if self._finished:
            raise RuntimeError(f'Stream {self.session_id} is closed')
        data = message if isinstance(message, str) else json.dumps(message, separators=(',', ':'))
        await self._queue.put(format_event(data, event='message'))

    def close(self) -> None:
        """End the stream normally. Idempotent."""
        self.signal.publish(TerminalEvent.CLOSE)
        self._finish()

    def fail(self, error: BaseException) -> None:
        """End the stream because the protocol layer failed. Idempotent."""
        self.signal.publish(TerminalEvent.ERROR, error)
        self._finish()

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._queue.put_nowait(_CLOSE)

    async def events(self) -> AsyncIterator[str]:
        """Yield framed SSE events until the stream is closed.

        When the server stops iterating (client disconnect cancels the
        response task), the ``finally`` block publishes DISCONNECT. If
        the stream was already closed from this side the publish is a
        no-op.
        """
        try:
            while True:
                try:
                    item = await asyncio.wait_for(self._queue.get(), timeout=self._ping_interval)
                except asyncio.TimeoutError:
                    yield ': ping\n\n'
                    continue
                if item is _CLOSE:
                    break
                yield item
        finally:
            self._finished = True
            self.signal.publish(TerminalEvent.DISCONNECT)

    async def handle_post_message(self, request: Request) -> Response:
        """Parse a posted message body and hand it to the message handler.

        Raises:
            MessageHandlerError: If the stream is not accepting messages,
                the body is not JSON, or the handler rejects it.
        """
        if self._message_handler is None or not self.signal.is_open:
            raise MessageHandlerError(
                'Stream is not accepting messages',
                session_id=self.session_id,
                operation='transport.post',
            )

        body = await request.body()
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise MessageHandlerError(
                f'Invalid JSON body: {exc}',
                session_id=self.session_id,
                operation='transport.post',
            ) from exc

        try:
            await self._message_handler(payload)
        except MessageHandlerError:
            raise
        except Exception as exc:
            raise MessageHandlerError(
                f'Message rejected: {exc}',
                session_id=self.session_id,
                operation='transport.post',
            ) from exc

        return PlainTextResponse('Accepted', status_code=202)
