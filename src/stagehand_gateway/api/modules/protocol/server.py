"""MCP protocol server bound to one stream handle.

The low-level ``mcp`` server speaks over a pair of anyio memory streams.
``McpSessionServer.connect`` bridges those streams to an
``SSEStreamHandle``:

- posted payloads -> validated ``JSONRPCMessage`` -> server read stream
- server write stream -> JSON -> ``handle.send`` -> ``event: message``

If the server loop ends, the handle is closed. If it crashes, the handle
is failed. Either way the session's completion signal fires and the
lifecycle controller tears the session down.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Callable, Protocol
from urllib.parse import quote, unquote

import anyio
import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.shared.message import SessionMessage

from ....observability import get_logger
from ...credentials import Credentials
from ..artifacts import InMemoryArtifactStore
from ..backend import BrowserSessionPool
from ..transport import SSEStreamHandle

logger = get_logger(__name__)

ARTIFACT_URI_PREFIX = 'artifact://'

TOOLS: list[types.Tool] = [
    types.Tool(
        name='browserbase_session_create',
        description=(
            'Create (or reuse) the remote Browserbase browser for this connection '
            'and return its id and CDP connect URL.'
        ),
        inputSchema={'type': 'object', 'properties': {}, 'required': []},
    ),
    types.Tool(
        name='browserbase_session_close',
        description='Release the remote Browserbase browser for this connection.',
        inputSchema={'type': 'object', 'properties': {}, 'required': []},
    ),
]


class SessionServer(Protocol):
    """A protocol server driving one stream for its whole lifetime."""

    async def connect(self, handle: SSEStreamHandle) -> None: ...

    async def close(self) -> None: ...


@dataclass
class SessionContext:
    """Everything a protocol server may use on behalf of one stream."""

    credentials: Credentials
    backend: BrowserSessionPool | None = None
    artifacts: InMemoryArtifactStore | None = None
    server_name: str = 'stagehand'
    server_version: str = '0.1.0'


ServerFactory = Callable[[SessionContext], SessionServer]


def artifact_uri(name: str) -> str:
    return f'{ARTIFACT_URI_PREFIX}{quote(name, safe="")}'


class McpSessionServer:
    """MCP server for one stream, exposing browser tools and session artifacts."""

    def __init__(self, context: SessionContext):
        self._context = context
        self._server: Server = Server(context.server_name, version=context.server_version)
        self._tasks: list[asyncio.Task] = []
        self._streams: tuple = ()
        self.session_id: str | None = None
        self._register_handlers()

    # ------------------------------------------------------------------
    # MCP handlers
    # ------------------------------------------------------------------

    def _register_handlers(self) -> None:
        server = self._server

        @server.list_tools()
        async def list_tools() -> list[types.Tool]:
            return TOOLS

        @server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
            return await self.call_tool(name, arguments or {})

        @server.list_resources()
        async def list_resources() -> list[types.Resource]:
            return self.list_resources()

        @server.read_resource()
        async def read_resource(uri) -> list[ReadResourceContents]:
            return self.read_resource(str(uri))

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
        backend = self._context.backend
        if backend is None:
            raise RuntimeError('No browser backend configured')

        if name == 'browserbase_session_create':
            browser = await backend.acquire(self._context.credentials)
            record = browser.to_dict()
            self._store_artifact(f'browser-session-{browser.id}.json', json.dumps(record), 'application/json')
            return [types.TextContent(type='text', text=json.dumps(record))]

        if name == 'browserbase_session_close':
            released = await backend.close(self._context.credentials)
            text = 'Browser session released' if released else 'No browser session to release'
            return [types.TextContent(type='text', text=text)]

        raise ValueError(f'Unknown tool: {name}')

    def list_resources(self) -> list[types.Resource]:
        artifacts = self._context.artifacts
        if artifacts is None or self.session_id is None:
            return []
        return [
            types.Resource(uri=artifact_uri(a.name), name=a.name, mimeType=a.mime_type)
            for a in artifacts.list(self.session_id)
        ]

    def read_resource(self, uri: str) -> list[ReadResourceContents]:
        if not uri.startswith(ARTIFACT_URI_PREFIX):
            raise ValueError(f'Unsupported resource URI: {uri}')
        name = unquote(uri[len(ARTIFACT_URI_PREFIX):].rstrip('/'))
        artifacts = self._context.artifacts
        artifact = artifacts.get(self.session_id, name) if artifacts and self.session_id else None
        if artifact is None:
            raise ValueError(f'Resource not found: {uri}')
        content: str | bytes = artifact.as_text() if artifact.is_text else artifact.data
        return [ReadResourceContents(content=content, mime_type=artifact.mime_type)]

    def _store_artifact(self, name: str, data: str, mime_type: str) -> None:
        if self._context.artifacts is not None and self.session_id is not None:
            self._context.artifacts.put(self.session_id, name, data, mime_type)

    # ------------------------------------------------------------------
    # Transport bridge
    # ------------------------------------------------------------------

    async def connect(self, handle: SSEStreamHandle) -> None:
        """Start the handshake on ``handle`` and run the server against it."""
        read_writer, read_stream = anyio.create_memory_object_stream(0)
        write_stream, write_reader = anyio.create_memory_object_stream(0)
        self._streams = (read_writer, read_stream, write_stream, write_reader)

        async def on_message(payload: Any) -> None:
            message = types.JSONRPCMessage.model_validate(payload)
            await read_writer.send(SessionMessage(message))

        handle.set_message_handler(on_message)
        await handle.start()
        self.session_id = handle.session_id

        self._tasks = [
            asyncio.create_task(self._run(handle, read_stream, write_stream)),
            asyncio.create_task(self._pump(handle, write_reader)),
        ]

    async def _run(self, handle: SSEStreamHandle, read_stream, write_stream) -> None:
        try:
            await self._server.run(
                read_stream,
                write_stream,
                self._server.create_initialization_options(),
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error('mcp_server_failed', session_id=self.session_id, error=str(exc))
            handle.fail(exc)
        else:
            handle.close()

    async def _pump(self, handle: SSEStreamHandle, write_reader) -> None:
        async with write_reader:
            async for session_message in write_reader:
                payload = session_message.message.model_dump(
                    by_alias=True, exclude_none=True, mode='json',
                )
                try:
                    await handle.send(payload)
                except RuntimeError:
                    break

    async def close(self) -> None:
        """Stop the server tasks and close the bridge streams. Idempotent."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        streams, self._streams = self._streams, ()
        for stream in streams:
            stream.close()


def create_mcp_server(context: SessionContext) -> McpSessionServer:
    """Default server factory used by the app."""
    return McpSessionServer(context)
