"""End-to-end gateway flow: open a stream, post messages, disconnect.

The stream is opened through the controller so the test can read the
event stream directly; messages go through the real HTTP app.
"""
import asyncio
import json

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import FULL_QUERY, FakeBackend, FakeServerFactory, make_request
from stagehand_gateway.api import GatewayConfig, create_app
from stagehand_gateway.api.signals import TerminalEvent


def _endpoint_from(event: str) -> str:
    assert event.startswith('event: endpoint\n')
    return event.split('data: ', 1)[1].strip()


async def _next(response, timeout=2.0):
    return await asyncio.wait_for(response.body_iterator.__anext__(), timeout=timeout)


@pytest.mark.asyncio
async def test_post_is_forwarded_and_disconnect_tears_down():
    backend = FakeBackend()
    factory = FakeServerFactory()
    app = create_app(GatewayConfig(), backend=backend, server_factory=factory)
    registry = app.state.registry

    response = await app.state.controller.open_stream(make_request(query=FULL_QUERY))
    endpoint = _endpoint_from(await _next(response))
    session_id = endpoint.split('sessionId=', 1)[1]
    assert registry.lookup(session_id) is not None

    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as ac:
        posted = await ac.post(endpoint, json={'jsonrpc': '2.0', 'method': 'ping', 'id': 7})
        assert posted.status_code == 202
        assert factory.servers[0].received == [{'jsonrpc': '2.0', 'method': 'ping', 'id': 7}]

        await response.body_iterator.aclose()
        handle = factory.servers[0].handle
        assert await handle.signal.wait_closed(timeout=1)
        assert handle.signal.event is TerminalEvent.DISCONNECT

        after = await ac.post(endpoint, json={'jsonrpc': '2.0', 'method': 'ping'})
        assert after.status_code == 503

    assert registry.count() == 0
    assert len(backend.closed) == 1
    assert app.state.controller.teardown_count == 1


@pytest.mark.asyncio
async def test_two_streams_are_routed_independently():
    factory = FakeServerFactory()
    app = create_app(GatewayConfig(), backend=FakeBackend(), server_factory=factory)
    controller = app.state.controller

    first = await controller.open_stream(make_request(query=FULL_QUERY))
    second = await controller.open_stream(make_request(query=FULL_QUERY))
    first_endpoint = _endpoint_from(await _next(first))
    second_endpoint = _endpoint_from(await _next(second))
    assert first_endpoint != second_endpoint

    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as ac:
        await ac.post(second_endpoint, json={'to': 'second'})
        await ac.post(first_endpoint, json={'to': 'first'})

    assert factory.servers[0].received == [{'to': 'first'}]
    assert factory.servers[1].received == [{'to': 'second'}]

    await first.body_iterator.aclose()
    await asyncio.sleep(0.05)
    assert app.state.registry.count() == 1
    await controller.shutdown(timeout=1)
    assert app.state.registry.count() == 0


@pytest.mark.asyncio
async def test_mcp_initialize_and_list_tools_over_stream():
    app = create_app(GatewayConfig(), backend=FakeBackend())
    response = await app.state.controller.open_stream(make_request(query=FULL_QUERY))
    endpoint = _endpoint_from(await _next(response))

    async with AsyncClient(transport=ASGITransport(app=app), base_url='http://test') as ac:
        init = await ac.post(endpoint, json={
            'jsonrpc': '2.0',
            'id': 1,
            'method': 'initialize',
            'params': {
                'protocolVersion': '2024-11-05',
                'capabilities': {},
                'clientInfo': {'name': 'pytest', 'version': '0'},
            },
        })
        assert init.status_code == 202
        reply = json.loads((await _next(response)).split('data: ', 1)[1])
        assert reply['id'] == 1

        await ac.post(endpoint, json={'jsonrpc': '2.0', 'method': 'notifications/initialized'})
        await ac.post(endpoint, json={'jsonrpc': '2.0', 'id': 2, 'method': 'tools/list'})
        tools = json.loads((await _next(response)).split('data: ', 1)[1])

    assert tools['id'] == 2
    names = [t['name'] for t in tools['result']['tools']]
    assert names == ['browserbase_session_create', 'browserbase_session_close']

    await app.state.controller.shutdown(timeout=2)
    assert app.state.registry.count() == 0
