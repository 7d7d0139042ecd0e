"""Tests for message routing by session id."""
import pytest

from stagehand_gateway.api.errors import HandlerError, MalformedRequestError, UnknownSessionError


async def _open_session(controller, request_factory, full_query):
    await controller.open_stream(request_factory('/sse', query=full_query))
    sessions = controller.registry.sessions()
    return sessions[-1]


def _post(request_factory, session_id=None, body=b'{"jsonrpc": "2.0", "method": "ping"}'):
    query = {'sessionId': session_id} if session_id is not None else None
    return request_factory('/messages', method='POST', query=query, body=body)


class TestRejections:

    @pytest.mark.asyncio
    async def test_missing_session_id_is_400(self, message_router, request_factory):
        with pytest.raises(MalformedRequestError) as exc_info:
            await message_router.post_message(_post(request_factory))
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == 'Missing sessionId parameter'

    @pytest.mark.asyncio
    async def test_empty_session_id_is_400(self, message_router, request_factory):
        with pytest.raises(MalformedRequestError):
            await message_router.post_message(_post(request_factory, ''))

    @pytest.mark.asyncio
    async def test_unknown_session_is_503(self, message_router, request_factory):
        with pytest.raises(UnknownSessionError) as exc_info:
            await message_router.post_message(_post(request_factory, 'deadbeef'))
        assert exc_info.value.status_code == 503
        assert exc_info.value.message == 'No active SSE connection for session deadbeef'

    @pytest.mark.asyncio
    async def test_closing_session_is_not_routable(
        self, controller, message_router, request_factory, full_query,
    ):
        session = await _open_session(controller, request_factory, full_query)
        session.handle.fail(RuntimeError('gone'))
        with pytest.raises(UnknownSessionError):
            await message_router.post_message(_post(request_factory, session.id))

    @pytest.mark.asyncio
    async def test_torn_down_session_is_503(
        self, controller, message_router, request_factory, full_query,
    ):
        session = await _open_session(controller, request_factory, full_query)
        await controller.teardown(session)
        with pytest.raises(UnknownSessionError):
            await message_router.post_message(_post(request_factory, session.id))


class TestForwarding:

    @pytest.mark.asyncio
    async def test_forwards_to_owning_session_only(
        self, controller, message_router, server_factory, request_factory, full_query,
    ):
        first = await _open_session(controller, request_factory, full_query)
        second = await _open_session(controller, request_factory, full_query)
        first_server, second_server = server_factory.servers

        response = await message_router.post_message(_post(request_factory, second.id))
        assert response.status_code == 202
        assert second_server.received == [{'jsonrpc': '2.0', 'method': 'ping'}]
        assert first_server.received == []

        await message_router.post_message(_post(request_factory, first.id, b'{"n": 1}'))
        assert first_server.received == [{'n': 1}]

    @pytest.mark.asyncio
    async def test_handler_failure_is_500_and_session_survives(
        self, controller, message_router, server_factory, request_factory, full_query,
    ):
        session = await _open_session(controller, request_factory, full_query)

        with pytest.raises(HandlerError) as exc_info:
            await message_router.post_message(_post(request_factory, session.id, b'{"explode": true}'))
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == 'Internal server error'
        assert session.is_routable
        assert controller.registry.lookup(session.id) is session

        response = await message_router.post_message(_post(request_factory, session.id))
        assert response.status_code == 202
        assert server_factory.servers[0].received == [{'jsonrpc': '2.0', 'method': 'ping'}]

    @pytest.mark.asyncio
    async def test_malformed_body_is_500(self, controller, message_router, request_factory, full_query):
        session = await _open_session(controller, request_factory, full_query)
        with pytest.raises(HandlerError):
            await message_router.post_message(_post(request_factory, session.id, b'not-json'))
        assert session.is_routable
