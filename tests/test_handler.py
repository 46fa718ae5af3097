"""
Tests for DefaultHandler and MiddlewareHandler.

Tests cover:
- Correlation ids and reply demultiplexing
- Late, unknown and malformed replies
- Server error statuses
- Connection loss with requests in flight
- Middleware ordering
"""

import asyncio

import pytest

from tarantool_do import (
    CallRequest,
    CommunicationTimeout,
    ConnectionClosed,
    DecodeError,
    DefaultHandler,
    Keys,
    MiddlewareHandler,
    PingRequest,
    RequestFailed,
    RequestType,
    SelectRequest,
    StreamConnection,
)
from tests.mock_server import Drop, Error, NoReply, Raw, pack_frame


class TestDefaultHandler:
    """Tests for the base executor."""

    @pytest.mark.asyncio
    async def test_opens_lazily(self, server, handler):
        """Test that the connection is opened by the first request."""
        assert handler.connection.is_closed()

        await handler.handle(PingRequest())

        assert not handler.connection.is_closed()
        assert server.connections == 1

    @pytest.mark.asyncio
    async def test_sync_ids_increase(self, server, handler):
        """Test that every send uses a fresh, increasing sync."""
        for _ in range(3):
            await handler.handle(PingRequest())

        syncs = [req.sync for req in server.received]
        assert syncs == sorted(set(syncs))
        assert len(syncs) == 3

    @pytest.mark.asyncio
    async def test_out_of_order_replies(self, server, handler):
        """Test that each caller gets the reply carrying its own sync."""
        fast_replied = asyncio.Event()

        async def reply(req):
            name = req.body[Keys.FUNCTION_NAME]
            if name == "slow":
                await fast_replied.wait()
            else:
                fast_replied.set()
            return {Keys.DATA: [name]}

        server.on(RequestType.CALL, reply)

        slow, fast = await asyncio.gather(
            handler.handle(CallRequest("slow")),
            handler.handle(CallRequest("fast")),
        )

        assert slow.data == ["slow"]
        assert fast.data == ["fast"]
        by_name = {req.body[Keys.FUNCTION_NAME]: req.sync for req in server.received}
        assert server.replied == [by_name["fast"], by_name["slow"]]

    @pytest.mark.asyncio
    async def test_many_concurrent_requests(self, server, handler):
        """Test that one connection carries many requests at once."""
        responses = await asyncio.gather(*[
            handler.handle(CallRequest("echo", [i])) for i in range(50)
        ])

        assert [r.data for r in responses] == [[i] for i in range(50)]
        assert server.connections == 1
        assert handler.state.pending == {}

    @pytest.mark.asyncio
    async def test_server_error(self, server, handler):
        """Test that an error status raises RequestFailed with the server's code."""
        with pytest.raises(RequestFailed) as exc_info:
            await handler.handle(SelectRequest(space_id=999))

        assert exc_info.value.code == 36
        assert "does not exist" in exc_info.value.message
        # The connection stays usable
        await handler.handle(PingRequest())
        assert server.connections == 1

    @pytest.mark.asyncio
    async def test_timeout_then_late_reply_is_dropped(self, server):
        """Test that a reply arriving after its deadline is ignored."""
        async def slow_ping(req):
            await asyncio.sleep(0.2)
            return {}

        server.on(RequestType.PING, slow_ping)
        handler = DefaultHandler(StreamConnection.create(server.uri, socket_timeout=0.05))
        try:
            with pytest.raises(CommunicationTimeout):
                await handler.handle(PingRequest())
            assert handler.state.pending == {}

            server.on(RequestType.PING, lambda req: {})
            await asyncio.sleep(0.3)

            response = await handler.handle(PingRequest())
            assert response.sync == 2
            assert server.connections == 1
        finally:
            await handler.close()

    @pytest.mark.asyncio
    async def test_unknown_sync_is_ignored(self, server, handler):
        """Test that a reply nobody waits for does not disturb others."""
        stray = pack_frame({Keys.CODE: 0, Keys.SYNC: 10_000}, {})

        async def reply(req):
            return Raw(stray + pack_frame({Keys.CODE: 0, Keys.SYNC: req.sync}, {}))

        server.on(RequestType.PING, reply)

        response = await handler.handle(PingRequest())
        assert response.sync == 1

    @pytest.mark.asyncio
    async def test_peer_close_fails_all_in_flight(self, server, handler):
        """Test that losing the connection fails every pending request."""
        server.on(RequestType.CALL, lambda req: NoReply())
        server.on(RequestType.PING, lambda req: Drop())

        calls = [asyncio.ensure_future(handler.handle(CallRequest("wait"))) for _ in range(3)]
        await asyncio.sleep(0.05)

        with pytest.raises(ConnectionClosed):
            await handler.handle(PingRequest())
        for call in calls:
            with pytest.raises(ConnectionClosed):
                await call

        assert handler.connection.is_closed()
        assert handler.state.pending == {}

    @pytest.mark.asyncio
    async def test_malformed_reply(self, server, handler):
        """Test that a corrupt frame raises DecodeError and closes the connection."""
        server.on(RequestType.PING, lambda req: Raw(b"\xce\x00\x00\x00\x01\xc1"))

        with pytest.raises(DecodeError):
            await handler.handle(PingRequest())
        assert handler.connection.is_closed()

    @pytest.mark.asyncio
    async def test_reconnects_after_close(self, server, handler):
        """Test that a closed handler reopens on the next request."""
        await handler.handle(PingRequest())
        await handler.close()

        await handler.handle(PingRequest())
        assert server.connections == 2

    @pytest.mark.asyncio
    async def test_error_status_without_message(self, server, handler):
        server.on(RequestType.PING, lambda req: Error(0, ""))

        with pytest.raises(RequestFailed) as exc_info:
            await handler.handle(PingRequest())
        assert exc_info.value.code == 0


class TestMiddlewareHandler:
    """Tests for middleware composition."""

    def recorder(self, name, calls):
        async def middleware(request, handler):
            calls.append(f"{name}:before")
            response = await handler.handle(request)
            calls.append(f"{name}:after")
            return response

        return middleware

    @pytest.mark.asyncio
    async def test_first_middleware_is_outermost(self, server, handler):
        """Test that middlewares run in list order around the executor."""
        calls = []
        chain = MiddlewareHandler.create(
            handler, self.recorder("a", calls), self.recorder("b", calls)
        )

        await chain.handle(PingRequest())

        assert calls == ["a:before", "b:before", "b:after", "a:after"]

    @pytest.mark.asyncio
    async def test_wrapping_puts_new_middleware_outside(self, server, handler):
        """Test that wrapping a chain adds the new middlewares outermost."""
        calls = []
        inner = MiddlewareHandler.create(handler, self.recorder("inner", calls))
        outer = MiddlewareHandler.create(inner, self.recorder("outer", calls))

        await outer.handle(PingRequest())

        assert calls == ["outer:before", "inner:before", "inner:after", "outer:after"]
        assert len(outer.middlewares) == 2
        assert outer.state is handler.state
        assert outer.connection is handler.connection

    @pytest.mark.asyncio
    async def test_middleware_can_short_circuit(self, handler, server):
        """Test that a middleware may answer without calling the next link."""
        from tarantool_do import Response

        async def cached(request, next_handler):
            return Response(sync=0)

        chain = MiddlewareHandler.create(handler, cached)

        response = await chain.handle(PingRequest())
        assert response.sync == 0
        assert server.received == []
