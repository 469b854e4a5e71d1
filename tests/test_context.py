"""
Tests for the per-request Context.
"""

import asyncio
import logging
import threading

import pytest

from kestrel.app import Application
from kestrel.context import Context, SendState
from kestrel.response import ResponseWriter
from kestrel.sessions import MemorySession

from tests.conftest import RecordingSend, make_context, make_request


class TestContextState:
    def test_defaults(self):
        ctx = make_context()
        assert ctx.status_code == 0
        assert ctx.is_sent is False
        assert ctx.session is None
        assert len(ctx.params) == 0
        assert ctx.state == {}
        assert ctx.template_loader is None

    def test_borrowed_collaborators(self):
        request = make_request(path="/users/7")
        writer = ResponseWriter(RecordingSend())
        app = Application()
        session = MemorySession()

        ctx = Context(request, writer, app, params={"id": "7"}, session=session)

        assert ctx.request is request
        assert ctx.response is writer
        assert ctx.app is app
        assert ctx.session is session

    def test_params_read_only(self):
        ctx = make_context(params={"id": "7", "slug": "intro"})
        assert ctx.params["id"] == "7"
        assert ctx.param("slug") == "intro"
        assert ctx.param("missing", "n/a") == "n/a"
        with pytest.raises(TypeError):
            ctx.params["id"] = "8"

    def test_collaborators_cannot_be_replaced(self):
        ctx = make_context()
        with pytest.raises(AttributeError):
            ctx.app = Application()

    def test_status_code_validation(self):
        ctx = make_context()
        ctx.status_code = 404
        assert ctx.status_code == 404
        ctx.status_code = 0
        with pytest.raises(ValueError):
            ctx.status_code = 99
        with pytest.raises(ValueError):
            ctx.status_code = 600
        with pytest.raises(TypeError):
            ctx.status_code = "404"
        with pytest.raises(TypeError):
            ctx.status_code = True


class TestContextSend:
    @pytest.mark.asyncio
    async def test_send_writes_and_marks_sent(self):
        send = RecordingSend()
        ctx = make_context(send=send)
        ctx.status_code = 201

        assert await ctx.send("<p>created</p>") is True

        assert ctx.is_sent
        assert send.status == 201
        assert send.text == "<p>created</p>"
        assert send.headers["content-type"] == "text/html; charset=utf-8"
        assert send.headers["content-length"] == str(len("<p>created</p>"))

    @pytest.mark.asyncio
    async def test_unset_status_sends_200(self):
        send = RecordingSend()
        ctx = make_context(send=send)
        await ctx.send(b"ok", content_type="text/plain")
        assert send.status == 200
        assert send.headers["content-type"] == "text/plain"

    @pytest.mark.asyncio
    async def test_second_send_is_dropped(self):
        send = RecordingSend()
        ctx = make_context(send=send)

        assert await ctx.send("first") is True
        ctx.status_code = 500
        assert await ctx.send("second") is False

        assert send.text == "first"
        assert send.status == 200
        assert len(send.messages) == 2

    @pytest.mark.asyncio
    async def test_concurrent_sends_single_winner(self):
        send = RecordingSend()
        ctx = make_context(send=send)

        results = await asyncio.gather(*(ctx.send(f"body-{i}") for i in range(10)))

        assert results.count(True) == 1
        assert send.text == f"body-{results.index(True)}"

    def test_claim_is_atomic_across_threads(self):
        ctx = make_context()
        wins = []
        barrier = threading.Barrier(16)

        def claim():
            barrier.wait()
            wins.append(ctx._claim_send())

        threads = [threading.Thread(target=claim) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert wins.count(True) == 1
        assert ctx._send_state is SendState.SENT

    @pytest.mark.asyncio
    async def test_disconnected_client_is_a_warning(self, caplog):
        send = RecordingSend(fail_with=ConnectionResetError("peer reset"))
        ctx = make_context(send=send)

        with caplog.at_level(logging.WARNING, logger="kestrel.context"):
            assert await ctx.send("page") is False

        assert ctx.is_sent
        assert any("Failed to send response" in r.message for r in caplog.records)

    @pytest.mark.asyncio
    async def test_transport_error_is_not_raised(self):
        ctx = make_context(send=RecordingSend(fail_with=RuntimeError("transport closed")))
        assert await ctx.send("page") is False
        assert await ctx.send("page again") is False

    def test_repr(self):
        ctx = make_context(make_request(path="/x"))
        assert "GET /x" in repr(ctx)
        assert "unsent" in repr(ctx)
