"""
Request log records and best-effort forwarding.
"""
import json

import pytest
from aiohttp import web

from observability.request_log import RequestLogForwarder, build_record


class TestBuildRecord:
    def test_text_message(self):
        record = build_record("POST", "/webhook", {
            "update_id": 1,
            "message": {"message_id": 1, "chat": {"id": 42}, "from": {"id": 7, "username": "alice"}, "text": "/model"},
        })

        assert record["request"] == "POST"
        assert record["url"] == "/webhook"
        assert record["chatId"] == 42
        assert record["cmd"] == "text: '/model'"
        assert json.loads(record["user"]) == {"id": 7, "username": "alice"}
        assert record["time"]

    def test_voice_message(self):
        record = build_record("POST", "/webhook", {
            "message": {"message_id": 1, "chat": {"id": 42}, "voice": {"file_id": "v1"}},
        })

        assert record["cmd"] == "audio"
        assert record["user"] is None

    def test_audio_document(self):
        record = build_record("POST", "/webhook", {
            "message": {"chat": {"id": 42}, "document": {"file_id": "d1", "mime_type": "audio/mpeg"}},
        })

        assert record["cmd"] == "audio"

    def test_callback_query(self):
        record = build_record("POST", "/webhook", {
            "callback_query": {
                "id": "cb1",
                "data": "select_model:precise",
                "from": {"id": 7},
                "message": {"message_id": 55, "chat": {"id": 42}},
            },
        })

        assert record["chatId"] == 42
        assert record["cmd"] == "text: 'select_model:precise'"

    def test_empty_update(self):
        record = build_record("POST", "/webhook", {})

        assert record["chatId"] is None
        assert record["cmd"] == ""


class TestForwarder:
    @pytest.mark.asyncio
    async def test_posts_wrapped_record(self, serve):
        received = []

        async def sink(request):
            received.append(await request.json())
            return web.json_response({"ok": True})

        app = web.Application()
        app.router.add_post("/log", sink)
        record = build_record("POST", "/webhook", {})

        async with serve(app) as base_url:
            assert await RequestLogForwarder(f"{base_url}/log").forward(record) is True

        assert received == [{"data": record}]

    @pytest.mark.asyncio
    async def test_no_endpoint_only_logs(self):
        assert await RequestLogForwarder(None).forward(build_record("POST", "/webhook", {})) is False

    @pytest.mark.asyncio
    async def test_sink_failure_is_swallowed(self):
        forwarder = RequestLogForwarder("http://127.0.0.1:1/log", timeout_seconds=1)

        assert await forwarder.forward(build_record("POST", "/webhook", {})) is False

    @pytest.mark.asyncio
    async def test_sink_error_status(self, serve):
        async def sink(request):
            return web.Response(status=503)

        app = web.Application()
        app.router.add_post("/log", sink)

        async with serve(app) as base_url:
            assert await RequestLogForwarder(f"{base_url}/log").forward(build_record("POST", "/", {})) is False
