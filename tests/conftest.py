"""
Shared fixtures: relay config on tmp_path, a recording Telegram client,
isolated event stores and a helper for fake HTTP backends.
"""
import os
import stat
from contextlib import asynccontextmanager
from pathlib import Path

import pytest
from aiohttp.test_utils import TestServer

from observability.event_store import EventStore, event_store
from observability.events import Component, EventEmitter
from voice_relay.config import RelayConfig


class FakeTelegram:
    """Records every Bot API call. Message ids are handed out in order."""

    def __init__(self, first_message_id: int = 100):
        self.calls = []
        self._next_id = first_message_id

    def calls_to(self, method: str):
        return [kwargs for name, kwargs in self.calls if name == method]

    def sent_texts(self):
        return [c["text"] for c in self.calls_to("send_message")]

    async def send_message(self, chat_id, text, reply_markup=None, reply_to=None, markdown=True):
        self._next_id += 1
        self.calls.append(("send_message", {
            "chat_id": chat_id,
            "text": text,
            "reply_markup": reply_markup,
            "reply_to": reply_to,
            "message_id": self._next_id,
        }))
        return self._next_id

    async def edit_message_text(self, chat_id, message_id, text, markdown=True):
        self.calls.append(("edit_message_text", {"chat_id": chat_id, "message_id": message_id, "text": text}))
        return True

    async def delete_message(self, chat_id, message_id):
        self.calls.append(("delete_message", {"chat_id": chat_id, "message_id": message_id}))
        return True

    async def send_chat_action(self, chat_id, action="typing"):
        self.calls.append(("send_chat_action", {"chat_id": chat_id, "action": action}))
        return True

    async def answer_callback_query(self, callback_query_id, text=None, show_alert=False):
        self.calls.append(("answer_callback_query", {"callback_query_id": callback_query_id, "text": text}))
        return True

    async def set_webhook(self, url, secret_token=None):
        self.calls.append(("set_webhook", {"url": url, "secret_token": secret_token}))
        return True

    async def aclose(self):
        pass


@pytest.fixture
def telegram():
    return FakeTelegram()


@pytest.fixture
def store():
    """A private event store, so tests never see each other's events."""
    return EventStore(max_events=1000)


@pytest.fixture
def emitter_factory(store):
    def make(component: Component = Component.PIPELINE) -> EventEmitter:
        return EventEmitter(component, store=store)
    return make


@pytest.fixture(autouse=True)
def clear_global_event_store():
    event_store.clear()
    yield
    event_store.clear()


@pytest.fixture
def make_config(tmp_path):
    """Build a RelayConfig rooted in tmp_path. Keyword arguments override fields."""
    def make(**overrides) -> RelayConfig:
        fields = {
            "bot_token": "TEST",
            "webhook_url": "https://relay.example.org",
            "staging_dir": tmp_path / "tmp_audio",
            "state_dir": tmp_path / "state",
            "register_webhook": False,
            "vosk_endpoint": "http://127.0.0.1:1/vosk",
        }
        fields.update(overrides)
        return RelayConfig(**fields)
    return make


@pytest.fixture
def serve():
    """
    Run an aiohttp application on a free local port.

    Usage:
        async with serve(app) as base_url:
            ...
    """
    @asynccontextmanager
    async def _serve(app):
        server = TestServer(app)
        await server.start_server()
        try:
            yield f"http://{server.host}:{server.port}"
        finally:
            await server.close()
    return _serve


@pytest.fixture
def fake_ffmpeg(tmp_path):
    """Write an executable shell script standing in for ffmpeg."""
    def make(body: str, name: str = "ffmpeg") -> str:
        path = Path(tmp_path) / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#!/bin/sh\n" + body + "\n")
        os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)
    return make


@pytest.fixture
def ffmpeg_ok(fake_ffmpeg):
    """Fake ffmpeg that writes a tiny WAV header to its output path (last argument)."""
    return fake_ffmpeg('for last; do :; done\nprintf "RIFF0000WAVE" > "$last"')
