"""
End-to-end job runs through the wired runtime: fake Bot API, fake ffmpeg,
fake recognition backends.
"""
import pytest
from aiohttp import web

from voice_relay.runtime import build_runtime
from voice_relay.updates import parse_update

AUDIO = b"OggS" + b"\x01" * 200


def _bot_api(sent):
    async def method(request):
        body = await request.json()
        sent.append((request.match_info["method"], body))
        return web.json_response({"ok": True, "result": {"message_id": 500 + len(sent)}})

    async def get_file(request):
        return web.json_response({
            "ok": True,
            "result": {"file_id": request.query["file_id"], "file_path": "voice/file_9.oga", "file_size": len(AUDIO)},
        })

    async def download(request):
        return web.Response(body=AUDIO)

    app = web.Application()
    app.router.add_get("/botTEST/getFile", get_file)
    app.router.add_post("/botTEST/{method}", method)
    app.router.add_get("/file/botTEST/{path:.+}", download)
    return app


def _backend(name, hits):
    async def transcribe(request):
        form = await request.post()
        hits.append((name, form["audio"].filename))
        return web.json_response({"text": f"распознано {name}"})

    app = web.Application()
    app.router.add_post("/transcribe", transcribe)
    return app


def _voice(update_id, chat_id=42, user_id=7):
    return parse_update({
        "update_id": update_id,
        "message": {
            "message_id": update_id,
            "chat": {"id": chat_id},
            "from": {"id": user_id},
            "voice": {"file_id": f"v{update_id}", "file_size": len(AUDIO), "mime_type": "audio/ogg"},
        },
    })


def _messages(sent, method="sendMessage"):
    return [body for name, body in sent if name == method]


@pytest.mark.asyncio
async def test_voice_to_default_backend(serve, make_config, ffmpeg_ok):
    """No stored preference: transcribed by the fast backend, staging emptied."""
    sent, hits = [], []
    async with serve(_bot_api(sent)) as api, \
            serve(_backend("vosk", hits)) as vosk, \
            serve(_backend("whisper", hits)) as whisper:
        config = make_config(telegram_api_base=api, vosk_endpoint=vosk, whisper_endpoint=whisper, ffmpeg_bin=ffmpeg_ok)
        runtime = build_runtime(config)
        try:
            await runtime.handler.dispatch(_voice(100))
        finally:
            await runtime.shutdown()

    assert hits == [("vosk", "audio.wav")]
    reply = _messages(sent)[-1]
    assert reply["text"] == "🚀_Vosk_\nВот что мне удалось услышать:\n```\nраспознано vosk\n```"
    assert reply["reply_parameters"] == {"message_id": 100}
    assert list(config.staging_dir.iterdir()) == []
    assert not runtime.gate.is_busy(42)


@pytest.mark.asyncio
async def test_model_choice_routes_next_job(serve, make_config, ffmpeg_ok):
    """/change_model, pick precise, then the next voice message goes to the precise backend."""
    sent, hits = [], []
    async with serve(_bot_api(sent)) as api, \
            serve(_backend("vosk", hits)) as vosk, \
            serve(_backend("whisper", hits)) as whisper:
        config = make_config(telegram_api_base=api, vosk_endpoint=vosk, whisper_endpoint=whisper, ffmpeg_bin=ffmpeg_ok)
        runtime = build_runtime(config)
        try:
            await runtime.handler.dispatch(parse_update({
                "update_id": 1,
                "message": {"message_id": 1, "chat": {"id": 42}, "from": {"id": 7}, "text": "/change_model"},
            }))
            keyboard_message = _messages(sent)[-1]
            await runtime.handler.dispatch(parse_update({
                "update_id": 2,
                "callback_query": {
                    "id": "cb1",
                    "data": "select_model:precise",
                    "from": {"id": 7},
                    "message": {"message_id": 501, "chat": {"id": 42}},
                },
            }))
            await runtime.handler.dispatch(_voice(3))
        finally:
            await runtime.shutdown()

    assert keyboard_message["reply_markup"]["inline_keyboard"][1][0]["callback_data"] == "select_model:precise"
    assert runtime.preferences.get(7) == "precise"
    assert hits == [("whisper", "audio.wav")]
    assert _messages(sent)[-1]["text"].startswith("🎯_Whisper_\n")


@pytest.mark.asyncio
async def test_oversized_voice_is_refused(serve, make_config, ffmpeg_ok):
    sent = []
    async with serve(_bot_api(sent)) as api:
        config = make_config(telegram_api_base=api, ffmpeg_bin=ffmpeg_ok)
        runtime = build_runtime(config)
        try:
            await runtime.handler.dispatch(parse_update({
                "update_id": 1,
                "message": {
                    "message_id": 1,
                    "chat": {"id": 42},
                    "voice": {"file_id": "big", "file_size": 20 * 1024 * 1024},
                },
            }))
        finally:
            await runtime.shutdown()

    edits = _messages(sent, "editMessageText")
    assert edits[-1]["text"] == "Ошибка: Размер файла превышает максимальный размер 16Мб."
    assert not config.staging_dir.exists() or list(config.staging_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_conversion_failure_is_reported(serve, make_config, fake_ffmpeg):
    sent = []
    async with serve(_bot_api(sent)) as api:
        config = make_config(telegram_api_base=api, ffmpeg_bin=fake_ffmpeg("exit 1"))
        runtime = build_runtime(config)
        try:
            await runtime.handler.dispatch(_voice(1))
        finally:
            await runtime.shutdown()

    assert _messages(sent, "editMessageText")[-1]["text"] == "Ошибка: Ошибка конвертации в WAV"
    assert list(config.staging_dir.iterdir()) == []
