"""
ASR dispatch against fake recognition backends.
"""
import pytest
from aiohttp import web

from voice_relay.asr import AsrDispatcher, MODELS, find_model
from voice_relay.errors import TranscriptionError, TranscriptionErrorKind
from voice_relay.preferences import UserPreferenceStore


def _backend(received, response=None):
    """Fake backend exposing POST /transcribe. Uploaded parts land in ``received``."""
    async def transcribe(request):
        form = await request.post()
        audio = form["audio"]
        received.append({
            "path": request.path,
            "filename": audio.filename,
            "content_type": audio.content_type,
            "body": audio.file.read(),
        })
        if response is not None:
            return response()
        return web.json_response({"text": "привет мир"})

    app = web.Application()
    app.router.add_post("/transcribe", transcribe)
    return app


@pytest.fixture
def prefs(tmp_path):
    return UserPreferenceStore(tmp_path / "user_models.json")


@pytest.fixture
def wav(tmp_path):
    path = tmp_path / "a.oga.wav"
    path.write_bytes(b"RIFF0000WAVE")
    return path


async def _transcribe(dispatcher, wav, user_id=7):
    try:
        return await dispatcher.transcribe(wav, user_id)
    finally:
        await dispatcher.aclose()


class TestModels:
    def test_known_models(self):
        assert set(MODELS) == {"fast", "precise"}
        assert MODELS["fast"].label == "Vosk"
        assert MODELS["precise"].label == "Whisper"

    def test_find_by_name_or_label(self):
        assert find_model("precise").name == "precise"
        assert find_model("Whisper").name == "precise"
        assert find_model("vosk").name == "fast"
        assert find_model("nope") is None
        assert find_model(None) is None


class TestPickEndpoint:
    def test_chosen_model(self, prefs):
        dispatcher = AsrDispatcher(prefs, {"fast": "http://vosk/", "precise": "http://whisper"})

        assert dispatcher.pick_endpoint("precise") == ("precise", "http://whisper/transcribe")
        assert dispatcher.pick_endpoint("fast") == ("fast", "http://vosk/transcribe")

    def test_unconfigured_model_falls_back_to_fast(self, prefs):
        dispatcher = AsrDispatcher(prefs, {"fast": "http://vosk", "precise": None})

        assert dispatcher.pick_endpoint("precise") == ("fast", "http://vosk/transcribe")
        assert dispatcher.pick_endpoint("unknown") == ("fast", "http://vosk/transcribe")

    def test_nothing_configured(self, prefs):
        dispatcher = AsrDispatcher(prefs, {"fast": None, "precise": None})

        with pytest.raises(TranscriptionError) as exc_info:
            dispatcher.pick_endpoint("fast")
        assert exc_info.value.kind == TranscriptionErrorKind.ENDPOINT_UNCONFIGURED

    def test_only_precise_configured_does_not_serve_fast(self, prefs):
        dispatcher = AsrDispatcher(prefs, {"fast": None, "precise": "http://whisper"})

        assert dispatcher.pick_endpoint("precise") == ("precise", "http://whisper/transcribe")
        with pytest.raises(TranscriptionError):
            dispatcher.pick_endpoint("fast")


class TestTranscribe:
    @pytest.mark.asyncio
    async def test_default_user_goes_to_fast_backend(self, serve, prefs, wav):
        received = []
        async with serve(_backend(received)) as base_url:
            dispatcher = AsrDispatcher(prefs, {"fast": base_url, "precise": "http://127.0.0.1:1"})
            transcript = await _transcribe(dispatcher, wav)

        assert transcript.text == "привет мир"
        assert transcript.model == "fast"
        assert not transcript.is_empty
        assert received == [{
            "path": "/transcribe",
            "filename": "audio.wav",
            "content_type": "audio/wav",
            "body": b"RIFF0000WAVE",
        }]

    @pytest.mark.asyncio
    async def test_precise_preference_routes_to_precise_backend(self, serve, prefs, wav):
        fast_received, precise_received = [], []
        async with serve(_backend(fast_received)) as fast_url, serve(_backend(precise_received)) as precise_url:
            prefs.set(7, "precise")
            dispatcher = AsrDispatcher(prefs, {"fast": fast_url, "precise": precise_url})
            transcript = await _transcribe(dispatcher, wav)

        assert transcript.model == "precise"
        assert len(precise_received) == 1
        assert fast_received == []

    @pytest.mark.asyncio
    async def test_legacy_label_preference(self, serve, prefs, wav):
        prefs.path.write_text('{"7": "Whisper"}')
        received = []
        async with serve(_backend(received)) as base_url:
            dispatcher = AsrDispatcher(prefs, {"fast": "http://127.0.0.1:1", "precise": base_url})
            transcript = await _transcribe(dispatcher, wav)

        assert transcript.model == "precise"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{"text": ""}, {"text": None}, {}])
    async def test_no_speech_is_an_empty_transcript(self, serve, prefs, wav, payload):
        async with serve(_backend([], lambda: web.json_response(payload))) as base_url:
            transcript = await _transcribe(AsrDispatcher(prefs, {"fast": base_url}), wav)

        assert transcript.text == ""
        assert transcript.is_empty

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        lambda: web.json_response({"error": "model crashed"}, status=500),
        lambda: web.Response(text="not json"),
        lambda: web.json_response(["a", "list"]),
        lambda: web.json_response({"text": 42}),
    ])
    async def test_bad_responses(self, serve, prefs, wav, response):
        async with serve(_backend([], response)) as base_url:
            dispatcher = AsrDispatcher(prefs, {"fast": base_url})
            with pytest.raises(TranscriptionError) as exc_info:
                await _transcribe(dispatcher, wav)

        assert exc_info.value.kind == TranscriptionErrorKind.BAD_RESPONSE

    @pytest.mark.asyncio
    async def test_unreachable_backend(self, prefs, wav):
        dispatcher = AsrDispatcher(prefs, {"fast": "http://127.0.0.1:1"})

        with pytest.raises(TranscriptionError) as exc_info:
            await _transcribe(dispatcher, wav)

        assert exc_info.value.kind == TranscriptionErrorKind.UNREACHABLE
        assert exc_info.value.user_message == "Сервис распознавания речи недоступен"
