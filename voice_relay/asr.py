"""
ASR dispatch: route normalized audio to the user's chosen recognition backend.

Backend contract:
    POST <endpoint>/transcribe, multipart field "audio" (wav)
    200 -> {"text": "..."}

An empty or missing "text" is a valid "no speech detected" result, not an
error.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

import aiohttp

from logging_setup import get_logger, Component

from .errors import TranscriptionError, TranscriptionErrorKind
from .http_pool import PooledSession
from .preferences import DEFAULT_MODEL, UserPreferenceStore

logger = get_logger(Component.ASR)


@dataclass(frozen=True)
class AsrModel:
    name: str
    label: str
    description: str
    badge: str


MODELS: Dict[str, AsrModel] = {
    "fast": AsrModel("fast", "Vosk", "🚀 Быстрая, но менее точная", "🚀"),
    "precise": AsrModel("precise", "Whisper", "🎯 Больше точность, но меньше скорость", "🎯"),
}


def find_model(name: Optional[str]) -> Optional[AsrModel]:
    """Look up a model by name or backend label, case-insensitively."""
    if not name:
        return None
    key = name.strip().lower()
    for model in MODELS.values():
        if key in (model.name, model.label.lower()):
            return model
    return None


@dataclass(frozen=True)
class Transcript:
    text: str
    model: str

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


class AsrDispatcher:
    def __init__(
        self,
        preferences: UserPreferenceStore,
        endpoints: Dict[str, Optional[str]],
        timeout_seconds: float = 300,
    ):
        """
        Args:
            preferences: per-user model choice
            endpoints: model name -> backend base URL (None if unset)
            timeout_seconds: deadline for one backend call
        """
        self.preferences = preferences
        self.endpoints = {k: v.rstrip("/") for k, v in endpoints.items() if v}
        self._pool = PooledSession("asr", total_timeout=timeout_seconds)

    async def aclose(self) -> None:
        await self._pool.aclose()

    def pick_endpoint(self, model_name: str) -> Tuple[str, str]:
        """
        Resolve a model name to (model, URL), falling back to the fast model.

        Raises:
            TranscriptionError: ENDPOINT_UNCONFIGURED if no usable endpoint
        """
        model = find_model(model_name)
        if model is not None and model.name in self.endpoints:
            return model.name, f"{self.endpoints[model.name]}/transcribe"

        logger.warning("Endpoint not found or not configured for model", model=model_name)
        if DEFAULT_MODEL in self.endpoints:
            return DEFAULT_MODEL, f"{self.endpoints[DEFAULT_MODEL]}/transcribe"

        raise TranscriptionError(
            TranscriptionErrorKind.ENDPOINT_UNCONFIGURED,
            f"no endpoint for {model_name!r} and no fallback",
        )

    async def transcribe(self, audio_path: Path, user_id: int | str) -> Transcript:
        """
        Send a normalized WAV to the user's backend.

        Raises:
            TranscriptionError: ENDPOINT_UNCONFIGURED, UNREACHABLE or BAD_RESPONSE
        """
        model, endpoint = self.pick_endpoint(self.preferences.get(user_id))
        start_ts = time.time()

        try:
            with open(audio_path, "rb") as audio:
                form = aiohttp.FormData()
                form.add_field("audio", audio, filename="audio.wav", content_type="audio/wav")
                async with self._pool.get().post(endpoint, data=form) as resp:
                    if not 200 <= resp.status < 300:
                        body = (await resp.text())[:500]
                        logger.error("ASR service error", endpoint=endpoint, status=resp.status, body=body)
                        raise TranscriptionError(TranscriptionErrorKind.BAD_RESPONSE, f"HTTP {resp.status}")
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError as e:
                        raise TranscriptionError(TranscriptionErrorKind.BAD_RESPONSE, f"invalid JSON: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(
                "ASR request failed",
                endpoint=endpoint,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TranscriptionError(TranscriptionErrorKind.UNREACHABLE, repr(e)) from e

        if not isinstance(data, dict):
            raise TranscriptionError(TranscriptionErrorKind.BAD_RESPONSE, f"expected object, got {type(data).__name__}")
        text = data.get("text")
        if text is None:
            text = ""
        if not isinstance(text, str):
            raise TranscriptionError(TranscriptionErrorKind.BAD_RESPONSE, f"'text' is {type(text).__name__}")

        logger.info(
            "ASR response",
            model=model,
            endpoint=endpoint,
            transcript_length=len(text),
            latency_ms=int((time.time() - start_ts) * 1000),
        )
        return Transcript(text=text, model=model)
