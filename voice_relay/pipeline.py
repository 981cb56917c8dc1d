"""
Job runner: one admitted audio job from download to transcript reply.

The runner is the job boundary. RelayErrors and unexpected exceptions are
turned into a chat message here and never propagate; cancellation does
propagate, after cleanup. Cleanup (typing keepalive, staging files, the
chat's admission flight, the busy notice) runs on every exit path.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Optional

from logging_setup import get_logger, Component
from observability.events import Component as ObsComponent, EventEmitter

from .admission import AdmissionGate
from .asr import AsrDispatcher, MODELS, Transcript
from .errors import GENERIC_USER_MESSAGE, JobErrorCategory, RelayError
from .job import Job, JobState
from .retrieval import AudioRetriever
from .telegram_client import TelegramClient
from .transcoder import Transcoder

logger = get_logger(Component.PIPELINE)

PROGRESS_TEXT = "🎧 Обрабатываю аудио..."
RECOGNIZING_TEXT = "🔍 Распознаю речь..."
NO_SPEECH_TEXT = "Речь не распознана."


def format_transcript(transcript: Transcript) -> str:
    model = MODELS.get(transcript.model)
    prefix = f"{model.badge}_{model.label}_\n" if model else ""
    if transcript.is_empty:
        return f"{prefix}{NO_SPEECH_TEXT}"
    return f"{prefix}Вот что мне удалось услышать:\n```\n{transcript.text}\n```"


def format_error(message: str) -> str:
    return f"Ошибка: {message}"


class JobRunner:
    def __init__(
        self,
        telegram: TelegramClient,
        retriever: AudioRetriever,
        transcoder: Transcoder,
        dispatcher: AsrDispatcher,
        gate: AdmissionGate,
        typing_interval_seconds: float = 4,
        *,
        sleep: Callable[[float], Any] = asyncio.sleep,
        emitter: Optional[EventEmitter] = None,
    ):
        self.telegram = telegram
        self.retriever = retriever
        self.transcoder = transcoder
        self.dispatcher = dispatcher
        self.gate = gate
        self.typing_interval_seconds = typing_interval_seconds
        self._sleep = sleep
        self.emitter = emitter or EventEmitter(ObsComponent.PIPELINE)

    async def _keep_typing(self, chat_id: int) -> None:
        while True:
            await self.telegram.send_chat_action(chat_id, "typing")
            await self._sleep(self.typing_interval_seconds)

    def _advance(self, job: Job, state: JobState) -> None:
        old_state = job.transition_to(state)
        self.emitter.job_state_changed(job.job_id, job.chat_id, old_state.value, state.value)

    def _fail(self, job: Job, category: str) -> None:
        if job.is_terminal():
            return
        old_state = job.fail(category)
        self.emitter.job_state_changed(job.job_id, job.chat_id, old_state.value, JobState.FAILED.value)

    async def _process(self, job: Job, progress_id: Optional[int]) -> Transcript:
        self._advance(job, JobState.RETRIEVING)
        job.raw = await self.retriever.retrieve(job.source)

        if progress_id is not None:
            await self.telegram.edit_message_text(job.chat_id, progress_id, RECOGNIZING_TEXT)
        else:
            await self.telegram.send_message(job.chat_id, RECOGNIZING_TEXT)

        self._advance(job, JobState.CONVERTING)
        job.normalized = await self.transcoder.normalize(job.raw)

        self._advance(job, JobState.DISPATCHING)
        transcript = await self.dispatcher.transcribe(job.normalized.path, job.user_id)

        self._advance(job, JobState.COMPLETED)
        return transcript

    async def _deliver_error(self, job: Job, progress_id: Optional[int], message: str) -> None:
        text = format_error(message)
        if progress_id is not None:
            await self.telegram.edit_message_text(job.chat_id, progress_id, text)
        else:
            await self.telegram.send_message(job.chat_id, text)

    def _release_staging(self, job: Job) -> None:
        for path in job.release_staging():
            self.emitter.emit("staging.released", job_id=job.job_id, chat_id=job.chat_id, path=str(path))

    async def run(self, job: Job) -> Optional[Transcript]:
        """
        Run an admitted job to a terminal state. Returns the transcript on
        success, None on failure. The chat's admission flight is released
        on every path.
        """
        log = logger.with_job(job.job_id)
        start_ts = time.time()
        transcript: Optional[Transcript] = None
        log.info("Job started", chat_id=job.chat_id, file_id=job.source.file_id)

        typing_task = asyncio.create_task(self._keep_typing(job.chat_id))
        progress_id: Optional[int] = None
        try:
            progress_id = await self.telegram.send_message(job.chat_id, PROGRESS_TEXT)
            transcript = await self._process(job, progress_id)

            if progress_id is not None:
                await self.telegram.delete_message(job.chat_id, progress_id)
            await self.telegram.send_message(
                job.chat_id,
                format_transcript(transcript),
                reply_to=job.message_id,
            )
        except RelayError as e:
            log.warning("Job failed", category=e.category, error=str(e), state=job.state.value)
            self._fail(job, e.category)
            await self._deliver_error(job, progress_id, e.user_message)
        except asyncio.CancelledError:
            log.warning("Job cancelled", state=job.state.value)
            self._fail(job, JobErrorCategory.CANCELLED)
            raise
        except Exception as e:
            log.exception("Error in job pipeline", error=str(e), state=job.state.value)
            self._fail(job, JobErrorCategory.INTERNAL)
            await self._deliver_error(job, progress_id, GENERIC_USER_MESSAGE)
        finally:
            typing_task.cancel()
            try:
                await typing_task
            except asyncio.CancelledError:
                pass
            self._release_staging(job)
            notice_id = self.gate.release(job.chat_id)
            if notice_id is not None:
                await self.telegram.delete_message(job.chat_id, notice_id)
            self.emitter.job_finished(
                job.job_id,
                job.chat_id,
                succeeded=job.state == JobState.COMPLETED,
                latency_ms=int((time.time() - start_ts) * 1000),
                category=job.error_category,
                transcript_length=len(transcript.text) if transcript else None,
            )

        return transcript if job.state == JobState.COMPLETED else None
