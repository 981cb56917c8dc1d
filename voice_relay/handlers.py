"""
Routing of resolved inbound events.

Handles:
- callback_query "select_model:<name>" (inline keyboard from /change_model)
- /change_model and /model commands
- voice / audio / audio-document messages -> transcription job
- anything else -> usage hint

While a chat has a job in flight, every event from that chat is answered
with at most one "please wait" notice and otherwise dropped.
"""
from __future__ import annotations

from typing import Any, Dict, List

from logging_setup import get_logger, Component

from .admission import Admission, AdmissionGate
from .asr import MODELS, find_model
from .job import Job
from .pipeline import JobRunner
from .preferences import UserPreferenceStore
from .telegram_client import TelegramClient
from .updates import InboundEvent, UpdateKind

logger = get_logger(Component.WEBHOOK_SERVER)

SELECT_MODEL_PREFIX = "select_model:"
CHANGE_MODEL_COMMAND = "/change_model"
CURRENT_MODEL_COMMAND = "/model"

BUSY_TEXT = "Пожалуйста, подождите, ваш запрос обрабатывается."
INTERNAL_ERROR_TEXT = "Произошла внутренняя ошибка. Попробуйте позже."


def build_model_keyboard() -> tuple[str, Dict[str, Any]]:
    text = "Выберите из нижеприведенных моделей:\n\n"
    rows: List[List[Dict[str, str]]] = []
    for model in MODELS.values():
        text += f"*{model.label}* - {model.description}\n"
        rows.append([{"text": model.label, "callback_data": f"{SELECT_MODEL_PREFIX}{model.name}"}])
    return text, {"inline_keyboard": rows}


def usage_hint(max_file_size_mb: int) -> str:
    return (
        "Пожалуйста, отправьте голосовое сообщение или аудиофайл "
        f"(поддерживаются WAV, MP3, OGG) до {max_file_size_mb} Мб"
    )


class UpdateHandler:
    def __init__(
        self,
        telegram: TelegramClient,
        gate: AdmissionGate,
        runner: JobRunner,
        preferences: UserPreferenceStore,
        max_file_size_mb: int = 16,
    ):
        self.telegram = telegram
        self.gate = gate
        self.runner = runner
        self.preferences = preferences
        self.max_file_size_mb = max_file_size_mb

    async def dispatch(self, event: InboundEvent) -> None:
        """Entry point for background handling. Never raises except on cancellation."""
        try:
            await self.handle(event)
        except Exception as e:
            logger.exception("Error processing update", update_id=event.update_id, error=str(e))
            if event.chat_id is not None:
                await self.telegram.send_message(event.chat_id, INTERNAL_ERROR_TEXT)

    async def handle(self, event: InboundEvent) -> None:
        if event.kind == UpdateKind.UNSUPPORTED:
            logger.info("Received an update type that is not a message or callback query", update_id=event.update_id)
            return
        if event.chat_id is None:
            logger.warning("Update without chat id ignored", update_id=event.update_id, kind=event.kind.value)
            return

        if self.gate.is_busy(event.chat_id):
            await self.notify_busy(event.chat_id)
            return

        if event.kind == UpdateKind.CALLBACK_QUERY:
            await self._handle_callback(event)
        elif event.is_audio:
            await self._handle_audio(event)
        elif event.text is not None:
            await self._handle_text(event)
        else:
            await self.telegram.send_message(event.chat_id, usage_hint(self.max_file_size_mb))

    async def notify_busy(self, chat_id: int) -> None:
        """Send the busy notice, once per busy period."""
        if not self.gate.claim_notice(chat_id):
            return
        message_id = await self.telegram.send_message(chat_id, BUSY_TEXT)
        self.gate.record_notice(chat_id, message_id)

    async def _handle_callback(self, event: InboundEvent) -> None:
        data = event.callback_data or ""
        if not data.startswith(SELECT_MODEL_PREFIX):
            await self.telegram.answer_callback_query(event.callback_id)
            return

        requested = data[len(SELECT_MODEL_PREFIX):]
        model = find_model(requested)
        if model is None:
            logger.warning("Unknown model selected", model=requested, chat_id=event.chat_id)
            await self.telegram.answer_callback_query(event.callback_id, f"Неизвестная модель: {requested}")
            return

        self.preferences.set(event.user_id, model.name)
        await self.telegram.answer_callback_query(event.callback_id, f"Вы выбрали модель: {model.label}")
        if event.message_id is not None:
            await self.telegram.edit_message_text(
                event.chat_id,
                event.message_id,
                f"Вы выбрали модель: *{model.label}*.",
            )

    async def _handle_text(self, event: InboundEvent) -> None:
        text = (event.text or "").strip()
        if text == CHANGE_MODEL_COMMAND:
            body, keyboard = build_model_keyboard()
            await self.telegram.send_message(event.chat_id, body, reply_markup=keyboard)
        elif text == CURRENT_MODEL_COMMAND:
            current = self.preferences.get(event.user_id)
            model = find_model(current)
            if model is None:
                body = f"Ваша текущая модель:\n*{current}* - Неизвестная модель"
            else:
                body = f"Ваша текущая модель:\n*{model.label}* - {model.description}"
            await self.telegram.send_message(event.chat_id, body)
        else:
            await self.telegram.send_message(event.chat_id, usage_hint(self.max_file_size_mb))

    async def _handle_audio(self, event: InboundEvent) -> None:
        job = Job.create(
            chat_id=event.chat_id,
            user_id=event.user_id if event.user_id is not None else event.chat_id,
            source=event.file,
            message_id=event.message_id,
        )
        if self.gate.admit(event.chat_id, job) == Admission.BUSY:
            await self.notify_busy(event.chat_id)
            return
        await self.runner.run(job)
