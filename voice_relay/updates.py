"""
Inbound Telegram update model.

The raw webhook body is validated with pydantic (only the consumed subset),
then resolved once into an immutable InboundEvent tagged by UpdateKind and
MessageVariant. Nothing downstream looks at the raw dict again.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class _TelegramObject(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TelegramChat(_TelegramObject):
    id: int


class TelegramUser(_TelegramObject):
    id: int
    is_bot: Optional[bool] = None
    first_name: Optional[str] = None
    username: Optional[str] = None


class TelegramFile(_TelegramObject):
    file_id: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None


class TelegramMessage(_TelegramObject):
    message_id: int
    chat: TelegramChat
    from_user: Optional[TelegramUser] = Field(None, alias="from")
    text: Optional[str] = None
    voice: Optional[TelegramFile] = None
    audio: Optional[TelegramFile] = None
    document: Optional[TelegramFile] = None


class TelegramCallbackQuery(_TelegramObject):
    id: str
    data: Optional[str] = None
    from_user: Optional[TelegramUser] = Field(None, alias="from")
    message: Optional[TelegramMessage] = None


class TelegramUpdate(_TelegramObject):
    update_id: Optional[int] = None
    message: Optional[TelegramMessage] = None
    callback_query: Optional[TelegramCallbackQuery] = None


class UpdateKind(str, Enum):
    MESSAGE = "message"
    CALLBACK_QUERY = "callback_query"
    UNSUPPORTED = "unsupported"


class MessageVariant(str, Enum):
    TEXT = "text"
    VOICE = "voice"
    AUDIO = "audio"
    DOCUMENT = "document"
    OTHER = "other"


@dataclass(frozen=True)
class FileRef:
    """Platform reference to an uploaded file."""

    file_id: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    file_name: Optional[str] = None


@dataclass(frozen=True)
class InboundEvent:
    update_id: Optional[int]
    kind: UpdateKind
    chat_id: Optional[int] = None
    user_id: Optional[int] = None
    message_id: Optional[int] = None
    variant: Optional[MessageVariant] = None
    text: Optional[str] = None
    file: Optional[FileRef] = None
    callback_id: Optional[str] = None
    callback_data: Optional[str] = None

    @property
    def is_audio(self) -> bool:
        return (
            self.kind == UpdateKind.MESSAGE
            and self.variant in (MessageVariant.VOICE, MessageVariant.AUDIO, MessageVariant.DOCUMENT)
            and self.file is not None
        )


def _file_ref(f: TelegramFile) -> FileRef:
    return FileRef(
        file_id=f.file_id,
        file_size=f.file_size,
        mime_type=f.mime_type,
        file_name=f.file_name,
    )


def is_audio_document(document: Optional[TelegramFile]) -> bool:
    return bool(document and document.mime_type and document.mime_type.startswith("audio/"))


def _resolve_message(update_id: Optional[int], msg: TelegramMessage) -> InboundEvent:
    # text wins over attachments, voice over audio over document
    if msg.text is not None:
        variant, file = MessageVariant.TEXT, None
    elif msg.voice is not None:
        variant, file = MessageVariant.VOICE, _file_ref(msg.voice)
    elif msg.audio is not None:
        variant, file = MessageVariant.AUDIO, _file_ref(msg.audio)
    elif is_audio_document(msg.document):
        variant, file = MessageVariant.DOCUMENT, _file_ref(msg.document)
    else:
        variant, file = MessageVariant.OTHER, None

    return InboundEvent(
        update_id=update_id,
        kind=UpdateKind.MESSAGE,
        chat_id=msg.chat.id,
        user_id=msg.from_user.id if msg.from_user else msg.chat.id,
        message_id=msg.message_id,
        variant=variant,
        text=msg.text,
        file=file,
    )


def _resolve_callback(update_id: Optional[int], cbq: TelegramCallbackQuery) -> InboundEvent:
    chat_id = cbq.message.chat.id if cbq.message else None
    user_id = cbq.from_user.id if cbq.from_user else chat_id
    return InboundEvent(
        update_id=update_id,
        kind=UpdateKind.CALLBACK_QUERY,
        chat_id=chat_id,
        user_id=user_id,
        message_id=cbq.message.message_id if cbq.message else None,
        callback_id=cbq.id,
        callback_data=cbq.data or "",
    )


def resolve_update(update: TelegramUpdate) -> InboundEvent:
    """Resolve a validated update into its tagged InboundEvent."""
    if update.callback_query is not None:
        return _resolve_callback(update.update_id, update.callback_query)
    if update.message is not None:
        return _resolve_message(update.update_id, update.message)
    return InboundEvent(update_id=update.update_id, kind=UpdateKind.UNSUPPORTED)


def parse_update(payload: Dict[str, Any]) -> InboundEvent:
    """
    Validate a raw webhook body and resolve it.

    Raises:
        pydantic.ValidationError: if the consumed subset is malformed
    """
    return resolve_update(TelegramUpdate.model_validate(payload))
