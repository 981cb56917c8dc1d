"""
Job error taxonomy.

Every job-level failure maps to a stable category string. Categories are
turned into user-facing chat messages at the job boundary; they never
propagate further and never crash the process.
"""
from enum import Enum
from typing import Optional


class JobErrorCategory:
    """Stable error categories."""

    # Retrieval
    OVERSIZED = "download.oversized"
    NETWORK_FAILURE = "download.network_failure"
    INVALID_METADATA = "download.invalid_metadata"

    # Transcoding
    CONVERSION_FAILED = "conversion.failed"

    # ASR dispatch
    ENDPOINT_UNCONFIGURED = "transcription.endpoint_unconfigured"
    UNREACHABLE = "transcription.unreachable"
    BAD_RESPONSE = "transcription.bad_response"

    # Local state files (non-fatal)
    PERSISTENCE_FAILED = "persistence.failed"

    # Job task cancelled (shutdown)
    CANCELLED = "job.cancelled"

    # Anything not classified above
    INTERNAL = "internal.error"


class DownloadErrorKind(str, Enum):
    OVERSIZED = JobErrorCategory.OVERSIZED
    NETWORK_FAILURE = JobErrorCategory.NETWORK_FAILURE
    INVALID_METADATA = JobErrorCategory.INVALID_METADATA


class TranscriptionErrorKind(str, Enum):
    ENDPOINT_UNCONFIGURED = JobErrorCategory.ENDPOINT_UNCONFIGURED
    UNREACHABLE = JobErrorCategory.UNREACHABLE
    BAD_RESPONSE = JobErrorCategory.BAD_RESPONSE


class RelayError(Exception):
    """Base class for errors caught at the job boundary."""

    category: str = JobErrorCategory.INTERNAL

    def __init__(
        self,
        detail: str = "",
        category: Optional[str] = None,
        user_hint: Optional[str] = None,
    ):
        super().__init__(detail or self.__class__.__name__)
        self.detail = detail
        self.user_hint = user_hint
        if category is not None:
            self.category = category

    @property
    def user_message(self) -> str:
        return self.user_hint or get_user_message(self.category)


class DownloadError(RelayError):
    def __init__(self, kind: DownloadErrorKind, detail: str = "", user_hint: Optional[str] = None):
        super().__init__(detail, category=kind.value, user_hint=user_hint)
        self.kind = kind


class ConversionError(RelayError):
    category = JobErrorCategory.CONVERSION_FAILED


class TranscriptionError(RelayError):
    def __init__(self, kind: TranscriptionErrorKind, detail: str = ""):
        super().__init__(detail, category=kind.value)
        self.kind = kind


class PersistenceError(RelayError):
    """Local state file could not be read or written. Logged only."""

    category = JobErrorCategory.PERSISTENCE_FAILED


_USER_MESSAGES = {
    JobErrorCategory.OVERSIZED: "Размер файла превышает максимально допустимый.",
    JobErrorCategory.NETWORK_FAILURE: "Не удалось загрузить файл",
    JobErrorCategory.INVALID_METADATA: "Не удалось загрузить файл",
    JobErrorCategory.CONVERSION_FAILED: "Ошибка конвертации в WAV",
    JobErrorCategory.ENDPOINT_UNCONFIGURED: "Сервис распознавания речи не настроен",
    JobErrorCategory.UNREACHABLE: "Сервис распознавания речи недоступен",
    JobErrorCategory.BAD_RESPONSE: "Сервис распознавания речи вернул некорректный ответ",
}

GENERIC_USER_MESSAGE = "Внутренняя ошибка при обработке аудио"


def get_user_message(category: str) -> str:
    """User-facing (Russian) message for an error category."""
    return _USER_MESSAGES.get(category, GENERIC_USER_MESSAGE)
