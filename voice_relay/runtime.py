"""
Runtime wiring: builds every component from a RelayConfig and owns their
startup/shutdown.
"""
from __future__ import annotations

from dataclasses import dataclass

from logging_setup import get_logger, Component
from observability.request_log import RequestLogForwarder

from .admission import AdmissionGate
from .asr import AsrDispatcher
from .config import RelayConfig
from .dedup import UpdateDeduplicator
from .handlers import UpdateHandler
from .janitor import TempFileJanitor
from .pipeline import JobRunner
from .preferences import UserPreferenceStore
from .retrieval import AudioRetriever
from .telegram_client import TelegramClient
from .transcoder import Transcoder

logger = get_logger(Component.WEBHOOK_SERVER)


@dataclass
class RelayRuntime:
    config: RelayConfig
    telegram: TelegramClient
    dedup: UpdateDeduplicator
    preferences: UserPreferenceStore
    gate: AdmissionGate
    retriever: AudioRetriever
    transcoder: Transcoder
    dispatcher: AsrDispatcher
    runner: JobRunner
    handler: UpdateHandler
    janitor: TempFileJanitor
    request_log: RequestLogForwarder

    async def startup(self) -> None:
        self.config.staging_dir.mkdir(parents=True, exist_ok=True)
        self.config.state_dir.mkdir(parents=True, exist_ok=True)

        if not (self.config.vosk_endpoint or self.config.whisper_endpoint):
            logger.warning("Neither VOSK_ENDPOINT nor WHISPER_ENDPOINT is set; ASR will fail")

        if self.config.register_webhook:
            await self.telegram.set_webhook(self.config.webhook_endpoint, self.config.secret_token)

        self.janitor.start()
        logger.info("Relay started", port=self.config.port, staging_dir=str(self.config.staging_dir))

    async def shutdown(self) -> None:
        await self.janitor.stop()
        await self.retriever.aclose()
        await self.dispatcher.aclose()
        await self.telegram.aclose()
        logger.info("Relay stopped")


def build_runtime(config: RelayConfig) -> RelayRuntime:
    telegram = TelegramClient(
        config.bot_token,
        api_base=config.telegram_api_base,
        timeout_seconds=config.telegram_timeout_seconds,
    )
    preferences = UserPreferenceStore(config.user_models_file)
    gate = AdmissionGate()
    retriever = AudioRetriever(
        telegram,
        staging_dir=config.staging_dir,
        max_file_size=config.max_file_size,
        timeout_seconds=config.download_timeout_seconds,
    )
    transcoder = Transcoder(config.ffmpeg_bin, timeout_seconds=config.conversion_timeout_seconds)
    dispatcher = AsrDispatcher(
        preferences,
        endpoints={"fast": config.vosk_endpoint, "precise": config.whisper_endpoint},
        timeout_seconds=config.asr_timeout_seconds,
    )
    runner = JobRunner(
        telegram,
        retriever,
        transcoder,
        dispatcher,
        gate,
        typing_interval_seconds=config.typing_interval_seconds,
    )
    handler = UpdateHandler(
        telegram,
        gate,
        runner,
        preferences,
        max_file_size_mb=config.max_file_size_mb,
    )
    return RelayRuntime(
        config=config,
        telegram=telegram,
        dedup=UpdateDeduplicator(config.update_log_file),
        preferences=preferences,
        gate=gate,
        retriever=retriever,
        transcoder=transcoder,
        dispatcher=dispatcher,
        runner=runner,
        handler=handler,
        janitor=TempFileJanitor(
            config.staging_dir,
            retention_seconds=config.staging_retention_seconds,
            interval_seconds=config.janitor_interval_seconds,
        ),
        request_log=RequestLogForwarder(config.log_endpoint),
    )
