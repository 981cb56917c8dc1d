"""
Audio retrieval: Telegram file reference -> local staging file.

The size cap is enforced three times: on the size reported with the inbound
message, on the size reported by getFile (both before any download), and on
the bytes actually streamed.
"""
from __future__ import annotations

import asyncio
import secrets
from pathlib import Path
from typing import Any, Dict

import aiohttp

from logging_setup import get_logger, Component

from .errors import DownloadError, DownloadErrorKind
from .http_pool import PooledSession
from .job import StagingFile
from .telegram_client import TelegramClient
from .updates import FileRef

logger = get_logger(Component.RETRIEVAL)

CHUNK_SIZE = 64 * 1024


class AudioRetriever:
    def __init__(
        self,
        telegram: TelegramClient,
        staging_dir: Path,
        max_file_size: int,
        timeout_seconds: float = 60,
    ):
        self.telegram = telegram
        self.staging_dir = Path(staging_dir)
        self.max_file_size = max_file_size
        self._pool = PooledSession("telegram_files", total_timeout=timeout_seconds)

    async def aclose(self) -> None:
        await self._pool.aclose()

    def _oversized(self, file_id: str, size: int) -> DownloadError:
        logger.warning(
            "File exceeds max size",
            file_id=file_id,
            file_size=size,
            max_file_size=self.max_file_size,
        )
        mb = self.max_file_size // (1024 * 1024)
        return DownloadError(
            DownloadErrorKind.OVERSIZED,
            f"{size} > {self.max_file_size}",
            user_hint=f"Размер файла превышает максимальный размер {mb}Мб.",
        )

    def staging_path_for(self, remote_path: str) -> Path:
        """Randomized staging name, so concurrent jobs never collide."""
        return self.staging_dir / f"{secrets.token_hex(8)}_{Path(remote_path).name}"

    async def _resolve_metadata(self, file_id: str) -> Dict[str, Any]:
        url = self.telegram.method_url("getFile")
        try:
            async with self._pool.get().get(url, params={"file_id": file_id}) as resp:
                if not 200 <= resp.status < 300:
                    body = (await resp.text())[:500]
                    logger.error("Failed to get file info", file_id=file_id, status=resp.status, body=body)
                    raise DownloadError(DownloadErrorKind.NETWORK_FAILURE, f"getFile HTTP {resp.status}")
                try:
                    info = await resp.json(content_type=None)
                except ValueError as e:
                    raise DownloadError(DownloadErrorKind.INVALID_METADATA, f"getFile body is not JSON: {e}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadError(DownloadErrorKind.NETWORK_FAILURE, f"getFile failed: {e!r}") from e

        result = info.get("result") if isinstance(info, dict) and info.get("ok") else None
        if not isinstance(result, dict) or not result.get("file_path"):
            logger.error("Invalid file info response", file_id=file_id, response=info)
            raise DownloadError(DownloadErrorKind.INVALID_METADATA, f"no file_path in {info!r}")
        return result

    async def _download(self, file_id: str, remote_path: str, destination: Path) -> int:
        written = 0
        try:
            async with self._pool.get().get(self.telegram.file_url(remote_path)) as resp:
                if not 200 <= resp.status < 300:
                    logger.error("Failed to download file", file_id=file_id, status=resp.status)
                    raise DownloadError(DownloadErrorKind.NETWORK_FAILURE, f"download HTTP {resp.status}")
                if resp.content_length is not None and resp.content_length > self.max_file_size:
                    raise self._oversized(file_id, resp.content_length)

                with open(destination, "wb") as out:
                    async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                        written += len(chunk)
                        if written > self.max_file_size:
                            raise self._oversized(file_id, written)
                        out.write(chunk)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadError(DownloadErrorKind.NETWORK_FAILURE, f"download failed: {e!r}") from e
        return written

    async def retrieve(self, file_ref: FileRef) -> StagingFile:
        """
        Download a Telegram file into the staging directory.

        Raises:
            DownloadError: OVERSIZED, NETWORK_FAILURE or INVALID_METADATA
        """
        if file_ref.file_size is not None and file_ref.file_size > self.max_file_size:
            raise self._oversized(file_ref.file_id, file_ref.file_size)

        meta = await self._resolve_metadata(file_ref.file_id)
        remote_path = meta["file_path"]
        reported_size = meta.get("file_size")
        if isinstance(reported_size, int) and reported_size > self.max_file_size:
            raise self._oversized(file_ref.file_id, reported_size)

        self.staging_dir.mkdir(parents=True, exist_ok=True)
        destination = self.staging_path_for(remote_path)
        try:
            size = await self._download(file_ref.file_id, remote_path, destination)
        except BaseException:
            # partial download, including on cancellation
            destination.unlink(missing_ok=True)
            raise

        logger.info("File downloaded", file_id=file_ref.file_id, path=str(destination), size=size)
        return StagingFile(path=destination)
