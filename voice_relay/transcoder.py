"""
Audio normalization to mono 16 kHz 16-bit PCM WAV via an ffmpeg subprocess.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List

from logging_setup import get_logger, Component

from .errors import ConversionError
from .job import StagingFile

logger = get_logger(Component.TRANSCODER)

SAMPLE_RATE = 16000
CHANNELS = 1
SAMPLE_FORMAT = "s16"


class Transcoder:
    def __init__(self, ffmpeg_bin: str = "ffmpeg", timeout_seconds: float = 120):
        self.ffmpeg_bin = ffmpeg_bin
        self.timeout_seconds = timeout_seconds

    def build_command(self, input_path: Path, output_path: Path) -> List[str]:
        return [
            self.ffmpeg_bin,
            "-hide_banner",
            "-loglevel", "error",
            "-y",
            "-i", str(input_path),
            "-ac", str(CHANNELS),
            "-ar", str(SAMPLE_RATE),
            "-sample_fmt", SAMPLE_FORMAT,
            "-f", "wav",
            str(output_path),
        ]

    async def _run(self, cmd: List[str]) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ConversionError(f"cannot start {cmd[0]}: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ConversionError(f"ffmpeg timed out after {self.timeout_seconds}s")
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        if proc.returncode != 0:
            detail = (stderr or b"").decode("utf-8", errors="replace").strip()[:2000]
            raise ConversionError(f"ffmpeg exited with {proc.returncode}: {detail}")

    async def normalize(self, source: StagingFile) -> StagingFile:
        """
        Convert ``source`` into a new WAV staging file next to it.

        Raises:
            ConversionError: nonzero exit, missing binary, timeout or no output
        """
        input_path = Path(source.path)
        output_path = input_path.with_name(input_path.name + ".wav")
        try:
            await self._run(self.build_command(input_path, output_path))
            if not output_path.exists():
                raise ConversionError("ffmpeg produced no output file")
        except ConversionError as e:
            output_path.unlink(missing_ok=True)
            logger.error("FFmpeg conversion error", input=str(input_path), error=str(e))
            raise
        except BaseException:
            output_path.unlink(missing_ok=True)
            raise

        logger.debug("Audio normalized", input=str(input_path), output=str(output_path))
        return StagingFile(path=output_path)
