"""
Staging directory sweeps.
"""
import asyncio
import os

import pytest

from observability.events import Component
from voice_relay.janitor import TempFileJanitor

NOW = 1_700_000_000.0


def _touch(path, age_seconds):
    path.write_bytes(b"audio")
    os.utime(path, (NOW - age_seconds, NOW - age_seconds))
    return path


@pytest.fixture
def staging(tmp_path):
    d = tmp_path / "tmp_audio"
    d.mkdir()
    return d


@pytest.fixture
def janitor(staging, emitter_factory):
    return TempFileJanitor(
        staging,
        retention_seconds=300,
        interval_seconds=60,
        now=lambda: NOW,
        emitter=emitter_factory(Component.JANITOR),
    )


def test_only_expired_files_are_deleted(janitor, staging, store):
    old = _touch(staging / "old.ogg", 301)
    fresh = _touch(staging / "fresh.ogg", 10)

    assert janitor.sweep() == [old]
    assert not old.exists()
    assert fresh.exists()
    assert store.query(event_type="janitor.file_reaped")[0]["path"] == str(old)


def test_file_at_threshold_is_kept(janitor, staging):
    edge = _touch(staging / "edge.ogg", 300)

    assert janitor.sweep() == []
    assert edge.exists()


def test_subdirectories_are_left_alone(janitor, staging):
    sub = staging / "nested"
    sub.mkdir()
    os.utime(sub, (NOW - 1000, NOW - 1000))

    assert janitor.sweep() == []
    assert sub.exists()


def test_missing_directory_is_not_an_error(tmp_path):
    janitor = TempFileJanitor(tmp_path / "absent", now=lambda: NOW)

    assert janitor.sweep() == []


@pytest.mark.asyncio
async def test_run_sweeps_every_interval(staging, emitter_factory):
    """Sweeps immediately, then after each interval."""
    intervals = []
    third_sleep = asyncio.Event()

    async def fake_sleep(seconds):
        intervals.append(seconds)
        if len(intervals) >= 3:
            third_sleep.set()
            await asyncio.Event().wait()

    janitor = TempFileJanitor(
        staging,
        retention_seconds=300,
        interval_seconds=60,
        now=lambda: NOW,
        sleep=fake_sleep,
        emitter=emitter_factory(Component.JANITOR),
    )
    _touch(staging / "old.ogg", 1000)

    janitor.start()
    await asyncio.wait_for(third_sleep.wait(), timeout=1)
    await janitor.stop()

    assert intervals == [60, 60, 60]
    assert list(staging.iterdir()) == []


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_cancels(janitor):
    task = janitor.start()

    assert janitor.start() is task
    await janitor.stop()
    assert task.cancelled()
    await janitor.stop()
