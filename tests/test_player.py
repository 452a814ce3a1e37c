"""Tests for the subprocess-backed media player."""

from __future__ import annotations

import asyncio
import os
import stat

import pytest
from conftest import make_track

from castfeed.exceptions import PlayerError
from castfeed.playback.player import Event, PlayerState, RepeatMode, SubprocessPlayer

pytestmark = pytest.mark.skipif(os.name == "nt", reason="needs POSIX signals")


def _long_running_command(tmp_path) -> str:
    script = tmp_path / "fakeplay"
    script.write_text("#!/bin/sh\nexec sleep 30\n", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return str(script)


async def _wait_for(player: SubprocessPlayer, event: Event) -> dict:
    received = asyncio.get_running_loop().create_future()

    def handler(data: dict) -> None:
        if not received.done():
            received.set_result(data)

    subscription = player.add_event_listener(event, handler)
    try:
        return await asyncio.wait_for(received, timeout=5)
    finally:
        subscription.remove()


async def test_operations_before_setup_raise() -> None:
    player = SubprocessPlayer(command="true")
    with pytest.raises(PlayerError):
        await player.get_active_track_index()
    with pytest.raises(PlayerError):
        await player.add(make_track("a"))


async def test_missing_command_fails_setup() -> None:
    player = SubprocessPlayer(command="castfeed-no-such-player")
    with pytest.raises(PlayerError, match="not found"):
        await player.setup()


async def test_track_without_url_is_rejected() -> None:
    player = SubprocessPlayer(command="true")
    await player.setup()
    track = make_track("a").model_copy(update={"url": ""})
    with pytest.raises(PlayerError):
        await player.add(track)


async def test_clean_exit_ends_playback() -> None:
    player = SubprocessPlayer(command="true")
    await player.setup()
    await player.add(make_track("a"))
    assert await player.get_active_track_index() == 0

    ended = asyncio.ensure_future(_wait_for(player, Event.PLAYBACK_ENDED))
    await asyncio.sleep(0)
    await player.play()
    data = await ended

    assert data["index"] == 0
    assert await player.get_playback_state() == PlayerState.ENDED


async def test_failing_command_reports_error() -> None:
    player = SubprocessPlayer(command="false")
    await player.setup()
    await player.add(make_track("a"))

    errored = asyncio.ensure_future(_wait_for(player, Event.PLAYBACK_ERROR))
    await asyncio.sleep(0)
    await player.play()
    await errored

    assert await player.get_playback_state() == PlayerState.ERROR


async def test_pause_resume_and_reset(tmp_path) -> None:
    player = SubprocessPlayer(command=_long_running_command(tmp_path))
    await player.setup()
    await player.set_repeat_mode(RepeatMode.OFF)
    await player.add(make_track("a"))

    await player.play()
    assert await player.get_playback_state() == PlayerState.PLAYING
    await player.pause()
    assert await player.get_playback_state() == PlayerState.PAUSED
    await player.play()
    assert await player.get_playback_state() == PlayerState.PLAYING

    await player.reset()
    assert await player.get_playback_state() == PlayerState.NONE
    assert await player.get_active_track_index() is None


async def test_seek_while_paused_keeps_offset(tmp_path) -> None:
    player = SubprocessPlayer(command=_long_running_command(tmp_path))
    await player.setup()
    await player.add(make_track("a"))
    await player.play()
    await player.pause()

    await player.seek_to(42)

    assert await player.get_position() == 42
    assert await player.get_playback_state() == PlayerState.READY
    await player.reset()


async def test_rate_is_validated() -> None:
    player = SubprocessPlayer(command="true")
    await player.setup()
    with pytest.raises(PlayerError):
        await player.set_rate(8.0)
    await player.set_rate(1.5)
    assert player._rate == 1.5
