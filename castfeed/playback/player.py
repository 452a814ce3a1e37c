"""
Media player abstraction.

`MediaPlayer` is the public surface of the process-wide native player the
playback session drives. `SubprocessPlayer` is the concrete backend: it streams
each track through an external command (ffplay by default) in an asyncio
subprocess.
"""

import asyncio
import inspect
import logging
import os
import shutil
import signal
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional

from castfeed.exceptions import PlayerError
from castfeed.models.track import PodcastTrack

log = logging.getLogger(__name__)


class PlayerState(str, Enum):
    NONE = "none"
    READY = "ready"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"
    BUFFERING = "buffering"
    LOADING = "loading"
    ENDED = "ended"
    ERROR = "error"


class Event(str, Enum):
    PLAYBACK_STATE = "playback-state"
    PLAYBACK_ACTIVE_TRACK_CHANGED = "playback-active-track-changed"
    PLAYBACK_ENDED = "playback-queue-ended"
    PLAYBACK_ERROR = "playback-error"
    REMOTE_PLAY = "remote-play"
    REMOTE_PAUSE = "remote-pause"
    REMOTE_STOP = "remote-stop"
    REMOTE_SEEK = "remote-seek"
    REMOTE_NEXT = "remote-next"
    REMOTE_PREVIOUS = "remote-previous"


class Capability(str, Enum):
    PLAY = "play"
    PAUSE = "pause"
    SKIP_TO_NEXT = "skip-to-next"
    SKIP_TO_PREVIOUS = "skip-to-previous"
    SEEK_TO = "seek-to"


class RepeatMode(str, Enum):
    OFF = "off"
    TRACK = "track"
    QUEUE = "queue"


EventHandler = Callable[[dict[str, Any]], Any]


class Subscription:
    """Handle returned by `add_event_listener`; call `remove()` to unsubscribe."""

    def __init__(self, player: "MediaPlayer", event: Event, handler: EventHandler):
        self._player = player
        self.event = event
        self.handler = handler

    def remove(self) -> None:
        self._player._remove_listener(self.event, self.handler)


class MediaPlayer(ABC):
    """
    Public API of a single-instance media player.

    Event handlers receive one dict argument and may be plain functions or
    coroutine functions.
    """

    def __init__(self) -> None:
        self._listeners: dict[Event, list[EventHandler]] = {}

    def add_event_listener(self, event: Event, handler: EventHandler) -> Subscription:
        self._listeners.setdefault(event, []).append(handler)
        return Subscription(self, event, handler)

    def _remove_listener(self, event: Event, handler: EventHandler) -> None:
        handlers = self._listeners.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event: Optional[Event] = None) -> int:
        if event is not None:
            return len(self._listeners.get(event, []))
        return sum(len(h) for h in self._listeners.values())

    async def emit(self, event: Event, **data: Any) -> None:
        """Delivers an event to every listener; listener failures are logged."""
        for handler in list(self._listeners.get(event, [])):
            try:
                result = handler(data)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.warning(f"[yellow]Listener for {event.value} failed: {e}[/yellow]")

    @abstractmethod
    async def setup(
        self, wait_for_buffer: bool = True, auto_handle_interruptions: bool = True
    ) -> None: ...

    @abstractmethod
    async def update_options(
        self,
        capabilities: list[Capability],
        compact_capabilities: list[Capability],
    ) -> None: ...

    @abstractmethod
    async def add(self, track: PodcastTrack) -> None: ...

    @abstractmethod
    async def play(self) -> None: ...

    @abstractmethod
    async def pause(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...

    @abstractmethod
    async def reset(self) -> None: ...

    @abstractmethod
    async def seek_to(self, position: float) -> None: ...

    @abstractmethod
    async def set_rate(self, rate: float) -> None: ...

    @abstractmethod
    async def set_repeat_mode(self, mode: RepeatMode) -> None: ...

    @abstractmethod
    async def skip_to_next(self) -> None: ...

    @abstractmethod
    async def skip_to_previous(self) -> None: ...

    @abstractmethod
    async def get_playback_state(self) -> PlayerState: ...

    @abstractmethod
    async def get_active_track_index(self) -> Optional[int]:
        """Index of the active track, None when the queue is empty."""

    @abstractmethod
    async def get_position(self) -> float: ...


class SubprocessPlayer(MediaPlayer):
    """
    Streams tracks through an external player command.

    Pause and resume suspend the child process with SIGSTOP/SIGCONT, so this
    backend needs a POSIX platform. Seeking and rate changes restart the child
    at the current offset with an `atempo` filter.
    """

    MIN_RATE = 0.5
    MAX_RATE = 4.0

    def __init__(self, command: str = "ffplay"):
        super().__init__()
        self.command = command
        self._executable: Optional[str] = None
        self._queue: list[PodcastTrack] = []
        self._index: Optional[int] = None
        self._state = PlayerState.NONE
        self._rate = 1.0
        self._repeat_mode = RepeatMode.OFF
        self._capabilities: list[Capability] = []

        self._process: Optional[asyncio.subprocess.Process] = None
        self._watcher: Optional[asyncio.Task] = None
        self._generation = 0
        self._offset = 0.0
        self._started_at: Optional[float] = None

    def _require_setup(self) -> None:
        if self._executable is None:
            raise PlayerError("The player has not been set up.")

    @property
    def active_track(self) -> Optional[PodcastTrack]:
        if self._index is None:
            return None
        return self._queue[self._index]

    async def _set_state(self, state: PlayerState) -> None:
        if state != self._state:
            self._state = state
            await self.emit(Event.PLAYBACK_STATE, state=state)

    async def setup(
        self, wait_for_buffer: bool = True, auto_handle_interruptions: bool = True
    ) -> None:
        if os.name == "nt":
            raise PlayerError("SubprocessPlayer requires a POSIX platform.")
        executable = shutil.which(self.command)
        if not executable:
            raise PlayerError(
                f"Player command '{self.command}' was not found on PATH."
            )
        self._executable = executable
        log.debug(f"Player set up with {executable}")

    async def update_options(
        self,
        capabilities: list[Capability],
        compact_capabilities: list[Capability],
    ) -> None:
        self._require_setup()
        self._capabilities = list(capabilities)

    async def add(self, track: PodcastTrack) -> None:
        self._require_setup()
        if not track.url:
            raise PlayerError(f"Track '{track.id}' has no playable URL.")
        self._queue.append(track)
        if self._index is None:
            self._index = 0
            self._offset = 0.0
            await self._set_state(PlayerState.READY)
            await self.emit(Event.PLAYBACK_ACTIVE_TRACK_CHANGED, index=0, track=track)

    def _build_args(self, track: PodcastTrack) -> list[str]:
        return [
            self._executable,
            "-nodisp",
            "-autoexit",
            "-loglevel",
            "error",
            "-ss",
            f"{self._offset:.3f}",
            "-af",
            f"atempo={self._rate}",
            track.url,
        ]

    async def _spawn(self) -> None:
        track = self.active_track
        if track is None:
            return
        self._generation += 1
        generation = self._generation
        await self._set_state(PlayerState.LOADING)
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._build_args(track),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            await self._set_state(PlayerState.ERROR)
            raise PlayerError(f"Could not start player: {e}") from e
        self._started_at = time.monotonic()
        self._watcher = asyncio.create_task(self._watch(self._process, generation))
        await self._set_state(PlayerState.PLAYING)

    async def _watch(self, process: asyncio.subprocess.Process, generation: int) -> None:
        _, stderr = await process.communicate()
        if generation != self._generation:
            return  # superseded by stop/seek/skip

        self._process = None
        self._started_at = None
        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip()[:200]
            log.error(f"[red]Player exited with {process.returncode}: {message}[/red]")
            await self._set_state(PlayerState.ERROR)
            await self.emit(Event.PLAYBACK_ERROR, message=message)
            return

        if self._repeat_mode == RepeatMode.TRACK:
            self._offset = 0.0
            await self._spawn()
            return
        if self._index is not None and self._index + 1 < len(self._queue):
            await self._move_to(self._index + 1, resume=True)
            return
        if self._repeat_mode == RepeatMode.QUEUE and self._queue:
            await self._move_to(0, resume=True)
            return

        self._offset = 0.0
        await self._set_state(PlayerState.ENDED)
        await self.emit(Event.PLAYBACK_ENDED, index=self._index, track=self.active_track)

    async def _terminate(self) -> None:
        """Kills the running child, if any, without firing end-of-track events."""
        self._generation += 1
        process, self._process = self._process, None
        watcher, self._watcher = self._watcher, None
        self._started_at = None
        if process is None or process.returncode is not None:
            return
        try:
            process.send_signal(signal.SIGCONT)
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        if watcher is not None and not watcher.done():
            watcher.cancel()

    def _current_position(self) -> float:
        if self._started_at is None:
            return self._offset
        return self._offset + (time.monotonic() - self._started_at) * self._rate

    async def _move_to(self, index: int, resume: bool) -> None:
        await self._terminate()
        self._index = index
        self._offset = 0.0
        await self.emit(
            Event.PLAYBACK_ACTIVE_TRACK_CHANGED, index=index, track=self.active_track
        )
        if resume:
            await self._spawn()
        else:
            await self._set_state(PlayerState.READY)

    async def play(self) -> None:
        self._require_setup()
        if self.active_track is None:
            return
        if self._state == PlayerState.PAUSED and self._process is not None:
            self._process.send_signal(signal.SIGCONT)
            self._started_at = time.monotonic()
            await self._set_state(PlayerState.PLAYING)
            return
        if self._state == PlayerState.PLAYING:
            return
        await self._spawn()

    async def pause(self) -> None:
        self._require_setup()
        if self._state != PlayerState.PLAYING or self._process is None:
            return
        self._offset = self._current_position()
        self._started_at = None
        self._process.send_signal(signal.SIGSTOP)
        await self._set_state(PlayerState.PAUSED)

    async def stop(self) -> None:
        self._require_setup()
        await self._terminate()
        self._offset = 0.0
        await self._set_state(PlayerState.STOPPED)

    async def reset(self) -> None:
        self._require_setup()
        await self._terminate()
        self._queue.clear()
        self._index = None
        self._offset = 0.0
        await self._set_state(PlayerState.NONE)

    async def seek_to(self, position: float) -> None:
        self._require_setup()
        track = self.active_track
        if track is None:
            return
        position = max(0.0, position)
        if track.duration:
            position = min(position, float(track.duration))
        was_playing = self._state == PlayerState.PLAYING
        was_paused = self._state == PlayerState.PAUSED
        await self._terminate()
        self._offset = position
        if was_playing:
            await self._spawn()
        elif was_paused:
            await self._set_state(PlayerState.READY)

    async def set_rate(self, rate: float) -> None:
        self._require_setup()
        if not self.MIN_RATE <= rate <= self.MAX_RATE:
            raise PlayerError(
                f"Playback rate must be between {self.MIN_RATE} and {self.MAX_RATE}."
            )
        if rate == self._rate:
            return
        if self._state == PlayerState.PLAYING:
            self._offset = self._current_position()
            await self._terminate()
            self._rate = rate
            await self._spawn()
        else:
            self._rate = rate

    async def set_repeat_mode(self, mode: RepeatMode) -> None:
        self._repeat_mode = RepeatMode(mode)

    async def skip_to_next(self) -> None:
        self._require_setup()
        if self._index is None or self._index + 1 >= len(self._queue):
            return
        await self._move_to(self._index + 1, resume=self._state == PlayerState.PLAYING)

    async def skip_to_previous(self) -> None:
        self._require_setup()
        if self._index is None or self._index == 0:
            return
        await self._move_to(self._index - 1, resume=self._state == PlayerState.PLAYING)

    async def get_playback_state(self) -> PlayerState:
        return self._state

    async def get_active_track_index(self) -> Optional[int]:
        self._require_setup()
        return self._index

    async def get_position(self) -> float:
        return self._current_position()
