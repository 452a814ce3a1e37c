"""
Playback session manager: the single owner of the media player.

Holds at most one current track. Every player failure is logged and swallowed;
callers learn about a failed switch from its boolean result only.
"""

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Optional

from castfeed.models.track import PodcastTrack
from castfeed.utils.structured_logger import PlaybackLogger

from .player import (
    Capability,
    Event,
    MediaPlayer,
    PlayerState,
    RepeatMode,
    Subscription,
)
from .remote import RemoteControlBindings

log = logging.getLogger(__name__)

StateCallback = Callable[[bool], None]


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class PlaybackSessionManager:
    """
    Coordinates track switching on top of a MediaPlayer.

    The switching guard is a plain flag rather than a lock: every caller runs
    on the same event loop, and an overlapping switch is rejected instead of
    queued.
    """

    CAPABILITIES = [
        Capability.PLAY,
        Capability.PAUSE,
        Capability.SKIP_TO_NEXT,
        Capability.SKIP_TO_PREVIOUS,
        Capability.SEEK_TO,
    ]
    COMPACT_CAPABILITIES = [Capability.PLAY, Capability.PAUSE, Capability.SEEK_TO]

    def __init__(
        self,
        player: MediaPlayer,
        settle_delay: float = 0.05,
        playback_logger: Optional[PlaybackLogger] = None,
    ):
        """
        Args:
            player: The process-wide media player this session owns.
            settle_delay: Pause between loading a track and starting it.
            playback_logger: Optional structured logger for session events.
        """
        self.player = player
        self.settle_delay = settle_delay
        self._events = playback_logger
        self._remote = RemoteControlBindings(player)

        self.state = SessionState.UNINITIALIZED
        self._current_track_id: Optional[str] = None
        self._switching = False
        self._state_callback: Optional[StateCallback] = None
        self._state_subscription: Optional[Subscription] = None

    @property
    def current_track_id(self) -> Optional[str]:
        return self._current_track_id

    @property
    def is_switching(self) -> bool:
        return self._switching

    def is_current_track(self, track_id: str) -> bool:
        return self._current_track_id == track_id

    def set_state_update_callback(self, callback: Optional[StateCallback]) -> None:
        """Registers the function that mirrors the player's playing flag."""
        self._state_callback = callback

    def _report_error(self, operation: str, error: Exception) -> None:
        log.error(f"[red]{operation} error: {error}[/red]")
        if self._events:
            self._events.player_error(operation, str(error))

    async def initialize(self) -> None:
        """Sets the player up once; later calls return immediately."""
        if self.state != SessionState.UNINITIALIZED:
            return
        self.state = SessionState.INITIALIZING

        try:
            try:
                active_index = await self.player.get_active_track_index()
            except Exception:
                active_index = None

            if active_index is None:
                await self.player.setup(
                    wait_for_buffer=True, auto_handle_interruptions=True
                )
                await self.player.update_options(
                    capabilities=self.CAPABILITIES,
                    compact_capabilities=self.COMPACT_CAPABILITIES,
                )

            self._remote.register()
            self._setup_state_listener()
            await self.player.set_repeat_mode(RepeatMode.OFF)
            self.state = SessionState.READY
        except Exception as e:
            self._report_error("Player setup", e)
            self._remote.remove()
            self.state = SessionState.UNINITIALIZED

    def _setup_state_listener(self) -> None:
        if self._state_subscription is not None:
            self._state_subscription.remove()

        def forward(data: dict) -> None:
            if self._state_callback:
                self._state_callback(data.get("state") == PlayerState.PLAYING)

        self._state_subscription = self.player.add_event_listener(
            Event.PLAYBACK_STATE, forward
        )

    async def switch_track(self, track: PodcastTrack) -> bool:
        """
        Makes `track` the current track and starts it.

        Returns:
            True if the track is current afterwards (including when it already
            was), False if another switch was in flight or the player failed.
        """
        if self._switching:
            if self._events:
                self._events.switch_rejected(track.id, "switch in progress")
            return False
        self._switching = True

        try:
            await self.initialize()
            if self.state != SessionState.READY:
                return False

            if self._current_track_id == track.id:
                return True

            previous_id = self._current_track_id
            await self.stop_and_clear()
            await self.player.add(track)
            await asyncio.sleep(self.settle_delay)
            await self.player.play()

            self._current_track_id = track.id
            if self._events:
                self._events.track_switched(track.id, track.title, previous_id)
            return True
        except Exception as e:
            self._report_error("Track switch", e)
            return False
        finally:
            self._switching = False

    async def stop_and_clear(self) -> None:
        """Stops and empties the player. Safe to call when nothing is loaded."""
        try:
            state = await self.player.get_playback_state()
            if state != PlayerState.NONE:
                await self.player.stop()
            await self.player.reset()
            self._current_track_id = None
        except Exception as e:
            self._report_error("Stop and clear", e)

    async def play(self) -> None:
        try:
            await self.player.play()
        except Exception as e:
            self._report_error("Play", e)

    async def pause(self) -> None:
        try:
            await self.player.pause()
        except Exception as e:
            self._report_error("Pause", e)

    async def seek_to(self, position: float) -> None:
        try:
            await self.player.seek_to(position)
        except Exception as e:
            self._report_error("Seek", e)

    async def set_playback_rate(self, rate: float) -> None:
        try:
            await self.player.set_rate(rate)
        except Exception as e:
            self._report_error("Set playback rate", e)

    async def get_playback_state(self) -> bool:
        """Returns True when the player reports it is playing."""
        try:
            return await self.player.get_playback_state() == PlayerState.PLAYING
        except Exception as e:
            self._report_error("Get playback state", e)
            return False

    async def cleanup(self, reason: str = "cleanup") -> None:
        """Tears the session down; the next switch re-initialises it."""
        if self.state != SessionState.UNINITIALIZED:
            await self.stop_and_clear()
        self._state_callback = None
        if self._state_subscription is not None:
            self._state_subscription.remove()
            self._state_subscription = None
        self._remote.remove()
        self.state = SessionState.UNINITIALIZED
        if self._events:
            self._events.session_torn_down(reason)
