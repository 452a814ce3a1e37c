"""
Foreground/background lifecycle hook for the playback session.
"""

import logging
from enum import Enum
from typing import Optional

from .feed import FeedSynchronizer
from .session import PlaybackSessionManager

log = logging.getLogger(__name__)


class AppState(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    BACKGROUND = "background"


class AppLifecycleHandler:
    """
    Releases the media player whenever the app leaves the foreground, and
    when the owner goes away (use as an async context manager).
    """

    def __init__(
        self,
        session: PlaybackSessionManager,
        synchronizer: Optional[FeedSynchronizer] = None,
    ):
        self.session = session
        self.synchronizer = synchronizer
        self.app_state = AppState.ACTIVE

    async def on_app_state_change(self, next_state: AppState | str) -> None:
        next_state = AppState(next_state)
        previous, self.app_state = self.app_state, next_state
        if next_state in (AppState.BACKGROUND, AppState.INACTIVE):
            if previous == AppState.ACTIVE:
                log.debug(f"App moved to {next_state.value}; releasing the player.")
            await self.session.cleanup(reason=next_state.value)
            if self.synchronizer is not None:
                self.synchronizer.store.set_is_playing(False)
        elif previous != AppState.ACTIVE and self.synchronizer is not None:
            # cleanup() dropped the state callback; hook the feed back up.
            self.synchronizer.attach()

    async def dispose(self) -> None:
        if self.synchronizer is not None:
            self.synchronizer.detach()
        await self.session.cleanup(reason="disposed")

    async def __aenter__(self) -> "AppLifecycleHandler":
        if self.synchronizer is not None:
            self.synchronizer.attach()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.dispose()
