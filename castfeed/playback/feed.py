"""
Feed state and feed-to-playback synchronisation.

`FeedStore` holds the paged podcast list and the playback fields the feed
renders. `FeedSynchronizer` turns feed events (visibility changes, end of
track, focus changes) into store/session calls.
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from castfeed.models.podcast import FeedPodcast
from castfeed.utils.errors import user_message

from .player import Event, Subscription
from .session import PlaybackSessionManager

if TYPE_CHECKING:
    from castfeed.services.podcast_service import PodcastService

log = logging.getLogger(__name__)

ScrollCallback = Callable[[int], Any]


class FeedStore:
    """Observable-free state container for the vertical feed."""

    def __init__(
        self,
        session: PlaybackSessionManager,
        podcast_service: "PodcastService",
        page_size: int = 10,
    ):
        self.session = session
        self.podcast_service = podcast_service
        self.page_size = page_size

        self.podcasts: list[FeedPodcast] = []
        self.current_index = 0
        self.current_playing_id: Optional[str] = None
        self.is_playing = False
        self.playback_rate = 1.0

        self.is_loading = False
        self.error: Optional[str] = None
        self.has_next_page = True
        self.current_page = 0

    @property
    def current_podcast(self) -> Optional[FeedPodcast]:
        if 0 <= self.current_index < len(self.podcasts):
            return self.podcasts[self.current_index]
        return None

    async def fetch_podcasts(self, page: int = 0) -> None:
        """Loads one page; page 0 replaces the list, later pages append."""
        self.is_loading = True
        self.error = None
        try:
            result = await self.podcast_service.fetch_podcasts(page, self.page_size)
        except Exception as e:
            log.error(f"[red]Failed to fetch podcasts: {e}[/red]")
            self.error = user_message(e)
            return
        finally:
            self.is_loading = False

        if page == 0:
            self.podcasts = list(result.podcasts)
        else:
            self.podcasts.extend(result.podcasts)
        self.current_page = page
        self.has_next_page = result.has_next_page

    async def load_more(self) -> None:
        if not self.has_next_page or self.is_loading:
            return
        await self.fetch_podcasts(self.current_page + 1)

    async def refresh(self) -> None:
        await self.fetch_podcasts(0)

    def set_current_index(self, index: int) -> None:
        self.current_index = index

    async def switch_to_podcast(self, index: int) -> bool:
        """Switches playback to the podcast at `index`; False if rejected."""
        if not 0 <= index < len(self.podcasts):
            return False
        podcast = self.podcasts[index]
        if await self.session.switch_track(podcast.to_track()):
            self.current_index = index
            self.current_playing_id = podcast.id
            self.is_playing = True
            return True
        return False

    async def toggle_play_pause(self) -> None:
        self.is_playing = not self.is_playing
        if self.is_playing:
            await self.session.play()
        else:
            await self.session.pause()

    def set_is_playing(self, is_playing: bool) -> None:
        self.is_playing = is_playing

    async def set_playback_rate(self, rate: float) -> None:
        await self.session.set_playback_rate(rate)
        self.playback_rate = rate

    async def restart_current(self) -> None:
        """Plays the current podcast again from its beginning."""
        if self.current_podcast is None:
            return
        if not self.session.is_current_track(self.current_podcast.id):
            await self.switch_to_podcast(self.current_index)
            return
        await self.session.seek_to(0)
        await self.session.play()
        self.is_playing = True

    async def cleanup(self) -> None:
        await self.session.cleanup(reason="feed cleanup")
        self.is_playing = False
        self.playback_rate = 1.0
        self.current_index = 0
        self.current_playing_id = None


@dataclass(frozen=True)
class ViewToken:
    """A feed item reported by the list's viewability tracking."""

    index: int
    key: str
    percent_visible: float


class FeedSynchronizer:
    """
    Keeps playback in step with the visible feed item.

    Rapid scrolling produces superseded switch requests; the session's
    switching guard rejects them and the store ignores the rejection.
    """

    VISIBILITY_THRESHOLD = 50.0

    def __init__(
        self,
        store: FeedStore,
        scroll_to_index: Optional[ScrollCallback] = None,
        advance_delay: float = 0.5,
        visibility_threshold: float = VISIBILITY_THRESHOLD,
    ):
        """
        Args:
            store: The feed store to drive.
            scroll_to_index: Called with the target index when auto-advancing;
                may be sync or async.
            advance_delay: Time allowed for the scroll animation before the
                next track is switched in.
            visibility_threshold: Percent of an item that must be visible for
                it to become active.
        """
        self.store = store
        self.scroll_to_index = scroll_to_index
        self.advance_delay = advance_delay
        self.visibility_threshold = visibility_threshold
        self._ended_subscription: Optional[Subscription] = None

    def attach(self) -> None:
        """Mirrors player state into the store and listens for track ends."""
        session = self.store.session
        session.set_state_update_callback(self.store.set_is_playing)
        if self._ended_subscription is None:
            self._ended_subscription = session.player.add_event_listener(
                Event.PLAYBACK_ENDED, lambda _: self.on_track_ended()
            )

    def detach(self) -> None:
        self.store.session.set_state_update_callback(None)
        if self._ended_subscription is not None:
            self._ended_subscription.remove()
            self._ended_subscription = None

    async def on_viewable_items_changed(self, items: list[ViewToken]) -> bool:
        """
        Handles a viewability change from the feed list.

        Returns:
            True if playback switched to a newly visible item.
        """
        visible = next(
            (t for t in items if t.percent_visible >= self.visibility_threshold),
            None,
        )
        if visible is None:
            return False
        already_playing = self.store.current_playing_id is not None
        if already_playing and visible.index == self.store.current_index:
            return False

        self.store.set_current_index(visible.index)
        switched = await self.store.switch_to_podcast(visible.index)
        if not switched:
            log.debug(f"Switch to feed item {visible.index} was superseded.")
        return switched

    async def on_track_ended(self) -> bool:
        """Advances to the next podcast when the current one finishes."""
        next_index = self.store.current_index + 1
        if next_index >= len(self.store.podcasts):
            log.debug("Reached the end of the feed; not advancing.")
            if self.store.has_next_page:
                await self.store.load_more()
            if next_index >= len(self.store.podcasts):
                self.store.set_is_playing(False)
                return False

        log.debug(f"Auto advancing to feed item {next_index}")
        if self.scroll_to_index is not None:
            try:
                result = self.scroll_to_index(next_index)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.warning(f"[yellow]Auto scroll failed, not advancing: {e}[/yellow]")
                return False

        await asyncio.sleep(self.advance_delay)
        self.store.set_current_index(next_index)
        return await self.store.switch_to_podcast(next_index)

    async def on_focus(self) -> None:
        log.debug("Feed focused; restarting current podcast from the beginning.")
        await self.store.restart_current()

    async def on_blur(self) -> None:
        log.debug("Feed unfocused; pausing audio.")
        await self.store.session.pause()
        self.store.set_is_playing(False)
