"""Tests for the feed store and feed-to-playback synchronisation."""

from __future__ import annotations

from conftest import FakePlayer, StubPodcastService

from castfeed.playback.feed import FeedStore, FeedSynchronizer, ViewToken
from castfeed.playback.session import PlaybackSessionManager


def _store(session: PlaybackSessionManager, pages: list[list[str]]) -> FeedStore:
    return FeedStore(session, StubPodcastService(pages), page_size=2)


async def test_fetch_first_page_replaces_and_next_page_appends(
    session: PlaybackSessionManager,
) -> None:
    store = _store(session, [["a", "b"], ["c"]])
    await store.fetch_podcasts(0)
    assert [p.id for p in store.podcasts] == ["a", "b"]
    assert store.has_next_page is True

    await store.load_more()
    assert [p.id for p in store.podcasts] == ["a", "b", "c"]
    assert store.current_page == 1
    assert store.has_next_page is False

    await store.load_more()
    assert store.podcast_service.fetched == [(0, 2), (1, 2)]

    await store.refresh()
    assert [p.id for p in store.podcasts] == ["a", "b"]


async def test_fetch_failure_sets_user_facing_error(
    session: PlaybackSessionManager,
) -> None:
    store = _store(session, [["a"]])
    store.podcast_service.fail = True
    await store.fetch_podcasts(0)
    assert store.error == "A network error occurred. Check your connection."
    assert store.is_loading is False
    assert store.podcasts == []


async def test_switch_to_podcast_updates_playing_fields(
    session: PlaybackSessionManager,
) -> None:
    store = _store(session, [["a", "b"]])
    await store.fetch_podcasts(0)
    assert await store.switch_to_podcast(1) is True
    assert store.current_index == 1
    assert store.current_playing_id == "b"
    assert store.is_playing is True
    assert await store.switch_to_podcast(5) is False


async def test_toggle_play_pause_and_rate(
    session: PlaybackSessionManager, player: FakePlayer
) -> None:
    store = _store(session, [["a"]])
    await store.fetch_podcasts(0)
    await store.switch_to_podcast(0)

    await store.toggle_play_pause()
    assert store.is_playing is False
    assert player.calls[-1] == ("pause",)

    await store.set_playback_rate(1.5)
    assert store.playback_rate == 1.5
    assert player.rate == 1.5


async def test_restart_current_seeks_to_start(
    session: PlaybackSessionManager, player: FakePlayer
) -> None:
    store = _store(session, [["a"]])
    await store.fetch_podcasts(0)
    await store.switch_to_podcast(0)
    player.position = 80
    await store.restart_current()
    assert player.position == 0
    assert store.is_playing is True


async def test_visible_item_above_threshold_becomes_current(
    session: PlaybackSessionManager,
) -> None:
    store = _store(session, [["a", "b"]])
    await store.fetch_podcasts(0)
    sync = FeedSynchronizer(store, advance_delay=0)

    switched = await sync.on_viewable_items_changed(
        [ViewToken(0, "a", 30.0), ViewToken(1, "b", 70.0)]
    )
    assert switched is True
    assert store.current_index == 1
    assert session.current_track_id == "b"


async def test_items_below_threshold_are_ignored(
    session: PlaybackSessionManager, player: FakePlayer
) -> None:
    store = _store(session, [["a", "b"]])
    await store.fetch_podcasts(0)
    sync = FeedSynchronizer(store, advance_delay=0)

    assert await sync.on_viewable_items_changed([ViewToken(1, "b", 49.0)]) is False
    assert player.count("add") == 0


async def test_current_visible_item_is_not_switched_again(
    session: PlaybackSessionManager, player: FakePlayer
) -> None:
    store = _store(session, [["a", "b"]])
    await store.fetch_podcasts(0)
    sync = FeedSynchronizer(store, advance_delay=0)

    await sync.on_viewable_items_changed([ViewToken(0, "a", 100.0)])
    assert await sync.on_viewable_items_changed([ViewToken(0, "a", 100.0)]) is False
    assert player.count("add") == 1


async def test_track_end_auto_advances_with_scroll(
    session: PlaybackSessionManager, player: FakePlayer
) -> None:
    store = _store(session, [["a", "b"]])
    await store.fetch_podcasts(0)
    scrolled: list[int] = []
    sync = FeedSynchronizer(store, scroll_to_index=scrolled.append, advance_delay=0)
    sync.attach()

    await store.switch_to_podcast(0)
    await player.finish_track()

    assert scrolled == [1]
    assert store.current_index == 1
    assert session.current_track_id == "b"


async def test_track_end_accepts_async_scroll_callback(
    session: PlaybackSessionManager,
) -> None:
    store = _store(session, [["a", "b"]])
    await store.fetch_podcasts(0)
    scrolled: list[int] = []

    async def scroll(index: int) -> None:
        scrolled.append(index)

    sync = FeedSynchronizer(store, scroll_to_index=scroll, advance_delay=0)
    await store.switch_to_podcast(0)
    assert await sync.on_track_ended() is True
    assert scrolled == [1]


async def test_track_end_on_last_item_loads_more(
    session: PlaybackSessionManager,
) -> None:
    store = _store(session, [["a", "b"], ["c"]])
    await store.fetch_podcasts(0)
    sync = FeedSynchronizer(store, advance_delay=0)
    await store.switch_to_podcast(1)

    assert await sync.on_track_ended() is True
    assert session.current_track_id == "c"


async def test_track_end_at_end_of_feed_stops(
    session: PlaybackSessionManager,
) -> None:
    store = _store(session, [["a"]])
    await store.fetch_podcasts(0)
    sync = FeedSynchronizer(store, advance_delay=0)
    await store.switch_to_podcast(0)

    assert await sync.on_track_ended() is False
    assert store.is_playing is False
    assert session.current_track_id == "a"


async def test_failed_scroll_does_not_advance(
    session: PlaybackSessionManager,
) -> None:
    store = _store(session, [["a", "b"]])
    await store.fetch_podcasts(0)

    def broken_scroll(index: int) -> None:
        raise RuntimeError("list not mounted")

    sync = FeedSynchronizer(store, scroll_to_index=broken_scroll, advance_delay=0)
    await store.switch_to_podcast(0)
    assert await sync.on_track_ended() is False
    assert session.current_track_id == "a"


async def test_attach_mirrors_player_state_into_store(
    session: PlaybackSessionManager,
) -> None:
    store = _store(session, [["a"]])
    await store.fetch_podcasts(0)
    sync = FeedSynchronizer(store, advance_delay=0)
    sync.attach()
    await store.switch_to_podcast(0)

    await session.pause()
    assert store.is_playing is False

    sync.detach()
    await session.play()
    assert store.is_playing is False


async def test_blur_pauses_and_focus_restarts(
    session: PlaybackSessionManager, player: FakePlayer
) -> None:
    store = _store(session, [["a"]])
    await store.fetch_podcasts(0)
    sync = FeedSynchronizer(store, advance_delay=0)
    await store.switch_to_podcast(0)

    await sync.on_blur()
    assert store.is_playing is False
    assert player.calls[-1] == ("pause",)

    player.position = 30
    await sync.on_focus()
    assert player.position == 0
    assert store.is_playing is True
