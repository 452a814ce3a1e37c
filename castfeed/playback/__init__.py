"""
Playback Layer.

This package owns the media player: the session manager that switches tracks,
the feed synchroniser that follows the visible feed item, and the lifecycle
hook that releases the player when the app leaves the foreground.
"""

from .feed import FeedStore, FeedSynchronizer, ViewToken
from .lifecycle import AppLifecycleHandler, AppState
from .player import MediaPlayer, PlayerState, SubprocessPlayer
from .session import PlaybackSessionManager, SessionState

__all__ = [
    "AppLifecycleHandler",
    "AppState",
    "FeedStore",
    "FeedSynchronizer",
    "MediaPlayer",
    "PlaybackSessionManager",
    "PlayerState",
    "SessionState",
    "SubprocessPlayer",
    "ViewToken",
]
