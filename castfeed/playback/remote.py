"""
Remote control bindings: wires lock-screen / headset / media-key events from
the player back into player commands.
"""

import logging

from .player import Event, MediaPlayer, Subscription

log = logging.getLogger(__name__)


class RemoteControlBindings:
    """
    Owns the set of remote-event listeners registered on a player.

    `register()` always removes the previous set first, so repeated session
    initialisation never stacks duplicate handlers.
    """

    def __init__(self, player: MediaPlayer):
        self._player = player
        self._subscriptions: list[Subscription] = []

    @property
    def is_registered(self) -> bool:
        return bool(self._subscriptions)

    def register(self) -> None:
        self.remove()
        player = self._player
        self._subscriptions = [
            player.add_event_listener(Event.REMOTE_PLAY, lambda _: player.play()),
            player.add_event_listener(Event.REMOTE_PAUSE, lambda _: player.pause()),
            player.add_event_listener(Event.REMOTE_STOP, lambda _: player.stop()),
            player.add_event_listener(
                Event.REMOTE_SEEK, lambda data: player.seek_to(data.get("position", 0))
            ),
            player.add_event_listener(
                Event.REMOTE_NEXT, lambda _: player.skip_to_next()
            ),
            player.add_event_listener(
                Event.REMOTE_PREVIOUS, lambda _: player.skip_to_previous()
            ),
            player.add_event_listener(Event.PLAYBACK_STATE, self._log_state),
            player.add_event_listener(
                Event.PLAYBACK_ACTIVE_TRACK_CHANGED, self._log_track_change
            ),
        ]
        log.debug(f"Registered {len(self._subscriptions)} remote control listeners.")

    def remove(self) -> None:
        for subscription in self._subscriptions:
            subscription.remove()
        self._subscriptions = []

    @staticmethod
    def _log_state(data: dict) -> None:
        state = data.get("state")
        log.debug(f"Playback state changed: {getattr(state, 'value', state)}")

    @staticmethod
    def _log_track_change(data: dict) -> None:
        log.debug(f"Active track changed: {data.get('index')}")
