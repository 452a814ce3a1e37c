"""
Event logging for playback, API traffic and generation sessions.

Each event goes to the `castfeed.events` console logger as `[event] key=value`
text and, when enabled, to a JSON-lines file for later analysis.
"""

import json
import logging
import sys
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import IO, Any, Optional


class StructuredLogger:
    """
    Emits named events with keyword context.

    Usage:
        events = StructuredLogger(log_dir=Path("logs"), enable_json=True)
        events.bind(user_id="5b0e...")
        events.info("track_switched", track_id="8f1c...", title="Morning briefing")
    """

    LOGGER_NAME = "castfeed.events"

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        enable_json: bool = False,
        enable_console: bool = True,
    ):
        """
        Args:
            log_dir: Directory for the JSON-lines file; required for JSON output.
            enable_json: Write every event to `events-<start time>.jsonl`.
            enable_console: Forward events to the standard logging tree.
        """
        self.enable_console = enable_console
        self.json_path: Optional[Path] = None
        self._logger = logging.getLogger(self.LOGGER_NAME)
        self._file: Optional[IO[str]] = None
        self._context: dict[str, Any] = {
            "session_id": uuid.uuid4().hex[:12],
            "started": datetime.now().isoformat(timespec="seconds"),
        }

        if enable_json and log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.json_path = log_dir / f"events-{stamp}.jsonl"
            self._file = open(self.json_path, "a", encoding="utf-8")  # noqa: SIM115

    @property
    def writes_json(self) -> bool:
        return self._file is not None and not self._file.closed

    def bind(self, **context: Any) -> None:
        """Adds context that is written with every later JSON event."""
        self._context.update(context)

    def log(self, level: int, event: str, **context: Any) -> None:
        if self.enable_console and self._logger.isEnabledFor(level):
            text = " ".join([f"[{event}]"] + [f"{k}={v}" for k, v in context.items()])
            # "[event]" would otherwise be parsed as rich markup.
            self._logger.log(level, text, extra={"markup": False})
        if self.writes_json:
            self._append(level, event, context)

    def _append(self, level: int, event: str, context: dict[str, Any]) -> None:
        record = {
            "ts": time.time(),
            "level": logging.getLevelName(level),
            "event": event,
            **self._context,
            **context,
        }
        try:
            self._file.write(json.dumps(record, default=str) + "\n")
            self._file.flush()
        except (OSError, ValueError) as e:
            print(f"Event log write failed: {e}", file=sys.stderr)

    def debug(self, event: str, **context: Any) -> None:
        self.log(logging.DEBUG, event, **context)

    def info(self, event: str, **context: Any) -> None:
        self.log(logging.INFO, event, **context)

    def warning(self, event: str, **context: Any) -> None:
        self.log(logging.WARNING, event, **context)

    def error(self, event: str, **context: Any) -> None:
        self.log(logging.ERROR, event, **context)

    def close(self) -> None:
        if self.writes_json:
            self._file.close()

    def __enter__(self) -> "StructuredLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class _Facade:
    def __init__(self, events: StructuredLogger):
        self.events = events


class PlaybackLogger(_Facade):
    """Track switches and player failures from the session manager."""

    def track_switched(self, track_id: str, title: str, previous_id: Optional[str]):
        self.events.info(
            "track_switched", track_id=track_id, title=title, previous_id=previous_id
        )

    def switch_rejected(self, track_id: str, reason: str):
        self.events.debug("track_switch_rejected", track_id=track_id, reason=reason)

    def player_error(self, operation: str, error: str):
        self.events.error("player_error", operation=operation, error=error)

    def session_torn_down(self, reason: str):
        self.events.info("playback_session_torn_down", reason=reason)


class APILogger(_Facade):
    """Requests to the generation endpoints."""

    def request_started(self, endpoint: str, payload: dict[str, Any]):
        # Field names only; prompts and scripts can be long.
        self.events.debug("api_request_started", endpoint=endpoint, fields=sorted(payload))

    def request_completed(self, endpoint: str, status_code: int, duration_ms: float):
        self.events.debug(
            "api_request_completed",
            endpoint=endpoint,
            status_code=status_code,
            duration_ms=round(duration_ms, 1),
        )

    def request_failed(
        self, endpoint: str, status_code: int, error: str, duration_ms: float
    ):
        self.events.error(
            "api_request_failed",
            endpoint=endpoint,
            status_code=status_code,
            error=error,
            duration_ms=round(duration_ms, 1),
        )

    def rate_limit_hit(self, endpoint: str, new_rate: float):
        self.events.warning(
            "api_rate_limit_hit", endpoint=endpoint, new_rate=round(new_rate, 2)
        )


class SessionLogger(_Facade):
    """Script and audio generation, and publishing."""

    def script_generated(
        self, prompt_chars: int, references: int, lines: int, history: int
    ):
        self.events.info(
            "script_generated",
            prompt_chars=prompt_chars,
            references=references,
            lines=lines,
            history_length=history,
        )

    def audio_generated(self, sections: int, speakers: int, duration_s: Optional[float]):
        self.events.info(
            "audio_generated", sections=sections, speakers=speakers, duration_s=duration_s
        )

    def podcast_published(self, podcast_id: str, title: str, tags: int):
        self.events.info("podcast_published", podcast_id=podcast_id, title=title, tags=tags)


def create_structured_logger(
    log_dir: Optional[Path] = None, enable_json: bool = False
) -> tuple[StructuredLogger, PlaybackLogger, APILogger, SessionLogger]:
    """Returns the shared event logger and its three facades."""
    events = StructuredLogger(log_dir=log_dir, enable_json=enable_json)
    return events, PlaybackLogger(events), APILogger(events), SessionLogger(events)
