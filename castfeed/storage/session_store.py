"""
Persists the signed-in session between CLI invocations.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

log = logging.getLogger(__name__)


class StoredSession(BaseModel):
    access_token: str
    user_id: str
    email: Optional[str] = None


class SessionStore:
    """Reads and writes `session.json` in the config directory."""

    def __init__(self, config_dir: Path):
        self.path = Path(config_dir) / "session.json"

    def load(self) -> Optional[StoredSession]:
        if not self.path.is_file():
            return None
        try:
            return StoredSession.model_validate_json(self.path.read_text("utf-8"))
        except (OSError, PydanticValidationError) as e:
            log.warning(f"[yellow]Ignoring unreadable session file: {e}[/yellow]")
            return None

    def save(self, session: StoredSession) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # The file holds a bearer token, so it is never readable by others.
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(session.model_dump_json())
        # O_CREAT leaves the mode of an existing file alone.
        try:
            os.chmod(self.path, 0o600)
        except OSError as e:
            log.debug(f"Could not restrict permissions on {self.path}: {e}")

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
