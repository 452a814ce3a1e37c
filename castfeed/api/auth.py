"""
Handles authentication with the managed backend's auth service (password grant,
sign-up and sign-out).
"""

import logging
from typing import TYPE_CHECKING, Any, Optional

from castfeed.exceptions import AuthenticationError, BackendError

if TYPE_CHECKING:
    from .backend import BackendClient

log = logging.getLogger(__name__)


class BackendAuthenticator:
    """
    Manages the authentication flow for the backend client.
    """

    def __init__(self, backend: "BackendClient"):
        """
        Args:
            backend: A reference to the owning BackendClient instance.
        """
        self._backend = backend

    @property
    def is_signed_in(self) -> bool:
        return bool(self._backend.access_token and self._backend.user_id)

    def require_user(self) -> str:
        """Returns the signed-in user's id or raises AuthenticationError."""
        if not self.is_signed_in:
            raise AuthenticationError("You need to be signed in to do that.")
        return self._backend.user_id

    def _apply_session(self, session: dict[str, Any]) -> dict[str, Any]:
        user = session.get("user") or {}
        token = session.get("access_token")
        if not token or not user.get("id"):
            raise AuthenticationError("The auth service returned no session.")
        self._backend.access_token = token
        self._backend.user_id = user["id"]
        return session

    def restore_session(self, access_token: str, user_id: str) -> None:
        """Reuses a previously stored session without a network round trip."""
        self._backend.access_token = access_token
        self._backend.user_id = user_id

    async def sign_in(self, email: str, password: str) -> dict[str, Any]:
        """
        Signs in with email and password.

        Returns:
            The session payload (access_token, refresh_token, user, ...).
        """
        log.info(f"Signing in as: {email}")
        try:
            r = await self._backend.request(
                "POST",
                f"{self._backend.auth_url}/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
        except BackendError as e:
            if e.status in (400, 401):
                raise AuthenticationError(str(e)) from e
            raise
        session = await r.json(content_type=None)
        self._apply_session(session)
        log.info(f"Successfully signed in as: {email}")
        return session

    async def sign_up(
        self, email: str, password: str, metadata: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        """
        Creates an account. When the project auto-confirms emails the response
        already carries a session and the client is signed in.
        """
        log.info(f"Creating account for: {email}")
        try:
            r = await self._backend.request(
                "POST",
                f"{self._backend.auth_url}/signup",
                json={"email": email, "password": password, "data": metadata or {}},
            )
        except BackendError as e:
            if e.status in (400, 422):
                raise AuthenticationError(str(e)) from e
            raise
        payload = await r.json(content_type=None)
        if payload.get("access_token"):
            self._apply_session(payload)
        return payload

    async def sign_out(self) -> None:
        """Revokes the current session and forgets the token locally."""
        if not self._backend.access_token:
            return
        try:
            await self._backend.request("POST", f"{self._backend.auth_url}/logout")
        except BackendError as e:
            log.warning(f"[yellow]Sign-out request failed: {e}[/yellow]")
        finally:
            self._backend.access_token = None
            self._backend.user_id = None
