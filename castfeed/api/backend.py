"""
Thin async client for the managed backend's REST interface (PostgREST).
"""

import logging
from typing import Any, Dict, List, Optional

import aiohttp

from castfeed.exceptions import BackendError

from .auth import BackendAuthenticator

log = logging.getLogger(__name__)


class BackendClient:
    """
    Table access for the managed backend.

    Filters use PostgREST operators, e.g. `{"creator_id": "eq.<uuid>"}`.
    Requests carry the anon key, and the signed-in user's access token once
    the authenticator has one.
    """

    def __init__(self, base_url: str, anon_key: str, timeout: int = 30):
        """
        Args:
            base_url: Project URL of the managed backend (no trailing slash).
            anon_key: Public anon key of the project.
            timeout: Total timeout in seconds for a single request.
        """
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout

        # State set by the authenticator
        self.access_token: Optional[str] = None
        self.user_id: Optional[str] = None

        self._session: Optional[aiohttp.ClientSession] = None
        self._authenticator = BackendAuthenticator(self)

    @property
    def authenticator(self) -> BackendAuthenticator:
        """Provides access to the authentication helper."""
        return self._authenticator

    @property
    def rest_url(self) -> str:
        return f"{self.base_url}/rest/v1"

    @property
    def auth_url(self) -> str:
        return f"{self.base_url}/auth/v1"

    async def __aenter__(self) -> "BackendClient":
        await self._initialize_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _initialize_session(self) -> None:
        if self._session is None or self._session.closed:
            # Feed pages fan out into a few parallel lookups (likes, saves, counts).
            connector = aiohttp.TCPConnector(limit_per_host=6, ttl_dns_cache=300)
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"apikey": self.anon_key},
                timeout=aiohttp.ClientTimeout(total=self.timeout, connect=10),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    def _headers(self, prefer: Optional[str] = None) -> Dict[str, str]:
        token = self.access_token or self.anon_key
        headers = {"Authorization": f"Bearer {token}"}
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @staticmethod
    async def _raise_for_error(r: aiohttp.ClientResponse) -> None:
        if r.status < 400:
            return
        try:
            body = await r.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            body = {"message": await r.text()}
        if not isinstance(body, dict):
            body = {"message": str(body)}
        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
            or r.reason
            or "Backend request failed"
        )
        raise BackendError(message, status=r.status, code=body.get("code"))

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> aiohttp.ClientResponse:
        """
        Sends a request and returns the response with its body already read.

        Raises:
            BackendError: If the backend answered with an error status.
        """
        await self._initialize_session()
        async with self._session.request(
            method, url, params=params, json=json, headers=self._headers(prefer)
        ) as r:
            await self._raise_for_error(r)
            await r.read()
            return r

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[Dict[str, str]] = None,
        order: Optional[str] = None,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Returns rows of `table` matching `filters`."""
        params: Dict[str, Any] = {"select": columns, **(filters or {})}
        if order:
            params["order"] = order
        if offset is not None:
            params["offset"] = offset
        if limit is not None:
            params["limit"] = limit

        r = await self.request("GET", f"{self.rest_url}/{table}", params=params)
        rows = await r.json(content_type=None)
        log.debug(f"Selected {len(rows or [])} rows from '{table}'.")
        return rows or []

    async def select_one(
        self, table: str, filters: Dict[str, str], columns: str = "*"
    ) -> Optional[Dict[str, Any]]:
        """Returns the first matching row, or None."""
        rows = await self.select(table, columns, filters=filters, limit=1)
        return rows[0] if rows else None

    async def count(self, table: str, filters: Optional[Dict[str, str]] = None) -> int:
        """Returns the exact number of rows matching `filters`."""
        params = {"select": "*", **(filters or {})}
        r = await self.request(
            "HEAD", f"{self.rest_url}/{table}", params=params, prefer="count=exact"
        )
        # Content-Range looks like "0-24/25" or "*/0"
        content_range = r.headers.get("Content-Range", "")
        total = content_range.rpartition("/")[2]
        return int(total) if total.isdigit() else 0

    async def insert(
        self, table: str, values: Dict[str, Any] | List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Inserts one or more rows and returns what the backend stored."""
        r = await self.request(
            "POST",
            f"{self.rest_url}/{table}",
            json=values,
            prefer="return=representation",
        )
        rows = await r.json(content_type=None)
        return rows if isinstance(rows, list) else [rows]

    async def update(
        self, table: str, filters: Dict[str, str], values: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        """Updates matching rows and returns them."""
        r = await self.request(
            "PATCH",
            f"{self.rest_url}/{table}",
            params=filters,
            json=values,
            prefer="return=representation",
        )
        rows = await r.json(content_type=None)
        return rows or []

    async def delete(self, table: str, filters: Dict[str, str]) -> None:
        """Deletes matching rows. Refuses to run without a filter."""
        if not filters:
            raise ValueError("Refusing to delete without filters.")
        await self.request("DELETE", f"{self.rest_url}/{table}", params=filters)
