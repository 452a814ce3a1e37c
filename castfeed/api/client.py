"""
Async client for the script and audio generation endpoints.
"""

import logging
import time
from typing import Any, Dict, Optional

import aiohttp

from castfeed.models.generation import (
    AudioPreviewRequest,
    CreateScriptRequest,
)
from castfeed.utils.structured_logger import APILogger

from .rate_limiter import AdaptiveRateLimiter

log = logging.getLogger(__name__)


class GenerationAPIClient:
    """
    Client for the AI generation service.

    Features:
    - Bearer authentication when an API key is configured
    - Adaptive rate limiting (429 halves the call rate)
    - A single pooled aiohttp session, opened lazily
    """

    SCRIPT_ENDPOINT = "script/create"
    AUDIO_ENDPOINT = "audio/preview"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: int = 60,
        api_logger: Optional[APILogger] = None,
    ):
        """
        Initializes the API client.

        Args:
            base_url: Root URL of the generation service (no trailing slash).
            api_key: Optional key sent as a bearer token.
            timeout: Total timeout in seconds for a single request. Audio
                rendering can take a while, so keep this generous.
            api_logger: Optional structured logger for request events.
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or None
        self.timeout = timeout
        self._api_logger = api_logger
        self._session: Optional[aiohttp.ClientSession] = None
        self._rate_limiter = AdaptiveRateLimiter()

    async def __aenter__(self) -> "GenerationAPIClient":
        await self._initialize_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _initialize_session(self) -> None:
        if self._session is None or self._session.closed:
            headers = {
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout, connect=15),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POSTs a JSON payload and returns the decoded JSON response.

        Raises:
            aiohttp.ClientResponseError: For any non-2xx status.
        """
        await self._initialize_session()
        await self._rate_limiter.acquire()

        if self._api_logger:
            self._api_logger.request_started(endpoint, payload)
        log.debug(f"POST {endpoint} with fields: {', '.join(sorted(payload))}")

        start_time = time.monotonic()
        async with self._session.post(
            f"{self.base_url}/{endpoint}", json=payload
        ) as r:
            duration_ms = (time.monotonic() - start_time) * 1000

            if r.status == 429:
                new_rate = await self._rate_limiter.on_429()
                if self._api_logger:
                    self._api_logger.rate_limit_hit(endpoint, new_rate)

            if r.status >= 400:
                error_text = await r.text()
                log.error(
                    f"[red]{endpoint} failed: {r.status} {r.reason}[/red] "
                    f"{error_text[:200]}"
                )
                if self._api_logger:
                    self._api_logger.request_failed(
                        endpoint, r.status, error_text[:200], duration_ms
                    )
                r.raise_for_status()

            data = await r.json(content_type=None)
            if self._api_logger:
                self._api_logger.request_completed(endpoint, r.status, duration_ms)
            return data if isinstance(data, dict) else {}

    async def create_script(self, request: CreateScriptRequest) -> Dict[str, Any]:
        """Calls `POST /script/create` and returns the raw response body."""
        return await self.post(self.SCRIPT_ENDPOINT, request.to_payload())

    async def generate_audio_preview(
        self, request: AudioPreviewRequest
    ) -> Dict[str, Any]:
        """Calls `POST /audio/preview` and returns the raw response body."""
        return await self.post(self.AUDIO_ENDPOINT, request.to_payload())
