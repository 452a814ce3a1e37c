"""Shared pytest fixtures: an in-memory media player and local HTTP services."""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from typing import Any, Optional

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from castfeed.api.backend import BackendClient
from castfeed.api.client import GenerationAPIClient
from castfeed.exceptions import AppError, ErrorCode, PlayerError
from castfeed.models.podcast import FeedPodcast, Host
from castfeed.models.track import PodcastTrack
from castfeed.playback.player import (
    Capability,
    Event,
    MediaPlayer,
    PlayerState,
    RepeatMode,
)
from castfeed.playback.session import PlaybackSessionManager
from castfeed.services.podcast_service import PodcastFetchResult


class FakePlayer(MediaPlayer):
    """
    Records every call. `fail_on` names methods that raise PlayerError;
    setting `gate` makes `add` wait until the event is set.
    """

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self.gate: Optional[asyncio.Event] = None
        self.queue: list[PodcastTrack] = []
        self.state = PlayerState.NONE
        self.rate = 1.0
        self.position = 0.0
        self.repeat_mode = RepeatMode.QUEUE
        self.is_set_up = False

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise PlayerError(f"{name} failed")

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    async def _set_state(self, state: PlayerState) -> None:
        self.state = state
        await self.emit(Event.PLAYBACK_STATE, state=state)

    async def setup(
        self, wait_for_buffer: bool = True, auto_handle_interruptions: bool = True
    ) -> None:
        self._record("setup")
        self.is_set_up = True

    async def update_options(
        self,
        capabilities: list[Capability],
        compact_capabilities: list[Capability],
    ) -> None:
        self._record("update_options", tuple(capabilities))

    async def add(self, track: PodcastTrack) -> None:
        self._record("add", track.id)
        if self.gate is not None:
            await self.gate.wait()
        self.queue.append(track)
        await self._set_state(PlayerState.READY)

    async def play(self) -> None:
        self._record("play")
        await self._set_state(PlayerState.PLAYING)

    async def pause(self) -> None:
        self._record("pause")
        await self._set_state(PlayerState.PAUSED)

    async def stop(self) -> None:
        self._record("stop")
        await self._set_state(PlayerState.STOPPED)

    async def reset(self) -> None:
        self._record("reset")
        self.queue.clear()
        self.state = PlayerState.NONE

    async def seek_to(self, position: float) -> None:
        self._record("seek_to", position)
        self.position = position

    async def set_rate(self, rate: float) -> None:
        self._record("set_rate", rate)
        self.rate = rate

    async def set_repeat_mode(self, mode: RepeatMode) -> None:
        self._record("set_repeat_mode", mode)
        self.repeat_mode = mode

    async def skip_to_next(self) -> None:
        self._record("skip_to_next")

    async def skip_to_previous(self) -> None:
        self._record("skip_to_previous")

    async def get_playback_state(self) -> PlayerState:
        self._record("get_playback_state")
        return self.state

    async def get_active_track_index(self) -> Optional[int]:
        self._record("get_active_track_index")
        return 0 if self.queue else None

    async def get_position(self) -> float:
        return self.position

    async def finish_track(self) -> None:
        """Simulates the active track playing to its end."""
        await self._set_state(PlayerState.ENDED)
        await self.emit(Event.PLAYBACK_ENDED, index=0)


def make_track(track_id: str, title: str = "Episode") -> PodcastTrack:
    return PodcastTrack(
        id=track_id,
        url=f"https://cdn.example.com/{track_id}.mp3",
        title=title,
        artist="Host",
    )


def make_podcast(podcast_id: str, title: Optional[str] = None) -> FeedPodcast:
    return FeedPodcast(
        id=podcast_id,
        title=title or f"Podcast {podcast_id}",
        audio_url=f"https://cdn.example.com/{podcast_id}.mp3",
        host=Host(id="u1", name="Host"),
        duration="3:00",
    )


class StubPodcastService:
    """Serves fixed pages of podcast ids to a FeedStore."""

    def __init__(self, pages: list[list[str]]) -> None:
        self.pages = pages
        self.fail = False
        self.fetched: list[tuple[int, int]] = []

    async def fetch_podcasts(self, page: int = 0, limit: int = 10) -> PodcastFetchResult:
        self.fetched.append((page, limit))
        if self.fail:
            raise AppError("connection refused", code=ErrorCode.NETWORK)
        ids = self.pages[page] if page < len(self.pages) else []
        return PodcastFetchResult(
            podcasts=[make_podcast(i) for i in ids],
            has_next_page=len(ids) == limit,
        )


@pytest.fixture
def player() -> FakePlayer:
    return FakePlayer()


@pytest.fixture
def session(player: FakePlayer) -> PlaybackSessionManager:
    return PlaybackSessionManager(player, settle_delay=0)


class FakeBackend:
    """
    Just enough of PostgREST and GoTrue to exercise BackendClient: eq./is.
    filters, order, offset/limit, exact counts and password sign-in.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.users: dict[str, dict[str, str]] = {}
        self.requests: list[tuple[str, str, dict[str, str]]] = []
        self.failures: dict[str, int] = {}
        self.auto_confirm = True
        self._ids = itertools.count(1)

    def add_user(self, email: str, password: str) -> str:
        user_id = f"user-{next(self._ids)}"
        self.users[email] = {"id": user_id, "password": password}
        return user_id

    @staticmethod
    def _matches(row: dict[str, Any], query: dict[str, str]) -> bool:
        for key, condition in query.items():
            if key in ("select", "order", "offset", "limit"):
                continue
            value = row.get(key)
            if condition == "not.is.null":
                if value is None:
                    return False
            elif condition == "is.null":
                if value is not None:
                    return False
            elif condition.startswith("eq."):
                if value is None or str(value) != condition[3:]:
                    return False
        return True

    def _select(self, table: str, query: dict[str, str]) -> list[dict[str, Any]]:
        rows = [r for r in self.tables[table] if self._matches(r, query)]
        if "order" in query:
            column, _, direction = query["order"].partition(".")
            rows.sort(key=lambda r: r.get(column) or "", reverse=direction == "desc")
        offset = int(query.get("offset", 0))
        if "limit" in query:
            return rows[offset : offset + int(query["limit"])]
        return rows[offset:]

    async def rest(self, request: web.Request) -> web.StreamResponse:
        table = request.match_info["table"]
        query = dict(request.query)
        self.requests.append((request.method, table, query))
        if table in self.failures:
            return web.json_response(
                {"message": f"{table} is unavailable", "code": "XX000"},
                status=self.failures[table],
            )

        if request.method == "GET":
            return web.json_response(self._select(table, query))
        if request.method == "HEAD":
            total = len([r for r in self.tables[table] if self._matches(r, query)])
            content_range = f"0-{total - 1}/{total}" if total else "*/0"
            return web.Response(headers={"Content-Range": content_range})
        if request.method == "POST":
            body = await request.json()
            rows = body if isinstance(body, list) else [body]
            stored = []
            for row in rows:
                row = {"id": f"{table}-{next(self._ids)}", **row}
                row.setdefault("created_at", "2025-01-01T00:00:00Z")
                self.tables[table].append(row)
                stored.append(row)
            return web.json_response(stored, status=201)
        if request.method == "PATCH":
            body = await request.json()
            updated = []
            for row in self.tables[table]:
                if self._matches(row, query):
                    row.update(body)
                    updated.append(row)
            return web.json_response(updated)
        if request.method == "DELETE":
            self.tables[table] = [
                r for r in self.tables[table] if not self._matches(r, query)
            ]
            return web.Response(status=204)
        return web.Response(status=405)

    def _session(self, email: str) -> dict[str, Any]:
        user = self.users[email]
        return {
            "access_token": f"token-{user['id']}",
            "token_type": "bearer",
            "user": {"id": user["id"], "email": email},
        }

    async def token(self, request: web.Request) -> web.Response:
        body = await request.json()
        user = self.users.get(body.get("email"))
        if user is None or user["password"] != body.get("password"):
            return web.json_response(
                {
                    "error": "invalid_grant",
                    "error_description": "Invalid login credentials",
                },
                status=400,
            )
        return web.json_response(self._session(body["email"]))

    async def signup(self, request: web.Request) -> web.Response:
        body = await request.json()
        if body["email"] in self.users:
            return web.json_response({"msg": "User already registered"}, status=422)
        user_id = self.add_user(body["email"], body["password"])
        if not self.auto_confirm:
            return web.json_response({"id": user_id, "email": body["email"]})
        return web.json_response(self._session(body["email"]))

    async def logout(self, request: web.Request) -> web.Response:
        self.requests.append(("POST", "logout", {}))
        return web.Response(status=204)

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/auth/v1/token", self.token)
        app.router.add_post("/auth/v1/signup", self.signup)
        app.router.add_post("/auth/v1/logout", self.logout)
        app.router.add_route("*", "/rest/v1/{table}", self.rest)
        return app


class GenerationStub:
    """Serves queued responses for the generation endpoints."""

    def __init__(self) -> None:
        self.responses: dict[str, list[tuple[int, Any]]] = defaultdict(list)
        self.requests: list[tuple[str, dict[str, Any], Optional[str]]] = []

    def queue(self, endpoint: str, body: Any, status: int = 200) -> None:
        self.responses[endpoint].append((status, body))

    async def handle(self, request: web.Request) -> web.Response:
        endpoint = f"{request.match_info['group']}/{request.match_info['endpoint']}"
        self.requests.append(
            (endpoint, await request.json(), request.headers.get("Authorization"))
        )
        if not self.responses[endpoint]:
            return web.json_response({"error": "no response queued"}, status=500)
        status, body = self.responses[endpoint].pop(0)
        return web.json_response(body, status=status)

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/{group}/{endpoint}", self.handle)
        return app


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def backend(fake_backend: FakeBackend):
    server = TestServer(fake_backend.app())
    await server.start_server()
    client = BackendClient(str(server.make_url("")).rstrip("/"), "anon-key", timeout=5)
    yield client
    await client.close()
    await server.close()


@pytest.fixture
def generation_stub() -> GenerationStub:
    return GenerationStub()


@pytest_asyncio.fixture
async def generation_client(generation_stub: GenerationStub):
    server = TestServer(generation_stub.app())
    await server.start_server()
    client = GenerationAPIClient(
        str(server.make_url("")).rstrip("/"), api_key="secret", timeout=5
    )
    yield client
    await client.close()
    await server.close()
