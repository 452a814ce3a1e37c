"""
Podcast feed, social interactions and publishing on top of the managed backend.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from castfeed.api.backend import BackendClient
from castfeed.exceptions import ValidationError
from castfeed.models.generation import BGMOption
from castfeed.models.podcast import (
    Comment,
    FeedPodcast,
    PublishRequest,
    ToggleResult,
    UserStatistics,
    feed_podcast_from_row,
)
from castfeed.storage.cache import CacheManager
from castfeed.utils.errors import to_app_error, user_message, with_error_handling
from castfeed.utils.structured_logger import SessionLogger

log = logging.getLogger(__name__)

PODCAST_COLUMNS = (
    "*,creator:profiles!creator_id(id,username,display_name,avatar_url),"
    "genre:genres(id,name)"
)


@dataclass
class PodcastFetchResult:
    podcasts: list[FeedPodcast]
    liked_podcast_ids: list[str] = field(default_factory=list)
    has_next_page: bool = False


class PodcastService:
    """
    Feed queries and the signed-in user's interactions.

    Toggles and id lookups report failures instead of raising; feed fetches
    and publishing raise normalised AppErrors.
    """

    def __init__(
        self,
        backend: BackendClient,
        cache: Optional[CacheManager] = None,
        session_logger: Optional[SessionLogger] = None,
    ):
        self.backend = backend
        self.cache = cache
        self._events = session_logger

    @property
    def _user_id(self) -> Optional[str]:
        return self.backend.user_id if self.backend.authenticator.is_signed_in else None

    async def _fetch_page(
        self, page: int, limit: int, published_only: bool
    ) -> list[dict[str, Any]]:
        filters = {"published_at": "not.is.null"} if published_only else None
        return await self.backend.select(
            "podcasts",
            PODCAST_COLUMNS,
            filters=filters,
            order="published_at.desc" if published_only else "created_at.desc",
            offset=page * limit,
            limit=limit,
        )

    async def fetch_podcasts(self, page: int = 0, limit: int = 10) -> PodcastFetchResult:
        """
        Fetches one feed page. Published podcasts are preferred; an empty page
        falls back to all podcasts.
        """

        async def operation() -> PodcastFetchResult:
            log.debug(f"Fetching podcasts (page={page}, limit={limit})")
            rows = await self._fetch_page(page, limit, published_only=True)
            if not rows:
                rows = await self._fetch_page(page, limit, published_only=False)

            liked, saved = await asyncio.gather(
                self.liked_podcast_ids(), self.saved_podcast_ids()
            )
            liked_set, saved_set = set(liked), set(saved)
            podcasts = [
                feed_podcast_from_row(
                    row, is_liked=row["id"] in liked_set, is_saved=row["id"] in saved_set
                )
                for row in rows
            ]
            log.info(f"Fetched {len(podcasts)} podcasts (page {page}).")
            return PodcastFetchResult(
                podcasts=podcasts,
                liked_podcast_ids=liked,
                has_next_page=len(podcasts) == limit,
            )

        return await with_error_handling(operation, "fetch_podcasts")

    async def _user_podcast_ids(self, table: str) -> list[str]:
        user_id = self._user_id
        if user_id is None:
            return []
        try:
            rows = await self.backend.select(
                table, "podcast_id", filters={"user_id": f"eq.{user_id}"}
            )
            return [row["podcast_id"] for row in rows]
        except Exception as e:
            log.error(f"[red]Failed to load {table} for user: {e}[/red]")
            return []

    async def liked_podcast_ids(self) -> list[str]:
        """Ids of podcasts the signed-in user liked; [] when unknown."""
        return await self._user_podcast_ids("likes")

    async def saved_podcast_ids(self) -> list[str]:
        """Ids of podcasts the signed-in user saved; [] when unknown."""
        return await self._user_podcast_ids("saves")

    async def _toggle(self, table: str, podcast_id: str) -> ToggleResult:
        try:
            user_id = self.backend.authenticator.require_user()
            filters = {"user_id": f"eq.{user_id}", "podcast_id": f"eq.{podcast_id}"}
            existing = await self.backend.select_one(table, filters, "podcast_id")
            if existing:
                await self.backend.delete(table, filters)
                active = False
            else:
                await self.backend.insert(
                    table, {"user_id": user_id, "podcast_id": podcast_id}
                )
                active = True
            log.info(f"Toggled {table} for podcast {podcast_id} (active={active}).")
            return ToggleResult(success=True, active=active)
        except Exception as e:
            app_error = to_app_error(e, f"toggle_{table}")
            log.error(f"[red]Failed to toggle {table} for {podcast_id}: {app_error}[/red]")
            return ToggleResult(success=False, error=user_message(app_error))

    async def toggle_like(self, podcast_id: str) -> ToggleResult:
        return await self._toggle("likes", podcast_id)

    async def toggle_save(self, podcast_id: str) -> ToggleResult:
        return await self._toggle("saves", podcast_id)

    async def list_comments(self, podcast_id: str, limit: int = 50) -> list[Comment]:
        async def operation() -> list[Comment]:
            rows = await self.backend.select(
                "comments",
                filters={"podcast_id": f"eq.{podcast_id}"},
                order="created_at.desc",
                limit=limit,
            )
            return [Comment.model_validate(row) for row in rows]

        return await with_error_handling(operation, "list_comments")

    async def add_comment(self, podcast_id: str, content: str) -> Comment:
        content = (content or "").strip()
        if not content:
            raise ValidationError("A comment cannot be empty.", field="content")

        async def operation() -> Comment:
            user_id = self.backend.authenticator.require_user()
            rows = await self.backend.insert(
                "comments",
                {"podcast_id": podcast_id, "user_id": user_id, "content": content},
            )
            return Comment.model_validate(rows[0])

        return await with_error_handling(operation, "add_comment")

    async def record_play(self, podcast_id: str) -> bool:
        """Adds a play_history row for the signed-in user; False if skipped."""
        user_id = self._user_id
        if user_id is None:
            return False
        try:
            await self.backend.insert(
                "play_history",
                {
                    "user_id": user_id,
                    "podcast_id": podcast_id,
                    "played_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            return True
        except Exception as e:
            log.warning(f"[yellow]Could not record play of {podcast_id}: {e}[/yellow]")
            return False

    async def publish(self, request: PublishRequest) -> FeedPodcast:
        """
        Publishes a generated episode.

        Raises:
            ValidationError: If the title is blank or no tag was given.
            AuthenticationError: If nobody is signed in.
        """
        if not request.title:
            raise ValidationError("Enter a title.", field="title")
        user_id = self.backend.authenticator.require_user()
        if not request.tags:
            raise ValidationError("Enter at least one tag.", field="tags")

        async def operation() -> FeedPodcast:
            values = {
                "title": request.title,
                "summary": request.description or None,
                "script_content": json.dumps(request.script, ensure_ascii=False),
                "audio_url": request.audio_url,
                "duration": request.duration,
                "image_url": request.image_url,
                "tags": request.tags,
                "genre_id": request.genre_id,
                "bgm_id": request.bgm_id,
                "speakers": request.speakers,
                "voices": request.voices,
                "source_urls": request.source_urls,
                "situation": request.situation,
                "creator_id": user_id,
                "published_at": datetime.now(timezone.utc).isoformat(),
            }
            rows = await self.backend.insert("podcasts", values)
            podcast = feed_podcast_from_row(rows[0])
            if self._events:
                self._events.podcast_published(podcast.id, podcast.title, len(request.tags))
            return podcast

        return await with_error_handling(operation, "publish")

    async def _cached_catalog(self, table: str) -> list[dict[str, Any]]:
        cache_key = f"catalog:{self.backend.base_url}:{table}"
        if self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        rows = await with_error_handling(
            lambda: self.backend.select(table, order="name.asc"), f"list_{table}"
        )
        if self.cache is not None:
            self.cache.set(cache_key, rows)
        return rows

    async def list_bgm(self) -> list[BGMOption]:
        return [BGMOption.model_validate(row) for row in await self._cached_catalog("bgm")]

    async def list_genres(self) -> list[dict[str, Any]]:
        return await self._cached_catalog("genres")

    async def user_statistics(self, user_id: str) -> UserStatistics:
        """Counts of the user's podcasts, followers and followings."""

        async def safe_count(table: str, filters: dict[str, str]) -> int:
            try:
                return await self.backend.count(table, filters)
            except Exception as e:
                log.error(f"[red]Count on {table} failed: {e}[/red]")
                return 0

        podcasts, followers, following = await asyncio.gather(
            safe_count("podcasts", {"creator_id": f"eq.{user_id}"}),
            safe_count("follows", {"following_id": f"eq.{user_id}"}),
            safe_count("follows", {"follower_id": f"eq.{user_id}"}),
        )
        return UserStatistics(podcasts=podcasts, followers=followers, following=following)

    async def follow(self, user_id: str) -> None:
        async def operation() -> None:
            me = self.backend.authenticator.require_user()
            if me == user_id:
                raise ValidationError("You cannot follow yourself.", field="user_id")
            await self.backend.insert(
                "follows", {"follower_id": me, "following_id": user_id}
            )

        await with_error_handling(operation, "follow")

    async def unfollow(self, user_id: str) -> None:
        async def operation() -> None:
            me = self.backend.authenticator.require_user()
            await self.backend.delete(
                "follows",
                {"follower_id": f"eq.{me}", "following_id": f"eq.{user_id}"},
            )

        await with_error_handling(operation, "unfollow")
