"""Tests for the podcast service against an in-process fake backend."""

from __future__ import annotations

import json

import pytest
from conftest import FakeBackend

from castfeed.api.backend import BackendClient
from castfeed.exceptions import AppError, AuthenticationError, ErrorCode, ValidationError
from castfeed.models.podcast import PublishRequest
from castfeed.services.podcast_service import PodcastService
from castfeed.storage.cache import CacheManager


def _podcast(podcast_id: str, created_at: str, published: bool = True) -> dict:
    return {
        "id": podcast_id,
        "title": f"Podcast {podcast_id}",
        "audio_url": f"https://cdn.example.com/{podcast_id}.mp3",
        "duration": 185,
        "created_at": created_at,
        "published_at": created_at if published else None,
    }


def _sign_in(backend: BackendClient, user_id: str = "user-1") -> None:
    backend.authenticator.restore_session(f"token-{user_id}", user_id)


async def test_fetch_prefers_published_and_flags_likes(
    backend: BackendClient, fake_backend: FakeBackend
) -> None:
    fake_backend.tables["podcasts"] = [
        _podcast("p1", "2025-01-01T00:00:00Z"),
        _podcast("p2", "2025-02-01T00:00:00Z"),
        _podcast("draft", "2025-03-01T00:00:00Z", published=False),
    ]
    fake_backend.tables["likes"] = [{"user_id": "user-1", "podcast_id": "p1"}]
    fake_backend.tables["saves"] = [{"user_id": "user-1", "podcast_id": "p2"}]
    _sign_in(backend)

    result = await PodcastService(backend).fetch_podcasts(page=0, limit=2)

    assert [p.id for p in result.podcasts] == ["p2", "p1"]
    assert result.has_next_page is True
    assert result.liked_podcast_ids == ["p1"]
    assert result.podcasts[1].is_liked is True
    assert result.podcasts[0].is_saved is True
    assert result.podcasts[0].duration == "3:05"


async def test_fetch_falls_back_to_all_podcasts(
    backend: BackendClient, fake_backend: FakeBackend
) -> None:
    fake_backend.tables["podcasts"] = [
        _podcast("d1", "2025-01-01T00:00:00Z", published=False),
        _podcast("d2", "2025-02-01T00:00:00Z", published=False),
    ]

    result = await PodcastService(backend).fetch_podcasts(page=0, limit=10)

    assert [p.id for p in result.podcasts] == ["d2", "d1"]
    assert result.has_next_page is False
    assert result.liked_podcast_ids == []
    orders = [q.get("order") for m, t, q in fake_backend.requests if t == "podcasts"]
    assert orders == ["published_at.desc", "created_at.desc"]


async def test_fetch_failure_is_normalised(
    backend: BackendClient, fake_backend: FakeBackend
) -> None:
    fake_backend.failures["podcasts"] = 503
    with pytest.raises(AppError) as excinfo:
        await PodcastService(backend).fetch_podcasts()
    assert excinfo.value.code == ErrorCode.NETWORK
    assert excinfo.value.context == "fetch_podcasts"


async def test_toggle_like_on_and_off(
    backend: BackendClient, fake_backend: FakeBackend
) -> None:
    _sign_in(backend)
    service = PodcastService(backend)

    first = await service.toggle_like("p1")
    assert first.success is True and first.active is True
    assert fake_backend.tables["likes"][0]["podcast_id"] == "p1"

    second = await service.toggle_like("p1")
    assert second.success is True and second.active is False
    assert fake_backend.tables["likes"] == []


async def test_toggle_when_signed_out_reports_failure(backend: BackendClient) -> None:
    result = await PodcastService(backend).toggle_save("p1")
    assert result.success is False
    assert result.error == "Your session is no longer valid. Please sign in again."


async def test_publish_validates_title_then_auth_then_tags(
    backend: BackendClient,
) -> None:
    service = PodcastService(backend)

    with pytest.raises(ValidationError) as excinfo:
        await service.publish(PublishRequest(title="  "))
    assert excinfo.value.field == "title"

    with pytest.raises(AuthenticationError):
        await service.publish(PublishRequest(title="Episode"))

    _sign_in(backend)
    with pytest.raises(ValidationError) as excinfo:
        await service.publish(PublishRequest(title="Episode", tags=["#", " "]))
    assert excinfo.value.field == "tags"


async def test_publish_inserts_published_row(
    backend: BackendClient, fake_backend: FakeBackend
) -> None:
    _sign_in(backend)
    request = PublishRequest(
        title="Episode",
        description="About things",
        script=[{"speaker": "Host", "text": "Hi"}],
        audio_url="https://cdn.example.com/e.mp3",
        duration=90,
        tags=["#science", "science", "space"],
    )

    podcast = await PodcastService(backend).publish(request)

    row = fake_backend.tables["podcasts"][0]
    assert row["creator_id"] == "user-1"
    assert row["published_at"]
    assert row["summary"] == "About things"
    assert row["tags"] == ["science", "space"]
    assert json.loads(row["script_content"]) == [{"speaker": "Host", "text": "Hi"}]
    assert podcast.title == "Episode"
    assert podcast.duration == "1:30"


async def test_comments_round_trip(
    backend: BackendClient, fake_backend: FakeBackend
) -> None:
    _sign_in(backend)
    service = PodcastService(backend)

    with pytest.raises(ValidationError):
        await service.add_comment("p1", "   ")

    comment = await service.add_comment("p1", " Great episode ")
    assert comment.content == "Great episode"
    assert comment.user_id == "user-1"

    comments = await service.list_comments("p1")
    assert [c.id for c in comments] == [comment.id]
    assert await service.list_comments("other") == []


async def test_record_play_requires_sign_in(
    backend: BackendClient, fake_backend: FakeBackend
) -> None:
    service = PodcastService(backend)
    assert await service.record_play("p1") is False

    _sign_in(backend)
    assert await service.record_play("p1") is True
    assert fake_backend.tables["play_history"][0]["podcast_id"] == "p1"

    fake_backend.failures["play_history"] = 500
    assert await service.record_play("p1") is False


async def test_user_statistics_counts_and_tolerates_failures(
    backend: BackendClient, fake_backend: FakeBackend
) -> None:
    fake_backend.tables["podcasts"] = [
        {"id": "p1", "creator_id": "user-1"},
        {"id": "p2", "creator_id": "user-1"},
        {"id": "p3", "creator_id": "someone"},
    ]
    fake_backend.tables["follows"] = [
        {"follower_id": "a", "following_id": "user-1"},
        {"follower_id": "user-1", "following_id": "b"},
        {"follower_id": "c", "following_id": "user-1"},
    ]
    service = PodcastService(backend)

    stats = await service.user_statistics("user-1")
    assert (stats.podcasts, stats.followers, stats.following) == (2, 2, 1)

    fake_backend.failures["follows"] = 500
    stats = await service.user_statistics("user-1")
    assert (stats.podcasts, stats.followers, stats.following) == (2, 0, 0)


async def test_follow_and_unfollow(
    backend: BackendClient, fake_backend: FakeBackend
) -> None:
    _sign_in(backend)
    service = PodcastService(backend)

    with pytest.raises(AppError) as excinfo:
        await service.follow("user-1")
    assert excinfo.value.code == ErrorCode.VALIDATION

    await service.follow("user-2")
    assert fake_backend.tables["follows"][0]["following_id"] == "user-2"

    await service.unfollow("user-2")
    assert fake_backend.tables["follows"] == []


async def test_catalog_is_cached(
    backend: BackendClient, fake_backend: FakeBackend, tmp_path
) -> None:
    fake_backend.tables["bgm"] = [
        {"id": "b2", "name": "Upbeat"},
        {"id": "b1", "name": "Calm"},
    ]
    cache = CacheManager(tmp_path)
    service = PodcastService(backend, cache=cache)

    first = await service.list_bgm()
    assert [b.name for b in first] == ["Calm", "Upbeat"]

    fake_backend.tables["bgm"] = []
    second = await service.list_bgm()
    assert [b.id for b in second] == ["b1", "b2"]
    assert cache.hits == 1
    assert sum(1 for _, t, _ in fake_backend.requests if t == "bgm") == 1

    fake_backend.tables["genres"] = [
        {"id": "g2", "name": "Science"},
        {"id": "g1", "name": "Art"},
    ]
    genres = await service.list_genres()
    assert [g["name"] for g in genres] == ["Art", "Science"]
    fake_backend.tables["genres"] = []
    assert await service.list_genres() == genres
    assert cache.hits == 2
    assert sum(1 for _, t, _ in fake_backend.requests if t == "genres") == 1
