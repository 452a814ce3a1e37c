"""
Models for podcasts, profiles and the social rows stored in the managed backend,
plus the conversion from raw backend rows into feed-ready podcasts.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from castfeed.utils.formatting import extract_host_name, format_clock, parse_clock

from .track import PodcastTrack


class Host(BaseModel):
    id: str = ""
    name: str = "Unknown Host"
    avatar: Optional[str] = None
    verified: bool = True


class FeedPodcast(BaseModel):
    """A podcast as shown in the vertical feed."""

    id: str
    audio_url: Optional[str] = None
    image_url: Optional[str] = None
    title: str
    host: Host = Field(default_factory=Host)
    duration: str = "0:00"
    description: Optional[str] = None
    likes: int = 0
    comments: int = 0
    shares: int = 0
    category: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    timestamp: int = 0
    is_liked: bool = False
    is_saved: bool = False

    # Raw backend fields
    summary: Optional[str] = None
    script_content: str = ""
    genre_id: Optional[str] = None
    source_urls: Optional[list[str]] = None
    speakers: Optional[list[str]] = None
    bgm_id: Optional[str] = None
    published_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    like_count: Optional[int] = None
    streams: Optional[int] = None
    save_count: Optional[int] = None
    situation: Optional[str] = None
    voices: Optional[list[str]] = None

    def to_track(self) -> PodcastTrack:
        """Builds the playable track for this podcast."""
        return PodcastTrack(
            id=self.id,
            url=self.audio_url or "",
            title=self.title,
            artist=self.host.name or "Unknown Host",
            artwork=self.image_url or "",
            duration=parse_clock(self.duration),
        )


def _timestamp_ms(value: Optional[str]) -> int:
    if not value:
        return 0
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return 0
    return int(parsed.timestamp() * 1000)


def feed_podcast_from_row(
    row: dict[str, Any], is_liked: bool = False, is_saved: bool = False
) -> FeedPodcast:
    """
    Converts a podcasts row (joined with `creator` and `genre`) into a FeedPodcast.

    Args:
        row: The row as returned by the backend.
        is_liked: Whether the signed-in user liked this podcast.
        is_saved: Whether the signed-in user saved this podcast.
    """
    creator = row.get("creator") or {}
    genre = row.get("genre") or {}
    return FeedPodcast(
        id=row["id"],
        audio_url=row.get("audio_url"),
        image_url=row.get("image_url") or None,
        title=row.get("title") or "",
        host=Host(
            id=creator.get("id") or "",
            name=extract_host_name(creator),
            avatar=creator.get("avatar_url"),
            verified=True,
        ),
        duration=format_clock(row.get("duration")),
        description=row.get("summary"),
        likes=row.get("like_count") or 0,
        category=genre.get("name"),
        tags=row.get("tags") or [],
        timestamp=_timestamp_ms(row.get("created_at")),
        is_liked=is_liked,
        is_saved=is_saved,
        summary=row.get("summary"),
        script_content=row.get("script_content") or "",
        genre_id=row.get("genre_id"),
        source_urls=row.get("source_urls"),
        speakers=row.get("speakers"),
        bgm_id=row.get("bgm_id"),
        published_at=row.get("published_at"),
        created_at=row.get("created_at") or "",
        updated_at=row.get("updated_at") or "",
        like_count=row.get("like_count"),
        streams=row.get("streams"),
        save_count=row.get("save_count"),
        situation=row.get("situation"),
        voices=row.get("voices"),
    )


class Profile(BaseModel):
    id: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Comment(BaseModel):
    id: str
    podcast_id: str
    user_id: str
    content: str
    created_at: Optional[str] = None


class UserStatistics(BaseModel):
    podcasts: int = 0
    followers: int = 0
    following: int = 0


class ToggleResult(BaseModel):
    """Outcome of a like/save toggle; failures are reported, not raised."""

    success: bool
    active: Optional[bool] = None
    error: Optional[str] = None


class PublishRequest(BaseModel):
    """Everything needed to publish a generated episode."""

    title: str
    description: str = ""
    script: list[dict[str, Any]] = Field(default_factory=list)
    audio_url: Optional[str] = None
    duration: Optional[int] = None
    image_url: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    genre_id: Optional[str] = None
    bgm_id: Optional[str] = None
    speakers: list[str] = Field(default_factory=list)
    voices: list[str] = Field(default_factory=list)
    source_urls: list[str] = Field(default_factory=list)
    situation: Optional[str] = None

    class Config:
        str_strip_whitespace = True

    @field_validator("tags")
    @classmethod
    def strip_tags(cls, v: list[str]) -> list[str]:
        """Drops blank tags and duplicate tags, keeping first-seen order."""
        cleaned = (t.strip().lstrip("#").strip() for t in v)
        return list(dict.fromkeys(t for t in cleaned if t))
