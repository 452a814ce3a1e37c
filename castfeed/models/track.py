"""
Playable track identity handed to the playback session.
"""

from typing import Optional

from pydantic import BaseModel, Field


class PodcastTrack(BaseModel):
    """A single audio resource the session manager can load and play."""

    id: str = Field(..., min_length=1)
    url: str
    title: str
    artist: str
    artwork: Optional[str] = None
    duration: Optional[int] = None

    class Config:
        frozen = True
