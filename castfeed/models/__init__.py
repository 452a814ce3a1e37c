"""
Data Models Layer.

This package contains Pydantic models that define the core data structures
used throughout the application: configuration, feed podcasts and tracks, and
the generation API payloads.
"""

from .config import AppConfig
from .generation import (
    AudioSection,
    BGMOption,
    GeneratedScript,
    PromptScript,
    ScriptLine,
    Situation,
    VoiceOption,
)
from .podcast import (
    Comment,
    FeedPodcast,
    Host,
    Profile,
    PublishRequest,
    ToggleResult,
    UserStatistics,
)
from .track import PodcastTrack

__all__ = [
    "AppConfig",
    "AudioSection",
    "BGMOption",
    "Comment",
    "FeedPodcast",
    "GeneratedScript",
    "Host",
    "PodcastTrack",
    "Profile",
    "PromptScript",
    "PublishRequest",
    "ScriptLine",
    "Situation",
    "ToggleResult",
    "UserStatistics",
    "VoiceOption",
]
