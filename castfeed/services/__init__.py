"""
Service Layer.

Application operations built on top of the API clients: script and audio
generation, the podcast feed and social features, and account management.
"""

from .audio_generator import AudioGenerator, AudioPreview
from .auth_service import AuthService, ValidationResult, validate_credentials
from .podcast_service import PodcastFetchResult, PodcastService
from .script_generator import ScriptSession

__all__ = [
    "AudioGenerator",
    "AudioPreview",
    "AuthService",
    "PodcastFetchResult",
    "PodcastService",
    "ScriptSession",
    "ValidationResult",
    "validate_credentials",
]
