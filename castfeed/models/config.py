"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

SUPPORTED_TTS_ENGINES = ("openai", "google", "elevenlabs")


class AppConfig(BaseModel):
    """A validated configuration model for the application."""

    # Generation API
    api_base_url: str = ""
    api_key: str = ""
    tts: str = "openai"
    default_bgm_id: Optional[str] = None

    # Managed backend
    supabase_url: str = ""
    supabase_anon_key: str = ""

    # Networking
    request_timeout: int = 60
    retry_attempts: int = 3
    retry_base_delay: float = 1.0

    # Feed & playback
    page_size: int = 10
    player_command: str = "ffplay"

    # Internal fields not loaded from INI file
    config_path: str = Field(..., repr=False)

    class Config:
        """Pydantic model configuration."""

        validate_assignment = True
        str_strip_whitespace = True

    @field_validator("api_base_url", "supabase_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensures service URLs are http(s) and have no trailing slash."""
        if not v:
            return v
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://, got: {v}")
        return v.rstrip("/")

    @field_validator("tts")
    @classmethod
    def validate_tts(cls, v: str) -> str:
        if v not in SUPPORTED_TTS_ENGINES:
            raise ValueError(
                f"TTS engine must be one of {', '.join(SUPPORTED_TTS_ENGINES)}."
            )
        return v

    @field_validator("page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if v < 1 or v > 50:
            raise ValueError("Page size must be between 1 and 50.")
        return v

    @field_validator("request_timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v < 1 or v > 300:
            raise ValueError("Request timeout must be between 1 and 300 seconds.")
        return v

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        if v < 1 or v > 5:
            raise ValueError("Retry attempts must be between 1 and 5.")
        return v

    @field_validator("retry_base_delay")
    @classmethod
    def validate_retry_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Retry base delay cannot be negative.")
        return v

    @model_validator(mode="after")
    def validate_services(self) -> "AppConfig":
        """Validates that both the generation API and the backend are configured."""
        if not self.api_base_url:
            raise ValueError(
                "Generation API is not configured. 'api_base_url' is required."
            )
        if not self.supabase_url or not self.supabase_anon_key:
            raise ValueError(
                "Backend settings are incomplete. 'supabase_url' and "
                "'supabase_anon_key' are required."
            )
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
