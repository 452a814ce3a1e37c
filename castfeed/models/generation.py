"""
Request and response models for the script and audio generation endpoints.

Field aliases mirror the camelCase wire format; build requests with Python
names and serialise with `to_payload()`.
"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class Situation(str, Enum):
    """Conversation setting the script generator writes for."""

    SCHOOL = "school"
    EXPERT = "expert"
    INTERVIEW = "interview"
    FRIENDS = "friends"
    RADIO_PERSONALITY = "radio_personality"


def _normalize_references(value: Any) -> list[str]:
    """Accepts plain URL strings or `{url: ...}` objects."""
    if not value:
        return []
    urls = []
    for item in value:
        if isinstance(item, str):
            url = item
        elif isinstance(item, dict):
            url = item.get("url") or ""
        else:
            url = ""
        if url.strip():
            urls.append(url.strip())
    return urls


class WireModel(BaseModel):
    class Config:
        populate_by_name = True

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ScriptLine(WireModel):
    speaker: Optional[str] = None
    text: Optional[str] = None
    caption: Optional[str] = None


class PromptScript(WireModel):
    """One turn of the script conversation: the prompt and what it produced."""

    prompt: str
    script: list[ScriptLine] = Field(default_factory=list)
    reference: list[str] = Field(default_factory=list)
    situation: Optional[Situation] = None

    @field_validator("reference", mode="before")
    @classmethod
    def normalize_references(cls, v: Any) -> list[str]:
        return _normalize_references(v)


class CreateScriptRequest(WireModel):
    prompt: str
    previous_script: list[PromptScript] = Field(
        default_factory=list, alias="previousScript"
    )
    reference: list[str] = Field(default_factory=list)
    is_search: bool = Field(default=False, alias="isSearch")
    word_count: Optional[int] = Field(default=None, alias="wordCount")
    situation: Optional[Situation] = None


class GeneratedScript(WireModel):
    script: Optional[list[ScriptLine]] = None
    reference: list[str] = Field(default_factory=list)

    @field_validator("reference", mode="before")
    @classmethod
    def normalize_references(cls, v: Any) -> list[str]:
        return _normalize_references(v)


class CreateScriptResponse(WireModel):
    new_script: Optional[GeneratedScript] = Field(default=None, alias="newScript")
    previous_script: Optional[list[PromptScript]] = Field(
        default=None, alias="previousScript"
    )


class AudioScriptLine(WireModel):
    speaker: str
    text: str
    caption: str = ""


class AudioPreviewRequest(WireModel):
    script: list[AudioScriptLine]
    tts: str
    voices: list[str]
    speakers: list[str]
    bgm_id: Optional[str] = Field(default=None, alias="bgmId")
    script_id: Optional[str] = Field(default=None, alias="scriptId")


class AudioPreviewResponse(WireModel):
    audio_url: Optional[str] = Field(default=None, alias="audioUrl")
    separated_audio_urls: list[str] = Field(
        default_factory=list, alias="separatedAudioUrls"
    )
    duration: Optional[float] = None
    script_id: Optional[str] = Field(default=None, alias="scriptId")

    @field_validator("separated_audio_urls", mode="before")
    @classmethod
    def default_separated_urls(cls, v: Any) -> Any:
        return [] if v is None else v


class AudioSection(BaseModel):
    id: str
    text: str
    audio_url: Optional[str] = None


class VoiceOption(BaseModel):
    id: str
    name: str
    description: str = ""
    gender: Literal["male", "female"] = "female"
    language: Literal["ja", "en"] = "en"


class BGMOption(BaseModel):
    id: str
    name: str
    description: str = ""
