"""
Audio generation: turns a generated script into a rendered preview.
"""

import logging
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from castfeed.api.client import GenerationAPIClient
from castfeed.exceptions import GenerationError, ValidationError
from castfeed.models.generation import (
    AudioPreviewRequest,
    AudioPreviewResponse,
    AudioScriptLine,
    AudioSection,
    ScriptLine,
    VoiceOption,
)
from castfeed.utils.errors import retry_with_backoff
from castfeed.utils.structured_logger import SessionLogger

log = logging.getLogger(__name__)

DEFAULT_SPEAKER = "Narrator"


class AudioPreview:
    """Outcome of one audio generation."""

    def __init__(
        self,
        audio_url: Optional[str],
        sections: list[AudioSection],
        speakers: list[str],
        voices: list[str],
        duration: Optional[float] = None,
    ):
        self.audio_url = audio_url
        self.sections = sections
        self.speakers = speakers
        self.voices = voices
        self.duration = duration

    def __repr__(self) -> str:
        return (
            f"AudioPreview(audio_url={self.audio_url!r}, "
            f"sections={len(self.sections)}, duration={self.duration})"
        )


def to_audio_lines(script: list[ScriptLine]) -> list[AudioScriptLine]:
    """Fills the fields the audio endpoint requires."""
    return [
        AudioScriptLine(
            speaker=line.speaker or DEFAULT_SPEAKER,
            text=line.text or "",
            caption=line.caption or "",
        )
        for line in script
    ]


def assign_voices(
    lines: list[AudioScriptLine],
    speaker_voices: dict[str, VoiceOption],
    default_voice: VoiceOption,
) -> tuple[list[str], list[str]]:
    """
    Returns (speakers, voices): unique speakers in order of first appearance and
    the voice id for each, falling back to the default voice.
    """
    speakers = list(dict.fromkeys(line.speaker for line in lines))
    voices = [
        speaker_voices[s].id if s in speaker_voices else default_voice.id
        for s in speakers
    ]
    return speakers, voices


def update_section_text(
    sections: list[AudioSection], section_id: str, text: str
) -> list[AudioSection]:
    """Returns a copy of `sections` with one section's text replaced."""
    return [
        s.model_copy(update={"text": text}) if s.id == section_id else s
        for s in sections
    ]


class AudioGenerator:
    """Builds audio preview requests and shapes their responses."""

    def __init__(
        self,
        client: GenerationAPIClient,
        tts: str = "openai",
        retry_attempts: int = 1,
        retry_base_delay: float = 1.0,
        session_logger: Optional[SessionLogger] = None,
    ):
        self.client = client
        self.tts = tts
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self._events = session_logger

    async def generate(
        self,
        script: list[ScriptLine],
        speaker_voices: dict[str, VoiceOption],
        default_voice: VoiceOption,
        bgm_id: Optional[str] = None,
    ) -> AudioPreview:
        """
        Renders `script` to audio.

        Raises:
            ValidationError: If the script is empty. Nothing is sent in that case.
        """
        if not script:
            raise ValidationError("The script is empty.", field="script")

        lines = to_audio_lines(script)
        speakers, voices = assign_voices(lines, speaker_voices, default_voice)
        request = AudioPreviewRequest(
            script=lines,
            tts=self.tts,
            voices=voices,
            speakers=speakers,
            bgm_id=bgm_id,
        )
        log.info(
            f"Generating audio for {len(lines)} lines with "
            f"{len(speakers)} speaker(s)..."
        )
        data = await retry_with_backoff(
            lambda: self.client.generate_audio_preview(request),
            attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            context="generate_audio_preview",
        )
        try:
            response = AudioPreviewResponse.model_validate(data)
        except PydanticValidationError as e:
            log.error(f"[red]Unusable audio preview response: {e}[/red]")
            raise GenerationError("The audio response could not be read.") from e

        urls = response.separated_audio_urls
        sections = [
            AudioSection(
                id=f"section-{i}",
                text=line.text,
                audio_url=urls[i] if i < len(urls) else None,
            )
            for i, line in enumerate(lines)
        ]
        if self._events:
            self._events.audio_generated(len(sections), len(speakers), response.duration)
        return AudioPreview(
            audio_url=response.audio_url,
            sections=sections,
            speakers=speakers,
            voices=voices,
            duration=response.duration,
        )
