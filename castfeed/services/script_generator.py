"""
Script generation session: validates input, calls the script endpoint and keeps
the conversation history the endpoint uses for follow-up instructions.
"""

import logging
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from castfeed.api.client import GenerationAPIClient
from castfeed.exceptions import GenerationError, ValidationError
from castfeed.models.generation import (
    CreateScriptRequest,
    CreateScriptResponse,
    PromptScript,
    ScriptLine,
    Situation,
)
from castfeed.utils.errors import retry_with_backoff
from castfeed.utils.structured_logger import SessionLogger

log = logging.getLogger(__name__)

DEFAULT_URL_PROMPT = "Explain the content of the given URLs"


def clean_references(urls: Optional[list[str]]) -> list[str]:
    """Drops blank entries and surrounding whitespace from reference URLs."""
    return [u.strip() for u in urls or [] if u and u.strip()]


def parse_script_response(data: dict[str, Any]) -> tuple[list[ScriptLine], list[str]]:
    """
    Validates a `/script/create` response body.

    Returns:
        The non-empty script lines and the reference URLs.

    Raises:
        GenerationError: If the body has no script list or no non-empty lines.
    """
    new_script = data.get("newScript") if isinstance(data, dict) else None
    if not isinstance(new_script, dict):
        log.error(f"Script response is missing 'newScript': {data!r:.200}")
        raise GenerationError("The script response did not contain a new script.")
    if not isinstance(new_script.get("script"), list):
        log.error(
            "Script response 'script' is not a list: "
            f"{type(new_script.get('script')).__name__}"
        )
        raise GenerationError("The script response did not contain script lines.")

    try:
        response = CreateScriptResponse.model_validate(data)
    except PydanticValidationError as e:
        log.error(f"[red]Unusable script response: {e}[/red]")
        raise GenerationError("The script response could not be read.") from e
    lines = [
        line
        for line in response.new_script.script or []
        if line.text and line.text.strip()
    ]
    if not lines:
        raise GenerationError("No script was generated. Try a different topic.")
    return lines, response.new_script.reference


class ScriptSession:
    """
    One script-writing conversation.

    Each successful generation is appended to `history` and sent back as
    `previousScript` on the next request, which is how follow-up instructions
    refine the script.
    """

    def __init__(
        self,
        client: GenerationAPIClient,
        retry_attempts: int = 1,
        retry_base_delay: float = 1.0,
        session_logger: Optional[SessionLogger] = None,
    ):
        self.client = client
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self._events = session_logger

        self.prompt = ""
        self.reference_urls: list[str] = []
        self.is_search = False
        self.situation: Optional[Situation] = None
        self.script: list[ScriptLine] = []
        self.history: list[PromptScript] = []

    @property
    def is_generated(self) -> bool:
        return bool(self.script)

    async def _request(self, request: CreateScriptRequest) -> list[ScriptLine]:
        data = await retry_with_backoff(
            lambda: self.client.create_script(request),
            attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            context="create_script",
        )
        lines, references = parse_script_response(data)

        self.script = lines
        self.history.append(
            PromptScript(
                prompt=request.prompt,
                script=lines,
                reference=references,
                situation=request.situation,
            )
        )
        self.reference_urls = references
        if self._events:
            self._events.script_generated(
                len(request.prompt), len(request.reference), len(lines), len(self.history)
            )
        return lines

    async def generate(
        self,
        prompt: str,
        reference_urls: Optional[list[str]] = None,
        is_search: bool = False,
        situation: Optional[Situation] = None,
        word_count: Optional[int] = None,
    ) -> list[ScriptLine]:
        """
        Generates a script from a topic and/or reference URLs.

        Raises:
            ValidationError: If both the prompt and the references are empty.
                Nothing is sent in that case.
            GenerationError: If the response carries no usable script.
        """
        prompt = (prompt or "").strip()
        references = clean_references(reference_urls)
        if not prompt and not references:
            raise ValidationError(
                "Enter a topic or at least one reference URL.", field="prompt"
            )

        self.prompt = prompt
        self.is_search = is_search
        self.situation = Situation(situation) if situation else None
        request = CreateScriptRequest(
            prompt=prompt or DEFAULT_URL_PROMPT,
            previous_script=list(self.history),
            reference=references,
            is_search=is_search,
            word_count=word_count,
            situation=self.situation,
        )
        log.info(
            f"Generating script ({len(references)} references, "
            f"{len(self.history)} previous turns)..."
        )
        return await self._request(request)

    async def regenerate(self, instruction: str) -> list[ScriptLine]:
        """
        Refines the current script with an additional instruction.

        Raises:
            ValidationError: If the instruction is blank.
        """
        instruction = (instruction or "").strip()
        if not instruction:
            raise ValidationError(
                "Enter an instruction for the new draft.", field="instruction"
            )
        request = CreateScriptRequest(
            prompt=instruction,
            previous_script=list(self.history),
            reference=clean_references(self.reference_urls),
            is_search=self.is_search,
        )
        log.info("Regenerating script with an additional instruction...")
        return await self._request(request)

    def reset(self) -> None:
        """Forgets the whole conversation."""
        self.prompt = ""
        self.reference_urls = []
        self.is_search = False
        self.situation = None
        self.script = []
        self.history = []
