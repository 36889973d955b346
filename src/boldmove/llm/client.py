"""
BoldMove - LLM Client.

Wraps the OpenAI SDK (any OpenAI-compatible endpoint) for three capabilities:
- generate_text: prompt in, free text out
- call_llm: structured output via Instructor
- transcribe_audio: audio file in, transcript out

All calls go through here for consistent logging and error mapping.
Failures and empty outputs surface as GenerationError so callers can
retry or fall back.
"""

import logging
from pathlib import Path
from typing import TypeVar

import instructor
from openai import AsyncOpenAI
from pydantic import BaseModel

from boldmove.config import settings
from boldmove.core.errors import GenerationError
from boldmove.llm.model_router import get_node_config
from boldmove.llm.prompt_logger import log_prompt

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# Singleton client instances
_openai_client: AsyncOpenAI | None = None
_client: instructor.AsyncInstructor | None = None


def get_openai_client() -> AsyncOpenAI:
    """Get the raw async OpenAI client."""
    global _openai_client

    if _openai_client is None:
        _openai_client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
        )

    return _openai_client


def get_client() -> instructor.AsyncInstructor:
    """
    Get the Instructor-wrapped OpenAI client.

    Uses singleton pattern to reuse connection.
    """
    global _client

    if _client is None:
        _client = instructor.from_openai(get_openai_client())

    return _client


def _build_messages(system_prompt: str | None, user_prompt: str) -> list[dict]:
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})
    return messages


async def generate_text(
    prompt: str,
    *,
    system_prompt: str | None = None,
    node: str = "text",
    complexity: str = "medium",
) -> str:
    """
    Generate free text for a prompt.

    Raises:
        GenerationError: the call failed or returned empty content
    """
    config = get_node_config(node, complexity)
    model = config.pop("model", "gpt-4.1-mini")

    try:
        completion = await get_openai_client().chat.completions.create(
            model=model,
            messages=_build_messages(system_prompt, prompt),
            **config,
        )
    except Exception as e:
        log_prompt(
            node=node,
            model=model,
            system_prompt=system_prompt,
            user_prompt=prompt,
            error=str(e),
            config=config,
        )
        raise GenerationError(f"{node} generation failed: {e}") from e

    text = ""
    if completion.choices:
        text = (completion.choices[0].message.content or "").strip()

    log_prompt(
        node=node,
        model=model,
        system_prompt=system_prompt,
        user_prompt=prompt,
        response=text,
        config=config,
    )

    if not text:
        raise GenerationError(f"{node} generation returned empty content")

    return text


async def call_llm(
    *,
    response_model: type[T],
    system_prompt: str,
    user_prompt: str,
    node: str = "structured",
    complexity: str = "medium",
    max_retries: int = 2,
) -> T:
    """
    Make a structured LLM call with schema validation.

    Args:
        response_model: Pydantic model class for the response
        system_prompt: System message setting context
        user_prompt: User message with the actual request
        node: Generation node name, for config and logging
        complexity: Task complexity for model selection ("low", "medium", "high")
        max_retries: Instructor retries when the response fails validation

    Returns:
        Instance of response_model with validated data

    Raises:
        GenerationError: the call failed or never validated
    """
    config = get_node_config(node, complexity)
    model = config.pop("model", "gpt-4.1-mini")

    try:
        response = await get_client().chat.completions.create(
            model=model,
            messages=_build_messages(system_prompt, user_prompt),
            response_model=response_model,
            max_retries=max_retries,
            **config,
        )
    except Exception as e:
        log_prompt(
            node=node,
            model=model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            error=str(e),
            config=config,
        )
        raise GenerationError(f"{node} structured call failed: {e}") from e

    log_prompt(
        node=node,
        model=model,
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        response=response,
        config=config,
    )
    return response


async def transcribe_audio(path: str | Path) -> str:
    """
    Transcribe a recorded voice answer.

    Raises:
        GenerationError: the file is missing, the call failed, or the transcript is empty
    """
    audio_path = Path(path)
    if not audio_path.exists():
        raise GenerationError(f"Audio file not found: {audio_path}")

    try:
        with audio_path.open("rb") as audio_file:
            result = await get_openai_client().audio.transcriptions.create(
                model=settings.transcription_model,
                file=audio_file,
            )
    except Exception as e:
        logger.error(f"Transcription failed for {audio_path.name}: {e}")
        raise GenerationError(f"Transcription failed: {e}") from e

    text = (getattr(result, "text", "") or "").strip()
    if not text:
        raise GenerationError("Transcription returned empty text")
    return text


class TextGenerationClient:
    """
    Injectable facade over the module-level generation functions.

    Pipeline components take one of these so tests can pass a scripted fake
    with the same three coroutine methods.
    """

    async def generate_text(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        node: str = "text",
        complexity: str = "medium",
    ) -> str:
        return await generate_text(
            prompt, system_prompt=system_prompt, node=node, complexity=complexity
        )

    async def generate_structured(
        self,
        *,
        response_model: type[T],
        system_prompt: str,
        user_prompt: str,
        node: str = "structured",
        complexity: str = "medium",
    ) -> T:
        return await call_llm(
            response_model=response_model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            node=node,
            complexity=complexity,
        )

    async def transcribe_audio(self, path: str | Path) -> str:
        return await transcribe_audio(path)
