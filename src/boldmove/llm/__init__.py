"""
BoldMove - LLM Client.

Free text, structured output (Instructor) and audio transcription.
"""

from boldmove.llm.client import (
    TextGenerationClient,
    call_llm,
    generate_text,
    get_client,
    transcribe_audio,
)
from boldmove.llm.model_router import get_model

__all__ = [
    "TextGenerationClient",
    "get_client",
    "call_llm",
    "generate_text",
    "transcribe_audio",
    "get_model",
]
