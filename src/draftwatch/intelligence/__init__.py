"""LLM-powered reply drafting and todo extraction."""

from .drafter import DraftingError, ReplyDrafter
from .llm import GeminiClient, LLMClient, LLMError, OllamaClient, build_llm_client
from .parsing import extract_json_payload
from .todos import TodoExtractor

__all__ = [
    "DraftingError",
    "GeminiClient",
    "LLMClient",
    "LLMError",
    "OllamaClient",
    "ReplyDrafter",
    "TodoExtractor",
    "build_llm_client",
    "extract_json_payload",
]
