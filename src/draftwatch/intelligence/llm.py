"""LLM client abstractions used by intelligence features."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol
from urllib.parse import urljoin

import httpx

from draftwatch.core.config import LlmSettings

LOGGER = logging.getLogger(__name__)


class LLMError(RuntimeError):
    """Raised when the LLM provider fails to respond as expected."""


class LLMClient(Protocol):
    """Protocol describing the minimal LLM client behaviour."""

    @property
    def provider_id(self) -> str:
        """Identifier describing the backing model/provider."""
        raise NotImplementedError

    def generate(self, prompt: str, *, temperature: float | None = None) -> str:
        """Return the raw text completion for ``prompt``."""
        raise NotImplementedError


def _post_with_attempts(
    endpoint: str,
    payload: dict[str, object],
    *,
    settings: LlmSettings,
    headers: dict[str, str] | None = None,
    params: dict[str, str] | None = None,
) -> dict[str, Any]:
    """POST ``payload`` with a bounded number of attempts."""
    last_error: Exception | None = None
    for attempt in range(1, settings.max_attempts + 1):
        try:
            response = httpx.post(
                endpoint,
                json=payload,
                headers=headers,
                params=params,
                timeout=settings.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:  # pragma: no cover - network dependent
            last_error = exc
            LOGGER.debug("LLM request attempt %s failed: %s", attempt, exc)
        except json.JSONDecodeError as exc:
            raise LLMError("LLM returned invalid JSON") from exc
        else:
            if not isinstance(data, dict):
                raise LLMError("LLM response was not a JSON object")
            return data

        if attempt < settings.max_attempts:
            time.sleep(min(2**attempt, 8))

    raise LLMError("LLM request failed") from last_error


@dataclass(slots=True)
class OllamaClient:
    """Thin synchronous client for the Ollama HTTP API."""

    settings: LlmSettings

    def generate(self, prompt: str, *, temperature: float | None = None) -> str:
        """Send a completion request to the Ollama server."""
        endpoint = _resolve_endpoint(self.settings.base_url, "api/generate")
        options: dict[str, object] = {
            "temperature": (
                self.settings.temperature if temperature is None else temperature
            ),
        }
        if self.settings.max_output_tokens is not None:
            options["num_predict"] = self.settings.max_output_tokens
        payload: dict[str, object] = {
            "model": self.settings.model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }
        data = _post_with_attempts(endpoint, payload, settings=self.settings)

        result = data.get("response")
        if not isinstance(result, str):
            raise LLMError("LLM response missing 'response' field")
        return result

    @property
    def provider_id(self) -> str:
        """Return a human readable identifier for the configured model."""
        return f"ollama:{self.settings.model}"


@dataclass(slots=True)
class GeminiClient:
    """Synchronous client for the Gemini ``generateContent`` endpoint."""

    settings: LlmSettings

    def generate(self, prompt: str, *, temperature: float | None = None) -> str:
        """Request a single-shot completion and return the first candidate text."""
        if not self.settings.api_key:
            raise LLMError("Gemini API key is not configured")
        endpoint = _resolve_endpoint(
            self.settings.base_url,
            f"v1beta/models/{self.settings.model}:generateContent",
        )
        generation_config: dict[str, object] = {
            "temperature": (
                self.settings.temperature if temperature is None else temperature
            ),
        }
        if self.settings.max_output_tokens is not None:
            generation_config["maxOutputTokens"] = self.settings.max_output_tokens
        payload: dict[str, object] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        data = _post_with_attempts(
            endpoint,
            payload,
            settings=self.settings,
            params={"key": self.settings.api_key},
        )

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            LOGGER.error("Gemini API returned no candidate text: %s", data)
            raise LLMError("Gemini response missing candidate text") from exc
        if not isinstance(text, str):
            raise LLMError("Gemini candidate text was not a string")
        return text

    @property
    def provider_id(self) -> str:
        """Return a human readable identifier for the configured model."""
        return f"gemini:{self.settings.model}"


def build_llm_client(settings: LlmSettings) -> LLMClient:
    """Return the client for the configured provider."""
    if settings.provider == "ollama":
        return OllamaClient(settings)
    return GeminiClient(settings)


def _resolve_endpoint(base_url: str, path: str) -> str:
    trimmed = base_url.rstrip("/") + "/"
    return urljoin(trimmed, path)


__all__ = ["GeminiClient", "LLMClient", "LLMError", "OllamaClient", "build_llm_client"]
