"""Best-effort action item extraction."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from draftwatch.core.datetime_utils import parse_date, utc_now
from draftwatch.core.interfaces import TodoExtraction
from draftwatch.core.models import TodoCandidate

from .llm import LLMClient, LLMError
from .parsing import extract_json_payload
from .prompts import build_todo_prompt

LOGGER = logging.getLogger(__name__)

MAX_TASK_LENGTH = 120
EXTRACTION_TEMPERATURE = 0.2


class TodoItemPayload(BaseModel):
    """One action item as returned by the model."""

    task: str = Field(min_length=1)
    due_date: date | None = Field(
        default=None, validation_alias=AliasChoices("dueDate", "due_date")
    )
    confidence: float = 0.5

    @field_validator("task", mode="before")
    @classmethod
    def _trim_task(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()[:MAX_TASK_LENGTH].rstrip()
        return value

    @field_validator("due_date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> date | None:
        if isinstance(value, date):
            return value
        return parse_date(value) if isinstance(value, str) else None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.5
        return max(0.0, min(1.0, number))


class TodoExtractor(TodoExtraction):
    """Mine action items from message bodies; failures yield no todos."""

    def __init__(self, llm_client: LLMClient) -> None:
        self._llm_client = llm_client

    def extract(self, body: str, *, today: date | None = None) -> list[TodoCandidate]:
        """Return zero or more todos for ``body``; never raises."""
        if not body or not body.strip():
            return []

        reference = today or utc_now().date()
        prompt = build_todo_prompt(body, today=reference)
        try:
            raw_output = self._llm_client.generate(
                prompt, temperature=EXTRACTION_TEMPERATURE
            )
            items = _coerce_items(extract_json_payload(raw_output))
        except (LLMError, ValueError) as exc:
            LOGGER.warning("Todo extraction failed: %s", exc)
            return []

        todos: list[TodoCandidate] = []
        for item in items:
            try:
                parsed = TodoItemPayload.model_validate(item)
            except ValidationError as exc:
                LOGGER.debug("Discarding malformed todo %r: %s", item, exc)
                continue
            todos.append(
                TodoCandidate(
                    task=parsed.task,
                    due_date=parsed.due_date,
                    confidence=parsed.confidence,
                )
            )
        return todos


def _coerce_items(payload: Any) -> list[Any]:
    if isinstance(payload, dict):
        payload = payload.get("todos")
    if not isinstance(payload, list):
        raise ValueError("Todo output was not a JSON array")
    return payload


__all__ = ["MAX_TASK_LENGTH", "TodoExtractor", "TodoItemPayload"]
