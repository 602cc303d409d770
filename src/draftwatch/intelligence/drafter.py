"""Reply drafting backed by the configured LLM."""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from draftwatch.core.interfaces import ReplyGenerator
from draftwatch.core.models import ReplyContext, ReplyDraft

from .llm import LLMClient, LLMError
from .parsing import extract_json_payload
from .prompts import build_reply_prompt

LOGGER = logging.getLogger(__name__)

TRIGGER_TAGS = frozenset({"client_approved", "client_left_feedback"})


class DraftingError(RuntimeError):
    """Raised when no reply can be produced for a message."""


class ReplyPayload(BaseModel):
    """Shape of the JSON object returned by the model."""

    subject: str = ""
    body: str = Field(min_length=1)
    closing: str = ""
    signature: str = ""
    trigger: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _accept_reply_text(cls, data: Any) -> Any:
        # older prompts asked for ``replyText`` instead of ``body``
        if isinstance(data, dict) and not data.get("body") and data.get("replyText"):
            return {**data, "body": data["replyText"]}
        return data


class ReplyDrafter(ReplyGenerator):
    """Generate structured reply drafts using an LLM."""

    def __init__(self, llm_client: LLMClient) -> None:
        self._llm_client = llm_client

    def generate_reply(self, body: str, context: ReplyContext) -> ReplyDraft:
        """Return a reply for ``body``.

        Output that cannot be parsed becomes a raw-text draft. Transport
        failures and empty output raise ``DraftingError``.
        """
        prompt = build_reply_prompt(body, context)
        try:
            raw_output = self._llm_client.generate(prompt)
        except LLMError as exc:
            raise DraftingError(f"Reply generation failed: {exc}") from exc

        if not raw_output or not raw_output.strip():
            raise DraftingError("Reply generation returned no content")

        try:
            payload = ReplyPayload.model_validate(extract_json_payload(raw_output))
        except (ValueError, ValidationError) as exc:
            LOGGER.warning(
                "Unparseable reply from %s, keeping raw text: %s",
                self._llm_client.provider_id,
                exc,
            )
            return ReplyDraft(
                subject="",
                body=raw_output.strip(),
                closing="",
                signature=context.signature,
                parsed=False,
            )

        return ReplyDraft(
            subject=payload.subject.strip(),
            body=payload.body.strip(),
            closing=payload.closing.strip(),
            signature=payload.signature.strip() or context.signature,
            trigger=_normalize_trigger(payload.trigger),
        )


def _normalize_trigger(value: str | None) -> str | None:
    if not value:
        return None
    tag = value.strip().lower().replace(" ", "_")
    return tag if tag in TRIGGER_TAGS else None


__all__ = ["DraftingError", "ReplyDrafter", "ReplyPayload", "TRIGGER_TAGS"]
