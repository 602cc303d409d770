"""Tests for the reply drafter."""

from __future__ import annotations

import pytest

from draftwatch.core.models import ReplyContext
from draftwatch.intelligence.drafter import DraftingError, ReplyDrafter
from draftwatch.intelligence.llm import LLMError


class StubLLM:
    """LLM stub returning a predetermined response."""

    def __init__(self, response: str) -> None:
        self.response = response
        self.provider_id = "stub-llm"
        self.last_prompt: str | None = None

    def generate(self, prompt: str, *, temperature: float | None = None) -> str:
        del temperature
        self.last_prompt = prompt
        return self.response


class FailingLLM:
    """LLM stub that always raises an error."""

    provider_id = "failing-llm"

    def generate(self, prompt: str, *, temperature: float | None = None) -> str:
        del prompt, temperature
        raise LLMError("failure")


def _context() -> ReplyContext:
    return ReplyContext(
        tone="friendly",
        template="default",
        signature="Sam Studio",
        client_name="Alice",
    )


def test_generate_reply_parses_fenced_json() -> None:
    llm = StubLLM(
        "```json\n"
        '{"subject": "Re: Logo", "body": "Great to hear!", "closing": "Cheers,",'
        ' "signature": "Sam", "trigger": "client_approved"}\n'
        "```"
    )

    reply = ReplyDrafter(llm).generate_reply("Looks good, go ahead.", _context())

    assert reply.subject == "Re: Logo"
    assert reply.body == "Great to hear!"
    assert reply.closing == "Cheers,"
    assert reply.signature == "Sam"
    assert reply.trigger == "client_approved"
    assert reply.parsed
    assert llm.last_prompt is not None
    assert "friendly" in llm.last_prompt
    assert "Looks good, go ahead." in llm.last_prompt


def test_generate_reply_accepts_reply_text_and_defaults_signature() -> None:
    llm = StubLLM('{"replyText": "Thanks for the notes.", "trigger": "something else"}')

    reply = ReplyDrafter(llm).generate_reply("Some feedback", _context())

    assert reply.body == "Thanks for the notes."
    assert reply.signature == "Sam Studio"
    assert reply.trigger is None


def test_unparseable_output_becomes_raw_text_draft() -> None:
    llm = StubLLM("Hi Alice, thanks for the update!")

    reply = ReplyDrafter(llm).generate_reply("Update", _context())

    assert not reply.parsed
    assert reply.body == "Hi Alice, thanks for the update!"
    assert reply.subject == ""
    assert reply.signature == "Sam Studio"


def test_missing_body_field_becomes_raw_text_draft() -> None:
    llm = StubLLM('{"subject": "Re: Hi"}')

    reply = ReplyDrafter(llm).generate_reply("Hi", _context())

    assert not reply.parsed
    assert reply.body == '{"subject": "Re: Hi"}'


def test_llm_failure_raises_drafting_error() -> None:
    with pytest.raises(DraftingError):
        ReplyDrafter(FailingLLM()).generate_reply("Hi", _context())


def test_empty_output_raises_drafting_error() -> None:
    with pytest.raises(DraftingError):
        ReplyDrafter(StubLLM("   ")).generate_reply("Hi", _context())


def test_deeply_nested_output_becomes_raw_text_draft() -> None:
    nested = "[" * 100000 + "]" * 100000

    reply = ReplyDrafter(StubLLM(nested)).generate_reply("Hi", _context())

    assert not reply.parsed
    assert reply.body == nested
