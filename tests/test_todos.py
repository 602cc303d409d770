"""Tests for todo extraction."""

from __future__ import annotations

from datetime import date

from draftwatch.intelligence.llm import LLMError
from draftwatch.intelligence.todos import TodoExtractor


class StubLLM:
    """LLM stub recording prompts and returning a fixed response."""

    provider_id = "stub-llm"

    def __init__(self, response: str) -> None:
        self.response = response
        self.prompts: list[str] = []
        self.temperatures: list[float | None] = []

    def generate(self, prompt: str, *, temperature: float | None = None) -> str:
        self.prompts.append(prompt)
        self.temperatures.append(temperature)
        return self.response


class FailingLLM:
    provider_id = "failing-llm"

    def generate(self, prompt: str, *, temperature: float | None = None) -> str:
        del prompt, temperature
        raise LLMError("down")


def test_extracts_todos_with_due_dates() -> None:
    llm = StubLLM(
        '```json\n[{"task": "Send invoice", "dueDate": "2025-10-24", "confidence": 0.9}]\n```'
    )

    todos = TodoExtractor(llm).extract(
        "Please send the invoice by Friday.", today=date(2025, 10, 21)
    )

    assert len(todos) == 1
    assert todos[0].task == "Send invoice"
    assert todos[0].due_date == date(2025, 10, 24)
    assert todos[0].confidence == 0.9
    assert "Tuesday 2025-10-21" in llm.prompts[0]
    assert llm.temperatures == [0.2]


def test_empty_body_skips_the_model() -> None:
    llm = StubLLM("[]")

    assert TodoExtractor(llm).extract("   ") == []
    assert llm.prompts == []


def test_accepts_object_wrapper_and_normalizes_fields() -> None:
    long_task = "x" * 200
    llm = StubLLM(
        '{"todos": ['
        f'{{"task": "{long_task}", "dueDate": "next week", "confidence": 3}},'
        '{"task": "Call back", "due_date": null, "confidence": "n/a"},'
        '{"task": "", "confidence": 0.5},'
        '"not an object"'
        "]}"
    )

    todos = TodoExtractor(llm).extract("Body", today=date(2025, 10, 21))

    assert [len(todo.task) for todo in todos] == [120, 9]
    assert todos[0].due_date is None
    assert todos[0].confidence == 1.0
    assert todos[1].confidence == 0.5


def test_malformed_output_yields_no_todos() -> None:
    assert TodoExtractor(StubLLM("I could not find any tasks.")).extract("Body") == []
    assert TodoExtractor(StubLLM('{"items": []}')).extract("Body") == []


def test_llm_failure_yields_no_todos() -> None:
    assert TodoExtractor(FailingLLM()).extract("Body") == []


def test_deeply_nested_output_yields_no_todos() -> None:
    llm = StubLLM("[" * 100000 + "]" * 100000)

    assert TodoExtractor(llm).extract("Body", today=date(2025, 10, 21)) == []
