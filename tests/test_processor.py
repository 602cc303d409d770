"""Tests for the per-message processing state machine."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timezone
from pathlib import Path

from draftwatch.core.config import DraftingSettings, StorageSettings
from draftwatch.core.models import (
    Draft,
    ExtractedTodo,
    MessageStatus,
    NormalizedMessage,
    ProcessedMessage,
    ReplyContext,
    ReplyDraft,
    TodoCandidate,
)
from draftwatch.ingestion.directory import ClientMatch
from draftwatch.ingestion.processor import MessageProcessor
from draftwatch.intelligence.drafter import DraftingError
from draftwatch.intelligence.todos import TodoExtractor
from draftwatch.storage import SqliteMonitorRepository

NOW = datetime(2025, 10, 21, 9, 0, tzinfo=timezone.utc)


class StubDrafter:
    def __init__(self, reply: ReplyDraft | None = None, error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.contexts: list[ReplyContext] = []

    def generate_reply(self, body: str, context: ReplyContext) -> ReplyDraft:
        self.contexts.append(context)
        if self.error is not None:
            raise self.error
        assert self.reply is not None
        return self.reply


class StubTodos:
    def __init__(self, todos: list[TodoCandidate] | None = None) -> None:
        self.todos = todos or []
        self.calls: list[tuple[str, date | None]] = []

    def extract(self, body: str, *, today: date | None = None) -> list[TodoCandidate]:
        self.calls.append((body, today))
        return list(self.todos)


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    def notify_draft_created(self, user_id: str, message: ProcessedMessage, draft: Draft) -> None:
        self.events.append(("draft", user_id))

    def notify_todos_extracted(
        self, user_id: str, message: ProcessedMessage, todos: Sequence[ExtractedTodo]
    ) -> None:
        self.events.append(("todos", user_id))


class NestedOutputLLM:
    """Model returning JSON nested too deeply to decode."""

    provider_id = "nested-llm"

    def generate(self, prompt: str, *, temperature: float | None = None) -> str:
        return "[" * 100000 + "]" * 100000


class ExplodingTodos:
    def extract(self, body: str, *, today: date | None = None) -> list[TodoCandidate]:
        raise RuntimeError("extractor crashed")


class ExplodingNotifier(RecordingNotifier):
    def notify_draft_created(self, user_id: str, message: ProcessedMessage, draft: Draft) -> None:
        raise RuntimeError("push relay crashed")


def _repository(tmp_path: Path) -> SqliteMonitorRepository:
    return SqliteMonitorRepository(StorageSettings(db_path=tmp_path / "dw.db"))


def _message(provider_message_id: str = "imap:1", subject: str = "Invoice") -> NormalizedMessage:
    return NormalizedMessage(
        provider_message_id=provider_message_id,
        sender='"Alice" <client@x.com>',
        subject=subject,
        body="Please send the invoice by Friday.",
        received_at=NOW,
    )


def _match(display_name: str | None = "Alice") -> ClientMatch:
    return ClientMatch(address="client@x.com", project_id="P1", display_name=display_name)


def _reply(subject: str = "") -> ReplyDraft:
    return ReplyDraft(subject=subject, body="Sure thing.", closing="Best,", signature="Sam")


def test_successful_message_reaches_draft_created(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    todos = StubTodos([TodoCandidate(task="Send invoice", due_date=date(2025, 10, 24), confidence=0.9)])
    notifier = RecordingNotifier()
    processor = MessageProcessor(
        repository,
        StubDrafter(_reply()),
        todos,
        notifier,
        DraftingSettings(signature="Sam"),
        clock=lambda: NOW,
    )

    record = processor.process("user-1", _message(), _match())

    assert record is not None
    assert record.status is MessageStatus.DRAFT_CREATED
    stored = repository.get_processed_message(record.id)
    assert stored is not None
    assert stored.status is MessageStatus.DRAFT_CREATED
    assert stored.error_message is None
    assert stored.project_id == "P1"
    drafts = repository.list_drafts_for_message(record.id)
    assert len(drafts) == 1
    assert drafts[0].subject == "Re: Invoice"
    assert repository.list_todos("user-1")[0].due_date == date(2025, 10, 24)
    assert todos.calls == [("Please send the invoice by Friday.", NOW.date())]
    assert notifier.events == [("draft", "user-1"), ("todos", "user-1")]
    repository.close()


def test_reply_context_uses_display_name_or_defaults(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    drafter = StubDrafter(_reply("Re: Logo"))
    processor = MessageProcessor(
        repository,
        drafter,
        StubTodos(),
        RecordingNotifier(),
        DraftingSettings(tone="warm", client_name="Client", signature="Sam"),
    )

    processor.process("user-1", _message("imap:1"), _match("Alice"))
    processor.process("user-1", _message("imap:2"), _match(None))

    assert [context.client_name for context in drafter.contexts] == ["Alice", "Client"]
    assert drafter.contexts[0].tone == "warm"
    assert drafter.contexts[0].signature == "Sam"
    repository.close()


def test_drafting_failure_moves_message_to_error(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    todos = StubTodos([TodoCandidate(task="x", due_date=None, confidence=0.5)])
    notifier = RecordingNotifier()
    processor = MessageProcessor(
        repository,
        StubDrafter(error=DraftingError("model unavailable")),
        todos,
        notifier,
    )

    record = processor.process("user-1", _message(), _match())

    assert record is not None
    assert record.status is MessageStatus.ERROR
    stored = repository.get_processed_message(record.id)
    assert stored is not None
    assert stored.status is MessageStatus.ERROR
    assert stored.error_message == "model unavailable"
    assert repository.list_drafts_for_message(record.id) == []
    assert todos.calls == []
    assert notifier.events == []
    repository.close()


def test_malformed_todo_output_still_creates_draft(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    notifier = RecordingNotifier()
    extractor = TodoExtractor(NestedOutputLLM())
    processor = MessageProcessor(repository, StubDrafter(_reply()), extractor, notifier)

    record = processor.process("user-1", _message(), _match())

    assert record is not None
    assert record.status is MessageStatus.DRAFT_CREATED
    stored = repository.get_processed_message(record.id)
    assert stored is not None
    assert stored.status is MessageStatus.DRAFT_CREATED
    assert len(repository.list_drafts_for_message(record.id)) == 1
    assert repository.list_todos("user-1") == []
    assert notifier.events == [("draft", "user-1")]
    repository.close()


def test_duplicate_message_is_skipped(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    drafter = StubDrafter(_reply())
    processor = MessageProcessor(repository, drafter, StubTodos(), RecordingNotifier())

    first = processor.process("user-1", _message(), _match())
    second = processor.process("user-1", _message(), _match())

    assert first is not None
    assert second is None
    assert repository.count_processed_messages("user-1") == 1
    assert len(drafter.contexts) == 1
    repository.close()


def test_crashing_todo_extractor_still_reaches_draft_created(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    notifier = RecordingNotifier()
    processor = MessageProcessor(repository, StubDrafter(_reply()), ExplodingTodos(), notifier)

    record = processor.process("user-1", _message(), _match())

    assert record is not None
    stored = repository.get_processed_message(record.id)
    assert stored is not None
    assert stored.status is MessageStatus.DRAFT_CREATED
    assert len(repository.list_drafts_for_message(record.id)) == 1
    assert notifier.events == [("draft", "user-1")]
    repository.close()


def test_notification_failure_does_not_block_todo_push(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    notifier = ExplodingNotifier()
    todos = StubTodos([TodoCandidate(task="Send invoice", due_date=None, confidence=0.8)])
    processor = MessageProcessor(repository, StubDrafter(_reply()), todos, notifier)

    record = processor.process("user-1", _message(), _match())

    assert record is not None
    stored = repository.get_processed_message(record.id)
    assert stored is not None
    assert stored.status is MessageStatus.DRAFT_CREATED
    assert notifier.events == [("todos", "user-1")]
    repository.close()
