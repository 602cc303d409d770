"""Per-message processing: ledger intake, drafting, todos and notifications."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from ..core.config import DraftingSettings
from ..core.datetime_utils import utc_now
from ..core.interfaces import (
    DuplicateMessageError,
    MonitorRepository,
    Notifier,
    ReplyGenerator,
    TodoExtraction,
)
from ..core.models import (
    Draft,
    ExtractedTodo,
    MessageStatus,
    NormalizedMessage,
    ProcessedMessage,
    ReplyContext,
)
from .directory import ClientMatch

LOGGER = logging.getLogger(__name__)


class MessageProcessor:
    """Drive one classified message through the processing states.

    ``pending -> ai_processing -> draft_created`` on success, or ``error``
    when drafting or the draft write fails. Errored messages stay in the
    ledger and are never retried automatically.
    """

    def __init__(
        self,
        repository: MonitorRepository,
        drafter: ReplyGenerator,
        todo_extractor: TodoExtraction,
        notifier: Notifier,
        drafting_settings: DraftingSettings | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        # pylint: disable=too-many-arguments
        self._repository = repository
        self._drafter = drafter
        self._todo_extractor = todo_extractor
        self._notifier = notifier
        self._drafting = drafting_settings or DraftingSettings()
        self._clock = clock

    def process(
        self, user_id: str, message: NormalizedMessage, match: ClientMatch
    ) -> ProcessedMessage | None:
        """Process ``message``; return ``None`` when it is already ledgered."""
        if self._repository.is_message_processed(user_id, message.provider_message_id):
            LOGGER.debug(
                "Skipping already processed message %s for user %s",
                message.provider_message_id,
                user_id,
            )
            return None
        try:
            record = self._repository.create_processed_message(
                user_id=user_id,
                project_id=match.project_id,
                message=message,
                processed_at=self._clock(),
            )
        except DuplicateMessageError:
            LOGGER.debug(
                "Message %s was ledgered concurrently; skipping",
                message.provider_message_id,
            )
            return None

        self._transition(record, MessageStatus.AI_PROCESSING)

        try:
            draft = self._create_draft(record, message, match)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error(
                "Draft generation failed for message %s: %s",
                message.provider_message_id,
                exc,
            )
            self._transition(record, MessageStatus.ERROR, error_message=str(exc) or repr(exc))
            return record

        try:
            todos = self._extract_todos(user_id, record, message)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.warning(
                "Todo extraction failed for message %s: %s",
                message.provider_message_id,
                exc,
                exc_info=True,
            )
            todos = []

        self._transition(record, MessageStatus.DRAFT_CREATED)
        LOGGER.info(
            "Created draft %s for message %s (%s todo(s))",
            draft.id,
            message.provider_message_id,
            len(todos),
        )

        self._notify(self._notifier.notify_draft_created, user_id, record, draft)
        if todos:
            self._notify(self._notifier.notify_todos_extracted, user_id, record, todos)
        return record

    def reply_context(self, match: ClientMatch) -> ReplyContext:
        """Return the reply context for a client, using configured defaults."""
        return ReplyContext(
            tone=self._drafting.tone,
            template=self._drafting.template,
            signature=self._drafting.signature,
            client_name=match.display_name or self._drafting.client_name,
        )

    def _create_draft(
        self, record: ProcessedMessage, message: NormalizedMessage, match: ClientMatch
    ) -> Draft:
        reply = self._drafter.generate_reply(message.body, self.reply_context(match))
        if not reply.subject:
            reply.subject = _reply_subject(message.subject)
        return self._repository.create_draft(
            processed_message_id=record.id,
            project_id=record.project_id,
            reply=reply,
            created_at=self._clock(),
        )

    def _extract_todos(
        self, user_id: str, record: ProcessedMessage, message: NormalizedMessage
    ) -> list[ExtractedTodo]:
        candidates = self._todo_extractor.extract(
            message.body, today=message.received_at.date()
        )
        saved: list[ExtractedTodo] = []
        for candidate in candidates:
            try:
                saved.append(
                    self._repository.create_todo(
                        user_id=user_id,
                        project_id=record.project_id,
                        processed_message_id=record.id,
                        task=candidate.task,
                        due_date=candidate.due_date,
                        confidence=candidate.confidence,
                        created_at=self._clock(),
                    )
                )
            except Exception as exc:  # pylint: disable=broad-exception-caught
                LOGGER.warning(
                    "Failed to persist todo for message %s: %s", record.id, exc
                )
        return saved

    def _notify(
        self,
        send: Callable[[str, ProcessedMessage, Any], None],
        user_id: str,
        record: ProcessedMessage,
        payload: Any,
    ) -> None:
        try:
            send(user_id, record, payload)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("Notification failed for message %s: %s", record.id, exc)

    def _transition(
        self,
        record: ProcessedMessage,
        status: MessageStatus,
        *,
        error_message: str | None = None,
    ) -> None:
        self._repository.update_message_status(
            record.id, status, error_message=error_message
        )
        record.status = status
        record.error_message = error_message if status is MessageStatus.ERROR else None


def _reply_subject(subject: str) -> str:
    stripped = subject.strip()
    if not stripped:
        return "Re: your message"
    if stripped.lower().startswith("re:"):
        return stripped
    return f"Re: {stripped}"


__all__ = ["MessageProcessor"]
