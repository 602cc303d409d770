"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from typing import Protocol

from .models import (
    AccountSetting,
    ClientFilter,
    DeliveryResult,
    Draft,
    ExtractedTodo,
    MessageStatus,
    NormalizedMessage,
    ProcessedMessage,
    PushMessage,
    ReplyContext,
    ReplyDraft,
    TodoCandidate,
)


class MailboxError(RuntimeError):
    """Raised when a mailbox provider cannot be reached or read."""


class UnsupportedProviderError(MailboxError):
    """Raised when no mailbox client is registered for an account's provider."""


class DuplicateMessageError(RuntimeError):
    """Raised when a provider message id is already in a user's ledger."""


class MailboxClient(Protocol):
    """Capability shared by every mailbox provider."""

    def list_candidate_messages(
        self, account: AccountSetting
    ) -> list[NormalizedMessage]:
        """Return a bounded page of unread messages for ``account``."""
        raise NotImplementedError


class MonitorRepository(Protocol):
    """Abstraction over the shared document store."""

    def list_active_accounts(
        self, user_id: str | None = None
    ) -> list[AccountSetting]:
        """Return active account settings, optionally for one user."""
        raise NotImplementedError

    def mark_account_checked(self, account_id: str, checked_at: datetime) -> None:
        """Record a successful check time for an account."""
        raise NotImplementedError

    def list_active_client_filters(self, user_id: str) -> list[ClientFilter]:
        """Return the user's active client filters."""
        raise NotImplementedError

    def is_message_processed(self, user_id: str, provider_message_id: str) -> bool:
        """Return ``True`` when the message is already in the ledger."""
        raise NotImplementedError

    def create_processed_message(
        self,
        *,
        user_id: str,
        project_id: str | None,
        message: NormalizedMessage,
        processed_at: datetime,
    ) -> ProcessedMessage:
        """Insert a ledger record in ``pending`` state."""
        raise NotImplementedError

    def update_message_status(
        self,
        message_id: str,
        status: MessageStatus,
        *,
        error_message: str | None = None,
    ) -> None:
        """Transition a ledger record to ``status``."""
        raise NotImplementedError

    def list_processing_status(
        self, user_id: str, *, limit: int, recent_since: datetime
    ) -> list[ProcessedMessage]:
        """Return in-flight records plus terminal records newer than a cutoff."""
        raise NotImplementedError

    def list_recent_processed_messages(
        self, user_id: str, limit: int
    ) -> list[ProcessedMessage]:
        """Return the user's newest ledger records."""
        raise NotImplementedError

    def count_processed_messages(self, user_id: str) -> int:
        """Return the number of ledger records for a user."""
        raise NotImplementedError

    def create_draft(
        self,
        *,
        processed_message_id: str,
        project_id: str | None,
        reply: ReplyDraft,
        created_at: datetime,
    ) -> Draft:
        """Persist a draft for a processed message."""
        raise NotImplementedError

    def list_recent_drafts(
        self, user_id: str, limit: int, *, status: str | None = "draft"
    ) -> list[Draft]:
        """Return drafts belonging to the user's processed messages."""
        raise NotImplementedError

    def create_todo(
        self,
        *,
        user_id: str,
        project_id: str | None,
        processed_message_id: str | None,
        task: str,
        due_date: date | None,
        confidence: float,
        created_at: datetime,
    ) -> ExtractedTodo:
        """Persist one extracted action item."""
        raise NotImplementedError

    def list_device_tokens(self, user_id: str) -> list[str]:
        """Return every registered delivery target for a user."""
        raise NotImplementedError

    def remove_device_tokens(self, user_id: str, tokens: Sequence[str]) -> int:
        """Prune delivery targets; return the number removed."""
        raise NotImplementedError


class ReplyGenerator(Protocol):
    """Generates a structured reply draft for a message body."""

    def generate_reply(self, body: str, context: ReplyContext) -> ReplyDraft:
        """Return a reply for ``body``; raise on unrecoverable failure."""
        raise NotImplementedError


class TodoExtraction(Protocol):
    """Best-effort action item extraction."""

    def extract(self, body: str, *, today: date | None = None) -> list[TodoCandidate]:
        """Return zero or more todos; never raises."""
        raise NotImplementedError


class PushGateway(Protocol):
    """Delivery transport for device notifications."""

    def send(
        self, tokens: Sequence[str], message: PushMessage
    ) -> list[DeliveryResult]:
        """Attempt delivery to each token and report per-token outcomes."""
        raise NotImplementedError


class Notifier(Protocol):
    """Fire-and-forget signals to the owning user."""

    def notify_draft_created(
        self, user_id: str, message: ProcessedMessage, draft: Draft
    ) -> None:
        """Signal that a new reply draft exists."""
        raise NotImplementedError

    def notify_todos_extracted(
        self, user_id: str, message: ProcessedMessage, todos: Sequence[ExtractedTodo]
    ) -> None:
        """Signal that new todos exist."""
        raise NotImplementedError


__all__ = [
    "DuplicateMessageError",
    "MailboxClient",
    "MailboxError",
    "MonitorRepository",
    "Notifier",
    "PushGateway",
    "ReplyGenerator",
    "TodoExtraction",
    "UnsupportedProviderError",
]
