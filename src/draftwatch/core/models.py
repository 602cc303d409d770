"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum


class Provider(StrEnum):
    """Mailbox provider backing an account setting."""

    GMAIL = "gmail"
    IMAP = "imap"


class MessageStatus(StrEnum):
    """Lifecycle of a processed inbound message."""

    PENDING = "pending"
    AI_PROCESSING = "ai_processing"
    DRAFT_CREATED = "draft_created"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` for states that are never left automatically."""
        return self in (MessageStatus.DRAFT_CREATED, MessageStatus.ERROR)


class DraftStatus(StrEnum):
    """Approval state of a generated draft; mutated by external flows."""

    DRAFT = "draft"
    APPROVED = "approved"
    DECLINED = "declined"
    SENT = "sent"


@dataclass(slots=True)
class ImapCredentials:
    """Connection details for an IMAP account; the password is encrypted."""

    host: str
    port: int
    secure: bool
    username: str
    password_enc: str


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class AccountSetting:
    """One configured mailbox connection for a user."""

    id: str
    user_id: str
    provider: Provider
    email: str
    is_active: bool
    check_interval: int
    last_checked: datetime | None
    gmail_token: str | None = None
    imap: ImapCredentials | None = None


@dataclass(slots=True)
class ClientFilter:
    """Address a user monitors, optionally bound to a project."""

    id: str
    user_id: str
    email_address: str
    project_id: str | None
    is_active: bool
    created_at: datetime


@dataclass(slots=True)
class NormalizedMessage:
    """Provider-agnostic view of a fetched message."""

    provider_message_id: str
    sender: str
    subject: str
    body: str
    received_at: datetime


@dataclass(slots=True)
class ProcessedMessage:
    """Ledger and audit record for a classified inbound message."""

    id: str
    user_id: str
    project_id: str | None
    provider_message_id: str
    sender: str
    subject: str
    body: str
    received_at: datetime
    processed_at: datetime
    status: MessageStatus
    error_message: str | None = None


@dataclass(slots=True)
class Draft:
    """AI-generated candidate reply awaiting human approval."""

    id: str
    processed_message_id: str
    project_id: str | None
    subject: str
    body: str
    closing: str
    signature: str
    status: DraftStatus
    created_at: datetime
    trigger: str | None = None
    approved_at: datetime | None = None
    declined_at: datetime | None = None
    sent_at: datetime | None = None


@dataclass(slots=True)
class ExtractedTodo:
    """Action item mined from an inbound message body."""

    id: str
    user_id: str
    project_id: str | None
    processed_message_id: str | None
    task: str
    due_date: date | None
    confidence: float
    created_at: datetime
    source: str = "email"


@dataclass(slots=True)
class ReplyContext:
    """Optional context shaping a generated reply."""

    tone: str
    template: str
    signature: str
    client_name: str


@dataclass(slots=True)
class ReplyDraft:
    """Structured reply returned by the drafter before persistence."""

    subject: str
    body: str
    closing: str
    signature: str
    trigger: str | None = None
    parsed: bool = True


@dataclass(slots=True)
class TodoCandidate:
    """Action item returned by the extractor before persistence."""

    task: str
    due_date: date | None
    confidence: float


@dataclass(slots=True)
class PushMessage:
    """Notification payload delivered to every registered device."""

    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)
    silent: bool = False


@dataclass(slots=True)
class DeliveryResult:
    """Per-token outcome reported by a push gateway."""

    token: str
    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None


@dataclass(slots=True)
class AccountCheckReport:
    """Outcome of checking a single account."""

    account_id: str
    user_id: str
    provider: Provider
    fetched: int = 0
    matched: int = 0
    duplicates: int = 0
    processed: int = 0
    drafts_created: int = 0
    errors: int = 0
    skipped_busy: bool = False
    error: str | None = None


@dataclass(slots=True)
class TickReport:
    """Outcome summary for one scheduler tick."""

    started_at: datetime
    accounts_active: int = 0
    accounts_due: int = 0
    accounts_checked: int = 0
    accounts_failed: int = 0
    reports: list[AccountCheckReport] = field(default_factory=list)


@dataclass(slots=True)
class MonitorSummary:
    """Snapshot of a user's monitoring configuration and recent output."""

    user_id: str
    accounts: list[AccountSetting]
    client_filters: list[ClientFilter]
    recent_messages: list[ProcessedMessage]
    open_drafts: list[Draft]
    total_processed: int


__all__ = [
    "AccountCheckReport",
    "AccountSetting",
    "ClientFilter",
    "DeliveryResult",
    "Draft",
    "DraftStatus",
    "ExtractedTodo",
    "ImapCredentials",
    "MessageStatus",
    "MonitorSummary",
    "NormalizedMessage",
    "ProcessedMessage",
    "Provider",
    "PushMessage",
    "ReplyContext",
    "ReplyDraft",
    "TickReport",
    "TodoCandidate",
]
