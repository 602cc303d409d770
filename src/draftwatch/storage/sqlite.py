"""SQLite-backed document store for the monitoring pipeline."""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from collections.abc import Sequence
from datetime import date, datetime
from pathlib import Path
from types import TracebackType
from typing import cast

from ..core.config import StorageSettings
from ..core.datetime_utils import (
    parse_date,
    parse_datetime,
    serialize_date,
    serialize_datetime,
    utc_now,
)
from ..core.interfaces import DuplicateMessageError, MonitorRepository
from ..core.models import (
    AccountSetting,
    ClientFilter,
    Draft,
    DraftStatus,
    ExtractedTodo,
    ImapCredentials,
    MessageStatus,
    NormalizedMessage,
    ProcessedMessage,
    Provider,
    ReplyDraft,
)

LOGGER = logging.getLogger(__name__)

_IN_FLIGHT_STATUSES = (MessageStatus.PENDING.value, MessageStatus.AI_PROCESSING.value)


class SqliteMonitorRepository(MonitorRepository):
    """Persist account settings, the processing ledger, drafts, and todos."""

    def __init__(self, settings: StorageSettings) -> None:
        """Initialise the repository and apply migrations."""
        self._settings = settings
        db_path = Path(settings.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(
            db_path,
            detect_types=sqlite3.PARSE_DECLTYPES,
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        # account checks run on worker threads and share this connection
        self._lock = threading.RLock()
        self._enable_foreign_keys()
        self._apply_migrations()
        self._ensure_indexes()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteMonitorRepository:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is closed when exiting context manager."""
        self.close()

    # Account settings ---------------------------------------------------------
    def add_account(
        self,
        *,
        user_id: str,
        provider: Provider,
        email: str,
        check_interval: int = 5,
        gmail_token: str | None = None,
        imap: ImapCredentials | None = None,
        is_active: bool = True,
        last_checked: datetime | None = None,
    ) -> AccountSetting:
        """Insert an account setting; used by onboarding flows and tests."""
        provider = Provider(provider)
        if provider is Provider.GMAIL and not gmail_token:
            raise ValueError("Gmail accounts require a token set")
        if provider is Provider.IMAP and imap is None:
            raise ValueError("IMAP accounts require connection credentials")
        account_id = _new_id()
        LOGGER.debug("Adding %s account %s for user %s", provider, email, user_id)
        with self._lock, self._connection:
            self._connection.execute(
                """
                INSERT INTO account_settings (
                    id,
                    user_id,
                    provider,
                    email,
                    gmail_token,
                    imap_host,
                    imap_port,
                    imap_secure,
                    username,
                    password_enc,
                    is_active,
                    check_interval,
                    last_checked,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    account_id,
                    user_id,
                    provider.value,
                    email,
                    gmail_token,
                    imap.host if imap else None,
                    imap.port if imap else None,
                    (1 if imap.secure else 0) if imap else None,
                    imap.username if imap else None,
                    imap.password_enc if imap else None,
                    1 if is_active else 0,
                    check_interval,
                    serialize_datetime(last_checked),
                    serialize_datetime(utc_now()),
                ),
            )
        return cast(AccountSetting, self.get_account(account_id))

    def get_account(self, account_id: str) -> AccountSetting | None:
        """Return one account setting by id."""
        with self._lock:
            row = self._connection.execute(
                "SELECT * FROM account_settings WHERE id = ?",
                (account_id,),
            ).fetchone()
        return _row_to_account(row) if row is not None else None

    def list_active_accounts(
        self, user_id: str | None = None
    ) -> list[AccountSetting]:
        """Return active account settings, optionally restricted to one user."""
        query = "SELECT * FROM account_settings WHERE is_active = 1"
        params: list[object] = []
        if user_id is not None:
            query += " AND user_id = ?"
            params.append(user_id)
        query += " ORDER BY created_at, rowid"
        with self._lock:
            rows = self._connection.execute(query, params).fetchall()
        return [_row_to_account(row) for row in rows]

    def mark_account_checked(self, account_id: str, checked_at: datetime) -> None:
        """Store the last successful check time for an account."""
        with self._lock, self._connection:
            self._connection.execute(
                "UPDATE account_settings SET last_checked = ? WHERE id = ?",
                (serialize_datetime(checked_at), account_id),
            )

    def set_account_active(self, account_id: str, is_active: bool) -> None:
        """Toggle whether an account is polled."""
        with self._lock, self._connection:
            self._connection.execute(
                "UPDATE account_settings SET is_active = ? WHERE id = ?",
                (1 if is_active else 0, account_id),
            )

    # Client directory ---------------------------------------------------------
    def add_client_filter(
        self,
        *,
        user_id: str,
        email_address: str,
        project_id: str | None = None,
        is_active: bool = True,
    ) -> ClientFilter:
        """Insert a monitored client address."""
        created_at = utc_now()
        client_filter = ClientFilter(
            id=_new_id(),
            user_id=user_id,
            email_address=email_address.strip().lower(),
            project_id=project_id,
            is_active=is_active,
            created_at=created_at,
        )
        with self._lock, self._connection:
            self._connection.execute(
                """
                INSERT INTO client_filters (
                    id, user_id, email_address, project_id, is_active, created_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    client_filter.id,
                    user_id,
                    client_filter.email_address,
                    project_id,
                    1 if is_active else 0,
                    serialize_datetime(created_at),
                ),
            )
        return client_filter

    def list_active_client_filters(self, user_id: str) -> list[ClientFilter]:
        """Return the user's active client filters, oldest first."""
        with self._lock:
            rows = self._connection.execute(
                """
                SELECT id, user_id, email_address, project_id, is_active, created_at
                FROM client_filters
                WHERE user_id = ? AND is_active = 1
                ORDER BY created_at, rowid
                """,
                (user_id,),
            ).fetchall()
        return [
            ClientFilter(
                id=row["id"],
                user_id=row["user_id"],
                email_address=row["email_address"],
                project_id=row["project_id"],
                is_active=bool(row["is_active"]),
                created_at=cast(datetime, parse_datetime(row["created_at"])),
            )
            for row in rows
        ]

    # Processing ledger --------------------------------------------------------
    def is_message_processed(self, user_id: str, provider_message_id: str) -> bool:
        """Return ``True`` if the ledger already holds this message."""
        with self._lock:
            row = self._connection.execute(
                """
                SELECT 1 FROM processed_messages
                WHERE user_id = ? AND provider_message_id = ?
                LIMIT 1
                """,
                (user_id, provider_message_id),
            ).fetchone()
        return row is not None

    def create_processed_message(
        self,
        *,
        user_id: str,
        project_id: str | None,
        message: NormalizedMessage,
        processed_at: datetime,
    ) -> ProcessedMessage:
        """Insert a ``pending`` ledger record.

        The ``(user_id, provider_message_id)`` unique constraint turns a lost
        check-then-create race into :class:`DuplicateMessageError`.
        """
        record = ProcessedMessage(
            id=_new_id(),
            user_id=user_id,
            project_id=project_id,
            provider_message_id=message.provider_message_id,
            sender=message.sender,
            subject=message.subject,
            body=message.body,
            received_at=message.received_at,
            processed_at=processed_at,
            status=MessageStatus.PENDING,
        )
        try:
            with self._lock, self._connection:
                self._connection.execute(
                    """
                    INSERT INTO processed_messages (
                        id,
                        user_id,
                        project_id,
                        provider_message_id,
                        sender,
                        subject,
                        body,
                        received_at,
                        processed_at,
                        status
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        user_id,
                        project_id,
                        record.provider_message_id,
                        record.sender,
                        record.subject,
                        record.body,
                        serialize_datetime(record.received_at),
                        serialize_datetime(processed_at),
                        record.status.value,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateMessageError(
                f"Message {message.provider_message_id} already processed for user {user_id}"
            ) from exc
        return record

    def update_message_status(
        self,
        message_id: str,
        status: MessageStatus,
        *,
        error_message: str | None = None,
    ) -> None:
        """Transition a ledger record; ``error_message`` is kept only for errors."""
        stored_error = error_message if status is MessageStatus.ERROR else None
        LOGGER.debug("Message %s -> %s", message_id, status.value)
        with self._lock, self._connection:
            cur = self._connection.execute(
                """
                UPDATE processed_messages
                SET status = ?, error_message = ?
                WHERE id = ?
                """,
                (status.value, stored_error, message_id),
            )
        if cur.rowcount == 0:
            raise KeyError(f"Processed message {message_id} not found")

    def get_processed_message(self, message_id: str) -> ProcessedMessage | None:
        """Return one ledger record by id."""
        with self._lock:
            row = self._connection.execute(
                "SELECT * FROM processed_messages WHERE id = ?",
                (message_id,),
            ).fetchone()
        return _row_to_processed(row) if row is not None else None

    def list_processing_status(
        self, user_id: str, *, limit: int, recent_since: datetime
    ) -> list[ProcessedMessage]:
        """Return in-flight records and terminal ones processed after ``recent_since``."""
        with self._lock:
            rows = self._connection.execute(
                """
                SELECT * FROM processed_messages
                WHERE user_id = ?
                  AND (status IN (?, ?) OR processed_at >= ?)
                ORDER BY processed_at DESC, rowid DESC
                LIMIT ?
                """,
                (
                    user_id,
                    *_IN_FLIGHT_STATUSES,
                    serialize_datetime(recent_since),
                    limit,
                ),
            ).fetchall()
        return [_row_to_processed(row) for row in rows]

    def list_recent_processed_messages(
        self, user_id: str, limit: int
    ) -> list[ProcessedMessage]:
        """Return the user's newest ledger records regardless of status."""
        with self._lock:
            rows = self._connection.execute(
                """
                SELECT * FROM processed_messages
                WHERE user_id = ?
                ORDER BY processed_at DESC, rowid DESC
                LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()
        return [_row_to_processed(row) for row in rows]

    def count_processed_messages(self, user_id: str) -> int:
        """Return the number of ledger records for a user."""
        with self._lock:
            row = self._connection.execute(
                "SELECT COUNT(*) FROM processed_messages WHERE user_id = ?",
                (user_id,),
            ).fetchone()
        return int(row[0]) if row is not None else 0

    # Drafts -------------------------------------------------------------------
    def create_draft(
        self,
        *,
        processed_message_id: str,
        project_id: str | None,
        reply: ReplyDraft,
        created_at: datetime,
    ) -> Draft:
        """Insert the single draft allowed for a processed message."""
        draft = Draft(
            id=_new_id(),
            processed_message_id=processed_message_id,
            project_id=project_id,
            subject=reply.subject,
            body=reply.body,
            closing=reply.closing,
            signature=reply.signature,
            status=DraftStatus.DRAFT,
            created_at=created_at,
            trigger=reply.trigger,
        )
        LOGGER.debug("Persisting draft for message %s", processed_message_id)
        try:
            with self._lock, self._connection:
                self._connection.execute(
                    """
                    INSERT INTO drafts (
                        id,
                        processed_message_id,
                        project_id,
                        subject,
                        body,
                        closing,
                        signature,
                        trigger_tag,
                        status,
                        created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        draft.id,
                        processed_message_id,
                        project_id,
                        draft.subject,
                        draft.body,
                        draft.closing,
                        draft.signature,
                        draft.trigger,
                        draft.status.value,
                        serialize_datetime(created_at),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise ValueError(
                f"Draft for message {processed_message_id} could not be stored: {exc}"
            ) from exc
        return draft

    def list_drafts_for_message(self, processed_message_id: str) -> list[Draft]:
        """Return drafts attached to a processed message."""
        with self._lock:
            rows = self._connection.execute(
                "SELECT * FROM drafts WHERE processed_message_id = ?",
                (processed_message_id,),
            ).fetchall()
        return [_row_to_draft(row) for row in rows]

    def list_recent_drafts(
        self, user_id: str, limit: int, *, status: str | None = "draft"
    ) -> list[Draft]:
        """Return the user's drafts, newest first, optionally filtered by status."""
        query = [
            """
            SELECT d.* FROM drafts d
            INNER JOIN processed_messages m ON m.id = d.processed_message_id
            WHERE m.user_id = ?
            """
        ]
        params: list[object] = [user_id]
        if status is not None:
            query.append(" AND d.status = ?")
            params.append(status)
        query.append(" ORDER BY d.created_at DESC, d.rowid DESC LIMIT ?")
        params.append(limit)
        with self._lock:
            rows = self._connection.execute("".join(query), params).fetchall()
        return [_row_to_draft(row) for row in rows]

    # Todos --------------------------------------------------------------------
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
        """Insert one extracted action item."""
        todo = ExtractedTodo(
            id=_new_id(),
            user_id=user_id,
            project_id=project_id,
            processed_message_id=processed_message_id,
            task=task,
            due_date=due_date,
            confidence=confidence,
            created_at=created_at,
        )
        with self._lock, self._connection:
            self._connection.execute(
                """
                INSERT INTO todos (
                    id,
                    user_id,
                    project_id,
                    processed_message_id,
                    task,
                    due_date,
                    source,
                    confidence,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    todo.id,
                    user_id,
                    project_id,
                    processed_message_id,
                    task,
                    serialize_date(due_date),
                    todo.source,
                    confidence,
                    serialize_datetime(created_at),
                ),
            )
        return todo

    def list_todos(self, user_id: str) -> list[ExtractedTodo]:
        """Return a user's todos, newest first."""
        with self._lock:
            rows = self._connection.execute(
                """
                SELECT * FROM todos
                WHERE user_id = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (user_id,),
            ).fetchall()
        return [
            ExtractedTodo(
                id=row["id"],
                user_id=row["user_id"],
                project_id=row["project_id"],
                processed_message_id=row["processed_message_id"],
                task=row["task"],
                due_date=parse_date(row["due_date"]),
                confidence=float(row["confidence"]),
                created_at=cast(datetime, parse_datetime(row["created_at"])),
                source=row["source"],
            )
            for row in rows
        ]

    # Device tokens ------------------------------------------------------------
    def register_device_token(self, user_id: str, token: str) -> None:
        """Add or refresh a delivery target for a user."""
        now = serialize_datetime(utc_now())
        with self._lock, self._connection:
            self._connection.execute(
                """
                INSERT INTO device_tokens (user_id, token, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id, token) DO UPDATE SET
                    updated_at=excluded.updated_at
                """,
                (user_id, token, now, now),
            )

    def list_device_tokens(self, user_id: str) -> list[str]:
        """Return every delivery target registered for a user."""
        with self._lock:
            rows = self._connection.execute(
                "SELECT token FROM device_tokens WHERE user_id = ? ORDER BY created_at, rowid",
                (user_id,),
            ).fetchall()
        return [row["token"] for row in rows]

    def remove_device_tokens(self, user_id: str, tokens: Sequence[str]) -> int:
        """Delete the supplied delivery targets and return how many were removed."""
        if not tokens:
            return 0
        with self._lock, self._connection:
            cur = self._connection.executemany(
                "DELETE FROM device_tokens WHERE user_id = ? AND token = ?",
                [(user_id, token) for token in tokens],
            )
        return cur.rowcount

    # Lifecycle ----------------------------------------------------------------
    def close(self) -> None:
        """Close the underlying SQLite connection."""
        with self._lock:
            self._connection.close()

    def _enable_foreign_keys(self) -> None:
        self._connection.execute("PRAGMA foreign_keys = ON")

    def _apply_migrations(self) -> None:
        schema_dir = Path(__file__).resolve().parent / "schema"
        migrations = sorted(schema_dir.glob("*.sql"))
        for migration in migrations:
            LOGGER.debug("Applying migration %s", migration.name)
            script = migration.read_text(encoding="utf-8")
            with self._connection:
                self._connection.executescript(script)

    def _ensure_indexes(self) -> None:
        """Create supporting indexes for the hot query paths."""
        index_statements = (
            "CREATE INDEX IF NOT EXISTS idx_accounts_active_user ON account_settings(is_active, user_id)",
            "CREATE INDEX IF NOT EXISTS idx_filters_user_active ON client_filters(user_id, is_active)",
            "CREATE INDEX IF NOT EXISTS idx_processed_user_status ON processed_messages(user_id, status, processed_at DESC)",
            "CREATE INDEX IF NOT EXISTS idx_todos_user_created ON todos(user_id, created_at DESC)",
        )
        with self._connection:
            for statement in index_statements:
                self._connection.execute(statement)


def _new_id() -> str:
    return uuid.uuid4().hex


def _row_to_account(row: sqlite3.Row) -> AccountSetting:
    imap: ImapCredentials | None = None
    if row["imap_host"]:
        imap = ImapCredentials(
            host=row["imap_host"],
            port=row["imap_port"] or 993,
            secure=row["imap_secure"] is None or bool(row["imap_secure"]),
            username=row["username"] or "",
            password_enc=row["password_enc"] or "",
        )
    return AccountSetting(
        id=row["id"],
        user_id=row["user_id"],
        provider=Provider(row["provider"]),
        email=row["email"],
        is_active=bool(row["is_active"]),
        check_interval=int(row["check_interval"]),
        last_checked=parse_datetime(row["last_checked"]),
        gmail_token=row["gmail_token"],
        imap=imap,
    )


def _row_to_processed(row: sqlite3.Row) -> ProcessedMessage:
    return ProcessedMessage(
        id=row["id"],
        user_id=row["user_id"],
        project_id=row["project_id"],
        provider_message_id=row["provider_message_id"],
        sender=row["sender"],
        subject=row["subject"],
        body=row["body"],
        received_at=cast(datetime, parse_datetime(row["received_at"])),
        processed_at=cast(datetime, parse_datetime(row["processed_at"])),
        status=MessageStatus(row["status"]),
        error_message=row["error_message"],
    )


def _row_to_draft(row: sqlite3.Row) -> Draft:
    return Draft(
        id=row["id"],
        processed_message_id=row["processed_message_id"],
        project_id=row["project_id"],
        subject=row["subject"],
        body=row["body"],
        closing=row["closing"],
        signature=row["signature"],
        status=DraftStatus(row["status"]),
        created_at=cast(datetime, parse_datetime(row["created_at"])),
        trigger=row["trigger_tag"],
        approved_at=parse_datetime(row["approved_at"]),
        declined_at=parse_datetime(row["declined_at"]),
        sent_at=parse_datetime(row["sent_at"]),
    )


__all__ = ["SqliteMonitorRepository"]
