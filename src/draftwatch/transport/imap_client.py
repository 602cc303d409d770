"""IMAP mailbox client for generic mail servers."""

from __future__ import annotations

import imaplib
import logging
from collections.abc import Callable

from ..core.crypto import CredentialCipher
from ..core.interfaces import MailboxClient, MailboxError
from ..core.models import AccountSetting, ImapCredentials, NormalizedMessage
from ..ingestion.parser import EmailParser

LOGGER = logging.getLogger(__name__)

ImapConnection = imaplib.IMAP4 | imaplib.IMAP4_SSL
ConnectionFactory = Callable[[ImapCredentials, float], ImapConnection]


class ImapError(MailboxError):
    """Wrap low level IMAP errors with additional context."""


def _open_connection(credentials: ImapCredentials, timeout: float) -> ImapConnection:
    if credentials.secure:
        LOGGER.debug(
            "Connecting to IMAP host %s:%s via SSL", credentials.host, credentials.port
        )
        return imaplib.IMAP4_SSL(credentials.host, credentials.port, timeout=timeout)
    LOGGER.debug(
        "Connecting to IMAP host %s:%s without SSL", credentials.host, credentials.port
    )
    return imaplib.IMAP4(credentials.host, credentials.port, timeout=timeout)


class ImapMailboxClient(MailboxClient):
    """List unseen messages over ``imaplib`` without marking them read."""

    def __init__(
        self,
        cipher: CredentialCipher,
        *,
        mailbox: str = "INBOX",
        page_size: int = 50,
        timeout_seconds: float = 30,
        parser: EmailParser | None = None,
        connection_factory: ConnectionFactory = _open_connection,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._cipher = cipher
        self._mailbox = mailbox
        self._page_size = page_size
        self._timeout = timeout_seconds
        self._parser = parser or EmailParser()
        self._connection_factory = connection_factory

    def list_candidate_messages(
        self, account: AccountSetting
    ) -> list[NormalizedMessage]:
        """Return up to ``page_size`` of the most recent unseen messages."""
        credentials = _require_credentials(account)
        connection = self._connect(credentials)
        try:
            status, _ = connection.select(self._mailbox)
            if status != "OK":
                raise ImapError(f"Unable to select mailbox '{self._mailbox}'")
            return self._fetch_unseen(connection)
        except imaplib.IMAP4.error as exc:
            raise ImapError(f"IMAP error while reading {account.email}") from exc
        finally:
            _logout(connection)

    def verify(self, account: AccountSetting) -> None:
        """Log in and out once to prove the stored credentials work."""
        connection = self._connect(_require_credentials(account))
        _logout(connection)

    # Internal helpers ---------------------------------------------------------
    def _connect(self, credentials: ImapCredentials) -> ImapConnection:
        password = self._cipher.decrypt(credentials.password_enc)
        try:
            connection = self._connection_factory(credentials, self._timeout)
        except OSError as exc:
            raise ImapError(
                f"Failed to connect to IMAP server {credentials.host}:{credentials.port}"
            ) from exc
        try:
            LOGGER.debug("Authenticating as %s", credentials.username)
            connection.login(credentials.username, password)
        except imaplib.IMAP4.error as exc:
            _logout(connection)
            raise ImapError(f"IMAP login failed for {credentials.username}") from exc
        return connection

    def _fetch_unseen(self, connection: ImapConnection) -> list[NormalizedMessage]:
        status, data = connection.uid("SEARCH", None, "UNSEEN")  # type: ignore[arg-type]
        if status != "OK":
            raise ImapError("Failed to search for unseen message UIDs")

        raw_ids = data[0].split() if data and data[0] else []
        if not raw_ids:
            LOGGER.debug("No unseen messages found")
            return []

        messages: list[NormalizedMessage] = []
        for uid_bytes in raw_ids[-self._page_size :]:
            uid_str = uid_bytes.decode()
            LOGGER.debug("Fetching payload for UID %s", uid_str)
            status_fetch, fetch_data = connection.uid("FETCH", uid_str, "(BODY.PEEK[])")
            if status_fetch != "OK":
                raise ImapError(f"Failed to fetch message UID {uid_str}")
            payload = _extract_payload(fetch_data)
            if payload is None:
                LOGGER.warning("No payload returned for UID %s", uid_str)
                continue
            messages.append(self._parser.parse(f"imap:{uid_str}", payload))
        return messages


def _require_credentials(account: AccountSetting) -> ImapCredentials:
    credentials = account.imap
    if (
        credentials is None
        or not credentials.host
        or not credentials.username
        or not credentials.password_enc
    ):
        raise ImapError(f"Missing IMAP credentials for account {account.id}")
    return credentials


def _logout(connection: ImapConnection) -> None:
    try:
        LOGGER.debug("Closing IMAP connection")
        connection.logout()
    except (imaplib.IMAP4.error, OSError):  # pragma: no cover - depends on server state
        LOGGER.debug("IMAP logout raised; suppressing during shutdown")


def _extract_payload(fetch_data: list[tuple[bytes, bytes] | bytes]) -> bytes | None:
    """Extract the message payload from ``imaplib`` response chunks."""
    for entry in fetch_data:
        if isinstance(entry, tuple) and len(entry) == 2:
            return entry[1]
    return None


__all__ = ["ImapError", "ImapMailboxClient"]
