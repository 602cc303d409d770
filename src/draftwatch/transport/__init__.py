"""Mailbox provider clients and provider lookup."""

from __future__ import annotations

from ..core.config import AppSettings
from ..core.crypto import CredentialCipher
from ..core.interfaces import MailboxClient
from ..core.models import Provider
from .gmail_client import GmailError, GmailMailboxClient, normalize_gmail_message
from .imap_client import ImapError, ImapMailboxClient


def build_mailbox_clients(
    settings: AppSettings, cipher: CredentialCipher
) -> dict[Provider, MailboxClient]:
    """Return one client per supported provider."""
    page_size = settings.monitor.page_size
    return {
        Provider.GMAIL: GmailMailboxClient(settings.gmail, page_size=page_size),
        Provider.IMAP: ImapMailboxClient(
            cipher,
            mailbox=settings.imap.mailbox,
            page_size=page_size,
            timeout_seconds=settings.imap.timeout_seconds,
        ),
    }


__all__ = [
    "GmailError",
    "GmailMailboxClient",
    "ImapError",
    "ImapMailboxClient",
    "build_mailbox_clients",
    "normalize_gmail_message",
]
