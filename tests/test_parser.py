"""Tests for RFC822 parsing into normalized messages."""

from __future__ import annotations

from datetime import datetime, timezone

from draftwatch.ingestion import EmailParser
from draftwatch.ingestion.parser import strip_html

MULTIPART_EMAIL = (
    b"From: Alice Client <alice@acme.com>\r\n"
    b"To: studio@example.com\r\n"
    b"Subject: Logo feedback\r\n"
    b"Date: Tue, 14 Oct 2025 09:30:00 +0200\r\n"
    b"MIME-Version: 1.0\r\n"
    b'Content-Type: multipart/alternative; boundary="XYZ"\r\n'
    b"\r\n"
    b"--XYZ\r\n"
    b'Content-Type: text/plain; charset="utf-8"\r\n'
    b"\r\n"
    b"Looks good, please go ahead.\r\n"
    b"--XYZ\r\n"
    b'Content-Type: text/html; charset="utf-8"\r\n'
    b"\r\n"
    b"<p>Looks <strong>good</strong>, please go ahead.</p>\r\n"
    b"--XYZ--\r\n"
)

HTML_ONLY_EMAIL = (
    b"From: bob@other.com\r\n"
    b"Subject: Hello\r\n"
    b"MIME-Version: 1.0\r\n"
    b'Content-Type: text/html; charset="utf-8"\r\n'
    b"\r\n"
    b"<div>Hi <b>there</b></div>\r\n"
)


def test_email_parser_prefers_plain_text_body() -> None:
    parser = EmailParser()

    message = parser.parse("imap:7", MULTIPART_EMAIL)

    assert message.provider_message_id == "imap:7"
    assert "alice@acme.com" in message.sender
    assert "Alice Client" in message.sender
    assert message.subject == "Logo feedback"
    assert message.body == "Looks good, please go ahead."
    assert message.received_at == datetime(2025, 10, 14, 7, 30, tzinfo=timezone.utc)


def test_email_parser_falls_back_to_stripped_html() -> None:
    message = EmailParser().parse("imap:8", HTML_ONLY_EMAIL)

    assert message.body == "Hi there"
    assert message.received_at.tzinfo is not None


def test_strip_html_collapses_whitespace() -> None:
    assert strip_html("<p>One</p>\n\n\n\n<p>Two   words</p>") == "One\n\nTwo words"
