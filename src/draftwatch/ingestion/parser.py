"""Utilities for parsing raw RFC822 messages into normalized messages."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import parsedate_to_datetime

from ..core.datetime_utils import ensure_utc, utc_now
from ..core.models import NormalizedMessage

_TAG_PATTERN = re.compile(r"<[^>]+>")
_BLANK_RUNS = re.compile(r"\n{3,}")


class EmailParser:
    """Convert raw email payloads into :class:`NormalizedMessage` records."""

    def __init__(self) -> None:
        """Prepare internal parser instance."""
        self._parser = BytesParser(policy=policy.default)

    def parse(self, provider_message_id: str, payload: bytes) -> NormalizedMessage:
        """Parse raw RFC822 bytes; the From header is kept verbatim."""
        message = self._parser.parsebytes(payload)
        sender = str(message.get("From") or "")
        subject = str(message.get("Subject") or "")
        received_at = _try_parse_datetime(message.get("Date")) or utc_now()
        body_text, body_html = _extract_bodies(message)
        body = body_text or (strip_html(body_html) if body_html else "")

        return NormalizedMessage(
            provider_message_id=provider_message_id,
            sender=sender,
            subject=subject,
            body=body,
            received_at=received_at,
        )


def strip_html(payload: str) -> str:
    """Reduce an HTML body to readable text."""
    text = _TAG_PATTERN.sub(" ", payload)
    lines = [" ".join(line.split()) for line in text.splitlines()]
    return _BLANK_RUNS.sub("\n\n", "\n".join(lines)).strip()


def _collapse_chunks(chunks: Iterable[str], separator: str) -> str | None:
    filtered_chunks = [chunk for chunk in chunks if chunk]
    if not filtered_chunks:
        return None
    return separator.join(filtered_chunks)


def _extract_bodies(message: EmailMessage) -> tuple[str | None, str | None]:
    plain_chunks: list[str] = []
    html_chunks: list[str] = []

    for part in message.walk():
        if part.is_multipart():
            continue
        content_type = part.get_content_type()
        disposition = part.get_content_disposition()
        if disposition == "attachment":
            continue
        try:
            content_obj = part.get_content()
        except LookupError:
            continue
        if not isinstance(content_obj, str):
            continue
        content = content_obj.strip()
        if content_type == "text/plain":
            plain_chunks.append(content)
        elif content_type == "text/html":
            html_chunks.append(content)

    text = _collapse_chunks(plain_chunks, "\n\n")
    html = _collapse_chunks(html_chunks, "\n")
    return text, html


def _try_parse_datetime(header_value: str | None) -> datetime | None:
    if header_value is None:
        return None
    try:
        return ensure_utc(parsedate_to_datetime(str(header_value)))
    except (TypeError, ValueError):
        return None


__all__ = ["EmailParser", "strip_html"]
