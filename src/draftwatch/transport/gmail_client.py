"""Gmail API mailbox client.

Uses the stored OAuth token set for the account together with the
configured OAuth client. Token refresh is left to ``google-auth``.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import google_auth_httplib2
import httplib2
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..core.config import GmailSettings
from ..core.datetime_utils import ensure_utc, utc_now
from ..core.interfaces import MailboxClient, MailboxError
from ..core.models import AccountSetting, NormalizedMessage
from ..ingestion.parser import strip_html

LOGGER = logging.getLogger(__name__)

GMAIL_READONLY_SCOPE = "https://www.googleapis.com/auth/gmail.readonly"

ServiceFactory = Callable[[Credentials], Any]


class GmailError(MailboxError):
    """Raised when the Gmail API cannot be reached or rejects a request."""


class GmailMailboxClient(MailboxClient):
    """List unread Gmail messages and normalise their content."""

    def __init__(
        self,
        settings: GmailSettings,
        *,
        page_size: int = 50,
        service_factory: ServiceFactory | None = None,
    ) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._settings = settings
        self._page_size = page_size
        self._service_factory = service_factory or self._build_service

    def list_candidate_messages(
        self, account: AccountSetting
    ) -> list[NormalizedMessage]:
        """Return up to ``page_size`` unread messages in provider order."""
        credentials = self.credentials_for(account)
        service = self._service_factory(credentials)
        messages_api = service.users().messages()

        LOGGER.debug(
            "Listing Gmail messages for %s (query=%s)", account.email, self._settings.query
        )
        try:
            response = messages_api.list(
                userId="me", maxResults=self._page_size, q=self._settings.query
            ).execute()
        except (HttpError, httplib2.HttpLib2Error, OSError) as exc:
            raise GmailError(f"Failed to list Gmail messages for {account.email}") from exc

        results: list[NormalizedMessage] = []
        for meta in response.get("messages", []) or []:
            message_id = meta.get("id")
            if not message_id:
                continue
            try:
                full = messages_api.get(
                    userId="me", id=message_id, format="full"
                ).execute()
            except (HttpError, httplib2.HttpLib2Error, OSError) as exc:
                LOGGER.warning("Skipping Gmail message %s: %s", message_id, exc)
                continue
            results.append(normalize_gmail_message(full))
        LOGGER.debug("Retrieved %s Gmail message(s) for %s", len(results), account.email)
        return results

    def credentials_for(self, account: AccountSetting) -> Credentials:
        """Build OAuth credentials from the account's stored token set."""
        if not account.gmail_token:
            raise GmailError(f"No Gmail token available for account {account.id}")
        try:
            tokens = json.loads(account.gmail_token)
        except json.JSONDecodeError as exc:
            raise GmailError(f"Stored Gmail token for {account.id} is not JSON") from exc
        if not isinstance(tokens, dict):
            raise GmailError(f"Stored Gmail token for {account.id} is not an object")

        scope = tokens.get("scope")
        scopes = scope.split() if isinstance(scope, str) else [GMAIL_READONLY_SCOPE]
        return Credentials(
            token=tokens.get("access_token") or tokens.get("token"),
            refresh_token=tokens.get("refresh_token"),
            token_uri=self._settings.token_uri,
            client_id=self._settings.client_id,
            client_secret=self._settings.client_secret,
            scopes=scopes,
            expiry=_parse_expiry(tokens.get("expiry_date")),
        )

    def _build_service(self, credentials: Credentials) -> Any:
        http = google_auth_httplib2.AuthorizedHttp(
            credentials, http=httplib2.Http(timeout=self._settings.timeout_seconds)
        )
        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", http=http, cache_discovery=False)


def normalize_gmail_message(payload: dict[str, Any]) -> NormalizedMessage:
    """Convert a ``format=full`` Gmail message into a normalized message."""
    body_root = payload.get("payload") or {}
    headers = {
        str(header.get("name", "")).lower(): str(header.get("value", ""))
        for header in body_root.get("headers", []) or []
    }
    received_at = (
        _parse_header_date(headers.get("date"))
        or _parse_internal_date(payload.get("internalDate"))
        or utc_now()
    )
    return NormalizedMessage(
        provider_message_id=str(payload.get("id", "")),
        sender=headers.get("from", ""),
        subject=headers.get("subject", ""),
        body=_extract_body(body_root),
        received_at=received_at,
    )


def _find_part(part: dict[str, Any], mime_type: str) -> dict[str, Any] | None:
    for child in part.get("parts", []) or []:
        if child.get("mimeType") == mime_type and (child.get("body") or {}).get("data"):
            return child
        nested = _find_part(child, mime_type)
        if nested is not None:
            return nested
    return None


def _extract_body(root: dict[str, Any]) -> str:
    plain = _find_part(root, "text/plain")
    if plain is not None:
        return _decode_data(plain["body"]["data"])
    top_level = (root.get("body") or {}).get("data")
    if top_level:
        text = _decode_data(top_level)
        return strip_html(text) if root.get("mimeType") == "text/html" else text
    html = _find_part(root, "text/html")
    if html is not None:
        return strip_html(_decode_data(html["body"]["data"]))
    return ""


def _decode_data(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode(
            "utf-8", errors="replace"
        )
    except (binascii.Error, ValueError):
        LOGGER.debug("Gmail body data was not valid base64")
        return ""


def _parse_header_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return ensure_utc(parsedate_to_datetime(value))
    except (TypeError, ValueError):
        return None


def _parse_internal_date(value: Any) -> datetime | None:
    try:
        millis = int(value)
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(millis / 1000, tz=UTC)


def _parse_expiry(value: Any) -> datetime | None:
    # google-auth compares expiry against a naive UTC clock
    parsed = _parse_internal_date(value)
    return parsed.replace(tzinfo=None) if parsed else None


__all__ = ["GmailError", "GmailMailboxClient", "normalize_gmail_message"]
