"""HTTP relay gateway for device push notifications."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

import httpx

from draftwatch.core.config import PushSettings
from draftwatch.core.interfaces import PushGateway
from draftwatch.core.models import DeliveryResult, PushMessage

LOGGER = logging.getLogger(__name__)


class PushDeliveryError(RuntimeError):
    """Raised when the relay cannot be reached or answers unexpectedly."""


def build_multicast_payload(
    tokens: Sequence[str], message: PushMessage, *, apns_topic: str | None = None
) -> dict[str, Any]:
    """Return the multicast body understood by the relay."""
    headers = {
        "apns-push-type": "background" if message.silent else "alert",
        "apns-priority": "5" if message.silent else "10",
    }
    if apns_topic:
        headers["apns-topic"] = apns_topic
    aps: dict[str, Any] = (
        {"content-available": 1} if message.silent else {"sound": "default"}
    )

    payload: dict[str, Any] = {
        "tokens": list(tokens),
        "data": {
            **{key: str(value) for key, value in message.data.items()},
            "silent": "1" if message.silent else "0",
        },
        "android": {"priority": "high"},
        "apns": {"headers": headers, "payload": {"aps": aps}},
    }
    if not message.silent:
        payload["notification"] = {"title": message.title, "body": message.body}
    return payload


class HttpPushGateway(PushGateway):
    """Post multicast messages to a relay that fans out to device tokens."""

    def __init__(self, settings: PushSettings) -> None:
        if not settings.endpoint_url:
            raise ValueError("Push relay endpoint is not configured")
        self._settings = settings

    def send(
        self, tokens: Sequence[str], message: PushMessage
    ) -> list[DeliveryResult]:
        """Deliver ``message`` and return one result per token, in order."""
        if not tokens:
            return []
        headers = {}
        if self._settings.api_key:
            headers["Authorization"] = f"Bearer {self._settings.api_key}"
        payload = build_multicast_payload(
            tokens, message, apns_topic=self._settings.apns_topic
        )
        try:
            response = httpx.post(
                str(self._settings.endpoint_url),
                json=payload,
                headers=headers,
                timeout=self._settings.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise PushDeliveryError(f"Push relay request failed: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise PushDeliveryError("Push relay returned invalid JSON") from exc

        return _map_responses(tokens, data)


def _map_responses(tokens: Sequence[str], data: Any) -> list[DeliveryResult]:
    responses = data.get("responses") if isinstance(data, dict) else None
    if not isinstance(responses, list):
        raise PushDeliveryError("Push relay response missing 'responses'")

    results: list[DeliveryResult] = []
    for index, token in enumerate(tokens):
        entry = responses[index] if index < len(responses) else {}
        if not isinstance(entry, dict):
            entry = {}
        if entry.get("success"):
            results.append(
                DeliveryResult(token=token, success=True, message_id=entry.get("messageId"))
            )
            continue
        error = entry.get("error") or {}
        code = str(error.get("code") or "unknown")
        results.append(
            DeliveryResult(
                token=token,
                success=False,
                error_code=code.removeprefix("messaging/"),
                error_message=str(error.get("message") or "unknown error"),
            )
        )
    return results


__all__ = ["HttpPushGateway", "PushDeliveryError", "build_multicast_payload"]
