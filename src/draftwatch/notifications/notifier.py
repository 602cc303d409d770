"""Fire-and-forget user notifications for pipeline events."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from draftwatch.core.interfaces import MonitorRepository, Notifier, PushGateway
from draftwatch.core.models import Draft, ExtractedTodo, ProcessedMessage, PushMessage

from .gateway import PushDeliveryError

LOGGER = logging.getLogger(__name__)

INVALID_TOKEN_CODES = frozenset(
    {"registration-token-not-registered", "invalid-registration-token"}
)


class PushNotifier(Notifier):
    """Deliver notifications to every registered device of a user."""

    def __init__(
        self,
        repository: MonitorRepository,
        gateway: PushGateway | None,
        *,
        default_title: str = "Draftwatch",
    ) -> None:
        self._repository = repository
        self._gateway = gateway
        self._default_title = default_title

    def send_to_user(
        self,
        user_id: str,
        *,
        title: str | None = None,
        body: str = "",
        data: Mapping[str, str] | None = None,
        silent: bool = False,
    ) -> str | None:
        """Deliver to all of the user's tokens; return the first message id."""
        if self._gateway is None:
            LOGGER.info("Push gateway not configured; skipping notification for %s", user_id)
            return None

        try:
            tokens = self._repository.list_device_tokens(user_id)
        except Exception:  # pylint: disable=broad-exception-caught
            LOGGER.exception("Failed to load device tokens for user %s", user_id)
            return None
        if not tokens:
            LOGGER.debug("No device tokens for user %s", user_id)
            return None

        message = PushMessage(
            title=title or self._default_title,
            body=body,
            data=dict(data or {}),
            silent=silent,
        )
        LOGGER.debug(
            "Sending push to %s token(s) for user %s (silent=%s)",
            len(tokens),
            user_id,
            silent,
        )
        try:
            results = self._gateway.send(tokens, message)
        except PushDeliveryError as exc:
            LOGGER.error("Push delivery failed for user %s: %s", user_id, exc)
            return None
        except Exception:  # pylint: disable=broad-exception-caught
            LOGGER.exception("Unexpected push failure for user %s", user_id)
            return None

        invalid: list[str] = []
        for result in results:
            if result.success:
                continue
            LOGGER.warning(
                "Push failed for token %s... code=%s message=%s",
                result.token[:16],
                result.error_code,
                result.error_message,
            )
            if result.error_code in INVALID_TOKEN_CODES:
                invalid.append(result.token)
        if invalid:
            self._prune(user_id, invalid)

        return next(
            (result.message_id for result in results if result.success and result.message_id),
            None,
        )

    def notify_draft_created(
        self, user_id: str, message: ProcessedMessage, draft: Draft
    ) -> None:
        """Announce a new reply draft."""
        data = {
            "type": "draft_created",
            "processedMessageId": message.id,
            "draftId": draft.id,
        }
        if message.project_id:
            data["projectId"] = message.project_id
        self.send_to_user(
            user_id,
            title="New reply draft ready",
            body=f"Reply drafted for: {message.subject or '(no subject)'}",
            data=data,
        )

    def notify_todos_extracted(
        self, user_id: str, message: ProcessedMessage, todos: Sequence[ExtractedTodo]
    ) -> None:
        """Announce newly extracted todos."""
        if not todos:
            return
        count = len(todos)
        noun = "todo" if count == 1 else "todos"
        data = {
            "type": "todos_extracted",
            "processedMessageId": message.id,
            "count": str(count),
        }
        if message.project_id:
            data["projectId"] = message.project_id
        self.send_to_user(
            user_id,
            title=f"{count} new {noun}",
            body=todos[0].task,
            data=data,
        )

    def _prune(self, user_id: str, tokens: list[str]) -> None:
        try:
            removed = self._repository.remove_device_tokens(user_id, tokens)
        except Exception:  # pylint: disable=broad-exception-caught
            LOGGER.exception("Failed to prune device tokens for user %s", user_id)
            return
        LOGGER.info("Pruned %s invalid device token(s) for user %s", removed, user_id)


__all__ = ["INVALID_TOKEN_CODES", "PushNotifier"]
