"""Classify senders against a user's client allow-list."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from email.utils import parseaddr

from ..core.interfaces import MonitorRepository

LOGGER = logging.getLogger(__name__)

_ANGLE_ADDRESS = re.compile(r"<\s*([^<>\s]+@[^<>\s]+)\s*>")
_BARE_ADDRESS = re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})")


def extract_email_address(value: str) -> str:
    """Return the bare address from a free-text From header.

    An angle-bracketed address wins over any other address-like text.
    Falls back to the stripped input when nothing matches.
    """
    angle = _ANGLE_ADDRESS.search(value)
    if angle:
        return angle.group(1)
    bare = _BARE_ADDRESS.search(value)
    if bare:
        return bare.group(1)
    return value.strip()


def extract_display_name(value: str) -> str | None:
    """Return the display-name portion of a From header, if any."""
    name, _ = parseaddr(value)
    name = name.strip().strip('"').strip()
    return name or None


@dataclass(slots=True, frozen=True)
class ClientMatch:
    """A sender recognised as a monitored client."""

    address: str
    project_id: str | None
    display_name: str | None


class ClientDirectory:
    """Case-insensitive address to project lookup for one user."""

    def __init__(self, user_id: str, entries: dict[str, str | None]) -> None:
        self.user_id = user_id
        self._entries = entries

    @classmethod
    def load(cls, repository: MonitorRepository, user_id: str) -> ClientDirectory:
        """Build the directory from the user's active filters."""
        entries: dict[str, str | None] = {}
        for client_filter in repository.list_active_client_filters(user_id):
            key = client_filter.email_address.strip().lower()
            if not key:
                continue
            # first filter for an address wins, matching filter creation order
            entries.setdefault(key, client_filter.project_id)
        LOGGER.debug("Loaded %s client filter(s) for user %s", len(entries), user_id)
        return cls(user_id, entries)

    def __len__(self) -> int:
        return len(self._entries)

    def match(self, sender: str) -> ClientMatch | None:
        """Return the matching client for ``sender`` or ``None``."""
        address = extract_email_address(sender).lower()
        if address not in self._entries:
            return None
        return ClientMatch(
            address=address,
            project_id=self._entries[address],
            display_name=extract_display_name(sender),
        )


__all__ = [
    "ClientDirectory",
    "ClientMatch",
    "extract_display_name",
    "extract_email_address",
]
