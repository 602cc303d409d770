"""Construct the monitoring runtime from application settings."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from .core.config import AppSettings
from .core.crypto import CredentialCipher
from .core.interfaces import MailboxClient, PushGateway
from .core.models import Provider
from .ingestion import EmailMonitor, MessageProcessor, MonitorScheduler
from .intelligence import LLMClient, ReplyDrafter, TodoExtractor, build_llm_client
from .notifications import HttpPushGateway, PushNotifier
from .storage import SqliteMonitorRepository
from .transport import build_mailbox_clients

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class MonitorRuntime:
    """Everything a host process needs to run and control the monitor."""

    settings: AppSettings
    repository: SqliteMonitorRepository
    cipher: CredentialCipher
    monitor: EmailMonitor
    scheduler: MonitorScheduler
    notifier: PushNotifier

    def close(self) -> None:
        """Stop the scheduler and release the store."""
        self.scheduler.stop()
        self.repository.close()


def build_runtime(
    settings: AppSettings,
    *,
    repository: SqliteMonitorRepository | None = None,
    clients: Mapping[Provider, MailboxClient] | None = None,
    llm_client: LLMClient | None = None,
    gateway: PushGateway | None = None,
) -> MonitorRuntime:
    """Wire repository, providers, LLM, notifier, monitor and scheduler."""
    cipher = CredentialCipher(settings.security.encryption_key)
    if not cipher.configured:
        LOGGER.warning("No encryption key configured; IMAP accounts cannot be read")

    store = repository or SqliteMonitorRepository(settings.storage)
    mailbox_clients = clients if clients is not None else build_mailbox_clients(settings, cipher)
    llm = llm_client or build_llm_client(settings.llm)

    if gateway is None and settings.push.endpoint_url:
        gateway = HttpPushGateway(settings.push)
    notifier = PushNotifier(store, gateway, default_title=settings.push.default_title)

    processor = MessageProcessor(
        store,
        ReplyDrafter(llm),
        TodoExtractor(llm),
        notifier,
        settings.drafting,
    )
    monitor = EmailMonitor(
        store,
        mailbox_clients,
        processor,
        max_workers=settings.monitor.max_workers,
        status_limit=settings.monitor.status_limit,
        recent_window_minutes=settings.monitor.recent_window_minutes,
    )
    scheduler = MonitorScheduler(monitor, tick_seconds=settings.monitor.tick_seconds)
    LOGGER.debug("Monitor runtime ready (llm=%s)", llm.provider_id)
    return MonitorRuntime(
        settings=settings,
        repository=store,
        cipher=cipher,
        monitor=monitor,
        scheduler=scheduler,
        notifier=notifier,
    )


__all__ = ["MonitorRuntime", "build_runtime"]
