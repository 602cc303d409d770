"""Account polling orchestration for the email monitor."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import datetime, timedelta

from ..core.datetime_utils import ensure_utc, utc_now
from ..core.interfaces import MailboxClient, MonitorRepository, UnsupportedProviderError
from ..core.models import (
    AccountCheckReport,
    AccountSetting,
    MessageStatus,
    MonitorSummary,
    ProcessedMessage,
    Provider,
    TickReport,
)
from .directory import ClientDirectory
from .processor import MessageProcessor

LOGGER = logging.getLogger(__name__)


class AccountLeases:
    """Non-blocking per-account exclusion shared by ticks and manual checks."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._held: set[str] = set()

    @contextmanager
    def hold(self, account_id: str) -> Iterator[bool]:
        """Yield ``True`` when the lease was acquired, ``False`` when busy."""
        with self._lock:
            acquired = account_id not in self._held
            if acquired:
                self._held.add(account_id)
        try:
            yield acquired
        finally:
            if acquired:
                with self._lock:
                    self._held.discard(account_id)

    def is_held(self, account_id: str) -> bool:
        """Return ``True`` while a check for ``account_id`` is running."""
        with self._lock:
            return account_id in self._held


class EmailMonitor:
    """Check due accounts, classify their mail and hand it to the processor."""

    def __init__(
        self,
        repository: MonitorRepository,
        clients: Mapping[Provider, MailboxClient],
        processor: MessageProcessor,
        *,
        max_workers: int = 4,
        status_limit: int = 10,
        recent_window_minutes: int = 60,
        clock: Callable[[], datetime] = utc_now,
        leases: AccountLeases | None = None,
    ) -> None:
        # pylint: disable=too-many-arguments
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self._repository = repository
        self._clients = dict(clients)
        self._processor = processor
        self._max_workers = max_workers
        self._status_limit = status_limit
        self._recent_window = timedelta(minutes=recent_window_minutes)
        self._clock = clock
        self._leases = leases or AccountLeases()

    def is_due(self, account: AccountSetting, now: datetime) -> bool:
        """Return ``True`` when the account's poll interval has elapsed."""
        last_checked = ensure_utc(account.last_checked)
        if last_checked is None:
            return True
        return now - last_checked >= timedelta(minutes=account.check_interval)

    def run_tick(self) -> TickReport:
        """Check every due active account once; failures stay per account."""
        started_at = self._clock()
        accounts = self._repository.list_active_accounts()
        due = [account for account in accounts if self.is_due(account, started_at)]
        report = TickReport(
            started_at=started_at,
            accounts_active=len(accounts),
            accounts_due=len(due),
        )
        LOGGER.info(
            "Monitor tick: %s active account(s), %s due", len(accounts), len(due)
        )
        if not due:
            return report

        workers = min(self._max_workers, len(due))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="draftwatch-check"
        ) as pool:
            futures = [
                (account, pool.submit(self.check_account, account)) for account in due
            ]
            for account, future in futures:
                try:
                    account_report = future.result()
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    LOGGER.error(
                        "Check failed for account %s (%s): %s",
                        account.id,
                        account.email,
                        exc,
                        exc_info=True,
                    )
                    report.accounts_failed += 1
                    report.reports.append(_failed_report(account, exc))
                    continue
                report.reports.append(account_report)
                if account_report.skipped_busy:
                    continue
                try:
                    self._repository.mark_account_checked(account.id, self._clock())
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    LOGGER.error(
                        "Failed to record check time for account %s: %s",
                        account.id,
                        exc,
                    )
                    report.accounts_failed += 1
                    continue
                report.accounts_checked += 1
        return report

    def check_account(self, account: AccountSetting) -> AccountCheckReport:
        """Fetch, classify and process one account's candidate messages.

        Returns a report flagged ``skipped_busy`` when another check for the
        same account is already running. Provider failures propagate; a
        failure processing one message is logged, counted in ``errors`` and
        the remaining messages are still processed.
        """
        report = AccountCheckReport(
            account_id=account.id, user_id=account.user_id, provider=account.provider
        )
        with self._leases.hold(account.id) as acquired:
            if not acquired:
                LOGGER.info("Account %s is already being checked; skipping", account.id)
                report.skipped_busy = True
                return report

            client = self._clients.get(account.provider)
            if client is None:
                raise UnsupportedProviderError(
                    f"No mailbox client for provider {account.provider!r}"
                )

            messages = client.list_candidate_messages(account)
            report.fetched = len(messages)
            directory = ClientDirectory.load(self._repository, account.user_id)

            for message in messages:
                match = directory.match(message.sender)
                if match is None:
                    continue
                report.matched += 1
                try:
                    record = self._processor.process(account.user_id, message, match)
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    LOGGER.error(
                        "Error processing message %s for account %s: %s",
                        message.provider_message_id,
                        account.id,
                        exc,
                        exc_info=True,
                    )
                    report.errors += 1
                    continue
                if record is None:
                    report.duplicates += 1
                    continue
                report.processed += 1
                if record.status is MessageStatus.DRAFT_CREATED:
                    report.drafts_created += 1
                elif record.status is MessageStatus.ERROR:
                    report.errors += 1

        LOGGER.info(
            "Checked %s account %s: fetched=%s matched=%s processed=%s duplicates=%s errors=%s",
            account.provider,
            account.email,
            report.fetched,
            report.matched,
            report.processed,
            report.duplicates,
            report.errors,
        )
        return report

    def check_user_now(self, user_id: str) -> list[AccountCheckReport]:
        """Check all of a user's active accounts now, ignoring poll intervals.

        Only a failure to load the accounts propagates; per-account failures
        are reported in the returned list. ``last_checked`` is left untouched.
        """
        accounts = self._repository.list_active_accounts(user_id)
        LOGGER.info(
            "Manual check for user %s across %s account(s)", user_id, len(accounts)
        )
        reports: list[AccountCheckReport] = []
        for account in accounts:
            try:
                reports.append(self.check_account(account))
            except Exception as exc:  # pylint: disable=broad-exception-caught
                LOGGER.error(
                    "Manual check failed for account %s: %s", account.id, exc
                )
                reports.append(_failed_report(account, exc))
        return reports

    def get_processing_status(
        self, user_id: str, limit: int | None = None
    ) -> list[ProcessedMessage]:
        """Return in-flight records plus recently finished ones, newest first."""
        return self._repository.list_processing_status(
            user_id,
            limit=limit or self._status_limit,
            recent_since=self._clock() - self._recent_window,
        )

    def get_monitor_summary(self, user_id: str) -> MonitorSummary:
        """Return the user's accounts, filters and recent pipeline output."""
        return MonitorSummary(
            user_id=user_id,
            accounts=self._repository.list_active_accounts(user_id),
            client_filters=self._repository.list_active_client_filters(user_id),
            recent_messages=self._repository.list_recent_processed_messages(
                user_id, self._status_limit
            ),
            open_drafts=self._repository.list_recent_drafts(
                user_id, self._status_limit
            ),
            total_processed=self._repository.count_processed_messages(user_id),
        )


def _failed_report(account: AccountSetting, exc: Exception) -> AccountCheckReport:
    return AccountCheckReport(
        account_id=account.id,
        user_id=account.user_id,
        provider=account.provider,
        error=str(exc) or exc.__class__.__name__,
    )


__all__ = ["AccountLeases", "EmailMonitor"]
