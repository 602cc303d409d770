"""FastAPI application exposing email monitor controls."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Query, status as http_status
from fastapi.responses import JSONResponse

from draftwatch.bootstrap import MonitorRuntime, build_runtime
from draftwatch.core import AppSettings, load_app_settings
from draftwatch.core.datetime_utils import serialize_datetime
from draftwatch.core.models import (
    AccountCheckReport,
    AccountSetting,
    ClientFilter,
    Draft,
    MonitorSummary,
    ProcessedMessage,
)

LOGGER = logging.getLogger(__name__)

MAX_STATUS_LIMIT = 100


def create_app(
    settings: AppSettings | None = None, runtime: MonitorRuntime | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    The runtime is built on first use so importing the module does not
    open the database.
    """
    app_settings = settings or (
        runtime.settings if runtime else load_app_settings(env_file=_resolve_env_file())
    )
    app = FastAPI(title="Draftwatch Email Monitor")
    runtime_lock = threading.Lock()
    state: dict[str, MonitorRuntime | None] = {"runtime": runtime}

    def get_runtime() -> MonitorRuntime:
        with runtime_lock:
            current = state["runtime"]
            if current is None:
                current = build_runtime(app_settings)
                state["runtime"] = current
            return current

    @app.on_event("startup")
    async def startup_event() -> None:
        """Start the scheduler when autostart is enabled."""
        if app_settings.monitor.autostart:
            get_runtime().scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        """Stop the scheduler and close the store."""
        with runtime_lock:
            current = state["runtime"]
            state["runtime"] = None
        if current is not None:
            current.close()
            LOGGER.info("Monitor runtime closed")

    @app.post("/api/email-monitor/init")
    def init_monitoring() -> dict[str, Any]:
        """Start the background scheduler; repeated calls are no-ops."""
        scheduler = get_runtime().scheduler
        started = scheduler.start()
        message = (
            "Email monitoring system initialized"
            if started
            else "Email monitoring system already running"
        )
        return {"success": True, "message": message, "isRunning": scheduler.is_running}

    @app.post("/api/email-monitor/stop")
    def stop_monitoring() -> dict[str, Any]:
        """Stop scheduling ticks; an in-flight tick finishes on its own."""
        scheduler = get_runtime().scheduler
        stopped = scheduler.stop()
        return {"success": True, "stopped": stopped, "isRunning": scheduler.is_running}

    @app.get("/api/email-monitor/health")
    def health() -> dict[str, Any]:
        """Report whether the scheduler loop is active."""
        current = state["runtime"]
        return {
            "status": "ok",
            "isRunning": bool(current and current.scheduler.is_running),
            "tickSeconds": app_settings.monitor.tick_seconds,
        }

    @app.post("/api/users/{user_id}/email-monitor/check", response_model=None)
    def check_now(user_id: str) -> dict[str, Any] | JSONResponse:
        """Synchronously check every active account of ``user_id``."""
        try:
            reports = get_runtime().monitor.check_user_now(user_id)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("Manual email check failed for user %s: %s", user_id, exc)
            return _error_response("Failed to check emails")
        return {
            "success": True,
            "message": "Email check completed",
            "accounts": [_serialize_report(report) for report in reports],
        }

    @app.get("/api/users/{user_id}/email-monitor/status", response_model=None)
    def processing_status(
        user_id: str,
        limit: int | None = Query(default=None, ge=1, le=MAX_STATUS_LIMIT),
    ) -> dict[str, Any] | JSONResponse:
        """Return in-flight and recently finished messages for polling UIs."""
        current = get_runtime()
        try:
            records = current.monitor.get_processing_status(user_id, limit)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("Failed to load processing status for %s: %s", user_id, exc)
            return _error_response("Failed to get processing status")
        return {
            "processingStatus": [_serialize_message(record) for record in records],
            "isRunning": current.scheduler.is_running,
        }

    @app.get("/api/users/{user_id}/email-monitor/summary", response_model=None)
    def monitor_summary(user_id: str) -> dict[str, Any] | JSONResponse:
        """Return accounts, filters, recent messages and open drafts."""
        try:
            summary = get_runtime().monitor.get_monitor_summary(user_id)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            LOGGER.error("Failed to build monitor summary for %s: %s", user_id, exc)
            return _error_response("Failed to get email monitoring status")
        return _serialize_summary(summary)

    return app


def _error_response(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": message},
    )


def _serialize_account(account: AccountSetting) -> dict[str, Any]:
    # credentials never leave the store
    payload: dict[str, Any] = {
        "id": account.id,
        "provider": str(account.provider),
        "email": account.email,
        "isActive": account.is_active,
        "checkInterval": account.check_interval,
        "lastChecked": serialize_datetime(account.last_checked),
    }
    if account.imap is not None:
        payload["imapHost"] = account.imap.host
        payload["imapPort"] = account.imap.port
    return payload


def _serialize_filter(client_filter: ClientFilter) -> dict[str, Any]:
    return {
        "id": client_filter.id,
        "email": client_filter.email_address,
        "projectId": client_filter.project_id,
        "isActive": client_filter.is_active,
    }


def _serialize_message(record: ProcessedMessage) -> dict[str, Any]:
    return {
        "id": record.id,
        "projectId": record.project_id,
        "messageId": record.provider_message_id,
        "from": record.sender,
        "subject": record.subject,
        "receivedAt": serialize_datetime(record.received_at),
        "processedAt": serialize_datetime(record.processed_at),
        "status": str(record.status),
        "errorMessage": record.error_message,
    }


def _serialize_draft(draft: Draft) -> dict[str, Any]:
    return {
        "id": draft.id,
        "processedMessageId": draft.processed_message_id,
        "projectId": draft.project_id,
        "subject": draft.subject,
        "body": draft.body,
        "closing": draft.closing,
        "signature": draft.signature,
        "trigger": draft.trigger,
        "status": str(draft.status),
        "createdAt": serialize_datetime(draft.created_at),
    }


def _serialize_report(report: AccountCheckReport) -> dict[str, Any]:
    return {
        "accountId": report.account_id,
        "provider": str(report.provider),
        "fetched": report.fetched,
        "matched": report.matched,
        "duplicates": report.duplicates,
        "processed": report.processed,
        "draftsCreated": report.drafts_created,
        "errors": report.errors,
        "skippedBusy": report.skipped_busy,
        "error": report.error,
    }


def _serialize_summary(summary: MonitorSummary) -> dict[str, Any]:
    return {
        "success": True,
        "emailSettings": [_serialize_account(item) for item in summary.accounts],
        "clientFilters": [_serialize_filter(item) for item in summary.client_filters],
        "processedEmails": [
            _serialize_message(item) for item in summary.recent_messages
        ],
        "aiDrafts": [_serialize_draft(item) for item in summary.open_drafts],
        "summary": {
            "emailSettingsCount": len(summary.accounts),
            "clientFiltersCount": len(summary.client_filters),
            "processedEmailsCount": len(summary.recent_messages),
            "aiDraftsCount": len(summary.open_drafts),
            "totalProcessed": summary.total_processed,
        },
    }


def _resolve_env_file() -> Path:
    override = os.getenv("DRAFTWATCH_ENV_FILE")
    if override:
        return Path(override).expanduser()
    return Path.cwd() / ".env"


__all__ = ["create_app"]
