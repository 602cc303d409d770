"""Command-line entry point for Draftwatch."""

from __future__ import annotations

import argparse
import getpass
import sys
import time
from pathlib import Path

from draftwatch.bootstrap import build_runtime
from draftwatch.core import AppSettings, configure_logging, load_app_settings
from draftwatch.core.crypto import CredentialCipher, CredentialError, generate_key
from draftwatch.core.datetime_utils import serialize_datetime


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Draftwatch client email monitor")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=[
            "info",
            "monitor",
            "check",
            "status",
            "generate-key",
            "encrypt-password",
        ],
        help="Operation to execute.",
    )
    parser.add_argument(
        "--user",
        dest="user_id",
        default=None,
        help="User id for the check and status commands.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Number of records shown by the status command.",
    )
    parser.add_argument(
        "--password",
        default=None,
        help="Password to encrypt; prompted for when omitted.",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return an exit code."""
    command = args.command
    if command == "info":
        print("Draftwatch is ready. Register accounts and client filters to start.")
        print(f"Database path: {settings.storage.db_path}")
        print(f"LLM provider: {settings.llm.provider} ({settings.llm.model})")
        print(f"Tick interval: {settings.monitor.tick_seconds}s")
        configured = "yes" if settings.security.encryption_key else "no"
        print(f"Encryption key configured: {configured}")
        return 0
    if command == "generate-key":
        print(generate_key())
        return 0
    if command == "encrypt-password":
        return _encrypt_password(settings, args.password)
    if command == "monitor":
        return _run_monitor(settings)
    if not args.user_id:
        print(f"The {command} command requires --user", file=sys.stderr)
        return 2
    if command == "check":
        return _run_check(settings, args.user_id)
    return _show_status(settings, args.user_id, args.limit)


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    sys.exit(execute(args, settings))


def _encrypt_password(settings: AppSettings, password: str | None) -> int:
    try:
        cipher = CredentialCipher(settings.security.encryption_key)
        secret = password if password is not None else getpass.getpass("IMAP password: ")
        print(cipher.encrypt(secret))
    except CredentialError as exc:
        print(f"Encryption failed: {exc}", file=sys.stderr)
        return 1
    return 0


def _run_monitor(settings: AppSettings) -> int:
    """Run the scheduler in the foreground until interrupted."""
    runtime = build_runtime(settings)
    runtime.scheduler.start()
    print(f"Monitoring started (tick every {settings.monitor.tick_seconds}s). Ctrl+C to stop.")
    try:
        while runtime.scheduler.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        print("Stopping monitor...")
    finally:
        runtime.close()
    return 0


def _run_check(settings: AppSettings, user_id: str) -> int:
    runtime = build_runtime(settings)
    try:
        reports = runtime.monitor.check_user_now(user_id)
    finally:
        runtime.close()

    if not reports:
        print(f"No active accounts for user {user_id}.")
        return 0
    failed = 0
    for report in reports:
        if report.error:
            failed += 1
            print(f"[{report.provider}] {report.account_id}: failed ({report.error})")
            continue
        if report.skipped_busy:
            print(f"[{report.provider}] {report.account_id}: skipped, check in progress")
            continue
        print(
            f"[{report.provider}] {report.account_id}: fetched {report.fetched}, "
            f"matched {report.matched}, processed {report.processed}, "
            f"drafts {report.drafts_created}, errors {report.errors}"
        )
    return 1 if failed else 0


def _show_status(settings: AppSettings, user_id: str, limit: int | None) -> int:
    runtime = build_runtime(settings)
    try:
        records = runtime.monitor.get_processing_status(user_id, limit)
    finally:
        runtime.close()

    if not records:
        print("No recent processing activity.")
        return 0
    for record in records:
        line = (
            f"{serialize_datetime(record.processed_at)}  {record.status:<14} "
            f"{record.sender} | {record.subject or '(no subject)'}"
        )
        if record.error_message:
            line += f"  [{record.error_message}]"
        print(line)
    return 0


if __name__ == "__main__":  # pragma: no cover
    main()
