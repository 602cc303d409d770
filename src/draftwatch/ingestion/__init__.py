"""Ingestion pipeline components."""

from .directory import ClientDirectory, ClientMatch, extract_email_address
from .monitor import AccountLeases, EmailMonitor
from .parser import EmailParser
from .processor import MessageProcessor
from .scheduler import MonitorScheduler

__all__ = [
    "AccountLeases",
    "ClientDirectory",
    "ClientMatch",
    "EmailMonitor",
    "EmailParser",
    "MessageProcessor",
    "MonitorScheduler",
    "extract_email_address",
]
