"""Core utilities for configuration, logging, and shared models."""

from .config import AppSettings, MonitorSettings, load_app_settings
from .crypto import CredentialCipher, CredentialError
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "CredentialCipher",
    "CredentialError",
    "MonitorSettings",
    "configure_logging",
    "load_app_settings",
]
