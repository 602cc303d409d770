"""Symmetric encryption for mailbox credentials stored at rest."""

from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken


class CredentialError(RuntimeError):
    """Raised when a stored credential cannot be encrypted or decrypted."""


class CredentialCipher:
    """Encrypt and decrypt secrets with a Fernet key.

    Only IMAP passwords go through the cipher; OAuth token sets are stored
    as plain JSON.
    """

    def __init__(self, key: str | None) -> None:
        self._fernet: Fernet | None = None
        if key:
            try:
                self._fernet = Fernet(key.encode())
            except ValueError as exc:
                raise CredentialError("Encryption key is not a valid Fernet key") from exc

    @property
    def configured(self) -> bool:
        """Return ``True`` when a key is available."""
        return self._fernet is not None

    def encrypt(self, value: str) -> str:
        """Encrypt ``value`` and return a URL-safe token."""
        return self._require_fernet().encrypt(value.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Decrypt a token produced by :meth:`encrypt`."""
        try:
            return self._require_fernet().decrypt(token.encode()).decode()
        except InvalidToken as exc:
            raise CredentialError("Stored credential could not be decrypted") from exc

    def _require_fernet(self) -> Fernet:
        if self._fernet is None:
            raise CredentialError("Credential encryption key is not configured")
        return self._fernet


def generate_key() -> str:
    """Return a fresh Fernet key suitable for ``SECURITY__ENCRYPTION_KEY``."""
    return Fernet.generate_key().decode()


__all__ = ["CredentialCipher", "CredentialError", "generate_key"]
