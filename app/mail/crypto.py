"""Reversible encryption for stored SMTP passwords.

SMTP servers need the plain password at send time, so a one-way hash will
not do. Passwords are stored as Fernet tokens keyed by
`settings.smtp_encryption_key`.
"""

from cryptography.fernet import Fernet, InvalidToken

from app.config import settings


class CredentialError(Exception):
    """Encryption key missing or a stored password cannot be decrypted."""


def _cipher() -> Fernet:
    if not settings.smtp_encryption_key:
        raise CredentialError("SMTP_ENCRYPTION_KEY is not configured")
    try:
        return Fernet(settings.smtp_encryption_key.encode())
    except ValueError as e:
        raise CredentialError(f"Invalid SMTP_ENCRYPTION_KEY: {e}") from e


def encrypt_password(password: str) -> str:
    return _cipher().encrypt(password.encode("utf-8")).decode("ascii")


def decrypt_password(token: str) -> str:
    try:
        return _cipher().decrypt(token.encode("ascii")).decode("utf-8")
    except InvalidToken as e:
        raise CredentialError("Stored SMTP password cannot be decrypted with the current key") from e
