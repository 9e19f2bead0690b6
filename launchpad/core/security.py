"""Security utilities: admin key check, credential encryption, secrets."""

import hmac
import secrets

from cryptography.fernet import Fernet, InvalidToken

from launchpad.core.config import get_settings
from launchpad.core.errors import ConfigurationError

# ── Admin access guard ───────────────────────────────────────


def verify_admin_key(presented: str | None, expected: str | None = None) -> bool:
    """Constant-time comparison of the presented key against ADMIN_API_KEY.

    An unset ADMIN_API_KEY rejects every request.
    """
    if expected is None:
        expected = get_settings().admin_api_key
    if not expected or not presented:
        return False
    return hmac.compare_digest(presented.encode(), expected.encode())


# ── Random material ──────────────────────────────────────────


def generate_db_password() -> str:
    """Strong random password for a freshly created tenant database."""
    return secrets.token_urlsafe(24)


# ── Credential encryption (Fernet) ───────────────────────────


def _get_fernet() -> Fernet:
    key = get_settings().encryption_key
    if not key:
        raise ConfigurationError("ENCRYPTION_KEY is not configured")
    try:
        return Fernet(key.encode())
    except ValueError as exc:
        raise ConfigurationError("ENCRYPTION_KEY is not a valid Fernet key") from exc


def encrypt_value(plaintext: str) -> str:
    """Encrypt a string value. Returns base64 ciphertext."""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str) -> str:
    """Decrypt a Fernet-encrypted value."""
    try:
        return _get_fernet().decrypt(ciphertext.encode()).decode()
    except InvalidToken as exc:
        raise ConfigurationError(
            "Stored credential could not be decrypted with the current ENCRYPTION_KEY"
        ) from exc
