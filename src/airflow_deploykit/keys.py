"""Fernet key and webserver secret key helpers.

Airflow encrypts stored connection credentials with a Fernet key and signs
UI session cookies with the webserver secret key. Both are plain strings as
far as the chart is concerned; this module only produces values in the
accepted format.
"""

from __future__ import annotations

import hashlib
import secrets

from cryptography.fernet import Fernet


def generate_fernet_key() -> str:
    """Generate a new url-safe base64 Fernet key."""
    return Fernet.generate_key().decode("ascii")


def generate_webserver_secret_key() -> str:
    """Generate a webserver secret key (16 random bytes, hex-encoded)."""
    return secrets.token_hex(16)


def split_fernet_keys(value: str) -> list[str]:
    """Split a comma-separated Fernet key list, dropping blanks."""
    return [k.strip() for k in value.split(",") if k.strip()]


def validate_fernet_key(value: str) -> list[str]:
    """Validate a Fernet key or comma-separated key list.

    During rotation Airflow accepts "new,old": the first key encrypts,
    all keys decrypt.

    Args:
        value: Key or key list.

    Returns:
        Error messages (empty if valid).
    """
    keys = split_fernet_keys(value)
    if not keys:
        return ["Fernet key is empty"]

    errors: list[str] = []
    for i, key in enumerate(keys):
        try:
            Fernet(key.encode("ascii"))
        except (ValueError, UnicodeEncodeError):
            errors.append(f"Fernet key {i} is not 32 url-safe base64-encoded bytes")
    return errors


def rotate_fernet_key(current: str | None) -> str:
    """Build the key list used while re-encrypting.

    Returns "new,old" where old is the current primary key, or just the new
    key if there is no current key.
    """
    new_key = generate_fernet_key()
    if not current:
        return new_key
    old_keys = split_fernet_keys(current)
    if not old_keys:
        return new_key
    return f"{new_key},{old_keys[0]}"


def primary_fernet_key(value: str) -> str:
    """Return the first (encrypting) key of a key list."""
    keys = split_fernet_keys(value)
    if not keys:
        raise ValueError("Fernet key is empty")
    return keys[0]


def fingerprint(secret: str) -> str:
    """Short, non-reversible identifier for logging a secret value."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()[:12]
