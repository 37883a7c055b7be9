"""Machine-bound credential store.

Credentials are JSON-serialized and encrypted with AES-256-CBC under a key
derived from the base machine id, so the file is only readable on the
machine that wrote it. On-disk format::

    {"encrypted": "<iv-hex>:<ciphertext-hex>"}
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from esmc.ontology.types import Credentials
from esmc.services.hardware import generate_base_machine_id
from esmc.settings import Settings, get_settings
from esmc.utils.paths import resolve_path

logger = logging.getLogger(__name__)

_IV_SIZE = 16


def get_machine_key() -> bytes:
    """32-byte AES key: SHA-256 digest of the base machine id."""
    return hashlib.sha256(generate_base_machine_id().encode()).digest()


def encrypt(data: Any, key: bytes) -> str:
    """AES-256-CBC encrypt ``data`` (JSON) → ``"<iv-hex>:<ciphertext-hex>"``."""
    iv = os.urandom(_IV_SIZE)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(json.dumps(data).encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return f"{iv.hex()}:{ciphertext.hex()}"


def decrypt(blob: str, key: bytes) -> Any:
    """Inverse of :func:`encrypt`. Raises ValueError on a wrong key or tampering."""
    iv_hex, _, ciphertext_hex = blob.partition(":")
    iv = bytes.fromhex(iv_hex)
    ciphertext = bytes.fromhex(ciphertext_hex)
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    plaintext = unpadder.update(padded) + unpadder.finalize()
    return json.loads(plaintext.decode("utf-8"))


def is_expired(credentials: Credentials | None) -> bool:
    """True when the subscription end date has passed. No date → never expires."""
    if credentials is None or credentials.expires_at is None:
        return False
    expires_at = credentials.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at < datetime.now(timezone.utc)


class CredentialStore:
    """Read/write the encrypted credentials file."""

    def __init__(self, path: str | Path | None = None, *, key: bytes | None = None,
                 settings: Settings | None = None):
        settings = settings or get_settings()
        self.path = Path(resolve_path(path or settings.credentials_path))
        self._key = key

    @property
    def key(self) -> bytes:
        if self._key is None:
            self._key = get_machine_key()
        return self._key

    def save(self, credentials: Credentials) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        encrypted = encrypt(credentials.to_wire(), self.key)
        self.path.write_text(json.dumps({"encrypted": encrypted}), encoding="utf-8")
        os.chmod(self.path, 0o600)

    def load(self) -> Credentials | None:
        """Return stored credentials, or None when missing, corrupted or tampered."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return Credentials.model_validate(decrypt(data["encrypted"], self.key))
        except (ValueError, KeyError, TypeError) as e:
            logger.error("Credentials corrupted or tampered: %s", e)
            return None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
