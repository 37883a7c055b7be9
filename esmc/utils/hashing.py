"""SHA-256 hashing helpers.

Centralises the hash patterns used across the codebase so callers don't
need to inline ``hashlib.sha256(…).hexdigest()`` everywhere. Hardware
fingerprints, brain discovery, integrity sampling and package verification
all go through these helpers.

Examples::

    from esmc.utils.hashing import hash_hex, file_sha256

    hash_hex("hello world")          # sha256 hex digest of the UTF-8 bytes
    hash_hex({"b": 1, "a": 2})       # canonical JSON, key order irrelevant
    file_sha256(Path("brain.py"))    # digest of raw file bytes
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

_CHUNK_SIZE = 64 * 1024


def _to_bytes(data: Any) -> bytes:
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    # Canonical JSON so equal structures hash equally regardless of key order.
    # Raises TypeError for values JSON cannot serialize.
    return json.dumps(data, sort_keys=True, separators=(",", ":"), allow_nan=False).encode("utf-8")


def hash_hex(data: Any) -> str:
    """SHA-256 hex digest of ``data``.

    Args:
        data: ``bytes`` are hashed as-is, ``str`` as UTF-8, anything else is
            serialized to canonical JSON first.

    Returns:
        64-character lowercase hex digest.

    Raises:
        TypeError: ``data`` is not JSON-serializable.
        ValueError: ``data`` contains ``NaN`` or infinities.

    Examples::

        hash_hex("hello")    # 2cf24dba5fb0a30e26e83b2ac5b9e29e...
        hash_hex(b"hello")   # same digest
    """
    return hashlib.sha256(_to_bytes(data)).hexdigest()


def file_sha256(path: str | Path) -> str:
    """SHA-256 hex digest of a file's raw bytes, read in chunks."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()

