"""Reusable utilities — hashing, JSON cloning, path helpers, envelopes.

Keep this package thin and well-documented. Every function here should be
pure and useful in at least two contexts (services, CLI, tests).
"""

from esmc.utils.data import UNDEFINED, deep_clone_via_json, echo, is_non_null, ok_envelope
from esmc.utils.hashing import file_sha256, hash_hex
from esmc.utils.paths import join_path, normalize_path, resolve_path

__all__ = [
    "UNDEFINED",
    "deep_clone_via_json",
    "echo",
    "file_sha256",
    "hash_hex",
    "is_non_null",
    "join_path",
    "normalize_path",
    "ok_envelope",
    "resolve_path",
]
