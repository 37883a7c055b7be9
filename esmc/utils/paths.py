"""Path helpers — thin wrappers over ``os.path``.

They exist so callers get ``str`` back for ``str | Path`` input and so the
license/integrity code has one place that decides how user-supplied paths
are expanded. No path logic is reimplemented here.
"""

from __future__ import annotations

import os
from pathlib import Path

PathLike = str | Path


def normalize_path(path: PathLike) -> str:
    """Collapse redundant separators and ``..`` segments (``os.path.normpath``)."""
    return os.path.normpath(os.fspath(path))


def join_path(*parts: PathLike) -> str:
    """Join path segments with the host separator (``os.path.join``)."""
    if not parts:
        return ""
    return os.path.join(*(os.fspath(p) for p in parts))


def resolve_path(*parts: PathLike) -> str:
    """Absolute, normalized path with ``~`` expanded.

    Relative segments resolve against the current working directory.
    """
    joined = join_path(*parts) if parts else os.getcwd()
    return os.path.abspath(os.path.expanduser(joined))
