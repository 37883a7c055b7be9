"""Data-shape helpers — JSON deep clone, null checks, echo, ok envelope.

A clone is what a strict JSON encode-then-decode produces, so payloads
exchanged with the web dashboard and the auth server agree on what survives
a round trip.

Lossy boundary of :func:`deep_clone_via_json`:

- ``NaN``, ``inf`` and ``-inf`` become ``None`` (JSON ``null``)
- callables and :data:`UNDEFINED` are dropped from dicts and become ``None``
  inside lists
- tuples become lists; non-string dict keys become strings the way the JSON
  encoder writes them (``True`` → ``"true"``, ``None`` → ``"null"``, ``1`` → ``"1"``)

Examples::

    from esmc.utils.data import deep_clone_via_json, is_non_null, echo, ok_envelope

    deep_clone_via_json({"a": [1, 2.5, float("nan")]})  # {'a': [1, 2.5, None]}
    is_non_null({})                                     # True
    echo([1, 2, 3])                                     # new list [1, 2, 3]
    ok_envelope({"x": 1})  # {'status': 'ok', 'timestamp': 1700000000000, 'data': {'x': 1}}
"""

from __future__ import annotations

import json
import math
import time
from typing import Any


class _Undefined:
    """Sentinel for a value that is absent rather than null."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"


UNDEFINED = _Undefined()


def _unrepresentable(value: Any) -> bool:
    return value is UNDEFINED or callable(value)


def _json_safe(value: Any) -> Any:
    """Rewrite ``value`` into what a strict JSON encoder would emit."""
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {
            k: _json_safe(v)
            for k, v in value.items()
            if not _unrepresentable(v)
        }
    if isinstance(value, (list, tuple)):
        return [None if _unrepresentable(v) else _json_safe(v) for v in value]
    return value


def deep_clone_via_json(value: Any) -> Any:
    """Deep copy ``value`` through a JSON serialize/deserialize round trip.

    Idempotent for JSON-representable values:
    ``deep_clone_via_json(deep_clone_via_json(x)) == deep_clone_via_json(x)``.

    A top-level callable or :data:`UNDEFINED` has no JSON form and yields
    ``None``.

    Raises:
        TypeError: ``value`` contains an object JSON cannot serialize
            (e.g. ``set``, ``datetime``).
    """
    if _unrepresentable(value):
        return None
    return json.loads(json.dumps(_json_safe(value), allow_nan=False))


def is_non_null(value: Any) -> bool:
    """``False`` for ``None`` and :data:`UNDEFINED`, ``True`` for everything else."""
    return value is not None and value is not UNDEFINED


def echo(value: Any) -> Any:
    """Return a shallow copy of a list, any other value unchanged."""
    if isinstance(value, list):
        return list(value)
    return value


def ok_envelope(data: Any) -> dict[str, Any]:
    """Wrap ``data`` in the ``{status, timestamp, data}`` response envelope.

    ``status`` is always ``"ok"``; ``timestamp`` is epoch milliseconds.
    """
    return {"status": "ok", "timestamp": int(time.time() * 1000), "data": data}
