"""Hashing for the per-envelope audit chain.

An audit event's ``content_hash`` is the SHA-256 of the canonical JSON of
its content, and that content includes the hash of the event before it.
The first event of an envelope links to GENESIS_HASH. Editing or
reordering any stored event therefore changes every hash after it.
"""

from __future__ import annotations

import hashlib
import json
import math
import unicodedata
from datetime import datetime
from enum import Enum
from functools import singledispatch
from typing import Any

GENESIS_HASH: str = "0" * 64
HASH_ALG_NAME: str = "SHA-256"

# Fields of an audit event that enter its hash. id, previous_event_id and
# content_hash itself are excluded.
HASHED_FIELDS: tuple[str, ...] = (
    "envelope_id",
    "signer_id",
    "event_type",
    "description",
    "actor",
    "network",
    "metadata",
    "occurred_at",
    "sequence",
    "previous_hash",
)


@singledispatch
def _normalize(value: Any) -> Any:
    return value


@_normalize.register
def _(value: str) -> str:
    return unicodedata.normalize("NFKC", value)


@_normalize.register
def _(value: float) -> float:
    if not math.isfinite(value):
        raise ValueError(f"{value!r} has no JSON representation")
    return value


@_normalize.register
def _(value: datetime) -> str:
    return value.isoformat()


@_normalize.register
def _(value: Enum) -> Any:
    return _normalize(value.value)


@_normalize.register(dict)
def _(value: dict[Any, Any]) -> dict[Any, Any]:
    return {_normalize(k): _normalize(v) for k, v in value.items()}


@_normalize.register(list)
@_normalize.register(tuple)
def _(value: list[Any] | tuple[Any, ...]) -> list[Any]:
    return [_normalize(item) for item in value]


def canonical_json(data: Any) -> str:
    """Render ``data`` as compact, key-sorted JSON.

    Strings are NFKC-normalized, datetimes become ISO-8601 strings, enums
    their values. Non-ASCII text is kept as UTF-8.

    Raises:
        ValueError: If ``data`` holds NaN or an infinity.

    Example:
        >>> canonical_json({"b": 1, "a": 2})
        '{"a":2,"b":1}'
    """
    return json.dumps(_normalize(data), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def compute_content_hash(event_data: dict[str, Any]) -> str:
    """Hash the HASHED_FIELDS of an audit event.

    Missing optional fields (signer_id, network, metadata) hash as null or
    empty objects, so callers may omit them.
    """
    hashable = {field: event_data.get(field) for field in HASHED_FIELDS}
    hashable["network"] = dict(hashable["network"] or {})
    hashable["metadata"] = dict(hashable["metadata"] or {})
    return sha256_hex(canonical_json(hashable).encode("utf-8"))


def is_valid_sha256_hex(value: str) -> bool:
    """True for exactly 64 lowercase hex characters."""
    return len(value) == 64 and all(c in "0123456789abcdef" for c in value)


def link_hash(previous_content_hash: str | None) -> str:
    """Return the ``previous_hash`` for the event after ``previous_content_hash``.

    None starts a new chain at GENESIS_HASH.

    Raises:
        ValueError: If the given hash is not a SHA-256 hex digest.
    """
    if previous_content_hash is None:
        return GENESIS_HASH
    if not is_valid_sha256_hex(previous_content_hash):
        raise ValueError(f"not a SHA-256 hex digest: {previous_content_hash!r}")
    return previous_content_hash
