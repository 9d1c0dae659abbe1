"""Idempotency keys for money-moving gateway calls."""
from __future__ import annotations

import hashlib
import uuid
from typing import Any, Optional


def derive_idempotency_key(operation: str, *parts: Any, supplied: Optional[str] = None) -> str:
    """Caller's key when given, otherwise a stable sha256 of the business identifiers.

    Keys derived from the same identifiers collide on purpose: a retried call
    after a timeout is recognised by the processor instead of executing twice.
    """
    if supplied:
        return supplied
    base = "|".join([operation, *("" if p is None else str(p) for p in parts)])
    return hashlib.sha256(base.encode("utf-8")).hexdigest()


def fresh_idempotency_key(operation: str) -> str:
    """Unique key for calls that have no natural business reference."""
    return f"{operation}:{uuid.uuid4().hex}"


def request_idempotency_key(operation: str, supplied: Optional[str], reference: Optional[str], *parts: Any) -> str:
    """Stable key when the caller names the request, a fresh one otherwise.

    Without a caller reference two legitimate requests can carry the same
    identifiers (re-subscribing after a cancel, retrying with a new card), and
    the processor would replay the first response for the second.
    """
    if supplied or reference:
        return derive_idempotency_key(operation, reference, *parts, supplied=supplied)
    return fresh_idempotency_key(operation)
