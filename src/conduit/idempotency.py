"""Idempotency keys and the response store that honours them."""

from __future__ import annotations

import hashlib
import json
import math
import threading
import time
from typing import Any, Protocol

DEFAULT_BUCKET_S = 60


def _stable_json(payload: Any) -> str:
    return json.dumps(
        payload,
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        default=str,
    )


def build_idempotency_key(
    payload: Any, bucket_s: int = DEFAULT_BUCKET_S, now: float | None = None
) -> str:
    """Derive a deterministic key from a payload and the current time bucket.

    Identical payloads within the same ``bucket_s`` window share a key. A
    non-positive bucket falls back to the default window.
    """
    bucket_s = bucket_s if bucket_s >= 1 else DEFAULT_BUCKET_S
    bucket = math.floor((time.time() if now is None else now) / bucket_s)
    digest = hashlib.sha256(f"{_stable_json(payload)}|{bucket}".encode()).hexdigest()
    return f"resp_{bucket}_{digest[:32]}"


class IdempotencyStore(Protocol):
    """Remembers the outcome of a call by its idempotency key."""

    def get(self, key: str) -> Any | None: ...

    def put(self, key: str, value: Any) -> None: ...


class InMemoryIdempotencyStore:
    """Process-local store with a per-entry time-to-live."""

    def __init__(self, ttl_s: float = 3600.0) -> None:
        if ttl_s <= 0:
            raise ValueError("ttl_s must be > 0")
        self.ttl_s = ttl_s
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                return None
            return value

    def put(self, key: str, value: Any) -> None:
        now = time.monotonic()
        with self._lock:
            self._sweep(now)
            # Re-insert so dict order stays sorted by expiry.
            self._entries.pop(key, None)
            self._entries[key] = (now + self.ttl_s, value)

    def _sweep(self, now: float) -> None:
        expired = []
        for key, (expires_at, _) in self._entries.items():
            if expires_at > now:
                break
            expired.append(key)
        for key in expired:
            del self._entries[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
