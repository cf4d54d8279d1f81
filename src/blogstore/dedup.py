"""Per-operation registry of uploaded content hashes."""

from __future__ import annotations

import threading


class Deduplicator:
    """Tracks which content hashes were already uploaded in one operation.

    Create a fresh instance per publish; never share one across operations.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    def check_and_insert(self, content_hash: str) -> bool:
        """Mark *content_hash* seen and return True if it already was."""
        with self._lock:
            if content_hash in self._seen:
                return True
            self._seen.add(content_hash)
            return False

    def __contains__(self, content_hash: str) -> bool:
        with self._lock:
            return content_hash in self._seen

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)
