"""In-memory cache of analysis results keyed by input fingerprint."""

import hashlib
import json
import os
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from ..logger import logger
from .deep_json import copy_json
from .models import AnalysisResult
from .tree import build_extracted_elements, copy_tree

DEFAULT_MAX_ENTRIES = int(os.getenv("LAYOUT_CACHE_MAX_ENTRIES", "1000"))
DEFAULT_TTL_SECONDS = float(os.getenv("LAYOUT_CACHE_TTL_SECONDS", str(24 * 60 * 60)))


def compute_fingerprint(
    pdf_bytes: bytes,
    schema: dict[str, Any] | None = None,
    instructions: str | None = None,
) -> str:
    """Compute a SHA-256 fingerprint of everything that shapes a result.

    Args:
        pdf_bytes: Raw PDF content.
        schema: Optional extraction schema; key order does not matter.
        instructions: Optional free-text instructions.

    Returns:
        Hex-encoded SHA-256 hash string.
    """
    sha256 = hashlib.sha256()
    sha256.update(pdf_bytes)
    sha256.update(b"\x00schema:")
    if schema is not None:
        sha256.update(json.dumps(schema, sort_keys=True, ensure_ascii=False).encode("utf-8"))
    sha256.update(b"\x00instructions:")
    if instructions:
        sha256.update(instructions.strip().encode("utf-8"))
    return sha256.hexdigest()


def _copy_result(result: AnalysisResult) -> AnalysisResult:
    """Copy everything mutable in a result, without recursing into the tree."""
    tree = result.document_tree
    if tree is not None:
        tree = copy_tree(tree)
    elements = None
    if tree is not None and result.extracted_elements is not None:
        elements = build_extracted_elements(tree)
    report = result.extraction_report
    if report is not None:
        report = report.model_copy(deep=True)
    return result.model_copy(
        update={
            "document_tree": tree,
            "extracted_elements": elements,
            "data": copy_json(result.data),
            "extraction_report": report,
        }
    )


@dataclass
class _CacheEntry:
    result: AnalysisResult
    expires_at: float


class ResponseCache:
    """Bounded, TTL-based result cache.

    When full, the least recently inserted entry is evicted. Results are
    copied on the way in and out so cached trees are never shared between
    callers. Safe to use from several threads.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, fingerprint: str) -> AnalysisResult | None:
        """Return a copy of the cached result, or None when missing or expired."""
        with self._lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[fingerprint]
                return None
            return _copy_result(entry.result)

    def put(
        self,
        fingerprint: str,
        result: AnalysisResult,
        ttl: float | None = None,
    ) -> None:
        """Store a result, evicting the oldest insertion if the cache is full."""
        expires_at = self._clock() + (ttl if ttl is not None else self.ttl_seconds)
        with self._lock:
            # Re-inserting moves the key to the newest position
            self._entries.pop(fingerprint, None)
            while len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("cache entry evicted", fingerprint=evicted)
            self._entries[fingerprint] = _CacheEntry(
                result=_copy_result(result), expires_at=expires_at
            )

    def cleanup_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
