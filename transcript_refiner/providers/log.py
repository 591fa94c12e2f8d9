"""Bounded in-memory log of provider calls with summary statistics.

WHY: Refinements can be slow, fail on quota, or silently fall back to
original content. Operators need to see recent calls (which provider,
which model, how long, whether it worked) without a metrics stack.

HOW: ApiCallLog keeps the newest entries in a deque capped at
``max_entries``. ``get_stats`` aggregates totals by provider, model,
and action on demand.

RULES:
- Entries are returned newest first
- The oldest entry is dropped once max_entries is reached
- All methods are guarded by a threading.Lock
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 100


@dataclass
class ApiCallEntry:
    id: str
    timestamp: str
    provider: str
    model: str
    action: str
    duration_ms: int
    success: bool
    batches: Optional[int] = None
    error: Optional[str] = None


class ApiCallLog:
    """Thread-safe ring buffer of provider call records."""

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._entries: Deque[ApiCallEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def log(
        self,
        provider: str,
        model: str,
        action: str,
        duration_ms: int,
        success: bool = True,
        batches: Optional[int] = None,
        error: Optional[str] = None,
    ) -> ApiCallEntry:
        entry = ApiCallEntry(
            id=uuid.uuid4().hex[:12],
            timestamp=datetime.now(timezone.utc).isoformat(),
            provider=provider or "unknown",
            model=model or "unknown",
            action=action or "unknown",
            duration_ms=duration_ms,
            success=success,
            batches=batches,
            error=error,
        )
        with self._lock:
            self._entries.appendleft(entry)
        logger.info(
            "[API] %s/%s - %s (%dms) %s",
            entry.provider, entry.model, entry.action, duration_ms,
            "ok" if success else "failed",
        )
        return entry

    def get_logs(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [asdict(entry) for entry in self._entries]

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            entries = list(self._entries)

        by_provider: Dict[str, Dict[str, int]] = {}
        by_model: Dict[str, Dict[str, Any]] = {}
        by_action: Dict[str, int] = {}
        for entry in entries:
            provider = by_provider.setdefault(entry.provider, {"count": 0, "success": 0, "failed": 0})
            provider["count"] += 1
            provider["success" if entry.success else "failed"] += 1
            model = by_model.setdefault(entry.model, {"count": 0, "provider": entry.provider})
            model["count"] += 1
            by_action[entry.action] = by_action.get(entry.action, 0) + 1

        total_duration = sum(entry.duration_ms for entry in entries)
        return {
            "total_calls": len(entries),
            "success_count": sum(1 for entry in entries if entry.success),
            "failure_count": sum(1 for entry in entries if not entry.success),
            "by_provider": by_provider,
            "by_model": by_model,
            "by_action": by_action,
            "avg_duration_ms": round(total_duration / len(entries)) if entries else 0,
        }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
