"""Best-effort persistence after a successful generation.

Each side effect is queued as an :class:`OutboxEntry` and executed after the
response has been computed. Failures are logged and kept for :meth:`replay`,
up to ``max_pending`` entries; they never reach the caller. Side effects whose
store is not configured are not planned at all.
"""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

from loguru import logger

from tryon.errors import SideEffectError
from tryon.services.history import HistoryRecord, HistoryRepository
from tryon.services.usage import UsageCounter

USAGE_INCREMENT = "usage_increment"
HISTORY_INSERT = "history_insert"
DEFAULT_MAX_PENDING = 500


@dataclass
class OutboxEntry:
    kind: str
    payload: Dict[str, Any]
    attempts: int = 0
    last_error: Optional[str] = None


@dataclass
class RecordOutcome:
    succeeded: List[OutboxEntry] = field(default_factory=list)
    failed: List[OutboxEntry] = field(default_factory=list)


class SideEffectRecorder:
    def __init__(
        self,
        usage: Optional[UsageCounter] = None,
        history: Optional[HistoryRepository] = None,
        *,
        max_pending: int = DEFAULT_MAX_PENDING,
    ) -> None:
        self.usage = usage
        self.history = history
        self._pending: Deque[OutboxEntry] = deque(maxlen=max(max_pending, 1))
        self._lock = threading.Lock()
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            USAGE_INCREMENT: self._increment_usage,
            HISTORY_INSERT: self._insert_history,
        }

    @property
    def pending(self) -> List[OutboxEntry]:
        with self._lock:
            return list(self._pending)

    def plan(
        self,
        *,
        shop_domain: Optional[str],
        history: Optional[HistoryRecord],
    ) -> List[OutboxEntry]:
        """Entries for one successful generation; empty when ids or stores are missing."""

        entries: List[OutboxEntry] = []
        if shop_domain and self.usage is not None:
            entries.append(OutboxEntry(USAGE_INCREMENT, {"shop_domain": shop_domain}))
        if (
            self.history is not None
            and history is not None
            and history.session_id
            and history.shop_domain
            and history.product_id
        ):
            entries.append(OutboxEntry(HISTORY_INSERT, {"record": history}))
        return entries

    def _increment_usage(self, payload: Dict[str, Any]) -> None:
        if self.usage is None:
            raise SideEffectError("usage counter is not configured")
        count = self.usage.increment(payload["shop_domain"])
        logger.debug("usage incremented shop={} count={}", payload["shop_domain"], count)

    def _insert_history(self, payload: Dict[str, Any]) -> None:
        if self.history is None:
            raise SideEffectError("history repository is not configured")
        row_id = self.history.insert(payload["record"])
        logger.debug("history saved id={}", row_id)

    def _run(self, entry: OutboxEntry) -> bool:
        entry.attempts += 1
        handler = self._handlers.get(entry.kind)
        try:
            if handler is None:
                raise SideEffectError(f"no handler for outbox entry {entry.kind}")
            handler(entry.payload)
        except Exception as exc:  # noqa: BLE001 - side effects never fail the request
            entry.last_error = f"{type(exc).__name__}: {exc}"[:500]
            logger.opt(exception=exc).warning(
                "side effect {} failed (attempt {})", entry.kind, entry.attempts
            )
            return False
        return True

    def record(self, entries: List[OutboxEntry]) -> RecordOutcome:
        outcome = RecordOutcome()
        for entry in entries:
            if self._run(entry):
                outcome.succeeded.append(entry)
            else:
                outcome.failed.append(entry)
        if outcome.failed:
            self._retain(outcome.failed)
        return outcome

    def _retain(self, entries: List[OutboxEntry]) -> None:
        with self._lock:
            overflow = len(self._pending) + len(entries) - self._pending.maxlen
            if overflow > 0:
                logger.error(
                    "outbox full (max {}); dropping {} oldest entries",
                    self._pending.maxlen,
                    overflow,
                )
            self._pending.extend(entries)

    def replay(self) -> RecordOutcome:
        """Retry every retained failure once."""

        with self._lock:
            entries = list(self._pending)
            self._pending.clear()
        return self.record(entries)


__all__ = ["OutboxEntry", "RecordOutcome", "SideEffectRecorder"]
