"""Persisted FIFO of outgoing messages composed while offline."""
from __future__ import annotations

import datetime as _dt
import logging
from typing import Any, Callable, List, Optional

from core.date_utils import to_iso_str, utc_now

from .client import WhatsAppConnectionError
from .constants import QUEUE_KEY
from .models import QueuedMessage, ReplayReport

LOG = logging.getLogger(__name__)

SendFunc = Callable[[QueuedMessage], bool]


class OutgoingQueue:
    """Append-only queue stored as a JSON list under ``QUEUE_KEY``.

    Replay is strictly sequential and stops at the first connection failure so
    ordering is kept across reconnects. There is no backoff and no attempt
    limit: an entry stays queued until it is delivered or rejected.
    """

    def __init__(
        self,
        store: Any,
        key: str = QUEUE_KEY,
        clock: Callable[[], _dt.datetime] = utc_now,
    ) -> None:
        self.store = store
        self.key = key
        self.clock = clock

    def _load(self) -> List[dict]:
        try:
            raw = self.store.get(self.key, [])
        except (OSError, ValueError) as exc:
            LOG.warning("Could not read outgoing queue: %s", exc)
            return []
        return [e for e in raw if isinstance(e, dict)] if isinstance(raw, list) else []

    def _save(self, entries: List[QueuedMessage]) -> None:
        if entries:
            self.store.set(self.key, [e.to_dict() for e in entries])
        else:
            self.store.remove(self.key)

    def entries(self) -> List[QueuedMessage]:
        return [QueuedMessage.from_dict(e) for e in self._load()]

    def count(self) -> int:
        return len(self._load())

    def clear(self) -> None:
        self.store.remove(self.key)

    def enqueue(
        self,
        to: str,
        message: str,
        message_type: str = "text",
        conversation_id: Optional[str] = None,
        optimistic_id: Optional[str] = None,
    ) -> QueuedMessage:
        entries = self.entries()
        now = self.clock()
        entry_id = int(now.timestamp() * 1000)
        if entries and entry_id <= entries[-1].id:
            entry_id = entries[-1].id + 1
        entry = QueuedMessage(
            id=entry_id,
            to=to,
            message=message,
            message_type=message_type,
            timestamp=to_iso_str(now),
            conversation_id=conversation_id,
            optimistic_id=optimistic_id,
        )
        entries.append(entry)
        self._save(entries)
        LOG.info("Queued message %s for %s (%d pending)", entry.id, to, len(entries))
        return entry

    def replay(self, send: SendFunc) -> ReplayReport:
        """Send queued entries in order through ``send``.

        ``send`` returns True when delivered and False when the server rejected
        the message; both remove the entry. ``WhatsAppConnectionError`` halts the
        replay, keeping that entry and everything after it.
        """
        entries = self.entries()
        report = ReplayReport()
        if not entries:
            return report

        LOG.info("Replaying %d queued message(s)", len(entries))
        remaining: List[QueuedMessage] = []
        for pos, entry in enumerate(entries):
            try:
                delivered = send(entry)
            except WhatsAppConnectionError as exc:
                LOG.warning("Connection lost during replay, keeping %d message(s): %s", len(entries) - pos, exc)
                remaining = entries[pos:]
                break
            except Exception:
                LOG.exception("Error sending queued message %s", entry.id)
                delivered = False
            if delivered:
                report.sent += 1
            else:
                report.failed += 1

        self._save(remaining)
        report.remaining = len(remaining)
        return report
