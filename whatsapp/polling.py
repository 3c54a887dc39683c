"""Periodic message refresh for a single conversation."""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Optional

from .constants import DEFAULT_POLL_INTERVAL
from .models import Message

LOG = logging.getLogger(__name__)

MessagesCallback = Callable[[List[Message]], None]


class MessagePoller:
    """Call ``sync_client.get_messages`` every ``interval`` seconds.

    ``run()`` blocks (the CLI ``watch`` command); ``start()`` runs the same
    loop on a daemon thread and ``stop()`` is the cleanup handle for both.
    Poll errors are logged and the loop keeps going.
    """

    def __init__(
        self,
        sync_client: Any,
        conversation_id: Any,
        callback: MessagesCallback,
        interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        if interval <= 0:
            raise ValueError("Polling interval must be positive")
        self.sync_client = sync_client
        self.conversation_id = conversation_id
        self.callback = callback
        self.interval = float(interval)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.polls = 0

    def poll_once(self) -> bool:
        self.polls += 1
        try:
            result = self.sync_client.get_messages(self.conversation_id)
            self.callback(result.data or [])
            return True
        except Exception:
            LOG.exception("Polling error for %s", self.conversation_id)
            return False

    def run(self, iterations: Optional[int] = None) -> int:
        """Poll now and then on every tick until stopped or ``iterations`` done."""
        done = 0
        while not self._stop.is_set():
            self.poll_once()
            done += 1
            if iterations is not None and done >= iterations:
                break
            if self._stop.wait(self.interval):
                break
        return done

    def start(self) -> "MessagePoller":
        if self._thread is not None and self._thread.is_alive():
            return self
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run,
            name=f"whatsapp-poll-{self.conversation_id}",
            daemon=True,
        )
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
