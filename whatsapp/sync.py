"""Fetch-merge-persist orchestration over the local cache.

``SyncClient`` answers every read from the cache when offline and refreshes
from the backend when online. It owns the online flag: flipping it back on
triggers a full sync, which includes replaying the outgoing queue.

Everything runs on the caller's thread; there are no concurrent writers.
"""
from __future__ import annotations

import datetime as _dt
import logging
from typing import Any, Callable, Dict, List, Optional

from core.date_utils import to_iso_str, utc_now

from .client import WhatsAppAPI, WhatsAppAPIError, WhatsAppConnectionError
from .constants import (
    FULL_SYNC_CONVERSATIONS,
    SENDER_AGENT,
    STATUS_FAILED,
    STATUS_SENDING,
    STATUS_SENT,
    TEMP_ID_PREFIX,
)
from .merge import merge_conversations, merge_messages
from .models import (
    FetchResult,
    Message,
    QueuedMessage,
    ReplayReport,
    SendResult,
    StorageInfo,
    SyncReport,
)
from .outbox import OutgoingQueue
from .storage import Storage

LOG = logging.getLogger(__name__)

StatusListener = Callable[[bool], None]

OFFLINE_QUEUED_ERROR = "Offline - message queued for sending"


class SyncClient:
    def __init__(
        self,
        api: WhatsAppAPI,
        storage: Storage,
        queue: Optional[OutgoingQueue] = None,
        online: bool = True,
        clock: Callable[[], _dt.datetime] = utc_now,
    ) -> None:
        self.api = api
        self.storage = storage
        self.queue = queue or OutgoingQueue(storage.store, clock=clock)
        self.clock = clock
        self._online = online
        self._listeners: List[StatusListener] = []
        self._last_temp_ms = 0

    # -- connectivity --------------------------------------------------------

    @property
    def is_online(self) -> bool:
        return self._online

    def add_listener(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def set_online(self, online: bool) -> Optional[SyncReport]:
        """Record a connectivity change; coming back online runs a full sync."""
        online = bool(online)
        if online == self._online:
            return None
        self._online = online
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                LOG.exception("Connectivity listener failed")
        if not online:
            LOG.info("Offline mode activated")
            return None
        LOG.info("Connection restored - syncing data")
        return self.sync_with_server()

    def refresh_connectivity(self) -> bool:
        """Probe the backend and update the online flag accordingly."""
        self.set_online(self.api.is_reachable())
        return self._online

    # -- reads ---------------------------------------------------------------

    def get_conversations(self) -> FetchResult:
        local = self.storage.get_conversations()
        if not self._online:
            LOG.info("Offline - returning cached conversations")
            return FetchResult(success=True, data=local, source="cache", offline=True)

        if self.storage.should_sync():
            try:
                LOG.info("Syncing conversations with server")
                body = self.api.list_conversations()
                server = body.get("conversations")
                if body.get("success") and isinstance(server, list):
                    merged = merge_conversations(local, server)
                    if self.storage.save_conversations(merged):
                        merged = self.storage.get_conversations()
                    LOG.info("Conversations synced and cached (%d)", len(merged))
                    return FetchResult(success=True, data=merged, source="server", synced=True)
                LOG.warning("Server returned no conversations: %s", body.get("error") or body.get("message"))
            except WhatsAppAPIError as exc:
                LOG.warning("Server sync failed, using cached data: %s", exc)

        return FetchResult(success=True, data=local, source="cache", last_sync=self.storage.get_last_sync())

    def get_messages(self, conversation_id: Any) -> FetchResult:
        local = self.storage.get_messages(conversation_id)
        if not self._online:
            LOG.info("Offline - returning cached messages for %s", conversation_id)
            return FetchResult(success=True, data=local, source="cache", offline=True)

        since = local[-1].get("timestamp") if local else None
        try:
            LOG.info("Fetching new messages for %s", conversation_id)
            body = self.api.list_messages(conversation_id, since=since)
            server = body.get("messages")
            if body.get("success") and isinstance(server, list):
                merged = merge_messages(local, server)
                if self.storage.save_messages(conversation_id, merged):
                    merged = self.storage.get_messages(conversation_id)
                LOG.info("Messages synced for %s (%d new from server)", conversation_id, len(server))
                return FetchResult(success=True, data=merged, source="server", new_messages=len(server))
        except WhatsAppAPIError as exc:
            LOG.warning("Server sync failed for messages %s, using cached: %s", conversation_id, exc)

        return FetchResult(success=True, data=local, source="cache")

    def get_config(self) -> FetchResult:
        local = self.storage.get_config()
        if not self._online:
            return FetchResult(success=True, data=local, source="cache", offline=True)
        try:
            body = self.api.get_config()
        except WhatsAppAPIError as exc:
            LOG.error("Error fetching WhatsApp config: %s", exc)
            return FetchResult(success=False, data=local, source="cache", error=str(exc))
        if body.get("success"):
            config = body.get("config")
            self.storage.save_config(config)
            return FetchResult(success=True, data=config, source="server", synced=True)
        return FetchResult(success=True, data=local, source="cache")

    # -- writes --------------------------------------------------------------

    def _optimistic_message(self, content: str) -> Message:
        now = self.clock()
        stamp = max(int(now.timestamp() * 1000), self._last_temp_ms + 1)
        self._last_temp_ms = stamp
        return {
            "id": f"{TEMP_ID_PREFIX}{stamp}",
            "content": content,
            "sender": SENDER_AGENT,
            "timestamp": to_iso_str(now),
            "status": STATUS_SENDING,
            "isOptimistic": True,
        }

    def _settle(self, conversation_id: Any, optimistic_id: Optional[str], body: Dict[str, Any]) -> bool:
        """Apply a send response to the stored optimistic message."""
        delivered = bool(body.get("success"))
        if conversation_id is None or not optimistic_id:
            return delivered
        if delivered and body.get("messageId"):
            updates = {"id": body["messageId"], "status": STATUS_SENT, "isOptimistic": False}
        elif delivered:
            updates = {"status": STATUS_SENT, "isOptimistic": False}
        else:
            updates = {"status": STATUS_FAILED}
        self.storage.update_message(conversation_id, optimistic_id, updates)
        return delivered

    def send_message(self, to: str, message: str, message_type: str = "text") -> SendResult:
        optimistic = self._optimistic_message(message)
        conversation = self.storage.find_conversation(to)
        conversation_id = conversation.get("id") if conversation else None
        if conversation_id is not None:
            self.storage.add_message(conversation_id, optimistic)
            self.storage.update_conversation(
                conversation_id,
                {"lastMessage": message, "lastMessageTime": optimistic["timestamp"]},
            )

        if not self._online:
            self.queue.enqueue(
                to,
                message,
                message_type,
                conversation_id=conversation_id,
                optimistic_id=optimistic["id"],
            )
            return SendResult(success=False, queued=True, optimistic_message=optimistic, error=OFFLINE_QUEUED_ERROR)

        try:
            body = self.api.send_message(to, message, message_type)
        except WhatsAppAPIError as exc:
            LOG.error("Error sending WhatsApp message to %s: %s", to, exc)
            self._settle(conversation_id, optimistic["id"], {"success": False})
            return SendResult(success=False, optimistic_message=optimistic, error=str(exc))

        if self._settle(conversation_id, optimistic["id"], body):
            return SendResult(
                success=True,
                message_id=body.get("messageId"),
                optimistic_message=optimistic,
                response=body,
            )
        return SendResult(
            success=False,
            optimistic_message=optimistic,
            error=body.get("error") or "Failed to send message",
            response=body,
        )

    def mark_conversation_as_read(self, conversation_id: Any) -> Dict[str, Any]:
        found = self.storage.update_conversation(
            conversation_id,
            {"unreadCount": 0, "lastReadTime": to_iso_str(self.clock())},
        )
        if not self._online:
            if not found:
                return {"success": False, "source": "cache", "notFound": True,
                        "error": f"Conversation {conversation_id} not found in cache"}
            return {"success": True, "source": "cache"}
        try:
            return self.api.mark_read(conversation_id)
        except WhatsAppAPIError as exc:
            LOG.error("Error marking conversation %s as read: %s", conversation_id, exc)
            return {"success": False, "error": str(exc)}

    # -- queue / full sync ---------------------------------------------------

    def _send_queued(self, entry: QueuedMessage) -> bool:
        # Connection errors propagate so the queue keeps this entry
        try:
            body = self.api.send_message(entry.to, entry.message, entry.message_type)
        except WhatsAppConnectionError:
            raise
        except WhatsAppAPIError as exc:
            LOG.error("Queued message %s rejected: %s", entry.id, exc)
            body = {"success": False}
        return self._settle(entry.conversation_id, entry.optimistic_id, body)

    def sync_queued_messages(self) -> ReplayReport:
        report = self.queue.replay(self._send_queued)
        if report.sent or report.failed:
            LOG.info("Queued messages synced: %d sent, %d failed, %d remaining",
                     report.sent, report.failed, report.remaining)
        return report

    def sync_with_server(self) -> SyncReport:
        """Conversations, then the outgoing queue, then recent message lists."""
        report = SyncReport()
        if not self._online:
            return report
        report.performed = True
        LOG.info("Starting full sync with server")

        conversations = self.get_conversations()
        report.conversations_synced = conversations.synced
        report.queue = self.sync_queued_messages()

        top = self.storage.get_conversations()[:FULL_SYNC_CONVERSATIONS]
        report.conversations = len(top)
        for conv in top:
            result = self.get_messages(conv.get("id"))
            report.message_syncs[str(conv.get("id"))] = result.new_messages or 0
        LOG.info("Full sync completed")
        return report

    # -- storage passthroughs ------------------------------------------------

    def get_storage_info(self) -> StorageInfo:
        return self.storage.get_storage_info()

    def clear_storage(self) -> bool:
        return self.storage.clear_storage()

    def update_storage_settings(self, **changes: Any) -> bool:
        return self.storage.update_settings(**changes)

    def export_data(self) -> Dict[str, Any]:
        return self.storage.export_data()

    def import_data(self, data: Any) -> bool:
        return self.storage.import_data(data)

    def get_queued_messages_count(self) -> int:
        return self.queue.count()
