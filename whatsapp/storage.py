"""Bounded local cache of WhatsApp conversations and messages.

Everything lives in a key-value store (see ``core.cache``) under the keys in
``whatsapp.constants``. Bounds are enforced on every save:

- conversations: newest ``max_conversations`` by ``lastMessageTime``;
- messages: per conversation, only messages strictly newer than
  ``retention_days`` ago, newest ``max_messages_per_conversation`` kept.

Reads never raise: unreadable data logs a warning and yields the empty value.
Writes return False (and log) when the store rejects them.
"""
from __future__ import annotations

import datetime as _dt
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from core.date_utils import parse_iso, to_iso_str, utc_now

from .constants import (
    CONFIG_KEY,
    CONVERSATIONS_KEY,
    EXPORT_VERSION,
    LAST_SYNC_KEY,
    MESSAGES_KEY,
    SETTINGS_KEY,
    STORAGE_KEYS,
)
from .merge import is_duplicate_message, sort_conversations, sort_messages
from .models import Conversation, Message, StorageInfo, StorageSettings

LOG = logging.getLogger(__name__)

_WRITE_ERRORS = (OSError, TypeError, ValueError)


class Storage:
    def __init__(self, store: Any, clock: Callable[[], _dt.datetime] = utc_now) -> None:
        self.store = store
        self.clock = clock
        self.settings = self.get_settings()

    # -- low level -----------------------------------------------------------

    def _read(self, key: str, default: Any, expected: type) -> Any:
        try:
            value = self.store.get(key, default)
        except _WRITE_ERRORS as exc:
            LOG.warning("Could not read %s: %s", key, exc)
            return default
        if value is None:
            return default
        if not isinstance(value, expected):
            LOG.warning("Discarding %s: expected %s, found %s", key, expected.__name__, type(value).__name__)
            return default
        return value

    def _write(self, key: str, value: Any) -> bool:
        try:
            self.store.set(key, value)
            return True
        except _WRITE_ERRORS as exc:
            LOG.error("Could not save %s: %s", key, exc)
            return False

    # -- settings ------------------------------------------------------------

    def get_settings(self) -> StorageSettings:
        return StorageSettings.from_dict(self._read(SETTINGS_KEY, {}, dict))

    def update_settings(self, **changes: Any) -> bool:
        unknown = set(changes) - set(StorageSettings.field_names())
        if unknown:
            raise ValueError(f"Unknown storage setting(s): {', '.join(sorted(unknown))}")
        checked = {name: StorageSettings.validate(name, value) for name, value in changes.items()}
        merged = {**self.settings.to_dict(), **checked}
        if not self._write(SETTINGS_KEY, merged):
            return False
        self.settings = StorageSettings.from_dict(merged)
        return True

    # -- conversations -------------------------------------------------------

    def get_conversations(self) -> List[Conversation]:
        items = self._read(CONVERSATIONS_KEY, [], list)
        return sort_conversations(c for c in items if isinstance(c, dict))

    def save_conversations(self, conversations: List[Conversation]) -> bool:
        limited = sort_conversations(conversations)[: max(0, int(self.settings.max_conversations))]
        if not self._write(CONVERSATIONS_KEY, limited):
            return False
        self.update_last_sync()
        return True

    def update_conversation(self, conversation_id: Any, updates: Dict[str, Any]) -> bool:
        conversations = self.get_conversations()
        for i, conv in enumerate(conversations):
            # CLI ids arrive as strings; the backend may use ints
            if str(conv.get("id")) == str(conversation_id):
                conversations[i] = {**conv, **updates}
                return self.save_conversations(conversations)
        return False

    def find_conversation(self, phone_number: str) -> Optional[Conversation]:
        """Conversation whose ``phoneNumber`` or ``to`` equals ``phone_number``."""
        for conv in self.get_conversations():
            if conv.get("phoneNumber") == phone_number or conv.get("to") == phone_number:
                return conv
        return None

    # -- messages ------------------------------------------------------------

    def _all_messages(self) -> Dict[str, List[Message]]:
        return self._read(MESSAGES_KEY, {}, dict)

    def get_messages(self, conversation_id: Any) -> List[Message]:
        items = self._all_messages().get(str(conversation_id)) or []
        return sort_messages(m for m in items if isinstance(m, dict))

    def save_messages(self, conversation_id: Any, messages: List[Message]) -> bool:
        cutoff = self.clock() - _dt.timedelta(days=self.settings.retention_days)
        kept = []
        for msg in messages:
            ts = parse_iso(msg.get("timestamp"))
            if ts is not None and ts > cutoff:
                kept.append(msg)
        kept = sort_messages(kept, newest_first=True)[: max(0, int(self.settings.max_messages_per_conversation))]

        all_messages = self._all_messages()
        all_messages[str(conversation_id)] = kept
        return self._write(MESSAGES_KEY, all_messages)

    def add_message(self, conversation_id: Any, message: Message) -> bool:
        existing = self.get_messages(conversation_id)
        if any(is_duplicate_message(m, message) for m in existing):
            return True
        existing.append(message)
        return self.save_messages(conversation_id, existing)

    def update_message(self, conversation_id: Any, message_id: Any, updates: Dict[str, Any]) -> bool:
        messages = self.get_messages(conversation_id)
        found = False
        for i, msg in enumerate(messages):
            if msg.get("id") == message_id:
                messages[i] = {**msg, **updates}
                found = True
        if not found:
            return False
        return self.save_messages(conversation_id, messages)

    # -- sync bookkeeping ----------------------------------------------------

    def get_last_sync(self) -> Optional[_dt.datetime]:
        return parse_iso(self._read(LAST_SYNC_KEY, None, str))

    def update_last_sync(self) -> bool:
        return self._write(LAST_SYNC_KEY, to_iso_str(self.clock()))

    def should_sync(self) -> bool:
        last_sync = self.get_last_sync()
        if last_sync is None:
            return True
        elapsed = (self.clock() - last_sync).total_seconds()
        return elapsed >= float(self.settings.sync_interval)

    # -- config --------------------------------------------------------------

    def get_config(self) -> Optional[Dict[str, Any]]:
        return self._read(CONFIG_KEY, None, dict)

    def save_config(self, config: Optional[Dict[str, Any]]) -> bool:
        return self._write(CONFIG_KEY, config)

    # -- housekeeping --------------------------------------------------------

    def calculate_storage_size(self) -> int:
        total = 0
        for key in STORAGE_KEYS.values():
            try:
                total += int(self.store.raw_size(key))
            except OSError as exc:
                LOG.warning("Could not size %s: %s", key, exc)
        return total

    def get_storage_info(self) -> StorageInfo:
        messages = self._all_messages()
        return StorageInfo(
            conversation_count=len(self.get_conversations()),
            total_messages=sum(len(v) for v in messages.values() if isinstance(v, list)),
            storage_size=self.calculate_storage_size(),
            last_sync=self.get_last_sync(),
            settings=self.settings,
        )

    def clear_storage(self) -> bool:
        ok = True
        for key in STORAGE_KEYS.values():
            try:
                self.store.remove(key)
            except OSError as exc:
                LOG.error("Could not remove %s: %s", key, exc)
                ok = False
        self.settings = self.get_settings()
        return ok

    def export_data(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for name, key in STORAGE_KEYS.items():
            value = self._read(key, None, object)
            if value is not None:
                data[name] = value
        return {
            "export_date": to_iso_str(self.clock()),
            "version": EXPORT_VERSION,
            "data": data,
        }

    def import_data(self, exported: Any) -> bool:
        """Restore a payload produced by ``export_data``.

        Unknown names are ignored. Returns False for a malformed payload.
        """
        if not isinstance(exported, dict) or not isinstance(exported.get("data"), dict):
            LOG.error("Invalid export data format")
            return False
        ok = True
        for name, value in exported["data"].items():
            key = STORAGE_KEYS.get(name)
            if key is None:
                LOG.debug("Skipping unknown export entry %s", name)
                continue
            try:
                json.dumps(value)
            except (TypeError, ValueError) as exc:
                LOG.error("Skipping %s: not serializable (%s)", name, exc)
                ok = False
                continue
            if key == SETTINGS_KEY:
                if not isinstance(value, dict):
                    LOG.error("Skipping %s: expected a mapping", name)
                    ok = False
                    continue
                value = StorageSettings.from_dict(value).to_dict()
            ok = self._write(key, value) and ok
        self.settings = self.get_settings()
        return ok
