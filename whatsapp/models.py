"""Typed records for the sync layer.

Conversations and messages stay plain dicts in the backend's wire format
(camelCase keys, extra fields preserved). The dataclasses here describe what
this package owns: settings, queue entries and operation results.
"""
from __future__ import annotations

import datetime as _dt
import logging
import math
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

from .constants import (
    DEFAULT_MAX_CONVERSATIONS,
    DEFAULT_MAX_MESSAGES_PER_CONVERSATION,
    DEFAULT_RETENTION_DAYS,
    DEFAULT_SYNC_INTERVAL,
)

LOG = logging.getLogger(__name__)

Conversation = Dict[str, Any]
Message = Dict[str, Any]


@dataclass
class StorageSettings:
    """Tunable bounds for the local cache."""

    max_conversations: int = DEFAULT_MAX_CONVERSATIONS
    max_messages_per_conversation: int = DEFAULT_MAX_MESSAGES_PER_CONVERSATION
    sync_interval: float = DEFAULT_SYNC_INTERVAL  # seconds
    retention_days: int = DEFAULT_RETENTION_DAYS
    enable_offline_mode: bool = True

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StorageSettings":
        """Overlay known keys from ``data`` onto the defaults.

        Values of the wrong type are logged and skipped, leaving the default.
        """
        known = set(cls.field_names())
        values: Dict[str, Any] = {}
        for name, value in (data or {}).items():
            if name not in known:
                continue
            try:
                values[name] = cls.validate(name, value)
            except ValueError as exc:
                LOG.warning("Ignoring storage setting %s: %s", name, exc)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def coerce(cls, name: str, raw: str) -> Any:
        """Convert a ``key=value`` string from the CLI to the field's type."""
        types = {f.name: f.default for f in fields(cls)}
        if name not in types:
            raise ValueError(f"Unknown storage setting: {name}")
        default = types[name]
        text = raw.strip()
        if isinstance(default, bool):
            lowered = text.lower()
            if lowered in ("1", "true", "yes", "on"):
                return True
            if lowered in ("0", "false", "no", "off"):
                return False
            raise ValueError(f"{name} expects true/false, got {raw!r}")
        try:
            value = type(default)(text)
        except ValueError as exc:
            raise ValueError(f"{name} expects a number, got {raw!r}") from exc
        if value < 0:
            raise ValueError(f"{name} must not be negative")
        return value

    @classmethod
    def validate(cls, name: str, value: Any) -> Any:
        """Check a stored, imported or programmatic value for ``name``.

        Strings go through ``coerce``; numbers must be finite, non-negative
        and whole for the integer fields.
        """
        if isinstance(value, str):
            return cls.coerce(name, value)
        types = {f.name: f.default for f in fields(cls)}
        if name not in types:
            raise ValueError(f"Unknown storage setting: {name}")
        default = types[name]
        if isinstance(default, bool):
            if isinstance(value, bool):
                return value
            raise ValueError(f"{name} expects true/false, got {value!r}")
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValueError(f"{name} expects a number, got {value!r}")
        if isinstance(default, int) and not float(value).is_integer():
            raise ValueError(f"{name} expects a whole number, got {value!r}")
        if value < 0:
            raise ValueError(f"{name} must not be negative")
        return type(default)(value)


@dataclass
class StorageInfo:
    conversation_count: int
    total_messages: int
    storage_size: int  # bytes
    last_sync: Optional[_dt.datetime]
    settings: StorageSettings


@dataclass
class QueuedMessage:
    """An outgoing message waiting for connectivity."""

    id: int
    to: str
    message: str
    message_type: str = "text"
    timestamp: str = ""
    conversation_id: Optional[str] = None
    optimistic_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "to": self.to,
            "message": self.message,
            "messageType": self.message_type,
            "timestamp": self.timestamp,
            "conversationId": self.conversation_id,
            "optimisticId": self.optimistic_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueuedMessage":
        return cls(
            id=int(data.get("id") or 0),
            to=str(data.get("to") or ""),
            message=str(data.get("message") or ""),
            message_type=str(data.get("messageType") or "text"),
            timestamp=str(data.get("timestamp") or ""),
            conversation_id=data.get("conversationId"),
            optimistic_id=data.get("optimisticId"),
        )


@dataclass
class FetchResult:
    """Outcome of a cached read (conversations, messages or config).

    ``source`` is ``"server"`` when fresh data was merged in, else ``"cache"``.
    """

    success: bool
    data: Any = None
    source: str = "cache"
    offline: bool = False
    synced: bool = False
    last_sync: Optional[_dt.datetime] = None
    new_messages: Optional[int] = None
    error: Optional[str] = None


@dataclass
class SendResult:
    success: bool
    queued: bool = False
    message_id: Optional[str] = None
    optimistic_message: Optional[Message] = None
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = None


@dataclass
class ReplayReport:
    sent: int = 0
    failed: int = 0
    remaining: int = 0


@dataclass
class SyncReport:
    """Summary of a full sync pass."""

    performed: bool = False
    conversations: int = 0
    conversations_synced: bool = False
    queue: ReplayReport = field(default_factory=ReplayReport)
    message_syncs: Dict[str, int] = field(default_factory=dict)
