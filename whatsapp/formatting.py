"""Display helpers for conversations and messages."""
from __future__ import annotations

import datetime as _dt
import re
from typing import Any, Optional
from urllib.parse import quote

from core.date_utils import parse_iso, utc_now

from .constants import (
    SENDER_AI,
    SENDER_CUSTOMER,
    STATUS_DELIVERED,
    STATUS_FAILED,
    STATUS_READ,
    STATUS_SENT,
)
from .models import Conversation, Message

AVATAR_URL = "https://ui-avatars.com/api/?name={initial}&background=25D366&color=fff&size=40"

_STATUS_ICONS = {
    STATUS_SENT: "✓",
    STATUS_DELIVERED: "✓✓",
    STATUS_READ: "✓✓",
    STATUS_FAILED: "❌",
}
_PENDING_ICON = "⏳"


def format_phone_number(phone_number: str) -> str:
    """Strip everything but digits ('+1 (555) 010-2030' -> '15550102030')."""
    return re.sub(r"\D", "", phone_number or "")


def validate_phone_number(phone_number: str) -> bool:
    return 8 <= len(format_phone_number(phone_number)) <= 15


def format_message_time(timestamp: Any, now: Optional[_dt.datetime] = None) -> str:
    """Relative age of a message: 'just now', '5m ago', '3h ago', 'yesterday', '4d ago'.

    Anything a week or older renders as the local calendar date.
    """
    message_time = parse_iso(timestamp)
    if message_time is None:
        return ""
    seconds = ((now or utc_now()) - message_time).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days == 1:
        return "yesterday"
    if days < 7:
        return f"{days}d ago"
    return message_time.astimezone().date().isoformat()


def conversation_display_name(conversation: Conversation) -> str:
    metadata = conversation.get("metadata") or {}
    name = (
        conversation.get("contactName")
        or conversation.get("customerName")
        or (metadata.get("profileName") if isinstance(metadata, dict) else None)
    )
    if name:
        return str(name)
    phone = str(conversation.get("phoneNumber") or "")
    return f"WhatsApp User {phone[-4:] if phone else 'Unknown'}"


def conversation_avatar_url(conversation: Conversation) -> str:
    initial = conversation_display_name(conversation)[:1].upper()
    return AVATAR_URL.format(initial=quote(initial))


def message_status_icon(status: Optional[str]) -> str:
    return _STATUS_ICONS.get(status or "", _PENDING_ICON)


def is_customer_message(message: Message) -> bool:
    return message.get("sender") == SENDER_CUSTOMER


def is_ai_message(message: Message) -> bool:
    return message.get("sender") == SENDER_AI


def message_preview(content: Optional[str], max_length: int = 50) -> str:
    if not content:
        return "No message"
    if len(content) <= max_length:
        return content
    return content[: max_length - 3] + "..."
