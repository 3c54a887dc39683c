"""Merge helpers for local and server conversation state.

Conflict rule is last-write-wins on fields with a union of records. Two
identity rules apply:

- messages are the same when their ``id`` matches, or when both
  ``timestamp`` and ``content`` match (an optimistic copy and the server echo
  of one send);
- conversations are the same when their ``id`` matches; the higher
  ``unreadCount`` survives so messages counted while offline are not lost.
"""
from __future__ import annotations

from typing import Iterable, List

from core.date_utils import sort_key

from .models import Conversation, Message


def is_duplicate_message(a: Message, b: Message) -> bool:
    # Missing ids never match each other; such messages fall through to timestamp+content
    if a.get("id") is not None and a.get("id") == b.get("id"):
        return True
    return a.get("timestamp") == b.get("timestamp") and a.get("content") == b.get("content")


def sort_messages(messages: Iterable[Message], newest_first: bool = False) -> List[Message]:
    return sorted(messages, key=lambda m: sort_key(m.get("timestamp")), reverse=newest_first)


def sort_conversations(conversations: Iterable[Conversation]) -> List[Conversation]:
    """Most recently active first."""
    return sorted(conversations, key=lambda c: sort_key(c.get("lastMessageTime")), reverse=True)


def merge_messages(local: Iterable[Message], server: Iterable[Message]) -> List[Message]:
    """Union of ``local`` and unseen ``server`` messages, oldest first."""
    merged: List[Message] = [dict(m) for m in local]
    for incoming in server:
        if not any(is_duplicate_message(existing, incoming) for existing in merged):
            merged.append(dict(incoming))
    return sort_messages(merged)


def merge_conversations(local: Iterable[Conversation], server: Iterable[Conversation]) -> List[Conversation]:
    """Merge by ``id``; server fields win except ``unreadCount`` (max of both)."""
    merged: List[Conversation] = [dict(c) for c in local]
    index = {c.get("id"): i for i, c in enumerate(merged)}
    for incoming in server:
        pos = index.get(incoming.get("id"))
        if pos is None:
            index[incoming.get("id")] = len(merged)
            merged.append(dict(incoming))
            continue
        current = merged[pos]
        unread = max(current.get("unreadCount") or 0, incoming.get("unreadCount") or 0)
        merged[pos] = {**current, **incoming, "unreadCount": unread}
    return merged
