"""WhatsApp pipeline primitives built on shared core scaffolding.

Each CLI command builds a request carrying the ``SyncClient`` and the output
writer, a processor turns it into a ``CommandOutput``, and
``CommandProducer`` renders that as text/table or structured JSON/YAML.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from core.cli_errors import NetworkError, NotFoundError, UsageError
from core.cli_output import OutputWriter
from core.pipeline import BaseProducer, SafeProcessor
from core.yamlio import read_document, write_document

from .formatting import (
    conversation_display_name,
    format_message_time,
    message_preview,
    message_status_icon,
    validate_phone_number,
)
from .models import FetchResult, StorageSettings
from .sync import SyncClient


@dataclass
class CommandOutput:
    """What a processor hands to the producer."""

    writer: OutputWriter
    data: Any = None  # structured form (json/yaml output)
    rows: Optional[List[Dict[str, Any]]] = None  # text/table form
    headers: Optional[List[str]] = None
    lines: List[str] = field(default_factory=list)


@dataclass
class CommandRequest:
    client: SyncClient
    writer: OutputWriter


@dataclass
class ListRequest(CommandRequest):
    limit: Optional[int] = None


@dataclass
class MessagesRequest(CommandRequest):
    conversation_id: str = ""
    limit: Optional[int] = None


@dataclass
class SendRequest(CommandRequest):
    to: str = ""
    message: str = ""
    message_type: str = "text"


@dataclass
class ConversationRequest(CommandRequest):
    conversation_id: str = ""


@dataclass
class PathRequest(CommandRequest):
    path: str = ""


@dataclass
class SettingsRequest(CommandRequest):
    assignments: List[str] = field(default_factory=list)


def _source_line(result: FetchResult) -> str:
    if result.offline:
        return "source: cache (offline)"
    if result.source == "server":
        return "source: server"
    if result.last_sync is not None:
        return f"source: cache (last sync {result.last_sync.isoformat()})"
    return "source: cache"


def _fetch_data(result: FetchResult, key: str, items: Any) -> Dict[str, Any]:
    data = {k: v for k, v in asdict(result).items() if k not in ("data", "error") and v is not None}
    data[key] = items
    return data


class ConversationsProcessor(SafeProcessor[ListRequest, CommandOutput]):
    def _process_safe(self, payload: ListRequest) -> CommandOutput:
        result = payload.client.get_conversations()
        conversations = list(result.data or [])
        if payload.limit:
            conversations = conversations[: payload.limit]
        rows = [
            {
                "id": c.get("id"),
                "name": conversation_display_name(c),
                "unread": c.get("unreadCount") or 0,
                "last": format_message_time(c.get("lastMessageTime")),
                "preview": message_preview(c.get("lastMessage"), 40),
            }
            for c in conversations
        ]
        return CommandOutput(
            writer=payload.writer,
            data=_fetch_data(result, "conversations", conversations),
            rows=rows,
            headers=["id", "name", "unread", "last", "preview"],
            lines=[_source_line(result)],
        )


class MessagesProcessor(SafeProcessor[MessagesRequest, CommandOutput]):
    def _process_safe(self, payload: MessagesRequest) -> CommandOutput:
        if not payload.conversation_id:
            raise UsageError("conversation id is required")
        result = payload.client.get_messages(payload.conversation_id)
        messages = list(result.data or [])
        if payload.limit:
            messages = messages[-payload.limit:]
        rows = [
            {
                "time": format_message_time(m.get("timestamp")),
                "sender": m.get("sender") or "",
                "status": message_status_icon(m.get("status")),
                "content": (m.get("content") or "").replace("\n", " "),
            }
            for m in messages
        ]
        return CommandOutput(
            writer=payload.writer,
            data=_fetch_data(result, "messages", messages),
            rows=rows,
            headers=["time", "sender", "status", "content"],
            lines=[_source_line(result)],
        )


class SendProcessor(SafeProcessor[SendRequest, CommandOutput]):
    def _process_safe(self, payload: SendRequest) -> CommandOutput:
        if not validate_phone_number(payload.to):
            raise UsageError(f"Invalid phone number: {payload.to}", hint="Use 8-15 digits, e.g. 15550102030")
        if not payload.message.strip():
            raise UsageError("Message text is empty")
        result = payload.client.send_message(payload.to, payload.message, payload.message_type)
        if result.queued:
            line = "Offline: message queued for sending"
        elif result.success:
            line = f"Sent (id {result.message_id or 'unknown'})"
        else:
            raise NetworkError(f"Send failed: {result.error}", hint="The message is marked failed in the cache")
        return CommandOutput(writer=payload.writer, data=asdict(result), lines=[line])


class MarkReadProcessor(SafeProcessor[ConversationRequest, CommandOutput]):
    def _process_safe(self, payload: ConversationRequest) -> CommandOutput:
        body = payload.client.mark_conversation_as_read(payload.conversation_id)
        if body.get("notFound"):
            raise NotFoundError(body["error"], hint="Run 'conversations' while online to refresh the cache")
        if not body.get("success"):
            raise NetworkError(f"Mark read failed: {body.get('error') or 'unknown error'}")
        return CommandOutput(writer=payload.writer, data=body, lines=[f"Marked {payload.conversation_id} as read"])


class ConfigProcessor(SafeProcessor[CommandRequest, CommandOutput]):
    def _process_safe(self, payload: CommandRequest) -> CommandOutput:
        result = payload.client.get_config()
        if not result.success:
            raise NetworkError(f"Could not fetch config: {result.error}")
        config = result.data or {}
        lines = [f"{k}: {v}" for k, v in config.items()] if config else ["(no config cached)"]
        return CommandOutput(writer=payload.writer, data=_fetch_data(result, "config", config), lines=lines + [_source_line(result)])


class SyncProcessor(SafeProcessor[CommandRequest, CommandOutput]):
    def _process_safe(self, payload: CommandRequest) -> CommandOutput:
        client = payload.client
        if client.is_online:
            report = client.sync_with_server()
        else:
            # Offline at start: a successful probe flips us online and syncs
            report = client.set_online(client.api.is_reachable())
        if report is None or not report.performed:
            raise NetworkError("Backend unreachable; nothing synced", hint="Check --api-url or try again later")
        lines = [
            f"conversations refreshed: {'yes' if report.conversations_synced else 'no (cache fresh)'}",
            f"queue: {report.queue.sent} sent, {report.queue.failed} failed, {report.queue.remaining} remaining",
            f"message lists synced: {report.conversations}",
        ]
        return CommandOutput(writer=payload.writer, data=asdict(report), lines=lines)


class QueueProcessor(SafeProcessor[CommandRequest, CommandOutput]):
    def _process_safe(self, payload: CommandRequest) -> CommandOutput:
        entries = payload.client.queue.entries()
        rows = [
            {"id": e.id, "to": e.to, "queued": e.timestamp, "message": message_preview(e.message, 40)}
            for e in entries
        ]
        return CommandOutput(
            writer=payload.writer,
            data={"count": len(entries), "entries": [e.to_dict() for e in entries]},
            rows=rows,
            headers=["id", "to", "queued", "message"],
            lines=[f"{len(entries)} queued message(s)"],
        )


class StorageInfoProcessor(SafeProcessor[CommandRequest, CommandOutput]):
    def _process_safe(self, payload: CommandRequest) -> CommandOutput:
        info = payload.client.get_storage_info()
        data = asdict(info)
        data["queued_messages"] = payload.client.get_queued_messages_count()
        lines = [
            f"conversations: {info.conversation_count}",
            f"messages: {info.total_messages}",
            f"size: {info.storage_size} bytes",
            f"last sync: {info.last_sync.isoformat() if info.last_sync else 'never'}",
            f"queued messages: {data['queued_messages']}",
        ]
        lines.extend(f"{k}: {v}" for k, v in info.settings.to_dict().items())
        return CommandOutput(writer=payload.writer, data=data, lines=lines)


class StorageClearProcessor(SafeProcessor[CommandRequest, CommandOutput]):
    def _process_safe(self, payload: CommandRequest) -> CommandOutput:
        if not payload.client.clear_storage():
            raise RuntimeError("Some cache entries could not be removed")
        return CommandOutput(writer=payload.writer, data={"cleared": True}, lines=["Local cache cleared"])


class ExportProcessor(SafeProcessor[PathRequest, CommandOutput]):
    def _process_safe(self, payload: PathRequest) -> CommandOutput:
        exported = payload.client.export_data()
        write_document(payload.path, exported)
        return CommandOutput(
            writer=payload.writer,
            data={"path": payload.path, "entries": sorted(exported["data"])},
            lines=[f"Exported {', '.join(sorted(exported['data'])) or 'nothing'} to {payload.path}"],
        )


class ImportProcessor(SafeProcessor[PathRequest, CommandOutput]):
    def _process_safe(self, payload: PathRequest) -> CommandOutput:
        try:
            document = read_document(payload.path)
        except FileNotFoundError as exc:
            raise NotFoundError(f"Backup not found: {payload.path}") from exc
        if not payload.client.import_data(document):
            raise UsageError(f"{payload.path} is not a valid cache export", hint="Expected a mapping with a 'data' section")
        return CommandOutput(writer=payload.writer, data={"path": payload.path, "imported": True}, lines=[f"Imported {payload.path}"])


class SettingsProcessor(SafeProcessor[SettingsRequest, CommandOutput]):
    def _process_safe(self, payload: SettingsRequest) -> CommandOutput:
        changes: Dict[str, Any] = {}
        for assignment in payload.assignments:
            name, sep, raw = assignment.partition("=")
            if not sep:
                raise UsageError(f"Expected key=value, got {assignment!r}")
            name = name.strip().replace("-", "_")
            try:
                changes[name] = StorageSettings.coerce(name, raw)
            except ValueError as exc:
                raise UsageError(str(exc), hint=f"Known settings: {', '.join(StorageSettings.field_names())}") from exc
        if changes and not payload.client.update_storage_settings(**changes):
            raise RuntimeError("Could not save storage settings")
        settings = payload.client.storage.settings.to_dict()
        return CommandOutput(writer=payload.writer, data=settings, lines=[f"{k}: {v}" for k, v in settings.items()])


class CommandProducer(BaseProducer):
    """Render a ``CommandOutput`` in the writer's format."""

    def _produce_success(self, payload: CommandOutput, diagnostics: Optional[Dict[str, Any]]) -> None:
        writer = payload.writer
        if writer.structured:
            writer.print_data(payload.data)
            return
        if payload.rows is not None:
            if payload.rows:
                writer.print_table(payload.rows, payload.headers)
            else:
                writer.print("(none)")
        for line in payload.lines:
            if payload.rows is not None:
                writer.print_verbose(line)
            else:
                writer.print(line)
