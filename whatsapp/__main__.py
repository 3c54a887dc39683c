"""WhatsApp sync CLI.

Reads and sends CRM WhatsApp conversations through a local cache. Every
command works offline (``--offline``) against the cache; sends made offline are
queued and replayed by ``sync`` once the backend is reachable.
"""

from __future__ import annotations

import argparse
import logging
from typing import Optional

from core.cache import JsonFileStore
from core.cli_errors import ConfigError
from core.cli_framework import CLIApp
from core.pipeline import run_pipeline

from . import __version__
from .client import WhatsAppAPI
from .config import resolve_settings
from .constants import DEFAULT_POLL_INTERVAL
from .formatting import format_message_time, message_status_icon
from .outbox import OutgoingQueue
from .pipeline import (
    CommandProducer,
    CommandRequest,
    ConfigProcessor,
    ConversationRequest,
    ConversationsProcessor,
    ExportProcessor,
    ImportProcessor,
    ListRequest,
    MarkReadProcessor,
    MessagesProcessor,
    MessagesRequest,
    PathRequest,
    QueueProcessor,
    SendProcessor,
    SendRequest,
    SettingsProcessor,
    SettingsRequest,
    StorageClearProcessor,
    StorageInfoProcessor,
    SyncProcessor,
)
from .polling import MessagePoller
from .storage import Storage
from .sync import SyncClient

LOG = logging.getLogger(__name__)

app = CLIApp(
    "whatsapp-sync",
    "WhatsApp Sync CLI (local-first cache for CRM conversations)",
    version=__version__,
)
app.global_argument("--api-url", help="Backend base URL (env WHATSAPP_API_URL)")
app.global_argument("--token", help="Bearer token for the backend (env WHATSAPP_API_TOKEN)")
app.global_argument("--cache-dir", help="Directory for the local cache (env WHATSAPP_CACHE_DIR)")
app.global_argument("--offline", action="store_true", help="Serve from cache only; queue sends")


def configure_logging(args: argparse.Namespace) -> None:
    level = logging.WARNING
    if getattr(args, "verbose", False):
        level = logging.INFO
    elif getattr(args, "quiet", False):
        level = logging.ERROR
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def build_client(args: argparse.Namespace) -> SyncClient:
    """Wire api, store, storage and queue from CLI args and config."""
    settings = resolve_settings(
        profile=getattr(args, "profile", None),
        api_url=getattr(args, "api_url", None),
        token=getattr(args, "token", None),
        cache_dir=getattr(args, "cache_dir", None),
    )
    if not settings.api_url.startswith(("http://", "https://")):
        raise ConfigError(
            f"Invalid API URL: {settings.api_url}",
            hint="Use an http:// or https:// URL (--api-url, WHATSAPP_API_URL or credentials.ini)",
        )
    LOG.info("Using %s (cache %s)", settings.api_url, settings.cache_dir)
    store = JsonFileStore(settings.cache_dir)
    return SyncClient(
        WhatsAppAPI(settings.api_url, token=settings.token),
        Storage(store),
        OutgoingQueue(store),
        online=not getattr(args, "offline", False),
    )


def _run(args: argparse.Namespace, request_cls, processor_cls, **fields) -> int:
    request = request_cls(client=build_client(args), writer=args._output, **fields)
    return run_pipeline(request, processor_cls, CommandProducer)


@app.command("conversations", help="List cached conversations (refreshing when due)")
@app.argument("--limit", type=int, help="Show at most N conversations")
def cmd_conversations(args) -> int:
    return _run(args, ListRequest, ConversationsProcessor, limit=args.limit)


@app.command("messages", help="Show messages of a conversation")
@app.argument("conversation_id", help="Conversation id")
@app.argument("--limit", type=int, help="Show only the newest N messages")
def cmd_messages(args) -> int:
    return _run(args, MessagesRequest, MessagesProcessor, conversation_id=args.conversation_id, limit=args.limit)


@app.command("send", help="Send a message (queued while offline)")
@app.argument("to", help="Recipient phone number")
@app.argument("message", help="Message text")
@app.argument("--type", dest="message_type", default="text", help="Message type (default text)")
def cmd_send(args) -> int:
    return _run(args, SendRequest, SendProcessor, to=args.to, message=args.message, message_type=args.message_type)


@app.command("mark-read", help="Mark a conversation as read")
@app.argument("conversation_id", help="Conversation id")
def cmd_mark_read(args) -> int:
    return _run(args, ConversationRequest, MarkReadProcessor, conversation_id=args.conversation_id)


@app.command("config", help="Show the WhatsApp configuration")
def cmd_config(args) -> int:
    return _run(args, CommandRequest, ConfigProcessor)


@app.command("sync", help="Full sync: conversations, queued sends, recent messages")
def cmd_sync(args) -> int:
    return _run(args, CommandRequest, SyncProcessor)


@app.command("queue", help="List messages waiting to be sent")
def cmd_queue(args) -> int:
    return _run(args, CommandRequest, QueueProcessor)


@app.command("watch", help="Poll a conversation and print new messages")
@app.argument("conversation_id", help="Conversation id")
@app.argument("--interval", type=float, default=DEFAULT_POLL_INTERVAL, help="Seconds between polls (default 5)")
@app.argument("--count", type=int, help="Stop after N polls (default: until Ctrl+C)")
def cmd_watch(args) -> int:
    client = build_client(args)
    writer = args._output
    seen: set = set()

    def _print_new(messages) -> None:
        for msg in messages:
            key = (msg.get("id"), msg.get("timestamp"), msg.get("content"))
            if key in seen:
                continue
            seen.add(key)
            writer.print(
                f"{format_message_time(msg.get('timestamp'))}\t{msg.get('sender') or ''}\t"
                f"{message_status_icon(msg.get('status'))}\t{(msg.get('content') or '').replace(chr(10), ' ')}"
            )

    poller = MessagePoller(client, args.conversation_id, _print_new, interval=args.interval)
    try:
        poller.run(iterations=args.count)
    finally:
        poller.stop()
    return 0


storage_group = app.group("storage", help="Inspect and manage the local cache")


@storage_group.command("info", help="Cache size, counts and settings")
def cmd_storage_info(args) -> int:
    return _run(args, CommandRequest, StorageInfoProcessor)


@storage_group.command("clear", help="Delete cached conversations, messages and settings")
def cmd_storage_clear(args) -> int:
    return _run(args, CommandRequest, StorageClearProcessor)


@storage_group.command("export", help="Back up the cache to a JSON or YAML file")
@storage_group.argument("path", help="Destination (.json, .yaml or .yml)")
def cmd_storage_export(args) -> int:
    return _run(args, PathRequest, ExportProcessor, path=args.path)


@storage_group.command("import", help="Restore the cache from a backup file")
@storage_group.argument("path", help="Backup produced by 'storage export'")
def cmd_storage_import(args) -> int:
    return _run(args, PathRequest, ImportProcessor, path=args.path)


@storage_group.command("settings", help="Show or change cache bounds")
@storage_group.argument("--set", dest="assignments", action="append", default=[], metavar="KEY=VALUE",
                        help="e.g. max_conversations=20 (repeatable)")
def cmd_storage_settings(args) -> int:
    return _run(args, SettingsRequest, SettingsProcessor, assignments=args.assignments)


def build_parser() -> argparse.ArgumentParser:
    return app.build_parser()


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the WhatsApp sync CLI."""
    return app.run(argv, before_command=configure_logging)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
