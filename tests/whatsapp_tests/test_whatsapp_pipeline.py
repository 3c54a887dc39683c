"""Tests for whatsapp pipeline processors and producer."""
from __future__ import annotations

import io
import json
import os
import tempfile
import unittest

from core.cli_errors import ExitCode
from core.cli_output import OutputConfig, OutputFormat, OutputWriter
from core.pipeline import run_pipeline
from tests.fakes import T0, FakeWhatsAppAPI, iso
from tests.fixtures import capture_output, make_sync_client
from whatsapp.pipeline import (
    CommandOutput,
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

CONVERSATIONS = [
    {"id": "c1", "phoneNumber": "15550001111", "contactName": "Ann", "unreadCount": 2,
     "lastMessage": "hello there", "lastMessageTime": iso(T0)},
    {"id": "c2", "phoneNumber": "15550002222", "lastMessage": None, "lastMessageTime": "2024-02-29T12:00:00.000Z"},
]


def writer(fmt=OutputFormat.TEXT, verbose=False):
    buf = io.StringIO()
    return OutputWriter(OutputConfig(format=fmt, verbose=verbose, file=buf)), buf


class ProcessorTestCase(unittest.TestCase):
    def setUp(self):
        self.client, self.api, self.store, self.clock = make_sync_client(
            api=FakeWhatsAppAPI(conversations=[dict(c) for c in CONVERSATIONS], config={"phoneNumber": "15550000000"})
        )
        self.writer, self.buf = writer()

    def run_ok(self, processor_cls, request):
        envelope = processor_cls().process(request)
        self.assertTrue(envelope.ok(), envelope.diagnostics)
        return envelope.payload

    def run_err(self, processor_cls, request):
        envelope = processor_cls().process(request)
        self.assertFalse(envelope.ok())
        return envelope.diagnostics


class ConversationsProcessorTests(ProcessorTestCase):
    def test_rows_and_data(self):
        out = self.run_ok(ConversationsProcessor, ListRequest(self.client, self.writer))
        self.assertEqual([r["id"] for r in out.rows], ["c1", "c2"])
        self.assertEqual(out.rows[0]["name"], "Ann")
        self.assertEqual(out.rows[1]["name"], "WhatsApp User 2222")
        self.assertEqual(out.rows[1]["preview"], "No message")
        self.assertEqual(out.data["source"], "server")
        self.assertEqual(len(out.data["conversations"]), 2)
        self.assertEqual(out.lines, ["source: server"])

    def test_limit(self):
        out = self.run_ok(ConversationsProcessor, ListRequest(self.client, self.writer, limit=1))
        self.assertEqual(len(out.rows), 1)

    def test_offline_source_line(self):
        self.client.set_online(False)
        out = self.run_ok(ConversationsProcessor, ListRequest(self.client, self.writer))
        self.assertEqual(out.lines, ["source: cache (offline)"])
        self.assertTrue(out.data["offline"])


class MessagesProcessorTests(ProcessorTestCase):
    def test_limit_keeps_newest(self):
        self.api.messages["c1"] = [
            {"id": f"m{i}", "timestamp": iso(T0.replace(minute=i)), "content": f"line\n{i}", "sender": "customer",
             "status": "read"}
            for i in range(5)
        ]
        out = self.run_ok(MessagesProcessor, MessagesRequest(self.client, self.writer, conversation_id="c1", limit=2))
        self.assertEqual([m["id"] for m in out.data["messages"]], ["m3", "m4"])
        self.assertEqual(out.rows[0]["content"], "line 3")
        self.assertEqual(out.rows[0]["status"], "✓✓")
        self.assertEqual(out.data["new_messages"], 5)

    def test_requires_conversation_id(self):
        diag = self.run_err(MessagesProcessor, MessagesRequest(self.client, self.writer))
        self.assertEqual(diag["code"], int(ExitCode.USAGE))


class SendProcessorTests(ProcessorTestCase):
    def test_sent(self):
        out = self.run_ok(SendProcessor, SendRequest(self.client, self.writer, to="15550001111", message="hi"))
        self.assertEqual(out.lines, ["Sent (id wamid.1)"])
        self.assertTrue(out.data["success"])

    def test_queued_when_offline(self):
        self.client.set_online(False)
        out = self.run_ok(SendProcessor, SendRequest(self.client, self.writer, to="15550001111", message="hi"))
        self.assertEqual(out.lines, ["Offline: message queued for sending"])
        self.assertTrue(out.data["queued"])

    def test_invalid_phone(self):
        diag = self.run_err(SendProcessor, SendRequest(self.client, self.writer, to="12", message="hi"))
        self.assertEqual(diag["code"], int(ExitCode.USAGE))
        self.assertIn("hint", diag)
        self.assertEqual(self.api.sent, [])

    def test_empty_message(self):
        diag = self.run_err(SendProcessor, SendRequest(self.client, self.writer, to="15550001111", message="  "))
        self.assertEqual(diag["code"], int(ExitCode.USAGE))

    def test_rejected_send(self):
        self.api.send_results = [{"success": False, "error": "blocked"}]
        diag = self.run_err(SendProcessor, SendRequest(self.client, self.writer, to="15550001111", message="hi"))
        self.assertEqual(diag["code"], int(ExitCode.NETWORK_ERROR))
        self.assertIn("blocked", diag["message"])


class MiscProcessorTests(ProcessorTestCase):
    def test_mark_read(self):
        out = self.run_ok(MarkReadProcessor, ConversationRequest(self.client, self.writer, conversation_id="c1"))
        self.assertEqual(out.lines, ["Marked c1 as read"])
        self.assertEqual(self.api.marked_read, ["c1"])

    def test_mark_read_failure(self):
        self.api.offline = True
        diag = self.run_err(MarkReadProcessor, ConversationRequest(self.client, self.writer, conversation_id="c1"))
        self.assertEqual(diag["code"], int(ExitCode.NETWORK_ERROR))

    def test_mark_read_unknown_conversation_offline(self):
        self.client.set_online(False)
        diag = self.run_err(MarkReadProcessor, ConversationRequest(self.client, self.writer, conversation_id="nope"))
        self.assertEqual(diag["code"], int(ExitCode.NOT_FOUND))
        self.assertIn("nope", diag["message"])
        self.assertEqual(self.api.marked_read, [])

    def test_config(self):
        out = self.run_ok(ConfigProcessor, CommandRequest(self.client, self.writer))
        self.assertIn("phoneNumber: 15550000000", out.lines)
        self.assertEqual(out.data["config"], {"phoneNumber": "15550000000"})

    def test_config_failure(self):
        self.api.offline = True
        diag = self.run_err(ConfigProcessor, CommandRequest(self.client, self.writer))
        self.assertEqual(diag["code"], int(ExitCode.NETWORK_ERROR))

    def test_queue_listing(self):
        self.client.set_online(False)
        self.client.send_message("15550001111", "later")
        out = self.run_ok(QueueProcessor, CommandRequest(self.client, self.writer))
        self.assertEqual(out.data["count"], 1)
        self.assertEqual(out.rows[0]["to"], "15550001111")
        self.assertEqual(out.data["entries"][0]["message"], "later")


class SyncProcessorTests(ProcessorTestCase):
    def test_online_sync(self):
        out = self.run_ok(SyncProcessor, CommandRequest(self.client, self.writer))
        self.assertEqual(out.data["conversations"], 2)
        self.assertTrue(out.data["performed"])
        self.assertIn("queue: 0 sent, 0 failed, 0 remaining", out.lines)

    def test_offline_start_probes_then_syncs(self):
        self.client.set_online(False)
        self.client.send_message("15550001111", "queued")
        out = self.run_ok(SyncProcessor, CommandRequest(self.client, self.writer))
        self.assertEqual(out.data["queue"]["sent"], 1)
        self.assertTrue(self.client.is_online)

    def test_unreachable(self):
        self.client.set_online(False)
        self.api.reachable = False
        diag = self.run_err(SyncProcessor, CommandRequest(self.client, self.writer))
        self.assertEqual(diag["code"], int(ExitCode.NETWORK_ERROR))


class StorageProcessorTests(ProcessorTestCase):
    def setUp(self):
        super().setUp()
        self._tmp = tempfile.TemporaryDirectory()
        self.client.get_conversations()

    def tearDown(self):
        self._tmp.cleanup()

    def test_info(self):
        out = self.run_ok(StorageInfoProcessor, CommandRequest(self.client, self.writer))
        self.assertEqual(out.data["conversation_count"], 2)
        self.assertEqual(out.data["queued_messages"], 0)
        self.assertIn("conversations: 2", out.lines)
        self.assertIn("max_conversations: 50", out.lines)

    def test_clear(self):
        self.run_ok(StorageClearProcessor, CommandRequest(self.client, self.writer))
        self.assertEqual(self.client.storage.get_conversations(), [])

    def test_export_then_import(self):
        path = os.path.join(self._tmp.name, "backup.json")
        out = self.run_ok(ExportProcessor, PathRequest(self.client, self.writer, path=path))
        self.assertIn("CONVERSATIONS", out.data["entries"])
        with open(path, encoding="utf-8") as fh:
            self.assertEqual(json.load(fh)["version"], "1.0")

        self.client.clear_storage()
        self.run_ok(ImportProcessor, PathRequest(self.client, self.writer, path=path))
        self.assertEqual(len(self.client.storage.get_conversations()), 2)

    def test_import_missing_file(self):
        diag = self.run_err(ImportProcessor, PathRequest(self.client, self.writer, path=os.path.join(self._tmp.name, "x.json")))
        self.assertEqual(diag["code"], int(ExitCode.NOT_FOUND))

    def test_import_invalid_document(self):
        path = os.path.join(self._tmp.name, "bad.yaml")
        with open(path, "w", encoding="utf-8") as fh:
            fh.write("- just\n- a list\n")
        diag = self.run_err(ImportProcessor, PathRequest(self.client, self.writer, path=path))
        self.assertEqual(diag["code"], int(ExitCode.USAGE))

    def test_settings_show_and_set(self):
        out = self.run_ok(SettingsProcessor, SettingsRequest(self.client, self.writer))
        self.assertEqual(out.data["max_conversations"], 50)
        out = self.run_ok(SettingsProcessor, SettingsRequest(
            self.client, self.writer, assignments=["max-conversations=1", "enable_offline_mode=no"]))
        self.assertEqual(out.data["max_conversations"], 1)
        self.assertFalse(out.data["enable_offline_mode"])
        self.assertEqual(self.client.storage.settings.max_conversations, 1)

    def test_settings_bad_assignment(self):
        for assignment in ("max_conversations", "colour=blue", "retention_days=-3"):
            diag = self.run_err(SettingsProcessor, SettingsRequest(self.client, self.writer, assignments=[assignment]))
            self.assertEqual(diag["code"], int(ExitCode.USAGE), assignment)


class CommandProducerTests(unittest.TestCase):
    def test_table_with_source_only_when_verbose(self):
        w, buf = writer()
        CommandProducer()._produce_success(
            CommandOutput(writer=w, rows=[{"id": "c1"}], headers=["id"], lines=["source: server"]), None)
        self.assertNotIn("source", buf.getvalue())
        self.assertIn("c1", buf.getvalue())

        w, buf = writer(verbose=True)
        CommandProducer()._produce_success(
            CommandOutput(writer=w, rows=[{"id": "c1"}], headers=["id"], lines=["source: server"]), None)
        self.assertIn("source: server", buf.getvalue())

    def test_empty_rows(self):
        w, buf = writer()
        CommandProducer()._produce_success(CommandOutput(writer=w, rows=[], headers=["id"]), None)
        self.assertEqual(buf.getvalue(), "(none)\n")

    def test_lines_without_rows(self):
        w, buf = writer()
        CommandProducer()._produce_success(CommandOutput(writer=w, lines=["a", "b"]), None)
        self.assertEqual(buf.getvalue(), "a\nb\n")

    def test_json_uses_data(self):
        w, buf = writer(OutputFormat.JSON)
        CommandProducer()._produce_success(CommandOutput(writer=w, data={"k": [1]}, lines=["ignored"]), None)
        self.assertEqual(json.loads(buf.getvalue()), {"k": [1]})

    def test_run_pipeline_end_to_end(self):
        client, _, _, _ = make_sync_client()
        w, buf = writer()
        with capture_output() as (_, err):
            rc = run_pipeline(SendRequest(client, w, to="1", message="x"), SendProcessor, CommandProducer)
        self.assertEqual(rc, int(ExitCode.USAGE))
        self.assertIn("Invalid phone number", err.getvalue())
        self.assertEqual(buf.getvalue(), "")


if __name__ == "__main__":
    unittest.main()
