"""Tests for CLI framework components."""
from __future__ import annotations

import io
import json
import unittest
from dataclasses import dataclass
from unittest.mock import patch

import yaml

from core.cli_errors import (
    CLIError,
    ConfigError,
    ExitCode,
    NetworkError,
    NotFoundError,
    UsageError,
    handle_error,
)
from core.cli_framework import CLIApp
from core.cli_output import OutputConfig, OutputFormat, OutputWriter


class TestExitCodes(unittest.TestCase):
    def test_error_types_have_correct_codes(self):
        self.assertEqual(ConfigError("x").code, ExitCode.CONFIG_ERROR)
        self.assertEqual(NetworkError("x").code, ExitCode.NETWORK_ERROR)
        self.assertEqual(NotFoundError("x").code, ExitCode.NOT_FOUND)
        self.assertEqual(UsageError("x").code, ExitCode.USAGE)
        self.assertEqual(CLIError("x").code, ExitCode.ERROR)

    def test_error_str_is_message(self):
        err = UsageError("Invalid phone number", hint="Use digits")
        self.assertEqual(str(err), "Invalid phone number")
        self.assertEqual(err.hint, "Use digits")


class TestHandleError(unittest.TestCase):
    def test_cli_error_with_hint(self):
        with patch("sys.stderr", new_callable=io.StringIO) as err:
            code = handle_error(NetworkError("Backend down", hint="Check --api-url"))
        self.assertEqual(code, ExitCode.NETWORK_ERROR)
        self.assertIn("Error: Backend down", err.getvalue())
        self.assertIn("Hint: Check --api-url", err.getvalue())

    def test_keyboard_interrupt(self):
        with patch("sys.stderr", new_callable=io.StringIO):
            self.assertEqual(handle_error(KeyboardInterrupt()), ExitCode.INTERRUPTED)

    def test_unexpected_error_logged_when_verbose(self):
        with patch("sys.stderr", new_callable=io.StringIO) as err:
            with self.assertLogs("core.cli_errors", level="ERROR"):
                code = handle_error(ValueError("Unexpected"), verbose=True)
        self.assertEqual(code, ExitCode.ERROR)
        self.assertIn("Unexpected", err.getvalue())


@dataclass
class _Row:
    id: str
    unread: int


class TestOutputWriter(unittest.TestCase):
    def _writer(self, **kwargs):
        buf = io.StringIO()
        return OutputWriter(OutputConfig(file=buf, **kwargs)), buf

    def test_quiet_suppresses_print(self):
        writer, buf = self._writer(quiet=True)
        writer.print("Hello")
        self.assertEqual(buf.getvalue(), "")

    def test_verbose_only_when_enabled(self):
        writer, buf = self._writer()
        writer.print_verbose("hidden")
        self.assertEqual(buf.getvalue(), "")
        writer, buf = self._writer(verbose=True)
        writer.print_verbose("shown")
        self.assertEqual(buf.getvalue(), "shown\n")

    def test_structured_flag(self):
        self.assertTrue(OutputWriter(OutputConfig(format=OutputFormat.JSON)).structured)
        self.assertTrue(OutputWriter(OutputConfig(format=OutputFormat.YAML)).structured)
        self.assertFalse(OutputWriter(OutputConfig(format=OutputFormat.TABLE)).structured)

    def test_print_json_normalizes_dataclasses(self):
        writer, buf = self._writer(format=OutputFormat.JSON)
        writer.print_data({"rows": [_Row("c1", 2)]})
        self.assertEqual(json.loads(buf.getvalue()), {"rows": [{"id": "c1", "unread": 2}]})

    def test_print_yaml(self):
        writer, buf = self._writer(format=OutputFormat.YAML)
        writer.print_data({"count": 1, "name": "ü"})
        self.assertEqual(yaml.safe_load(buf.getvalue()), {"count": 1, "name": "ü"})

    def test_print_table_aligns_columns(self):
        writer, buf = self._writer()
        writer.print_table([{"id": "c1", "name": "Ann"}, {"id": "c22", "name": None}], ["id", "name"])
        lines = buf.getvalue().splitlines()
        self.assertEqual(lines[0], "id  | name")
        self.assertTrue(lines[1].startswith("-"))
        self.assertEqual(lines[2].rstrip(), "c1  | Ann")
        self.assertEqual(lines[3].rstrip(), "c22 |")

    def test_print_text_dict(self):
        writer, buf = self._writer()
        writer.print_data({"a": 1, "b": "x"})
        self.assertEqual(buf.getvalue(), "a: 1\nb: x\n")


class TestCLIApp(unittest.TestCase):
    def test_register_command_with_arguments_in_order(self):
        app = CLIApp("test", "Test")

        @app.command("send", help="Send")
        @app.argument("to")
        @app.argument("message")
        def cmd_send(args):
            return 0

        cmd_def = app._commands["send"]
        self.assertEqual([a.name_or_flags for a in cmd_def.arguments], [("to",), ("message",)])

    def test_run_passes_writer_and_return_code(self):
        app = CLIApp("test", "Test")
        seen = {}

        @app.command("echo")
        @app.argument("message")
        def cmd_echo(args):
            seen["message"] = args.message
            seen["format"] = args._output.config.format
            return 3

        self.assertEqual(app.run(["-o", "json", "echo", "hi"]), 3)
        self.assertEqual(seen, {"message": "hi", "format": OutputFormat.JSON})

    def test_global_argument_and_before_command(self):
        app = CLIApp("test", "Test", add_common_args=False)
        app.global_argument("--offline", action="store_true")
        calls = []

        @app.command("go")
        def cmd_go(args):
            calls.append(("go", args.offline))
            return 0

        rc = app.run(["--offline", "go"], before_command=lambda args: calls.append(("before", args.offline)))
        self.assertEqual(rc, 0)
        self.assertEqual(calls, [("before", True), ("go", True)])

    def test_run_without_command_prints_help(self):
        app = CLIApp("test", "Test app description")

        @app.command("foo")
        def cmd_foo(args):
            return 0

        with patch("sys.stdout", new_callable=io.StringIO) as out:
            self.assertEqual(app.run([]), ExitCode.SUCCESS)
        self.assertIn("Test app description", out.getvalue())

    def test_command_group(self):
        app = CLIApp("test", "Test", add_common_args=False)
        storage = app.group("storage", help="Storage commands")

        @storage.command("export")
        @storage.argument("path")
        def cmd_export(args):
            return 7 if args.path == "out.json" else 1

        self.assertIn("export", storage._commands)
        self.assertEqual(storage._commands["export"].parent, "storage")
        self.assertEqual(app.run(["storage", "export", "out.json"]), 7)

    def test_errors_become_exit_codes(self):
        app = CLIApp("test", "Test", add_common_args=False)

        @app.command("fail")
        def cmd_fail(args):
            raise NotFoundError("missing")

        @app.command("crash")
        def cmd_crash(args):
            raise RuntimeError("boom")

        with patch("sys.stderr", new_callable=io.StringIO) as err:
            self.assertEqual(app.run(["fail"]), ExitCode.NOT_FOUND)
            self.assertEqual(app.run(["crash"]), ExitCode.ERROR)
        self.assertIn("Error: missing", err.getvalue())
        self.assertIn("Error: boom", err.getvalue())

    def test_version_flag(self):
        app = CLIApp("test", "Test", version="9.9")
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            with self.assertRaises(SystemExit) as ctx:
                app.run(["--version"])
        self.assertEqual(ctx.exception.code, 0)
        self.assertIn("test 9.9", out.getvalue())


if __name__ == "__main__":
    unittest.main()
