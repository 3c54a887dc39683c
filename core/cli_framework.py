"""CLI application framework.

Commands are plain functions registered with decorators; ``CLIApp`` turns the
registry into an argparse parser, runs the chosen command and maps exceptions
to exit codes. Command groups give two-level commands such as
``storage export``.
"""
from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .cli_errors import ExitCode, handle_error
from .cli_output import OutputConfig, OutputFormat, OutputWriter


CommandFunc = Callable[[argparse.Namespace], int]


@dataclass
class Argument:
    """Definition of a CLI argument."""
    name_or_flags: tuple
    kwargs: Dict[str, Any] = field(default_factory=dict)


@dataclass
class CommandDef:
    """Definition of a CLI command."""
    name: str
    func: CommandFunc
    help: str = ""
    arguments: List[Argument] = field(default_factory=list)
    parent: Optional[str] = None


class _CommandRegistry:
    """Decorator plumbing shared by the app and its groups.

    ``@argument`` decorators run before ``@command`` (bottom-up), so arguments
    are parked on the app until the command that owns them is registered.
    """

    parent: Optional[str] = None

    def __init__(self) -> None:
        self._commands: Dict[str, CommandDef] = {}

    def _pending(self) -> List[Argument]:
        raise NotImplementedError

    def command(self, name: str, *, help: str = "") -> Callable[[CommandFunc], CommandFunc]:
        def decorator(func: CommandFunc) -> CommandFunc:
            pending = self._pending()
            self._commands[name] = CommandDef(
                name=name,
                func=func,
                help=help,
                arguments=list(reversed(pending)),
                parent=self.parent,
            )
            pending.clear()
            return func
        return decorator

    def argument(self, *name_or_flags: str, **kwargs: Any) -> Callable[[CommandFunc], CommandFunc]:
        """Attach an argparse argument to the command decorated next."""
        def decorator(func: CommandFunc) -> CommandFunc:
            self._pending().append(Argument(name_or_flags, kwargs))
            return func
        return decorator

    def _add_commands(self, subparsers: Any) -> None:
        for cmd_def in self._commands.values():
            cmd_parser = subparsers.add_parser(cmd_def.name, help=cmd_def.help, description=cmd_def.help)
            for arg in cmd_def.arguments:
                cmd_parser.add_argument(*arg.name_or_flags, **arg.kwargs)
            cmd_parser.set_defaults(_cmd_func=cmd_def.func)


class CLIApp(_CommandRegistry):
    """Declarative argparse application.

    Example usage:
        app = CLIApp("whatsapp-sync", "WhatsApp cache CLI")

        @app.command("messages", help="Show messages")
        @app.argument("conversation_id")
        def cmd_messages(args):
            ...
            return 0

        if __name__ == "__main__":
            raise SystemExit(app.run())
    """

    def __init__(
        self,
        name: str,
        description: str = "",
        *,
        version: Optional[str] = None,
        add_common_args: bool = True,
    ):
        super().__init__()
        self.name = name
        self.description = description
        self.version = version
        self.add_common_args = add_common_args
        self._groups: Dict[str, CommandGroup] = {}
        self._global_arguments: List[Argument] = []
        self._pending_arguments: List[Argument] = []

    def _pending(self) -> List[Argument]:
        return self._pending_arguments

    def global_argument(self, *name_or_flags: str, **kwargs: Any) -> None:
        """Register an app-wide option (goes before the command name)."""
        self._global_arguments.append(Argument(name_or_flags, kwargs))

    def group(self, name: str, *, help: str = "") -> "CommandGroup":
        group = CommandGroup(self, name, help=help)
        self._groups[name] = group
        return group

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog=self.name,
            description=self.description,
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        if self.version:
            parser.add_argument("--version", "-V", action="version", version=f"%(prog)s {self.version}")
        if self.add_common_args:
            self._add_common_arguments(parser)
        for arg in self._global_arguments:
            parser.add_argument(*arg.name_or_flags, **arg.kwargs)

        if self._commands or self._groups:
            subparsers = parser.add_subparsers(dest="command", metavar="<command>")
            for group in self._groups.values():
                group_parser = subparsers.add_parser(group.name, help=group.help, description=group.help)
                group._add_commands(group_parser.add_subparsers(dest=f"{group.name}_cmd", metavar="<subcommand>"))
            self._add_commands(subparsers)
        return parser

    @staticmethod
    def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--profile", "-p", help="Credentials profile name")
        parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
        parser.add_argument("--quiet", "-q", action="store_true", help="Suppress non-essential output")
        parser.add_argument(
            "--output", "-o",
            choices=[f.value for f in OutputFormat],
            default="text",
            help="Output format (default: text)",
        )

    def run(
        self,
        argv: Optional[Sequence[str]] = None,
        *,
        before_command: Optional[Callable[[argparse.Namespace], None]] = None,
    ) -> int:
        """Parse ``argv``, run the selected command and return its exit code.

        ``before_command`` runs after parsing (logging setup and the like).
        """
        parser = self.build_parser()
        args = parser.parse_args(argv)
        args._output = OutputWriter(OutputConfig(
            format=OutputFormat(getattr(args, "output", "text") or "text"),
            verbose=getattr(args, "verbose", False),
            quiet=getattr(args, "quiet", False),
        ))

        cmd_func = getattr(args, "_cmd_func", None)
        if cmd_func is None:
            parser.print_help()
            return int(ExitCode.SUCCESS)

        try:
            if before_command is not None:
                before_command(args)
            return int(cmd_func(args))
        except KeyboardInterrupt as e:
            return handle_error(e)
        except Exception as e:
            return handle_error(e, verbose=getattr(args, "verbose", False))


class CommandGroup(_CommandRegistry):
    """Named set of subcommands (``storage`` holding ``info``, ``clear``, ...)."""

    def __init__(self, app: CLIApp, name: str, *, help: str = ""):
        super().__init__()
        self.app = app
        self.name = name
        self.parent = name
        self.help = help

    def _pending(self) -> List[Argument]:
        return self.app._pending_arguments
