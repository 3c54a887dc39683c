"""CLI output formatting.

``OutputWriter`` is handed to every command as ``args._output``; it renders
results as plain text, an aligned table, or JSON/YAML for scripting.
"""
from __future__ import annotations

import json
import sys
from dataclasses import asdict, dataclass, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, TextIO

import yaml


class OutputFormat(str, Enum):
    TEXT = "text"
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"


@dataclass
class OutputConfig:
    format: OutputFormat = OutputFormat.TEXT
    verbose: bool = False
    quiet: bool = False
    file: Optional[TextIO] = None  # None means the current sys.stdout

    @property
    def stream(self) -> TextIO:
        return self.file or sys.stdout


def to_plain(data: Any) -> Any:
    """Dataclasses and enums down to dicts, lists and scalars."""
    if is_dataclass(data) and not isinstance(data, type):
        return to_plain(asdict(data))
    if isinstance(data, dict):
        return {k: to_plain(v) for k, v in data.items()}
    if isinstance(data, (list, tuple)):
        return [to_plain(v) for v in data]
    if isinstance(data, Enum):
        return data.value
    return data


def format_table(rows: List[Dict[str, Any]], headers: Optional[List[str]] = None) -> List[str]:
    """Render dict rows as ``a | b`` lines under a header and a rule."""
    if not rows:
        return []
    headers = headers or list(rows[0].keys())
    cells = [["" if row.get(h) is None else str(row.get(h)) for h in headers] for row in rows]
    widths = [max([len(h)] + [len(r[i]) for r in cells]) for i, h in enumerate(headers)]
    header_line = " | ".join(h.ljust(w) for h, w in zip(headers, widths))
    lines = [header_line, "-" * len(header_line)]
    lines.extend(" | ".join(c.ljust(w) for c, w in zip(r, widths)) for r in cells)
    return lines


class OutputWriter:
    """Handles formatted output for CLI commands."""

    def __init__(self, config: Optional[OutputConfig] = None):
        self.config = config or OutputConfig()

    @property
    def structured(self) -> bool:
        """True when the caller asked for machine-readable output."""
        return self.config.format in (OutputFormat.JSON, OutputFormat.YAML)

    def print(self, *args, **kwargs) -> None:
        if self.config.quiet:
            return
        kwargs.setdefault("file", self.config.stream)
        print(*args, **kwargs)

    def print_verbose(self, message: str) -> None:
        if self.config.verbose:
            self.print(message)

    def print_data(self, data: Any, headers: Optional[List[str]] = None) -> None:
        """Print data in the configured format."""
        fmt = self.config.format
        plain = to_plain(data)
        if fmt == OutputFormat.JSON:
            self.print(json.dumps(plain, indent=2, default=str, ensure_ascii=False))
        elif fmt == OutputFormat.YAML:
            # JSON pass first so datetimes and other oddities become strings
            safe = json.loads(json.dumps(plain, default=str))
            self.print(yaml.safe_dump(safe, default_flow_style=False, sort_keys=False, allow_unicode=True).rstrip())
        elif fmt == OutputFormat.TABLE:
            rows = plain if isinstance(plain, list) else [plain]
            self.print_table([r for r in rows if isinstance(r, dict)], headers)
        else:
            self._print_text(plain)

    def print_table(self, rows: List[Dict[str, Any]], headers: Optional[List[str]] = None) -> None:
        """Print rows as a table regardless of the configured format."""
        for line in format_table(rows, headers):
            self.print(line)

    def print_dict(self, data: Dict[str, Any], *, separator: str = ": ") -> None:
        for key, value in data.items():
            self.print(f"{key}{separator}{value}")

    def _print_text(self, data: Any) -> None:
        if isinstance(data, dict):
            self.print_dict(data)
        elif isinstance(data, list):
            for item in data:
                self.print(item)
        else:
            self.print(data)
