"""YAML/JSON document helpers for backups and config files."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

import yaml

__all__ = ["dump_config", "is_yaml_path", "read_document", "write_document"]

_YAML_SUFFIXES = (".yaml", ".yml")


def is_yaml_path(path: str) -> bool:
    return Path(path).suffix.lower() in _YAML_SUFFIXES


def dump_config(path: str, data: Dict[str, Any]) -> None:
    """Write a dict to YAML with stable ordering for humans."""
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(
        yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8"
    )


def read_document(path: str) -> Any:
    """Read a JSON or YAML document, chosen by file extension.

    Raises FileNotFoundError for a missing file and ValueError for content that
    does not parse.
    """
    p = Path(path).expanduser()
    text = p.read_text(encoding="utf-8")
    try:
        if is_yaml_path(path):
            return yaml.safe_load(text)
        return json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ValueError(f"Could not parse {p}: {exc}") from exc


def write_document(path: str, data: Any) -> None:
    """Write ``data`` as YAML (``.yaml``/``.yml``) or pretty JSON."""
    p = Path(path).expanduser()
    if is_yaml_path(path):
        dump_config(str(p), data)
        return
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
