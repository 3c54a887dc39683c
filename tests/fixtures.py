"""Shared test fixtures and utilities.

This module provides common helpers to simplify testing across the suite.
"""

from __future__ import annotations

import io
import os
import shutil
import subprocess
import tempfile
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from pathlib import Path
from typing import Optional, Sequence

from core.cache import MemoryStore

REPO_ROOT = Path(__file__).resolve().parents[1]


# -----------------------------------------------------------------------------
# Path helpers
# -----------------------------------------------------------------------------


def repo_root() -> Path:
    return REPO_ROOT


def run(cmd: Sequence[str], cwd: Optional[str] = None, env: Optional[dict] = None):
    return subprocess.run(  # noqa: S603
        cmd, cwd=cwd or str(REPO_ROOT), env=env, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True
    )


@contextmanager
def temp_dir():
    """Context manager that yields a temporary directory and removes it after."""
    td = tempfile.mkdtemp()
    try:
        yield td
    finally:
        shutil.rmtree(td, ignore_errors=True)


# -----------------------------------------------------------------------------
# Output capture helpers
# -----------------------------------------------------------------------------


@contextmanager
def capture_stdout():
    """Context manager that captures stdout and yields a StringIO buffer."""
    buf = io.StringIO()
    with redirect_stdout(buf):
        yield buf


@contextmanager
def capture_output():
    """Capture stdout and stderr; yields (out, err) buffers."""
    out, err = io.StringIO(), io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        yield out, err


# -----------------------------------------------------------------------------
# Sync wiring
# -----------------------------------------------------------------------------


def make_sync_client(api=None, store=None, clock=None, online: bool = True):
    """Build a SyncClient over a MemoryStore with a fixed clock.

    Returns (client, api, store, clock) so tests can poke every layer.
    """
    from tests.fakes import FakeClock, FakeWhatsAppAPI
    from whatsapp.outbox import OutgoingQueue
    from whatsapp.storage import Storage
    from whatsapp.sync import SyncClient

    api = api if api is not None else FakeWhatsAppAPI()
    store = store if store is not None else MemoryStore()
    clock = clock or FakeClock()
    client = SyncClient(api, Storage(store, clock=clock), OutgoingQueue(store, clock=clock), online=online, clock=clock)
    return client, api, store, clock


def clean_env(**overrides: str) -> dict:
    """Copy of os.environ without WHATSAPP_* variables, plus overrides."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("WHATSAPP_")}
    env.update(overrides)
    return env
