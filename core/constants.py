"""Filesystem locations and HTTP timeouts shared by the CLI and the sync layer."""

from __future__ import annotations

import os
from typing import List, Tuple

APP_DIR = "whatsapp-sync"


def _config_roots() -> List[str]:
    """Directories searched for config, most specific first."""
    roots: List[str] = []
    env_cfg = os.environ.get("CREDENTIALS")
    if env_cfg:
        roots.append(os.path.expanduser(os.path.dirname(env_cfg)))
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        roots.append(os.path.expanduser(xdg))
    roots.append(os.path.expanduser("~/.config"))
    return roots


def credential_ini_paths() -> List[str]:
    """Candidate ``credentials.ini`` files in lookup order, without repeats.

    ``$CREDENTIALS`` comes first, then ``credentials.ini`` and
    ``whatsapp-sync/credentials.ini`` under each config root.
    """
    paths: List[str] = []
    env_creds = os.environ.get("CREDENTIALS")
    if env_creds:
        paths.append(os.path.expanduser(env_creds))
    for root in _config_roots():
        paths.append(os.path.join(root, "credentials.ini"))
        paths.append(os.path.join(root, APP_DIR, "credentials.ini"))
    return list(dict.fromkeys(p for p in paths if p))


def default_cache_root() -> str:
    xdg = os.environ.get("XDG_CACHE_HOME")
    base = os.path.expanduser(xdg) if xdg else os.path.expanduser("~/.cache")
    return os.path.join(base, APP_DIR)


# (connect_seconds, read_seconds) for backend calls
DEFAULT_REQUEST_TIMEOUT: Tuple[int, int] = (10, 30)

# Reachability probe: HEAD on the API base URL
PROBE_TIMEOUT: Tuple[int, int] = (3, 5)
