"""Connection settings for the WhatsApp backend.

Resolution order: CLI arg > environment > credentials.ini profile > defaults.

INI layout (any file from ``core.constants.credential_ini_paths``)::

    [whatsapp]
    api_url = https://crm.example.com
    token = ...
    cache_dir = ~/.cache/whatsapp-sync

    [whatsapp.staging]
    api_url = https://staging.crm.example.com
"""

from __future__ import annotations

import configparser
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

from core.constants import credential_ini_paths, default_cache_root

from .constants import DEFAULT_API_URL

LOG = logging.getLogger(__name__)

SECTION = "whatsapp"

ENV_API_URL = "WHATSAPP_API_URL"
ENV_TOKEN = "WHATSAPP_API_TOKEN"  # noqa: S105 - env var name, not a secret
ENV_CACHE_DIR = "WHATSAPP_CACHE_DIR"


@dataclass
class ClientSettings:
    api_url: str
    token: Optional[str]
    cache_dir: str
    profile: Optional[str] = None
    source: Optional[Path] = None  # ini file the profile came from


def section_name(profile: Optional[str]) -> str:
    return f"{SECTION}.{profile}" if profile else SECTION


def load_profile(
    profile: Optional[str],
    paths: Optional[Sequence[str]] = None,
) -> Tuple[Optional[Path], Dict[str, str]]:
    """Return (path, section values) for the first ini file holding the profile."""
    section = section_name(profile)
    for path in paths if paths is not None else credential_ini_paths():
        expanded = os.path.expanduser(path)
        if not os.path.isfile(expanded):
            continue
        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read(expanded, encoding="utf-8")
        except configparser.Error as exc:
            LOG.warning("Skipping unreadable credentials file %s: %s", expanded, exc)
            continue
        if parser.has_section(section):
            return Path(expanded), dict(parser[section])
    return None, {}


def resolve_settings(
    profile: Optional[str] = None,
    api_url: Optional[str] = None,
    token: Optional[str] = None,
    cache_dir: Optional[str] = None,
    paths: Optional[Sequence[str]] = None,
) -> ClientSettings:
    source, values = load_profile(profile, paths)
    if profile and source is None:
        LOG.warning("Profile [%s] not found in any credentials.ini", section_name(profile))
    resolved_url = api_url or os.environ.get(ENV_API_URL) or values.get("api_url") or DEFAULT_API_URL
    resolved_token = token or os.environ.get(ENV_TOKEN) or values.get("token") or None
    resolved_cache = (
        cache_dir
        or os.environ.get(ENV_CACHE_DIR)
        or values.get("cache_dir")
        or os.path.join(default_cache_root(), profile or "default")
    )
    return ClientSettings(
        api_url=resolved_url,
        token=resolved_token,
        cache_dir=os.path.expanduser(resolved_cache),
        profile=profile,
        source=source,
    )
