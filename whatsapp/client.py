"""Thin client for the CRM backend's WhatsApp REST endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import requests

from core.constants import DEFAULT_REQUEST_TIMEOUT, PROBE_TIMEOUT

from .constants import (
    CONFIG_PATH,
    CONVERSATIONS_PATH,
    DEFAULT_API_URL,
    MARK_READ_PATH,
    MESSAGES_PATH,
    SEND_MESSAGE_PATH,
)

LOG = logging.getLogger(__name__)


class WhatsAppAPIError(RuntimeError):
    """Raised when the backend answers with an error or unreadable body."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class WhatsAppConnectionError(WhatsAppAPIError):
    """Raised when the backend cannot be reached at all."""


class WhatsAppAPI:
    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: Any = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.session = session or requests.Session()
        self.timeout = timeout

    def _make_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = self._make_url(path)
        method = method.upper()
        LOG.debug("%s %s", method, url)
        try:
            resp = self.session.request(
                method,
                url,
                headers=self._headers(),
                params=params,
                json=json_body,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise WhatsAppConnectionError(f"Cannot reach {self.base_url}: {exc}") from exc
        except requests.RequestException as exc:
            raise WhatsAppAPIError(f"{method} {url} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise WhatsAppAPIError(f"{resp.status_code} from {method} {url}: {resp.text}", resp.status_code)
        try:
            body = resp.json()
        except ValueError as exc:
            raise WhatsAppAPIError(f"Invalid JSON from {method} {url}: {resp.text}", resp.status_code) from exc
        if not isinstance(body, dict):
            raise WhatsAppAPIError(f"Unexpected response shape from {method} {url}", resp.status_code)
        return body

    def is_reachable(self) -> bool:
        """Cheap connectivity probe: any HTTP answer from the base URL counts."""
        try:
            self.session.head(self.base_url, headers=self._headers(), timeout=PROBE_TIMEOUT)
        except requests.RequestException as exc:
            LOG.debug("Probe of %s failed: %s", self.base_url, exc)
            return False
        return True

    def list_conversations(self) -> Dict[str, Any]:
        return self._request("GET", CONVERSATIONS_PATH)

    def list_messages(self, conversation_id: Any, since: Optional[str] = None) -> Dict[str, Any]:
        path = MESSAGES_PATH.format(conversation_id=conversation_id)
        return self._request("GET", path, params={"since": since} if since else None)

    def send_message(self, to: str, message: str, message_type: str = "text") -> Dict[str, Any]:
        body = {"to": to, "message": message, "messageType": message_type}
        return self._request("POST", SEND_MESSAGE_PATH, json_body=body)

    def mark_read(self, conversation_id: Any) -> Dict[str, Any]:
        return self._request("PATCH", MARK_READ_PATH.format(conversation_id=conversation_id))

    def get_config(self) -> Dict[str, Any]:
        return self._request("GET", CONFIG_PATH)
