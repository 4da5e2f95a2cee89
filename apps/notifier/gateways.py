"""
Outbound SMS / e-mail gateways.

The notifier only needs a single `send` capability from each. The log-only gateways are
used when no gateway URL is configured; the HTTP gateways post JSON to a relay service.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol

import requests

logger = logging.getLogger("emrnotify.gateways")


class GatewayError(Exception):
    pass


class SmsGateway(Protocol):
    def send(self, phone: str, text: str) -> None: ...


class EmailGateway(Protocol):
    def send(self, address: str, subject: str, body: str) -> None: ...


def mask_destination(value: Optional[str]) -> str:
    value = (value or "").strip()
    if not value:
        return ""
    return value[:3] + "***"


class LoggingSmsGateway:
    def send(self, phone: str, text: str) -> None:
        logger.info("SMS (log-only) to %s: %d chars", mask_destination(phone), len(text))


class LoggingEmailGateway:
    def send(self, address: str, subject: str, body: str) -> None:
        logger.info("E-mail (log-only) to %s: %s", mask_destination(address), subject)


class _HttpGateway:
    def __init__(self, url: str, timeout: float, token: Optional[str] = None, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.token = token
        self.session = session or requests.Session()

    def _post(self, body: dict) -> None:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = self.session.post(self.url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise GatewayError(f"{type(exc).__name__}: {exc}") from exc
        if resp.status_code >= 400:
            raise GatewayError(f"HTTP {resp.status_code}")


class HttpSmsGateway(_HttpGateway):
    def send(self, phone: str, text: str) -> None:
        self._post({"to": phone, "text": text})


class HttpEmailGateway(_HttpGateway):
    def send(self, address: str, subject: str, body: str) -> None:
        self._post({"to": address, "subject": subject, "html": body})
