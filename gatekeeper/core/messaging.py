"""Outbound message dispatch (SMS / IM gateways).

Delivery itself is out of scope. Two adapters are provided: one that logs
the dispatch (demo mode) and one that POSTs JSON to a gateway webhook.
"""
from __future__ import annotations
import logging
from typing import Mapping, Protocol

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5


class DispatchError(Exception):
    """The message gateway rejected or failed to accept a message."""
    pass


class MessageDispatcher(Protocol):
    def send(self, target: str, template_id: str, params: Mapping[str, str]) -> None: ...


def mask_target(target: str) -> str:
    """Mask a phone number or address for logging: 138****0000."""
    if len(target) <= 7:
        return "*" * len(target)
    return f"{target[:3]}{'*' * (len(target) - 7)}{target[-4:]}"


class LoggingMessageDispatcher:
    """Record dispatches in the log instead of delivering them.

    Only the masked target and template are logged; parameter values are
    kept in ``sent`` for inspection in demo mode and tests.
    """

    def __init__(self):
        self.sent: list[tuple[str, str, dict]] = []

    def send(self, target: str, template_id: str, params: Mapping[str, str]) -> None:
        self.sent.append((target, template_id, dict(params)))
        logger.info("Dispatched template %s to %s", template_id, mask_target(target))


class WebhookMessageDispatcher:
    """POST ``{target, template_id, params}`` to an HTTP gateway."""

    def __init__(self, url: str, timeout: float = REQUEST_TIMEOUT, headers: Mapping[str, str] | None = None):
        if not url:
            raise ValueError("Webhook dispatcher requires a gateway URL")
        self.url = url
        self.timeout = timeout
        self.headers = dict(headers or {})

    def send(self, target: str, template_id: str, params: Mapping[str, str]) -> None:
        payload = {"target": target, "template_id": template_id, "params": dict(params)}
        try:
            resp = requests.post(self.url, json=payload, headers=self.headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise DispatchError(f"Gateway unreachable: {e}") from e

        if resp.status_code >= 400:
            raise DispatchError(f"Gateway returned HTTP {resp.status_code}")
        logger.info("Gateway accepted template %s for %s", template_id, mask_target(target))
