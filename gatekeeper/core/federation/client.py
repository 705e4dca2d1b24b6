"""HTTP helper for vendor endpoints that do not follow RFC 6749.

Every call carries an explicit timeout. Non-2xx statuses, transport errors
and non-object bodies are raised as the caller's ``ProviderError`` subclass.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional, Type

import requests

from .exceptions import ProviderError

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 5


class ProviderHttpClient:
    """Thin wrapper over ``requests`` returning decoded JSON objects."""

    def __init__(self, timeout: float = REQUEST_TIMEOUT):
        self.timeout = timeout

    def get_json(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        error_cls: Type[ProviderError] = ProviderError,
    ) -> Dict[str, Any]:
        try:
            resp = requests.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise error_cls(f"GET {url} failed", "transport_error", str(e)) from e
        return self._decode(resp, url, error_cls)

    def post_json(
        self,
        url: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        error_cls: Type[ProviderError] = ProviderError,
    ) -> Dict[str, Any]:
        try:
            resp = requests.post(url, json=json, data=data, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise error_cls(f"POST {url} failed", "transport_error", str(e)) from e
        return self._decode(resp, url, error_cls)

    @staticmethod
    def _decode(resp, url: str, error_cls: Type[ProviderError]) -> Dict[str, Any]:
        if resp.status_code >= 400:
            logger.warning("Provider endpoint %s returned HTTP %s", url, resp.status_code)
            raise error_cls(
                f"Provider returned HTTP {resp.status_code}",
                f"http_{resp.status_code}",
                (getattr(resp, "text", "") or "")[:200] or None,
            )
        try:
            body = resp.json()
        except ValueError as e:
            raise error_cls("Provider returned a non-JSON body", "invalid_response", str(e)) from e
        if not isinstance(body, dict):
            raise error_cls("Provider returned a non-object JSON body", "invalid_response")
        return body
