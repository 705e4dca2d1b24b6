"""Local-authentication event source.

Subscribers are called synchronously, in subscription order, with the
authenticated account id after a successful local-credential login.
"""
from __future__ import annotations
import logging
from typing import Callable, List

logger = logging.getLogger(__name__)

LocalAuthenticationListener = Callable[[str], None]


class LocalAuthenticationEvents:
    def __init__(self):
        self._listeners: List[LocalAuthenticationListener] = []

    def subscribe(self, listener: LocalAuthenticationListener) -> None:
        self._listeners.append(listener)

    def publish(self, account_id: str) -> None:
        logger.debug("Local authentication succeeded for %s (%d listeners)", account_id, len(self._listeners))
        for listener in self._listeners:
            listener(account_id)

    def __len__(self) -> int:
        return len(self._listeners)
