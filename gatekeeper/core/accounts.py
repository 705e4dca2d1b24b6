"""Local accounts and federated-identity links.

Contracts plus the implementations used by the application:
- InMemoryAccountService: demo account store with Werkzeug password hashes
- RedisAccountLinkStore: ``social:link:{registrationId}:{subjectId}`` → account id
"""
from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Protocol

import redis
from werkzeug.security import check_password_hash, generate_password_hash

logger = logging.getLogger(__name__)


class AccountError(Exception):
    """Base exception for account operations."""
    pass


class AccountLinkError(AccountError):
    """The link store could not be reached or rejected the operation."""
    pass


@dataclass(frozen=True)
class LocalAccount:
    account_id: str
    username: str
    mobile: Optional[str] = None
    password_hash: str = ""

    def public_view(self) -> dict:
        return {"account_id": self.account_id, "username": self.username, "mobile": self.mobile}


class LocalAccountService(Protocol):
    def authenticate(self, username: str, password: str) -> Optional[LocalAccount]: ...

    def find_by_mobile(self, mobile: str) -> Optional[LocalAccount]: ...

    def get(self, account_id: str) -> Optional[LocalAccount]: ...


class AccountLinkService(Protocol):
    def find_link(self, registration_id: str, subject_id: str) -> Optional[str]: ...

    def create_link(self, registration_id: str, subject_id: str, account_id: str) -> bool: ...


class InMemoryAccountService:
    """Process-local account store, seeded from configuration."""

    def __init__(self, accounts: Iterable[LocalAccount] = ()):
        self._by_id: Dict[str, LocalAccount] = {}
        for account in accounts:
            self._by_id[account.account_id] = account

    @classmethod
    def from_config(cls, users: Iterable[Mapping[str, str]]) -> "InMemoryAccountService":
        service = cls()
        for user in users:
            service.add(
                user["username"],
                user["password"],
                mobile=user.get("mobile"),
                account_id=user.get("account_id"),
            )
        return service

    def add(self, username: str, password: str, mobile: Optional[str] = None,
            account_id: Optional[str] = None) -> LocalAccount:
        if self._find_by_username(username) is not None:
            raise AccountError(f"Username already exists: {username}")
        account = LocalAccount(
            account_id=account_id or uuid.uuid4().hex,
            username=username,
            mobile=mobile,
            password_hash=generate_password_hash(password),
        )
        self._by_id[account.account_id] = account
        return account

    def _find_by_username(self, username: str) -> Optional[LocalAccount]:
        for account in self._by_id.values():
            if account.username == username:
                return account
        return None

    def authenticate(self, username: str, password: str) -> Optional[LocalAccount]:
        account = self._find_by_username(username)
        if account is None or not check_password_hash(account.password_hash, password):
            return None
        return account

    def find_by_mobile(self, mobile: str) -> Optional[LocalAccount]:
        for account in self._by_id.values():
            if account.mobile and account.mobile == mobile:
                return account
        return None

    def get(self, account_id: str) -> Optional[LocalAccount]:
        return self._by_id.get(account_id)


class RedisAccountLinkStore:
    """Federated identity → local account links.

    ``create_link`` never overwrites: an identity already linked to an
    account keeps that link and the call returns False.
    """

    def __init__(self, redis_client: redis.Redis, namespace: str = "social:link"):
        self.redis = redis_client
        self.namespace = namespace

    def _key(self, registration_id: str, subject_id: str) -> str:
        return f"{self.namespace}:{registration_id}:{subject_id}"

    def find_link(self, registration_id: str, subject_id: str) -> Optional[str]:
        try:
            value = self.redis.get(self._key(registration_id, subject_id))
        except redis.RedisError as e:
            raise AccountLinkError(f"Failed to read account link: {e}") from e
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    def create_link(self, registration_id: str, subject_id: str, account_id: str) -> bool:
        try:
            created = self.redis.set(self._key(registration_id, subject_id), account_id, nx=True)
        except redis.RedisError as e:
            raise AccountLinkError(f"Failed to create account link: {e}") from e
        if created:
            logger.info("Linked %s identity to account %s", registration_id, account_id)
        return bool(created)
