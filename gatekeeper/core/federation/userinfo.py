"""User-info retrieval and subject extraction."""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import requests
from authlib.integrations.requests_client import OAuth2Session

from .client import REQUEST_TIMEOUT
from .customizers import CustomizerRegistry
from .exceptions import UserInfoFetchFailed
from .providers import ProviderDescriptor, ProviderRegistry
from .token import AccessTokenResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FederatedIdentity:
    registration_id: str
    subject_id: str
    raw_attributes: Dict[str, Any] = field(default_factory=dict, compare=False)


AttributeFetcher = Callable[[AccessTokenResponse, ProviderDescriptor], Dict[str, Any]]


class UserInfoBroker:
    """Fetch provider attributes and build a ``FederatedIdentity``."""

    def __init__(
        self,
        providers: ProviderRegistry,
        customizers: Optional[CustomizerRegistry[AttributeFetcher]] = None,
        timeout: float = REQUEST_TIMEOUT,
        session_factory: Callable[..., OAuth2Session] = OAuth2Session,
    ):
        self.providers = providers
        self.customizers = customizers or CustomizerRegistry()
        self.timeout = timeout
        self._session_factory = session_factory

    def fetch_user(self, token_response: AccessTokenResponse, registration_id: str) -> FederatedIdentity:
        """Resolve the federated identity behind ``token_response``.

        Raises:
            UnknownRegistration: If ``registration_id`` is not configured
            UserInfoFetchFailed: On HTTP, transport or vendor error, or when
                the subject attribute is missing
        """
        descriptor = self.providers.get(registration_id)
        fetch = self.customizers.resolve(descriptor.provider) or self._default_fetch
        try:
            attributes = fetch(token_response, descriptor)
        except UserInfoFetchFailed as e:
            e.registration_id = e.registration_id or registration_id
            logger.warning("User-info fetch failed for %s: %s", registration_id, e)
            raise

        subject = attributes.get(descriptor.user_name_attribute)
        if subject in (None, ""):
            raise UserInfoFetchFailed(
                f"Attribute {descriptor.user_name_attribute!r} missing from user info",
                "missing_subject",
                registration_id=registration_id,
            )
        return FederatedIdentity(registration_id, str(subject), dict(attributes))

    def _default_fetch(self, token_response: AccessTokenResponse, descriptor: ProviderDescriptor) -> Dict[str, Any]:
        if not descriptor.user_info_uri:
            raise UserInfoFetchFailed("Registration has no user-info endpoint", "missing_user_info_uri")

        session = self._session_factory(
            client_id=descriptor.client_id,
            token={"access_token": token_response.access_token, "token_type": token_response.token_type},
        )
        try:
            resp = session.get(descriptor.user_info_uri, timeout=self.timeout)
        except requests.RequestException as e:
            raise UserInfoFetchFailed("User-info endpoint unreachable", "transport_error", str(e)) from e
        finally:
            session.close()

        if resp.status_code >= 400:
            raise UserInfoFetchFailed(f"User-info endpoint returned HTTP {resp.status_code}", f"http_{resp.status_code}")
        try:
            attributes = resp.json()
        except ValueError as e:
            raise UserInfoFetchFailed("User-info endpoint returned a non-JSON body", "invalid_response", str(e)) from e
        if not isinstance(attributes, dict):
            raise UserInfoFetchFailed("User-info response is not a JSON object", "invalid_response")
        return attributes
