"""Authorization request construction.

Builds the standard authorization-code redirect for a registration and
lets a vendor customizer reshape it (rename parameters, reorder them, add
a fragment).
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from authlib.common.security import generate_token
from authlib.common.urls import add_params_to_uri
from authlib.oauth2.rfc7636 import create_s256_code_challenge

from .customizers import CustomizerRegistry
from .providers import ProviderDescriptor, ProviderRegistry

logger = logging.getLogger(__name__)

AUTHORIZATION_BASE_PATH = "/oauth2/authorization/"


@dataclass
class AuthorizationRequest:
    """Outgoing authorization request, kept in session until the callback."""
    registration_id: str
    authorization_uri: str
    redirect_uri: str
    state: str
    parameters: List[Tuple[str, str]] = field(default_factory=list)
    nonce: Optional[str] = None
    code_verifier: Optional[str] = None
    fragment: Optional[str] = None

    def get_param(self, name: str) -> Optional[str]:
        for key, value in self.parameters:
            if key == name:
                return value
        return None

    def set_param(self, name: str, value: str) -> None:
        """Replace ``name`` in place, or append it."""
        for index, (key, _) in enumerate(self.parameters):
            if key == name:
                self.parameters[index] = (name, value)
                return
        self.parameters.append((name, value))

    def remove_param(self, name: str) -> Optional[str]:
        value = self.get_param(name)
        self.parameters = [(k, v) for k, v in self.parameters if k != name]
        return value

    def rename_param(self, old: str, new: str) -> None:
        self.parameters = [(new if k == old else k, v) for k, v in self.parameters]

    def to_url(self) -> str:
        url = add_params_to_uri(self.authorization_uri, self.parameters)
        if self.fragment:
            url = f"{url}#{self.fragment}"
        return url

    def to_dict(self) -> Dict[str, Any]:
        return {
            "registration_id": self.registration_id,
            "authorization_uri": self.authorization_uri,
            "redirect_uri": self.redirect_uri,
            "state": self.state,
            "parameters": [list(p) for p in self.parameters],
            "nonce": self.nonce,
            "code_verifier": self.code_verifier,
            "fragment": self.fragment,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthorizationRequest":
        return cls(
            registration_id=data["registration_id"],
            authorization_uri=data["authorization_uri"],
            redirect_uri=data["redirect_uri"],
            state=data["state"],
            parameters=[(k, v) for k, v in data.get("parameters", [])],
            nonce=data.get("nonce"),
            code_verifier=data.get("code_verifier"),
            fragment=data.get("fragment"),
        )


AuthorizationCustomizer = Callable[[AuthorizationRequest, ProviderDescriptor], None]


def registration_id_from_path(path: str) -> Optional[str]:
    """Extract ``{registrationId}`` from ``/oauth2/authorization/{registrationId}``."""
    if not path.startswith(AUTHORIZATION_BASE_PATH):
        return None
    registration_id = path[len(AUTHORIZATION_BASE_PATH):].strip("/")
    if not registration_id or "/" in registration_id:
        return None
    return registration_id


class AuthorizationRequestBroker:
    """Resolve an incoming authorization path into a provider redirect."""

    def __init__(
        self,
        providers: ProviderRegistry,
        customizers: Optional[CustomizerRegistry[AuthorizationCustomizer]] = None,
    ):
        self.providers = providers
        self.customizers = customizers or CustomizerRegistry()

    def resolve(self, request) -> Optional[AuthorizationRequest]:
        """Build the authorization request for a Flask/Werkzeug request.

        Returns None when the path is not an authorization path.

        Raises:
            UnknownRegistration: If the registration id is not configured
        """
        registration_id = registration_id_from_path(request.path)
        if registration_id is None:
            return None
        return self.authorize(registration_id, request.host_url)

    def authorize(self, registration_id: str, base_url: str) -> AuthorizationRequest:
        descriptor = self.providers.get(registration_id)
        auth_request = self._standard_request(descriptor, base_url)

        customizer = self.customizers.resolve(descriptor.provider)
        if customizer is not None:
            customizer(auth_request, descriptor)
        logger.info("Built authorization request for %s (%s)", registration_id, descriptor.provider)
        return auth_request

    @staticmethod
    def _standard_request(descriptor: ProviderDescriptor, base_url: str) -> AuthorizationRequest:
        redirect_uri = descriptor.expand_redirect_uri(base_url)
        state = generate_token(32)
        params: List[Tuple[str, str]] = [
            ("response_type", "code"),
            ("client_id", descriptor.client_id),
            ("redirect_uri", redirect_uri),
        ]
        if descriptor.scopes:
            params.append(("scope", " ".join(descriptor.scopes)))
        params.append(("state", state))

        auth_request = AuthorizationRequest(
            registration_id=descriptor.registration_id,
            authorization_uri=descriptor.authorization_uri,
            redirect_uri=redirect_uri,
            state=state,
            parameters=params,
        )

        if "openid" in descriptor.scopes:
            auth_request.nonce = generate_token(32)
            auth_request.set_param("nonce", auth_request.nonce)

        if descriptor.is_public_client or descriptor.meta("pkce"):
            auth_request.code_verifier = generate_token(64)
            auth_request.set_param("code_challenge", create_s256_code_challenge(auth_request.code_verifier))
            auth_request.set_param("code_challenge_method", "S256")

        return auth_request
