"""Authorization-code exchange.

Providers without a customizer go through Authlib's ``OAuth2Session``.
Vendors that deviate from RFC 6749 register an exchange strategy that
returns an already normalized ``AccessTokenResponse``.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional

import requests
from authlib.integrations.base_client import OAuthError
from authlib.integrations.requests_client import OAuth2Session

from .client import REQUEST_TIMEOUT
from .customizers import CustomizerRegistry
from .exceptions import TokenExchangeFailed
from .providers import ProviderDescriptor

logger = logging.getLogger(__name__)

_CORE_TOKEN_FIELDS = ("access_token", "token_type", "expires_in", "expires_at", "scope", "refresh_token")


def _parse_scope(scope: Any) -> FrozenSet[str]:
    if not scope:
        return frozenset()
    if isinstance(scope, str):
        return frozenset(s for s in scope.replace(",", " ").split() if s)
    return frozenset(str(s) for s in scope)


def _parse_expires_in(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class AccessTokenResponse:
    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    scope: FrozenSet[str] = frozenset()
    refresh_token: Optional[str] = None
    additional_parameters: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_token(cls, token: Mapping[str, Any], default_scopes: Iterable[str] = ()) -> "AccessTokenResponse":
        """Normalize a provider token document.

        Missing ``token_type`` defaults to Bearer and missing ``scope`` to the
        requested scopes. Unknown fields land in ``additional_parameters``.
        """
        scope = _parse_scope(token.get("scope")) or frozenset(default_scopes)
        return cls(
            access_token=str(token["access_token"]),
            token_type=str(token.get("token_type") or "Bearer"),
            expires_in=_parse_expires_in(token.get("expires_in")),
            scope=scope,
            refresh_token=token.get("refresh_token") or None,
            additional_parameters={k: v for k, v in token.items() if k not in _CORE_TOKEN_FIELDS},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "scope": " ".join(sorted(self.scope)),
            "refresh_token": self.refresh_token,
            **self.additional_parameters,
        }


@dataclass
class AuthorizationCodeGrant:
    provider: ProviderDescriptor
    code: str
    redirect_uri: str
    code_verifier: Optional[str] = None
    state: Optional[str] = None


TokenExchange = Callable[[AuthorizationCodeGrant], AccessTokenResponse]


class TokenExchangeBroker:
    """Exchange authorization codes, dispatching on the provider name."""

    def __init__(
        self,
        customizers: Optional[CustomizerRegistry[TokenExchange]] = None,
        timeout: float = REQUEST_TIMEOUT,
        session_factory: Callable[..., OAuth2Session] = OAuth2Session,
    ):
        self.customizers = customizers or CustomizerRegistry()
        self.timeout = timeout
        self._session_factory = session_factory

    def exchange(self, grant: AuthorizationCodeGrant) -> AccessTokenResponse:
        """Exchange ``grant`` for an access token.

        Raises:
            TokenExchangeFailed: On HTTP, transport or vendor error, or a
                response without ``access_token``
        """
        descriptor = grant.provider
        strategy = self.customizers.resolve(descriptor.provider)
        try:
            if strategy is not None:
                response = strategy(grant)
            else:
                response = self._default_exchange(grant)
        except TokenExchangeFailed as e:
            e.registration_id = e.registration_id or descriptor.registration_id
            logger.warning("Token exchange failed for %s: %s", descriptor.registration_id, e)
            raise

        if not response.access_token:
            raise TokenExchangeFailed(
                "Token response has no access_token", "invalid_token_response",
                registration_id=descriptor.registration_id,
            )
        return response

    def _default_exchange(self, grant: AuthorizationCodeGrant) -> AccessTokenResponse:
        descriptor = grant.provider
        extra: Dict[str, Any] = {}
        if grant.code_verifier:
            extra["code_verifier"] = grant.code_verifier

        session = self._session_factory(
            client_id=descriptor.client_id,
            client_secret=descriptor.client_secret or None,
            token_endpoint_auth_method="none" if descriptor.is_public_client else descriptor.token_endpoint_auth_method,
            scope=" ".join(descriptor.scopes) or None,
            redirect_uri=grant.redirect_uri,
        )
        try:
            token = session.fetch_token(
                descriptor.token_uri,
                grant_type="authorization_code",
                code=grant.code,
                timeout=self.timeout,
                **extra,
            )
        except OAuthError as e:
            raise TokenExchangeFailed("Provider rejected the authorization code", e.error, e.description) from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "error"
            raise TokenExchangeFailed(f"Token endpoint returned HTTP {status}", f"http_{status}") from e
        except requests.RequestException as e:
            raise TokenExchangeFailed("Token endpoint unreachable", "transport_error", str(e)) from e
        except ValueError as e:
            raise TokenExchangeFailed("Token endpoint returned a non-JSON body", "invalid_response", str(e)) from e
        finally:
            session.close()

        if not token or not token.get("access_token"):
            raise TokenExchangeFailed("Token response has no access_token", "invalid_token_response")
        return AccessTokenResponse.from_token(token, default_scopes=descriptor.scopes)
