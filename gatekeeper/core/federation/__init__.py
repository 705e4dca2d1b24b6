"""Identity federation broker.

Architecture:
- providers.py: registration id → ProviderDescriptor, vendor templates
- customizers.py: ordered predicate → strategy tables
- authorization.py: outgoing authorization request
- token.py: authorization-code exchange (Authlib default path)
- userinfo.py: attribute fetch and subject extraction
- binding.py: pending federated identity → local account link
- adapters/: WeChat, WeChat Work and Feishu strategies

Usage:
    providers = ProviderRegistry.from_settings(cfg.oauth2_registrations)
    tables = build_default_customizers(ProviderHttpClient(timeout=5))
    token = TokenExchangeBroker(tables.token).exchange(grant)
    identity = UserInfoBroker(providers, tables.user_info).fetch_user(token, "feishu")
"""
from .adapters import CustomizerTables, build_default_customizers
from .app_token import AppTokenCache
from .authorization import AuthorizationRequest, AuthorizationRequestBroker, registration_id_from_path
from .binding import (
    UNBOUND,
    BindingAbandoned,
    CreateLink,
    FederationSucceeded,
    LocalAuthenticationSucceeded,
    PendingBinding,
    SignIn,
    SocialBindingCoordinator,
    Unbound,
    transition,
)
from .client import ProviderHttpClient
from .customizers import CustomizerEntry, CustomizerRegistry, provider_is
from .exceptions import (
    AuthorizationFailed,
    FederationError,
    ProviderError,
    TokenExchangeFailed,
    UnknownRegistration,
    UserInfoFetchFailed,
)
from .providers import BUILTIN_PROVIDERS, ProviderDescriptor, ProviderRegistry, build_descriptor
from .token import AccessTokenResponse, AuthorizationCodeGrant, TokenExchangeBroker
from .userinfo import FederatedIdentity, UserInfoBroker

__all__ = [
    "AccessTokenResponse",
    "AppTokenCache",
    "AuthorizationCodeGrant",
    "AuthorizationFailed",
    "AuthorizationRequest",
    "AuthorizationRequestBroker",
    "BUILTIN_PROVIDERS",
    "BindingAbandoned",
    "CreateLink",
    "CustomizerEntry",
    "CustomizerRegistry",
    "CustomizerTables",
    "FederatedIdentity",
    "FederationError",
    "FederationSucceeded",
    "LocalAuthenticationSucceeded",
    "PendingBinding",
    "ProviderDescriptor",
    "ProviderError",
    "ProviderHttpClient",
    "ProviderRegistry",
    "SignIn",
    "SocialBindingCoordinator",
    "TokenExchangeBroker",
    "TokenExchangeFailed",
    "UNBOUND",
    "Unbound",
    "UnknownRegistration",
    "UserInfoBroker",
    "UserInfoFetchFailed",
    "build_default_customizers",
    "build_descriptor",
    "provider_is",
    "registration_id_from_path",
    "transition",
]
