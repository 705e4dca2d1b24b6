"""Provider registrations: registration id → endpoints and credentials.

Known vendors ship with endpoint templates so a registration only needs
credentials:

    OAUTH2_REGISTRATIONS='{"feishu": {"client_id": "cli_x", "client_secret": "..."}}'

Any other provider must name its own endpoints.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional

from .exceptions import UnknownRegistration

logger = logging.getLogger(__name__)

DEFAULT_REDIRECT_URI = "{baseUrl}/login/oauth2/code/{registrationId}"

BUILTIN_PROVIDERS: Dict[str, Dict[str, Any]] = {
    "wechat_open": {
        "authorization_uri": "https://open.weixin.qq.com/connect/qrconnect",
        "token_uri": "https://api.weixin.qq.com/sns/oauth2/access_token",
        "user_info_uri": "https://api.weixin.qq.com/sns/userinfo",
        "user_name_attribute": "openid",
        "scopes": ["snsapi_login"],
        "metadata": {"lang": "zh_CN"},
    },
    "wechat_mp": {
        "authorization_uri": "https://open.weixin.qq.com/connect/oauth2/authorize",
        "token_uri": "https://api.weixin.qq.com/sns/oauth2/access_token",
        "user_info_uri": "https://api.weixin.qq.com/sns/userinfo",
        "user_name_attribute": "openid",
        "scopes": ["snsapi_userinfo"],
        "metadata": {"lang": "zh_CN"},
    },
    "wechat_work": {
        "authorization_uri": "https://login.work.weixin.qq.com/wwlogin/sso/login",
        "token_uri": "https://qyapi.weixin.qq.com/cgi-bin/gettoken",
        "user_info_uri": "https://qyapi.weixin.qq.com/cgi-bin/user/get",
        "user_name_attribute": "userid",
        "scopes": ["snsapi_base"],
        "metadata": {
            "user_login_uri": "https://qyapi.weixin.qq.com/cgi-bin/auth/getuserinfo",
            "login_type": "CorpApp",
            "agent_id": "1000002",
            "lang": "zh",
        },
    },
    "feishu": {
        "authorization_uri": "https://open.feishu.cn/open-apis/authen/v1/authorize",
        "token_uri": "https://open.feishu.cn/open-apis/authen/v1/oidc/access_token",
        "user_info_uri": "https://open.feishu.cn/open-apis/authen/v1/user_info",
        "user_name_attribute": "union_id",
        "scopes": [],
        "metadata": {
            "app_access_token_uri": "https://open.feishu.cn/open-apis/auth/v3/app_access_token/internal",
        },
    },
}


@dataclass(frozen=True)
class ProviderDescriptor:
    """Immutable provider registration.

    ``provider`` is the vendor name used to pick customizers; several
    registrations may share one vendor.
    """
    registration_id: str
    provider: str
    client_id: str
    client_secret: str
    authorization_uri: str
    token_uri: str
    user_info_uri: str = ""
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scopes: tuple[str, ...] = ()
    user_name_attribute: str = "sub"
    token_endpoint_auth_method: str = "client_secret_basic"
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def meta(self, key: str, default: Any = None) -> Any:
        return self.metadata.get(key, default)

    @property
    def is_public_client(self) -> bool:
        return not self.client_secret

    def expand_redirect_uri(self, base_url: str) -> str:
        """Fill ``{baseUrl}`` and ``{registrationId}`` in the redirect template."""
        return (
            self.redirect_uri
            .replace("{baseUrl}", base_url.rstrip("/"))
            .replace("{registrationId}", self.registration_id)
        )


def build_descriptor(registration_id: str, settings: Mapping[str, Any]) -> ProviderDescriptor:
    """Merge a registration's settings over its vendor template.

    Raises:
        ValueError: If a required field is missing after the merge
    """
    provider = settings.get("provider") or registration_id
    template = BUILTIN_PROVIDERS.get(provider, {})

    def pick(name: str, default: Any = None) -> Any:
        value = settings.get(name)
        if value in (None, ""):
            value = template.get(name, default)
        return value

    metadata = dict(template.get("metadata", {}))
    metadata.update(settings.get("metadata") or {})

    scopes = settings.get("scopes", settings.get("scope"))
    if scopes is None:
        scopes = template.get("scopes", [])
    if isinstance(scopes, str):
        scopes = [s for s in scopes.replace(",", " ").split() if s]

    descriptor_fields = {
        "registration_id": registration_id,
        "provider": provider,
        "client_id": pick("client_id", ""),
        "client_secret": pick("client_secret", ""),
        "authorization_uri": pick("authorization_uri", ""),
        "token_uri": pick("token_uri", ""),
        "user_info_uri": pick("user_info_uri", ""),
        "redirect_uri": pick("redirect_uri", DEFAULT_REDIRECT_URI),
        "user_name_attribute": pick("user_name_attribute", "sub"),
        "token_endpoint_auth_method": pick("token_endpoint_auth_method", "client_secret_basic"),
    }
    missing = [name for name in ("client_id", "authorization_uri", "token_uri") if not descriptor_fields[name]]
    if missing:
        raise ValueError(f"Registration {registration_id!r} is missing {', '.join(missing)}")

    return ProviderDescriptor(
        scopes=tuple(scopes),
        metadata=MappingProxyType(metadata),
        **descriptor_fields,
    )


class ProviderRegistry:
    """Lookup of provider descriptors by registration id."""

    def __init__(self, descriptors: Iterable[ProviderDescriptor] = ()):
        self._descriptors: Dict[str, ProviderDescriptor] = {}
        for descriptor in descriptors:
            self._descriptors[descriptor.registration_id] = descriptor

    @classmethod
    def from_settings(cls, registrations: Mapping[str, Mapping[str, Any]]) -> "ProviderRegistry":
        descriptors = [build_descriptor(rid, entry) for rid, entry in registrations.items()]
        for descriptor in descriptors:
            if not descriptor.client_secret:
                logger.info("Registration %s has no client secret; using PKCE", descriptor.registration_id)
        return cls(descriptors)

    def find(self, registration_id: str) -> Optional[ProviderDescriptor]:
        return self._descriptors.get(registration_id)

    def get(self, registration_id: str) -> ProviderDescriptor:
        descriptor = self._descriptors.get(registration_id)
        if descriptor is None:
            raise UnknownRegistration(registration_id)
        return descriptor

    def __contains__(self, registration_id: object) -> bool:
        return registration_id in self._descriptors

    def __iter__(self) -> Iterator[ProviderDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)
