"""Vendor adapters and the default customizer tables."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

from ..app_token import AppTokenCache
from ..authorization import AuthorizationCustomizer
from ..client import ProviderHttpClient
from ..customizers import CustomizerRegistry, provider_is
from ..token import TokenExchange
from ..userinfo import AttributeFetcher
from . import feishu, wechat, wechat_work
from .feishu import FeishuAdapter
from .wechat import WeChatAdapter
from .wechat_work import WeChatWorkAdapter


@dataclass
class CustomizerTables:
    authorization: CustomizerRegistry[AuthorizationCustomizer] = field(default_factory=CustomizerRegistry)
    token: CustomizerRegistry[TokenExchange] = field(default_factory=CustomizerRegistry)
    user_info: CustomizerRegistry[AttributeFetcher] = field(default_factory=CustomizerRegistry)


def build_default_customizers(http: ProviderHttpClient, cache: Optional[AppTokenCache] = None) -> CustomizerTables:
    """Register the WeChat, WeChat Work and Feishu adapters."""
    tables = CustomizerTables()
    adapters = [
        (provider_is(*wechat.PROVIDERS), WeChatAdapter(http)),
        (provider_is(*wechat_work.PROVIDERS), WeChatWorkAdapter(http, cache)),
        (provider_is(*feishu.PROVIDERS), FeishuAdapter(http, cache)),
    ]
    for predicate, adapter in adapters:
        tables.authorization.register(predicate, adapter.customize_authorization)
        tables.token.register(predicate, adapter.exchange_token)
        tables.user_info.register(predicate, adapter.fetch_attributes)
    return tables


__all__ = [
    "CustomizerTables",
    "FeishuAdapter",
    "WeChatAdapter",
    "WeChatWorkAdapter",
    "build_default_customizers",
]
