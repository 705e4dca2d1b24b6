"""Feishu (Lark) login.

The user token endpoint is authenticated with an application token rather
than client credentials, and every response is wrapped in
``{"code": 0, "msg": "...", "data": {...}}``.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional, Type

from ..app_token import AppTokenCache
from ..authorization import AuthorizationRequest
from ..client import ProviderHttpClient
from ..exceptions import ProviderError, TokenExchangeFailed, UserInfoFetchFailed
from ..providers import ProviderDescriptor
from ..token import AccessTokenResponse, AuthorizationCodeGrant

logger = logging.getLogger(__name__)

PROVIDERS = ("feishu",)

SUCCESS_CODES = (0, 200)


def unwrap(body: Dict[str, Any], error_cls: Type[ProviderError], *, require_data: bool = True) -> Dict[str, Any]:
    """Return ``data`` from a Feishu envelope, raising on a failure code."""
    code = body.get("code")
    try:
        ok = int(code) in SUCCESS_CODES
    except (TypeError, ValueError):
        ok = False
    if not ok:
        msg = body.get("msg") or body.get("message") or "unknown error"
        logger.warning("Feishu returned code %s: %s", code, msg)
        raise error_cls(f"Feishu returned code {code}: {msg}", str(code), msg)

    if not require_data:
        return body
    data = body.get("data")
    if not isinstance(data, dict):
        raise error_cls("Feishu response has no data object", "invalid_response")
    return data


class FeishuAdapter:
    def __init__(self, http: ProviderHttpClient, cache: Optional[AppTokenCache] = None):
        self.http = http
        self.cache = cache or AppTokenCache(None)

    def customize_authorization(self, request: AuthorizationRequest, descriptor: ProviderDescriptor) -> None:
        request.rename_param("client_id", "app_id")

    def app_access_token(self, descriptor: ProviderDescriptor) -> str:
        def fetch() -> tuple[str, Optional[int]]:
            uri = descriptor.meta("app_access_token_uri")
            if not uri:
                raise TokenExchangeFailed("Feishu registration has no app_access_token_uri", "misconfigured")
            body = self.http.post_json(
                uri,
                json={"app_id": descriptor.client_id, "app_secret": descriptor.client_secret},
                error_cls=TokenExchangeFailed,
            )
            unwrap(body, TokenExchangeFailed, require_data=False)
            token = body.get("app_access_token")
            if not token:
                raise TokenExchangeFailed("Feishu app token response has no app_access_token", "invalid_response")
            logger.info("Fetched Feishu app token for %s", descriptor.registration_id)
            return token, body.get("expire")

        token, _ = self.cache.get_or_fetch(descriptor.provider, descriptor.client_id, fetch)
        return token

    def exchange_token(self, grant: AuthorizationCodeGrant) -> AccessTokenResponse:
        descriptor = grant.provider
        app_token = self.app_access_token(descriptor)
        body = self.http.post_json(
            descriptor.token_uri,
            json={"grant_type": "authorization_code", "code": grant.code},
            headers={"Authorization": f"Bearer {app_token}"},
            error_cls=TokenExchangeFailed,
        )
        data = unwrap(body, TokenExchangeFailed)
        if not data.get("access_token"):
            raise TokenExchangeFailed("Feishu token response has no access_token", "invalid_token_response")
        # refresh_expires_in and any other vendor fields go to additional_parameters
        return AccessTokenResponse.from_token(data, default_scopes=descriptor.scopes)

    def fetch_attributes(self, token: AccessTokenResponse, descriptor: ProviderDescriptor) -> Dict[str, Any]:
        body = self.http.get_json(
            descriptor.user_info_uri,
            headers={"Authorization": f"Bearer {token.access_token}"},
            error_cls=UserInfoFetchFailed,
        )
        return unwrap(body, UserInfoFetchFailed)
