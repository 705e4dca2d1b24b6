"""WeChat Work (WeCom) web login.

There is no per-user access token: the corp token from ``gettoken`` is
used for both lookups, and the login code resolves to a ``userid``.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from ..app_token import AppTokenCache
from ..authorization import AuthorizationRequest
from ..client import ProviderHttpClient
from ..exceptions import TokenExchangeFailed, UserInfoFetchFailed
from ..providers import ProviderDescriptor
from ..token import AccessTokenResponse, AuthorizationCodeGrant
from .wechat import check_errcode

logger = logging.getLogger(__name__)

PROVIDERS = ("wechat_work",)


class WeChatWorkAdapter:
    def __init__(self, http: ProviderHttpClient, cache: Optional[AppTokenCache] = None):
        self.http = http
        self.cache = cache or AppTokenCache(None)

    def customize_authorization(self, request: AuthorizationRequest, descriptor: ProviderDescriptor) -> None:
        login_type = descriptor.meta("login_type", "CorpApp")
        params = [
            ("login_type", login_type),
            ("appid", descriptor.client_id),
        ]
        if login_type == "CorpApp" and descriptor.meta("agent_id"):
            params.append(("agentid", str(descriptor.meta("agent_id"))))
        params.extend([
            ("redirect_uri", request.redirect_uri),
            ("state", request.state),
            ("lang", descriptor.meta("lang", "zh")),
        ])
        request.parameters = params
        request.nonce = None
        request.code_verifier = None

    def corp_access_token(self, descriptor: ProviderDescriptor) -> tuple[str, Optional[int]]:
        def fetch() -> tuple[str, Optional[int]]:
            body = self.http.get_json(
                descriptor.token_uri,
                params={"corpid": descriptor.client_id, "corpsecret": descriptor.client_secret},
                error_cls=TokenExchangeFailed,
            )
            check_errcode(body, TokenExchangeFailed)
            token = body.get("access_token")
            if not token:
                raise TokenExchangeFailed("WeChat Work gettoken returned no access_token", "invalid_token_response")
            logger.info("Fetched WeChat Work corp token for %s", descriptor.registration_id)
            return token, body.get("expires_in")

        return self.cache.get_or_fetch(descriptor.provider, descriptor.client_id, fetch)

    def exchange_token(self, grant: AuthorizationCodeGrant) -> AccessTokenResponse:
        descriptor = grant.provider
        corp_token, expires_in = self.corp_access_token(descriptor)

        login_uri = descriptor.meta("user_login_uri")
        if not login_uri:
            raise TokenExchangeFailed("WeChat Work registration has no user_login_uri", "misconfigured")
        body = self.http.get_json(
            login_uri,
            params={"access_token": corp_token, "code": grant.code},
            error_cls=TokenExchangeFailed,
        )
        check_errcode(body, TokenExchangeFailed)

        userid = body.get("userid") or body.get("UserId")
        if not userid:
            raise TokenExchangeFailed("Login code does not belong to a member of this corp", "not_a_member")

        extra: Dict[str, Any] = {"userid": userid}
        if body.get("user_ticket"):
            extra["user_ticket"] = body["user_ticket"]
        return AccessTokenResponse(
            access_token=corp_token,
            token_type="Bearer",
            expires_in=expires_in,
            scope=frozenset(descriptor.scopes),
            additional_parameters=extra,
        )

    def fetch_attributes(self, token: AccessTokenResponse, descriptor: ProviderDescriptor) -> Dict[str, Any]:
        userid = token.additional_parameters.get("userid")
        if not userid:
            raise UserInfoFetchFailed("Token response carried no userid", "missing_userid")
        body = self.http.get_json(
            descriptor.user_info_uri,
            params={"access_token": token.access_token, "userid": userid},
            error_cls=UserInfoFetchFailed,
        )
        return check_errcode(body, UserInfoFetchFailed)
